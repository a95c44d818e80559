"""
Cost ledger: pricing, recording and aggregation of model usage.

calculate_cost() is pure. record_cost() adds exactly one row and never
touches existing ones. Usage arrives as an explicit argument from the
caller's own analysis result.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..models.cost import CostRecord
from .llm import TokenUsage

logger = logging.getLogger(__name__)

OPERATION_ANALYSIS = "analysis"
OPERATION_SEARCH = "search"
OPERATION_TYPES = (OPERATION_ANALYSIS, OPERATION_SEARCH)

DEFAULT_PRICING_MODEL = "gemini-2.5-flash"

# USD per token
PRICING: dict[str, dict[str, float]] = {
    "gemini-2.5-flash": {
        "input": 0.075 / 1_000_000,
        "output": 0.30 / 1_000_000,
    },
    "gemini-1.5-flash": {
        "input": 0.075 / 1_000_000,
        "output": 0.30 / 1_000_000,
    },
}


@dataclass(frozen=True)
class CostBreakdown:
    input_tokens: int
    output_tokens: int
    input_cost: float
    output_cost: float
    total_usd: float
    total_brl: float


def calculate_cost(
    model: str,
    input_tokens: int,
    output_tokens: int,
    usd_to_brl: Optional[float] = None,
) -> CostBreakdown:
    """Price one call. Unknown models use the default entry."""
    pricing = PRICING.get(model) or PRICING[DEFAULT_PRICING_MODEL]
    rate = usd_to_brl if usd_to_brl is not None else get_settings().usd_to_brl
    input_cost = input_tokens * pricing["input"]
    output_cost = output_tokens * pricing["output"]
    total_usd = input_cost + output_cost
    return CostBreakdown(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        input_cost=input_cost,
        output_cost=output_cost,
        total_usd=total_usd,
        total_brl=total_usd * rate,
    )


async def record_cost(
    db: AsyncSession,
    operation_type: str,
    usage: TokenUsage,
    model: str,
    related_document_id: Optional[int] = None,
    details: Optional[dict] = None,
) -> CostRecord:
    """Insert one ledger row for a finished model call."""
    if operation_type not in OPERATION_TYPES:
        raise ValueError(f"Unknown operation type '{operation_type}'")

    cost = calculate_cost(model, usage.input_tokens, usage.output_tokens)
    record = CostRecord(
        operation_type=operation_type,
        related_document_id=related_document_id,
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        cost_usd=cost.total_usd,
        cost_brl=cost.total_brl,
        model=model,
        details=details or {},
    )
    db.add(record)
    await db.flush()

    logger.info(
        "Cost recorded: %s in=%d out=%d $%.6f USD (R$ %.4f)",
        operation_type, usage.input_tokens, usage.output_tokens, cost.total_usd, cost.total_brl,
    )
    return record


async def query_costs(
    db: AsyncSession,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[CostRecord]:
    """Ledger rows in [start, end], newest first. Both bounds optional."""
    stmt = select(CostRecord)
    if start is not None:
        stmt = stmt.where(CostRecord.created_at >= start)
    if end is not None:
        stmt = stmt.where(CostRecord.created_at <= end)
    result = await db.execute(stmt.order_by(CostRecord.created_at.desc(), CostRecord.id.desc()))
    return list(result.scalars().all())


@dataclass
class CostSummary:
    count: int = 0
    total_usd: float = 0.0
    total_brl: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    by_operation: dict[str, dict] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "total_usd": self.total_usd,
            "total_brl": self.total_brl,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "by_operation": self.by_operation,
        }


def summarize_costs(records: list[CostRecord]) -> CostSummary:
    """Sum USD/BRL/tokens overall and per operation type."""
    summary = CostSummary(
        count=len(records),
        total_usd=math.fsum(r.cost_usd for r in records),
        total_brl=math.fsum(r.cost_brl for r in records),
        input_tokens=sum(r.input_tokens for r in records),
        output_tokens=sum(r.output_tokens for r in records),
    )
    for op in sorted({r.operation_type for r in records}):
        subset = [r for r in records if r.operation_type == op]
        summary.by_operation[op] = {
            "count": len(subset),
            "total_usd": math.fsum(r.cost_usd for r in subset),
            "total_brl": math.fsum(r.cost_brl for r in subset),
        }
    return summary
