"""
Cost ledger endpoint.

GET /api/costs?start=2024-01-01T00:00:00&end=2024-01-31T23:59:59
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db
from ..core.errors import ValidationError
from ..services.costs import query_costs, summarize_costs
from .errors import error_response

costs_router = APIRouter(tags=["costs"])


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive bounds are read as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@costs_router.get("/costs")
async def list_costs(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: AsyncSession = Depends(get_db),
):
    """Ledger rows in the optional [start, end] range, newest first, with totals."""
    start, end = _as_utc(start), _as_utc(end)
    if start is not None and end is not None and start > end:
        return error_response(ValidationError("start must not be after end"))

    records = await query_costs(db, start=start, end=end)
    return {
        "success": True,
        "records": [r.to_dict() for r in records],
        "summary": summarize_costs(records).to_dict(),
    }
