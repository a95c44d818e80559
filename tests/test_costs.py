import asyncio
import math
from datetime import datetime, timedelta, timezone

import pytest

from docgallery.core.config import get_settings
from docgallery.models.cost import CostRecord
from docgallery.services.costs import (
    OPERATION_ANALYSIS,
    OPERATION_SEARCH,
    calculate_cost,
    query_costs,
    record_cost,
    summarize_costs,
)
from docgallery.services.llm import TokenUsage


def test_calculate_cost_uses_model_pricing():
    cost = calculate_cost("gemini-2.5-flash", 1_000_000, 1_000_000, usd_to_brl=5.0)

    assert cost.input_cost == pytest.approx(0.075)
    assert cost.output_cost == pytest.approx(0.30)
    assert cost.total_usd == pytest.approx(0.375)
    assert cost.total_brl == pytest.approx(1.875)


def test_unknown_model_falls_back_to_default_pricing():
    known = calculate_cost("gemini-2.5-flash", 1234, 567, usd_to_brl=5.0)
    unknown = calculate_cost("some-other-model", 1234, 567, usd_to_brl=5.0)

    assert unknown == known


def test_exchange_rate_comes_from_settings(monkeypatch):
    monkeypatch.setenv("USD_TO_BRL", "6")
    get_settings.cache_clear()

    cost = calculate_cost("gemini-2.5-flash", 2000, 1000)

    assert cost.total_brl == pytest.approx(cost.total_usd * 6)


def test_record_cost_and_summary_match_individual_costs(open_db):
    usages = [TokenUsage(1000, 200), TokenUsage(3000, 50), TokenUsage(10, 999)]

    async def scenario():
        async with open_db() as db:
            await record_cost(db, OPERATION_ANALYSIS, usages[0], "gemini-2.5-flash")
            await record_cost(db, OPERATION_ANALYSIS, usages[1], "gemini-2.5-flash")
            await record_cost(db, OPERATION_SEARCH, usages[2], "gemini-2.5-flash", details={"query": "nif"})
            await db.commit()
            return await query_costs(db)

    records = asyncio.run(scenario())
    summary = summarize_costs(records)

    expected_usd = math.fsum(calculate_cost("gemini-2.5-flash", u.input_tokens, u.output_tokens).total_usd for u in usages)
    assert summary.count == 3
    assert abs(summary.total_usd - expected_usd) < 1e-9
    assert abs(summary.total_brl - expected_usd * 5.0) < 1e-9
    assert summary.input_tokens == 4010
    assert summary.output_tokens == 1249
    assert summary.by_operation[OPERATION_ANALYSIS]["count"] == 2
    assert summary.by_operation[OPERATION_SEARCH]["count"] == 1


def test_record_cost_rejects_unknown_operation(open_db):
    async def scenario():
        async with open_db() as db:
            await record_cost(db, "training", TokenUsage(1, 1), "gemini-2.5-flash")

    with pytest.raises(ValueError):
        asyncio.run(scenario())


def test_query_costs_filters_by_range_newest_first(open_db):
    base = datetime(2024, 5, 1, tzinfo=timezone.utc)

    async def scenario():
        async with open_db() as db:
            for day in range(5):
                db.add(CostRecord(
                    operation_type=OPERATION_SEARCH,
                    input_tokens=day,
                    output_tokens=0,
                    cost_usd=0.0,
                    cost_brl=0.0,
                    model="gemini-2.5-flash",
                    created_at=base + timedelta(days=day),
                ))
            await db.commit()
            return await query_costs(db, start=base + timedelta(days=1), end=base + timedelta(days=3))

    records = asyncio.run(scenario())

    assert [r.input_tokens for r in records] == [3, 2, 1]


def test_summary_of_no_records_is_zero():
    summary = summarize_costs([])

    assert summary.count == 0
    assert summary.total_usd == 0.0
    assert summary.by_operation == {}
