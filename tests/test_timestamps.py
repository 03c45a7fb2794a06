"""
Tests for how timestamps are stored: naive UTC in plain DateTime columns.
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import DateTime, select

from app.database import Base
from app.models.quote import Quote
from app.schemas.quote import QuoteUpdate
from app.services import quote_service
from app.utils.dates import as_naive_utc, utcnow


def test_utcnow_is_naive_utc():
    now = utcnow()
    assert now.tzinfo is None
    assert abs(datetime.now(timezone.utc).replace(tzinfo=None) - now) < timedelta(seconds=5)


def test_aware_values_are_normalised():
    aware = datetime(2026, 3, 1, 9, 30, tzinfo=timezone(timedelta(hours=-3)))
    assert as_naive_utc(aware) == datetime(2026, 3, 1, 12, 30)
    assert as_naive_utc(datetime(2026, 3, 1, 12, 30)) == datetime(2026, 3, 1, 12, 30)
    assert as_naive_utc(None) is None


def test_no_timezone_aware_columns():
    """Aware columns would let the driver reinterpret naive values in local time."""
    aware = [
        f"{table.name}.{column.name}"
        for table in Base.metadata.tables.values()
        for column in table.columns
        if isinstance(column.type, DateTime) and column.type.timezone
    ]
    assert aware == []


@pytest.mark.asyncio
async def test_valid_until_round_trips_unshifted(flow, test_db, workshop):
    quote = await flow.diagnosed()
    local = datetime(2026, 12, 24, 18, 0, tzinfo=timezone(timedelta(hours=-3)))

    await quote_service.update_quote(
        test_db, workshop.receptionist, quote.id, QuoteUpdate(valid_until=local)
    )

    stored = (await test_db.execute(select(Quote.valid_until).where(Quote.id == quote.id))).scalar_one()
    assert stored == datetime(2026, 12, 24, 21, 0)


@pytest.mark.asyncio
async def test_created_at_set_by_application(flow):
    before = utcnow()
    quote = await flow.draft()

    assert quote.created_at.tzinfo is None
    assert before - timedelta(seconds=1) <= quote.created_at <= utcnow() + timedelta(seconds=1)
