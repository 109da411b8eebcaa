"""Tests for the availability adapters and how the container picks one."""

from datetime import datetime, timezone

import pytest

from app.adapters.availability.always_available import AlwaysAvailable
from app.adapters.availability.schedule_adapter import SqlScheduleAvailability
from app.config import Settings
from app.container import availability_for

T0 = datetime(2026, 4, 5, 23, 30, tzinfo=timezone.utc)  # a Sunday night


@pytest.mark.asyncio
async def test_always_available_accepts_any_instant():
    adapter = AlwaysAvailable()

    assert await adapter.is_available(1, T0) is True
    assert await adapter.is_available(42, datetime(2030, 1, 1, tzinfo=timezone.utc)) is True


def test_container_skips_schedules_when_disabled():
    cfg = Settings(SCHEDULES_ENABLED=False)

    assert isinstance(availability_for(None, cfg), AlwaysAvailable)


def test_container_reads_schedules_by_default():
    cfg = Settings(SCHEDULE_TIMEZONE="UTC")

    assert isinstance(availability_for(None, cfg), SqlScheduleAvailability)
