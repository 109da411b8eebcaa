"""Schedule-backed availability adapter — implements AvailabilityPort."""

from __future__ import annotations

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.persistence.models import ConsultantAvailabilityModel, ConsultantTimeOffModel
from app.adapters.persistence.repositories import store_errors
from app.application.ports.availability_port import AvailabilityPort
from app.config import settings
from app.domain.policies.availability import AvailabilityWindow, TimeOff, is_available_at

logger = logging.getLogger(__name__)


class SqlScheduleAvailability(AvailabilityPort):
    """Reads weekly windows and time off, evaluated in the schedule timezone."""

    def __init__(self, session: AsyncSession, timezone_name: str | None = None):
        self._s = session
        self._tz = ZoneInfo(timezone_name or settings.schedule_timezone)

    async def is_available(self, consultant_id: int, instant: datetime) -> bool:
        with store_errors("Loading consultant schedule"):
            windows = await self._s.execute(
                select(ConsultantAvailabilityModel).where(
                    ConsultantAvailabilityModel.consultant_id == consultant_id
                )
            )
            time_off = await self._s.execute(
                select(ConsultantTimeOffModel).where(
                    ConsultantTimeOffModel.consultant_id == consultant_id
                )
            )
            schedule = [
                AvailabilityWindow(
                    day_of_week=w.day_of_week,
                    start=w.start_time,
                    end=w.end_time,
                    is_available=w.is_available,
                )
                for w in windows.scalars()
            ]
            periods = [
                TimeOff(start_date=t.start_date, end_date=t.end_date, is_approved=t.is_approved)
                for t in time_off.scalars()
            ]

        local = instant.astimezone(self._tz)
        available = is_available_at(schedule, periods, local)
        if not available:
            logger.debug("Consultant %s unavailable at %s", consultant_id, local.isoformat())
        return available
