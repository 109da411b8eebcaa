"""Availability adapter for deployments without consultant schedules."""

from datetime import datetime

from app.application.ports.availability_port import AvailabilityPort


class AlwaysAvailable(AvailabilityPort):
    async def is_available(self, consultant_id: int, instant: datetime) -> bool:
        return True
