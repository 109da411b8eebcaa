"""Port interface for the consultant availability predicate."""

from abc import ABC, abstractmethod
from datetime import datetime


class AvailabilityPort(ABC):
    @abstractmethod
    async def is_available(self, consultant_id: int, instant: datetime) -> bool:
        ...
