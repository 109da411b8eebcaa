"""Port interface for consultant reads."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from app.domain.entities.consultant import Consultant


@dataclass(frozen=True)
class ResourceCriteria:
    """What the pipeline needs loaded for one run."""

    recent_since: datetime
    active_only: bool = True
    exclude_ids: frozenset[int] = field(default_factory=frozenset)


class ConsultantRepository(ABC):
    @abstractmethod
    async def get_eligible_resources(self, criteria: ResourceCriteria) -> list[Consultant]:
        """Return consultants with counters, load and recent activity filled in.

        ``recent_allocations`` counts non-cancelled bindings made at or after
        ``criteria.recent_since``.
        """
        ...

    @abstractmethod
    async def get_by_id(self, consultant_id: int) -> Consultant | None:
        ...
