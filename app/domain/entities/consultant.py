"""Consultant entity — the allocatable resource handed out to SDRs."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Consultant:
    id: int | None
    name: str
    email: str | None = None
    phone: str | None = None
    active: bool = True
    capabilities: set[str] = field(default_factory=set)
    current_load: int = 0
    allocation_count: int = 0
    last_allocated_at: datetime | None = None
    # Snapshot-only: bindings made within the recent-activity window
    recent_allocations: int = 0

    def has_capability(self, capability: str) -> bool:
        return capability in self.capabilities

    def never_allocated(self) -> bool:
        return self.last_allocated_at is None
