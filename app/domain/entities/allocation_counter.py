"""AllocationCounter — per-consultant load bookkeeping owned by the ledger."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class AllocationCounter:
    consultant_id: int
    allocation_count: int = 0
    current_load: int = 0
    last_allocated_at: datetime | None = None
