"""Port interface for the allocation ledger — the only writer of load counters."""

from abc import ABC, abstractmethod
from datetime import datetime

from app.domain.entities.allocation_counter import AllocationCounter
from app.domain.entities.assignment import Assignment
from app.domain.entities.reassignment import ReassignmentRecord
from app.domain.value_objects.enums import AssignmentStatus


class AllocationLedger(ABC):
    @abstractmethod
    async def get_counter(self, consultant_id: int) -> AllocationCounter:
        ...

    @abstractmethod
    async def commit(self, assignment: Assignment, max_active_load: int) -> Assignment:
        """Bind ``assignment.consultant_id`` atomically and persist the assignment.

        Must lock the consultant's counter, re-check that the consultant is
        active and that current_load < max_active_load, then increment
        allocation_count and current_load, set last_allocated_at and insert
        the assignment within one transaction.

        Raises:
            ContentionError: the re-check failed (the snapshot went stale).
            ConsultantNotFoundError: the consultant no longer exists.
            PersistenceFailureError: the store is unavailable.
        """
        ...

    @abstractmethod
    async def commit_reassignment(
        self,
        assignment: Assignment,
        record: ReassignmentRecord,
        max_active_load: int,
        started: float | None = None,
    ) -> ReassignmentRecord:
        """Move the binding to ``record.to_consultant_id`` and append ``record``.

        The move goes through ``Assignment.apply_reassignment`` on the locked
        row; a chain that moved meanwhile is contention. The target is
        re-checked like ``commit`` and the previous consultant's current_load
        is released. When ``started`` (a ``time.perf_counter()`` reading) is
        given, processing_duration_ms is stamped once the locks are held, so
        lock waits are part of the duration. Returns the stored record.

        Raises:
            ContentionError: target re-check failed or the assignment moved meanwhile.
            AssignmentNotFoundError / AssignmentNotActiveError
            PersistenceFailureError
        """
        ...

    @abstractmethod
    async def record_failed_reassignment(
        self, record: ReassignmentRecord, started: float | None = None
    ) -> ReassignmentRecord:
        """Append a failed attempt without touching the binding or counters."""
        ...

    @abstractmethod
    async def release(
        self, assignment_id: int, status: AssignmentStatus, at: datetime
    ) -> Assignment:
        """Close an active assignment (completed / cancelled) and free its load.

        Cancelling also takes the allocation back out of allocation_count.
        An assignment that is already closed is returned unchanged.
        """
        ...
