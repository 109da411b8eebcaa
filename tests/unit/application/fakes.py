"""In-memory port implementations shared by the use case tests.

Every read yields to the event loop once so that concurrently scheduled
allocations interleave the way they would against a real store: all
snapshots are taken before the first commit lands.
"""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone

from app.application.ports.allocation_ledger import AllocationLedger
from app.application.ports.assignment_repo import AssignmentRepository
from app.application.ports.audit_port import AuditSink
from app.application.ports.availability_port import AvailabilityPort
from app.application.ports.consultant_repo import ConsultantRepository, ResourceCriteria
from app.application.use_cases.allocate_consultant import AllocateConsultantUseCase
from app.application.use_cases.assignment_history import AssignmentHistoryUseCase
from app.application.use_cases.pipeline import AssignmentPipeline
from app.application.use_cases.reassign_consultant import ReassignConsultantUseCase
from app.application.use_cases.release_assignment import ReleaseAssignmentUseCase
from app.domain.entities.allocation_counter import AllocationCounter
from app.domain.entities.assignment import Assignment
from app.domain.entities.audit_event import AuditEvent
from app.domain.entities.consultant import Consultant
from app.domain.entities.reassignment import ReassignmentRecord
from app.domain.errors import (
    AssignmentNotActiveError,
    AssignmentNotFoundError,
    ConsultantNotFoundError,
    ContentionError,
    EngineError,
)
from app.domain.value_objects.enums import AssignmentStatus, PipelineStep, StepOutcome

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)  # a Monday


def consultant(
    cid: int,
    *,
    count: int = 0,
    load: int = 0,
    capabilities: set[str] | None = None,
    active: bool = True,
    idle_hours: float | None = 48.0,
    recent: int = 0,
) -> Consultant:
    return Consultant(
        id=cid,
        name=f"Consultant {cid}",
        active=active,
        capabilities=capabilities or set(),
        current_load=load,
        allocation_count=count,
        last_allocated_at=NOW - timedelta(hours=idle_hours) if idle_hours is not None else None,
        recent_allocations=recent,
    )


# ─── Store ──────────────────────────────────────────────────────────


@dataclass
class FakeStore:
    profiles: dict[int, Consultant] = field(default_factory=dict)
    counters: dict[int, AllocationCounter] = field(default_factory=dict)
    assignments: dict[int, Assignment] = field(default_factory=dict)
    records: list[ReassignmentRecord] = field(default_factory=list)

    @classmethod
    def seeded(cls, consultants: list[Consultant]) -> "FakeStore":
        store = cls()
        for c in consultants:
            store.profiles[c.id] = c
            store.counters[c.id] = AllocationCounter(
                consultant_id=c.id,
                allocation_count=c.allocation_count,
                current_load=c.current_load,
                last_allocated_at=c.last_allocated_at,
            )
        return store

    def snapshot(self, cid: int, recent_since: datetime | None = None) -> Consultant:
        profile = self.profiles[cid]
        counter = self.counters[cid]
        recent = profile.recent_allocations
        if recent_since is not None:
            recent += sum(
                1
                for assignment_id in self.assignments
                for bound_to, bound_at in self.assignment_copy(assignment_id).binding_events()
                if bound_to == cid and bound_at is not None and bound_at >= recent_since
            )
        return replace(
            profile,
            capabilities=set(profile.capabilities),
            current_load=counter.current_load,
            allocation_count=counter.allocation_count,
            last_allocated_at=counter.last_allocated_at,
            recent_allocations=recent,
        )

    def assignment_copy(self, assignment_id: int) -> Assignment:
        stored = copy.deepcopy(self.assignments[assignment_id])
        stored.reassignment_history = [
            r for r in self.records if r.assignment_id == assignment_id and r.success
        ]
        return stored

    def total_load(self) -> int:
        return sum(c.current_load for c in self.counters.values())


# ─── Ports ──────────────────────────────────────────────────────────


class FakeConsultantRepo(ConsultantRepository):
    def __init__(self, store: FakeStore, fail_with: EngineError | None = None):
        self._store = store
        self.fail_with = fail_with
        self.reads = 0

    async def get_eligible_resources(self, criteria: ResourceCriteria) -> list[Consultant]:
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with
        self.reads += 1
        return [
            self._store.snapshot(cid, criteria.recent_since)
            for cid in sorted(self._store.profiles)
            if (self._store.profiles[cid].active or not criteria.active_only)
            and cid not in criteria.exclude_ids
        ]

    async def get_by_id(self, consultant_id: int) -> Consultant | None:
        await asyncio.sleep(0)
        if consultant_id not in self._store.profiles:
            return None
        return self._store.snapshot(consultant_id)


class FakeAssignmentRepo(AssignmentRepository):
    def __init__(self, store: FakeStore):
        self._store = store

    async def get_by_id(self, assignment_id: int) -> Assignment | None:
        await asyncio.sleep(0)
        if assignment_id not in self._store.assignments:
            return None
        return self._store.assignment_copy(assignment_id)

    async def get_active_for_agent(self, agent_id: int, since: datetime) -> list[Assignment]:
        await asyncio.sleep(0)
        return [
            self._store.assignment_copy(a.id)
            for a in self._store.assignments.values()
            if a.agent_id == agent_id and a.is_active() and a.bound_at >= since
        ]

    async def get_history(self, assignment_id: int) -> list[ReassignmentRecord]:
        await asyncio.sleep(0)
        return [r for r in self._store.records if r.assignment_id == assignment_id]


class FakeLedger(AllocationLedger):
    """Honours the commit contract: lock, re-check, then write.

    ``lock_wait`` simulates time spent waiting for row locks before a
    reassignment write goes through.
    """

    def __init__(self, store: FakeStore):
        self._store = store
        self._lock = asyncio.Lock()
        self.fail_with: EngineError | None = None
        self.lock_wait = 0.0
        self.commits = 0

    def _check_target(self, cid: int, max_active_load: int) -> AllocationCounter:
        if cid not in self._store.profiles:
            raise ConsultantNotFoundError(f"Consultant {cid} does not exist")
        if not self._store.profiles[cid].active:
            raise ContentionError(f"Consultant {cid} was deactivated")
        counter = self._store.counters[cid]
        if counter.current_load >= max_active_load:
            raise ContentionError(f"Consultant {cid} reached capacity")
        return counter

    async def get_counter(self, consultant_id: int) -> AllocationCounter:
        await asyncio.sleep(0)
        return copy.copy(self._store.counters[consultant_id])

    async def commit(self, assignment: Assignment, max_active_load: int) -> Assignment:
        await asyncio.sleep(0)
        async with self._lock:
            if self.fail_with is not None:
                raise self.fail_with
            counter = self._check_target(assignment.consultant_id, max_active_load)
            counter.allocation_count += 1
            counter.current_load += 1
            counter.last_allocated_at = assignment.bound_at

            stored = copy.deepcopy(assignment)
            stored.id = len(self._store.assignments) + 1
            self._store.assignments[stored.id] = stored
            self.commits += 1
            return copy.deepcopy(stored)

    async def commit_reassignment(
        self,
        assignment: Assignment,
        record: ReassignmentRecord,
        max_active_load: int,
        started: float | None = None,
    ) -> ReassignmentRecord:
        await asyncio.sleep(0)
        async with self._lock:
            if self.lock_wait:
                await asyncio.sleep(self.lock_wait)
            if self.fail_with is not None:
                raise self.fail_with
            if record.assignment_id not in self._store.assignments:
                raise AssignmentNotFoundError(f"Assignment {record.assignment_id} does not exist")
            current = self._store.assignment_copy(record.assignment_id)
            if not current.is_active():
                raise AssignmentNotActiveError(f"Assignment {current.id} is {current.status.value}")
            try:
                current.apply_reassignment(record)
            except ValueError as e:
                raise ContentionError(f"Assignment {current.id} was reassigned concurrently: {e}") from e

            target = self._check_target(record.to_consultant_id, max_active_load)
            source = self._store.counters[record.from_consultant_id]
            source.current_load = max(0, source.current_load - 1)
            target.allocation_count += 1
            target.current_load += 1
            target.last_allocated_at = record.timestamp

            current.reassignment_history = []
            self._store.assignments[current.id] = current

            if started is not None:
                record = record.with_duration_since(started)
            stored = replace(record, id=len(self._store.records) + 1)
            self._store.records.append(stored)
            return stored

    async def record_failed_reassignment(
        self, record: ReassignmentRecord, started: float | None = None
    ) -> ReassignmentRecord:
        await asyncio.sleep(0)
        async with self._lock:
            if self.lock_wait:
                await asyncio.sleep(self.lock_wait)
            if started is not None:
                record = record.with_duration_since(started)
            stored = replace(record, id=len(self._store.records) + 1)
            self._store.records.append(stored)
            return stored

    async def release(
        self, assignment_id: int, status: AssignmentStatus, at: datetime
    ) -> Assignment:
        async with self._lock:
            current = self._store.assignments.get(assignment_id)
            if current is None:
                raise AssignmentNotFoundError(f"Assignment {assignment_id} does not exist")
            if current.is_active():
                current.status = status
                counter = self._store.counters[current.consultant_id]
                counter.current_load = max(0, counter.current_load - 1)
                if status == AssignmentStatus.CANCELLED:
                    counter.allocation_count = max(0, counter.allocation_count - 1)
            return self._store.assignment_copy(assignment_id)


class FakeAvailability(AvailabilityPort):
    def __init__(self, unavailable: set[int] | None = None):
        self.unavailable = unavailable or set()

    async def is_available(self, consultant_id: int, instant: datetime) -> bool:
        return consultant_id not in self.unavailable


class MemoryAuditSink(AuditSink):
    def __init__(self):
        self.events: list[AuditEvent] = []

    async def emit(self, event: AuditEvent) -> None:
        self.events.append(event)

    def steps(self) -> list[tuple[PipelineStep, StepOutcome]]:
        return [(e.step, e.outcome) for e in self.events]


# ─── Engine assembly ────────────────────────────────────────────────


@dataclass
class Engine:
    store: FakeStore
    consultants: FakeConsultantRepo
    assignments: FakeAssignmentRepo
    ledger: FakeLedger
    availability: FakeAvailability
    audit: MemoryAuditSink
    pipeline: AssignmentPipeline
    allocate: AllocateConsultantUseCase
    reassign: ReassignConsultantUseCase
    history: AssignmentHistoryUseCase
    release: ReleaseAssignmentUseCase


def build_engine(
    consultants: list[Consultant],
    *,
    max_active_load: int = 3,
    cooldown: timedelta = timedelta(hours=24),
    emergency_fallback: bool = False,
    unavailable: set[int] | None = None,
    now: datetime = NOW,
) -> Engine:
    store = FakeStore.seeded(consultants)
    consultant_repo = FakeConsultantRepo(store)
    assignment_repo = FakeAssignmentRepo(store)
    ledger = FakeLedger(store)
    availability = FakeAvailability(unavailable)
    audit = MemoryAuditSink()
    pipeline = AssignmentPipeline(
        consultant_repo,
        assignment_repo,
        availability,
        audit,
        max_active_load=max_active_load,
        cooldown=cooldown,
        emergency_fallback=emergency_fallback,
    )

    def clock() -> datetime:
        return now

    return Engine(
        store=store,
        consultants=consultant_repo,
        assignments=assignment_repo,
        ledger=ledger,
        availability=availability,
        audit=audit,
        pipeline=pipeline,
        allocate=AllocateConsultantUseCase(pipeline, ledger, consultant_repo, clock=clock),
        reassign=ReassignConsultantUseCase(pipeline, assignment_repo, ledger, clock=clock),
        history=AssignmentHistoryUseCase(assignment_repo),
        release=ReleaseAssignmentUseCase(ledger, audit, clock=clock),
    )
