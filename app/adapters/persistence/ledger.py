"""SqlAllocationLedger: the single writer of allocation counters and bindings.

Every write runs in its own short transaction. Rows are locked with
``SELECT ... FOR UPDATE`` in a fixed order (counters by ascending
consultant id, then the assignment row) so two writers can never
deadlock on each other. ``lock_timeout`` bounds how long a writer waits;
a timed-out lock is reported as contention, never retried here.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from app.adapters.persistence.models import (
    AllocationCounterModel,
    AssignmentModel,
    ConsultantModel,
    ReassignmentRecordModel,
)
from app.adapters.persistence.repositories import (
    _assignment_to_domain,
    _assignment_to_model,
    _counter_to_domain,
    _record_to_domain,
    _record_to_model,
)
from app.application.ports.allocation_ledger import AllocationLedger
from app.domain.entities.allocation_counter import AllocationCounter
from app.domain.entities.assignment import Assignment
from app.domain.entities.reassignment import ReassignmentRecord
from app.domain.errors import (
    AssignmentNotActiveError,
    AssignmentNotFoundError,
    ConsultantNotFoundError,
    ContentionError,
    PersistenceFailureError,
)
from app.domain.value_objects.enums import AssignmentStatus

logger = logging.getLogger(__name__)

LOCK_NOT_AVAILABLE = "55P03"
UNIQUE_VIOLATION = "23505"
CONTENTION_SQLSTATES = frozenset({LOCK_NOT_AVAILABLE, UNIQUE_VIOLATION})


def _sqlstate(error: DBAPIError) -> str | None:
    orig = error.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


class SqlAllocationLedger(AllocationLedger):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], lock_timeout_ms: int = 2000):
        self._session_factory = session_factory
        self._lock_timeout_ms = int(lock_timeout_ms)

    # ─── Transaction plumbing ────────────────────────────────────────

    @asynccontextmanager
    async def _transaction(self, action: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    # SET does not accept bind parameters
                    await session.execute(
                        text(f"SET LOCAL lock_timeout = '{self._lock_timeout_ms}ms'")
                    )
                    yield session
        except DBAPIError as e:
            state = _sqlstate(e)
            if state in CONTENTION_SQLSTATES:
                logger.info("%s lost a race (sqlstate %s)", action, state)
                raise ContentionError(f"{action}: row locked or changed concurrently") from e
            logger.error("%s failed: %s", action, e)
            raise PersistenceFailureError(f"{action} failed: {e.__class__.__name__}") from e
        except SQLAlchemyError as e:
            logger.error("%s failed: %s", action, e)
            raise PersistenceFailureError(f"{action} failed: {e.__class__.__name__}") from e

    async def _lock_counters(
        self, session: AsyncSession, consultant_ids: Iterable[int]
    ) -> dict[int, AllocationCounterModel]:
        """Lock counter rows in ascending id order, creating missing rows first."""
        locked: dict[int, AllocationCounterModel] = {}
        for consultant_id in sorted(set(consultant_ids)):
            await session.execute(
                pg_insert(AllocationCounterModel)
                .values(consultant_id=consultant_id, allocation_count=0, current_load=0)
                .on_conflict_do_nothing(index_elements=["consultant_id"])
            )
            result = await session.execute(
                select(AllocationCounterModel)
                .where(AllocationCounterModel.consultant_id == consultant_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            locked[consultant_id] = result.scalar_one()
        return locked

    async def _lock_assignment(self, session: AsyncSession, assignment_id: int) -> AssignmentModel:
        result = await session.execute(
            select(AssignmentModel)
            .options(selectinload(AssignmentModel.reassignments))
            .where(AssignmentModel.id == assignment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        m = result.scalar_one_or_none()
        if m is None:
            raise AssignmentNotFoundError(f"Assignment {assignment_id} does not exist")
        return m

    async def _check_target(
        self,
        session: AsyncSession,
        counter: AllocationCounterModel,
        max_active_load: int,
    ) -> None:
        consultant = await session.get(ConsultantModel, counter.consultant_id)
        if consultant is None:
            raise ConsultantNotFoundError(f"Consultant {counter.consultant_id} does not exist")
        if not consultant.is_active:
            raise ContentionError(f"Consultant {counter.consultant_id} was deactivated")
        if counter.current_load >= max_active_load:
            raise ContentionError(
                f"Consultant {counter.consultant_id} reached capacity "
                f"({counter.current_load}/{max_active_load})"
            )

    # ─── Ledger operations ───────────────────────────────────────────

    async def get_counter(self, consultant_id: int) -> AllocationCounter:
        try:
            async with self._session_factory() as session:
                m = await session.get(AllocationCounterModel, consultant_id)
                return _counter_to_domain(consultant_id, m)
        except SQLAlchemyError as e:
            raise PersistenceFailureError(f"Loading counter failed: {e.__class__.__name__}") from e

    async def commit(self, assignment: Assignment, max_active_load: int) -> Assignment:
        async with self._transaction("Commit") as session:
            counter = (await self._lock_counters(session, [assignment.consultant_id]))[
                assignment.consultant_id
            ]
            await self._check_target(session, counter, max_active_load)

            bound_at = assignment.bound_at or assignment.assigned_at
            counter.allocation_count += 1
            counter.current_load += 1
            counter.last_allocated_at = bound_at

            m = _assignment_to_model(assignment)
            session.add(m)
            await session.flush()
            committed = _assignment_to_domain(m, [])

        logger.info(
            "Committed assignment %s → consultant %s (load %d/%d)",
            committed.id, committed.consultant_id, counter.current_load, max_active_load,
        )
        return committed

    async def commit_reassignment(
        self,
        assignment: Assignment,
        record: ReassignmentRecord,
        max_active_load: int,
        started: float | None = None,
    ) -> ReassignmentRecord:
        if not record.success or record.to_consultant_id is None:
            raise ValueError("A successful reassignment needs a target consultant")

        async with self._transaction("Reassignment") as session:
            counters = await self._lock_counters(
                session, [record.from_consultant_id, record.to_consultant_id]
            )
            m = await self._lock_assignment(session, record.assignment_id)
            current = _assignment_to_domain(m, m.reassignments)
            if not current.is_active():
                raise AssignmentNotActiveError(f"Assignment {m.id} is {m.status}")
            try:
                current.apply_reassignment(record)
            except ValueError as e:
                raise ContentionError(f"Assignment {m.id} was reassigned concurrently: {e}") from e

            target = counters[record.to_consultant_id]
            await self._check_target(session, target, max_active_load)

            source = counters[record.from_consultant_id]
            source.current_load = max(0, source.current_load - 1)
            target.allocation_count += 1
            target.current_load += 1
            target.last_allocated_at = record.timestamp

            m.consultant_id = current.consultant_id
            m.reassignment_count = current.reassignment_count
            m.match_score = current.match_score
            m.bound_at = current.bound_at

            if started is not None:
                record = record.with_duration_since(started)
            row = _record_to_model(record)
            session.add(row)
            await session.flush()
            stored = _record_to_domain(row)

        return stored

    async def record_failed_reassignment(
        self, record: ReassignmentRecord, started: float | None = None
    ) -> ReassignmentRecord:
        async with self._transaction("Logging failed reassignment") as session:
            if started is not None:
                record = record.with_duration_since(started)
            row = _record_to_model(record)
            session.add(row)
            await session.flush()
            return _record_to_domain(row)

    async def release(
        self, assignment_id: int, status: AssignmentStatus, at: datetime
    ) -> Assignment:
        if status == AssignmentStatus.ACTIVE:
            raise ValueError("Release needs a terminal status")

        async with self._transaction("Release") as session:
            # Read the binding first so the counter can be locked before the assignment row
            current = await session.get(AssignmentModel, assignment_id)
            if current is None:
                raise AssignmentNotFoundError(f"Assignment {assignment_id} does not exist")
            if current.status != AssignmentStatus.ACTIVE.value:
                m = await self._lock_assignment(session, assignment_id)
                logger.info("Assignment %s already %s, nothing to release", assignment_id, m.status)
                return _assignment_to_domain(m, m.reassignments)
            consultant_id = current.consultant_id

            counter = (await self._lock_counters(session, [consultant_id]))[consultant_id]
            m = await self._lock_assignment(session, assignment_id)
            if m.status != AssignmentStatus.ACTIVE.value:
                logger.info("Assignment %s released concurrently as %s", assignment_id, m.status)
                return _assignment_to_domain(m, m.reassignments)
            if m.consultant_id != consultant_id:
                raise ContentionError(f"Assignment {m.id} was reassigned concurrently")

            m.status = status.value
            m.released_at = at
            counter.current_load = max(0, counter.current_load - 1)
            if status == AssignmentStatus.CANCELLED:
                counter.allocation_count = max(0, counter.allocation_count - 1)

            await session.flush()
            released = _assignment_to_domain(m, m.reassignments)

        logger.info("Assignment %s %s, consultant %s freed", assignment_id, status.value, consultant_id)
        return released
