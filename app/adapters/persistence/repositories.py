"""SQLAlchemy repository implementations."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import func, or_, select, union_all
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.adapters.persistence.models import (
    AllocationCounterModel,
    AssignmentModel,
    ConsultantModel,
    ReassignmentRecordModel,
)
from app.application.ports.assignment_repo import AssignmentRepository
from app.application.ports.consultant_repo import ConsultantRepository, ResourceCriteria
from app.domain.entities.allocation_counter import AllocationCounter
from app.domain.entities.assignment import Assignment
from app.domain.entities.consultant import Consultant
from app.domain.entities.reassignment import ReassignmentRecord
from app.domain.errors import PersistenceFailureError
from app.domain.value_objects.capability import CapabilityRequirement
from app.domain.value_objects.enums import (
    AssignmentMethod,
    AssignmentStatus,
    ReassignmentSource,
)

# ─── Error translation ───────────────────────────────────────────────


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    """Surface store outages as PersistenceFailureError, never as empty results."""
    try:
        yield
    except SQLAlchemyError as e:
        raise PersistenceFailureError(f"{action} failed: {e.__class__.__name__}") from e


# ─── Mappers ─────────────────────────────────────────────────────────


def _consultant_to_domain(
    m: ConsultantModel,
    counter: AllocationCounterModel | None,
    recent_allocations: int = 0,
) -> Consultant:
    return Consultant(
        id=m.id,
        name=m.name,
        email=m.email,
        phone=m.phone,
        active=m.is_active,
        capabilities=set(m.capabilities) if m.capabilities else set(),
        current_load=counter.current_load if counter else 0,
        allocation_count=counter.allocation_count if counter else 0,
        last_allocated_at=counter.last_allocated_at if counter else None,
        recent_allocations=recent_allocations,
    )


def _counter_to_domain(consultant_id: int, m: AllocationCounterModel | None) -> AllocationCounter:
    if m is None:
        return AllocationCounter(consultant_id=consultant_id)
    return AllocationCounter(
        consultant_id=m.consultant_id,
        allocation_count=m.allocation_count,
        current_load=m.current_load,
        last_allocated_at=m.last_allocated_at,
    )


def _record_to_domain(m: ReassignmentRecordModel) -> ReassignmentRecord:
    return ReassignmentRecord(
        id=m.id,
        assignment_id=m.assignment_id,
        sequence_number=m.sequence_number,
        from_consultant_id=m.from_consultant_id,
        to_consultant_id=m.to_consultant_id,
        reason=m.reason,
        source=ReassignmentSource(m.source),
        previous_match_score=m.previous_match_score,
        new_match_score=m.new_match_score,
        processing_duration_ms=m.processing_duration_ms,
        success=m.success,
        timestamp=m.timestamp,
        error_detail=m.error_detail,
        excluded_consultant_ids=frozenset(m.excluded_consultant_ids or ()),
    )


def _record_to_model(record: ReassignmentRecord) -> ReassignmentRecordModel:
    return ReassignmentRecordModel(
        assignment_id=record.assignment_id,
        sequence_number=record.sequence_number,
        from_consultant_id=record.from_consultant_id,
        to_consultant_id=record.to_consultant_id,
        reason=record.reason,
        source=record.source.value,
        previous_match_score=record.previous_match_score,
        new_match_score=record.new_match_score,
        excluded_consultant_ids=sorted(record.excluded_consultant_ids),
        processing_duration_ms=record.processing_duration_ms,
        success=record.success,
        error_detail=record.error_detail,
        timestamp=record.timestamp,
    )


def _assignment_to_domain(
    m: AssignmentModel, history: list[ReassignmentRecordModel] | None = None
) -> Assignment:
    return Assignment(
        id=m.id,
        agent_id=m.agent_id,
        consultant_id=m.consultant_id,
        external_reference_id=m.external_reference_id,
        external_reference_name=m.external_reference_name,
        status=AssignmentStatus(m.status),
        method=AssignmentMethod(m.method),
        assigned_at=m.assigned_at,
        bound_at=m.bound_at,
        capability_requirements=[
            CapabilityRequirement.from_dict(r) for r in (m.capability_requirements or [])
        ],
        match_score=m.match_score,
        fallback_used=m.fallback_used,
        manual_reason=m.manual_reason,
        reassignment_count=m.reassignment_count,
        reassignment_history=[
            _record_to_domain(r)
            for r in sorted(history or [], key=lambda r: r.sequence_number)
            if r.success
        ],
    )


def _assignment_to_model(assignment: Assignment) -> AssignmentModel:
    return AssignmentModel(
        agent_id=assignment.agent_id,
        consultant_id=assignment.consultant_id,
        external_reference_id=assignment.external_reference_id,
        external_reference_name=assignment.external_reference_name,
        status=assignment.status.value,
        method=assignment.method.value,
        capability_requirements=[r.to_dict() for r in assignment.capability_requirements],
        match_score=assignment.match_score,
        fallback_used=assignment.fallback_used,
        manual_reason=assignment.manual_reason,
        reassignment_count=assignment.reassignment_count,
        assigned_at=assignment.assigned_at,
        bound_at=assignment.bound_at or assignment.assigned_at,
    )


# ─── Repositories ────────────────────────────────────────────────────


def _recent_bindings(since: datetime):
    """Per-consultant count of bindings made since ``since``, from the lineage.

    Mirrors ``Assignment.binding_events``: the original consultant counts at
    assigned_at, every successful reassignment target at its timestamp, and a
    cancelled assignment drops its current binding.
    """
    cancelled = AssignmentStatus.CANCELLED.value
    record = ReassignmentRecordModel
    original_unmoved = select(AssignmentModel.consultant_id.label("consultant_id")).where(
        AssignmentModel.reassignment_count == 0,
        AssignmentModel.assigned_at >= since,
        AssignmentModel.status != cancelled,
    )
    original_moved = (
        select(record.from_consultant_id)
        .join(AssignmentModel, AssignmentModel.id == record.assignment_id)
        .where(
            record.success.is_(True),
            record.sequence_number == 1,
            AssignmentModel.assigned_at >= since,
        )
    )
    moved_to = (
        select(record.to_consultant_id)
        .join(AssignmentModel, AssignmentModel.id == record.assignment_id)
        .where(
            record.success.is_(True),
            record.timestamp >= since,
            or_(
                AssignmentModel.status != cancelled,
                record.sequence_number != AssignmentModel.reassignment_count,
            ),
        )
    )
    bindings = union_all(original_unmoved, original_moved, moved_to).subquery()
    return (
        select(bindings.c.consultant_id, func.count().label("recent"))
        .group_by(bindings.c.consultant_id)
        .subquery()
    )


class SqlConsultantRepository(ConsultantRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def get_eligible_resources(self, criteria: ResourceCriteria) -> list[Consultant]:
        recent = _recent_bindings(criteria.recent_since)
        stmt = (
            select(ConsultantModel, AllocationCounterModel, func.coalesce(recent.c.recent, 0))
            .outerjoin(
                AllocationCounterModel,
                AllocationCounterModel.consultant_id == ConsultantModel.id,
            )
            .outerjoin(recent, recent.c.consultant_id == ConsultantModel.id)
            .order_by(ConsultantModel.id)
            .execution_options(populate_existing=True)
        )
        if criteria.active_only:
            stmt = stmt.where(ConsultantModel.is_active.is_(True))
        if criteria.exclude_ids:
            stmt = stmt.where(ConsultantModel.id.not_in(criteria.exclude_ids))

        with store_errors("Loading consultants"):
            result = await self._s.execute(stmt)
            return [
                _consultant_to_domain(consultant, counter, int(recent_count))
                for consultant, counter, recent_count in result.all()
            ]

    async def get_by_id(self, consultant_id: int) -> Consultant | None:
        with store_errors("Loading consultant"):
            m = await self._s.get(ConsultantModel, consultant_id)
            if m is None:
                return None
            counter = await self._s.get(AllocationCounterModel, consultant_id)
            return _consultant_to_domain(m, counter)


class SqlAssignmentRepository(AssignmentRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def get_by_id(self, assignment_id: int) -> Assignment | None:
        with store_errors("Loading assignment"):
            result = await self._s.execute(
                select(AssignmentModel)
                .options(selectinload(AssignmentModel.reassignments))
                .where(AssignmentModel.id == assignment_id)
                .execution_options(populate_existing=True)
            )
            m = result.scalar_one_or_none()
            return _assignment_to_domain(m, m.reassignments) if m else None

    async def get_active_for_agent(self, agent_id: int, since: datetime) -> list[Assignment]:
        with store_errors("Loading agent assignments"):
            result = await self._s.execute(
                select(AssignmentModel)
                .where(
                    AssignmentModel.agent_id == agent_id,
                    AssignmentModel.status == AssignmentStatus.ACTIVE.value,
                    AssignmentModel.bound_at >= since,
                )
                .order_by(AssignmentModel.id)
                .execution_options(populate_existing=True)
            )
            return [_assignment_to_domain(m) for m in result.scalars()]

    async def get_history(self, assignment_id: int) -> list[ReassignmentRecord]:
        with store_errors("Loading reassignment history"):
            result = await self._s.execute(
                select(ReassignmentRecordModel)
                .where(ReassignmentRecordModel.assignment_id == assignment_id)
                .order_by(ReassignmentRecordModel.id)
            )
            return [_record_to_domain(m) for m in result.scalars()]
