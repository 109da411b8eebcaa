"""Tests for ReleaseAssignmentUseCase and AssignmentHistoryUseCase."""

from __future__ import annotations

import pytest

from app.application.use_cases.results import AllocationFailure
from app.domain.entities.assignment import Assignment
from app.domain.errors import ErrorKind
from app.domain.value_objects.enums import AssignmentStatus, PipelineStep, StepOutcome
from tests.unit.application.fakes import build_engine, consultant


@pytest.mark.asyncio
async def test_complete_frees_load_and_keeps_count():
    engine = build_engine([consultant(1)])
    allocated = await engine.allocate.execute(1, "deal-1")

    released = await engine.release.execute(allocated.assignment.id, AssignmentStatus.COMPLETED)

    assert isinstance(released, Assignment)
    assert released.status == AssignmentStatus.COMPLETED
    assert engine.store.counters[1].current_load == 0
    assert engine.store.counters[1].allocation_count == 1
    assert engine.audit.steps()[-1] == (PipelineStep.RELEASE, StepOutcome.SUCCESS)


@pytest.mark.asyncio
async def test_cancel_takes_allocation_back():
    engine = build_engine([consultant(1, count=4)])
    allocated = await engine.allocate.execute(1, "deal-1")
    assert engine.store.counters[1].allocation_count == 5

    await engine.release.execute(allocated.assignment.id, AssignmentStatus.CANCELLED)

    assert engine.store.counters[1].allocation_count == 4
    assert engine.store.counters[1].current_load == 0


@pytest.mark.asyncio
async def test_release_makes_room_under_capacity():
    engine = build_engine([consultant(1)], max_active_load=1)
    first = await engine.allocate.execute(1, "deal-1")
    blocked = await engine.allocate.execute(2, "deal-2")
    assert isinstance(blocked, AllocationFailure)

    await engine.release.execute(first.assignment.id, AssignmentStatus.COMPLETED)
    retried = await engine.allocate.execute(2, "deal-2")

    assert not isinstance(retried, AllocationFailure)
    assert retried.assignment.consultant_id == 1


@pytest.mark.asyncio
async def test_releasing_a_closed_assignment_changes_nothing():
    engine = build_engine([consultant(1)])
    allocated = await engine.allocate.execute(1, "deal-1")
    await engine.release.execute(allocated.assignment.id, AssignmentStatus.COMPLETED)

    again = await engine.release.execute(allocated.assignment.id, AssignmentStatus.CANCELLED)

    assert isinstance(again, Assignment)
    assert again.status == AssignmentStatus.COMPLETED
    assert engine.store.counters[1].allocation_count == 1
    assert engine.store.counters[1].current_load == 0
    last = engine.audit.events[-1]
    assert (last.step, last.outcome) == (PipelineStep.RELEASE, StepOutcome.SUCCESS)
    assert last.details["status"] == "completed"
    assert last.details["requested"] == "cancelled"


@pytest.mark.asyncio
async def test_release_reports_counter_after_the_change():
    engine = build_engine([consultant(1, count=4)])
    allocated = await engine.allocate.execute(1, "deal-1")

    await engine.release.execute(allocated.assignment.id, AssignmentStatus.CANCELLED)

    details = engine.audit.events[-1].details
    assert details["current_load"] == 0
    assert details["allocation_count"] == 4


@pytest.mark.asyncio
async def test_release_to_active_is_a_programming_error():
    engine = build_engine([consultant(1)])

    with pytest.raises(ValueError):
        await engine.release.execute(1, AssignmentStatus.ACTIVE)


@pytest.mark.asyncio
async def test_release_unknown_assignment():
    engine = build_engine([consultant(1)])

    result = await engine.release.execute(12, AssignmentStatus.COMPLETED)

    assert isinstance(result, AllocationFailure)
    assert result.kind == ErrorKind.ASSIGNMENT_NOT_FOUND


@pytest.mark.asyncio
async def test_history_of_untouched_assignment_is_empty():
    engine = build_engine([consultant(1)])
    allocated = await engine.allocate.execute(1, "deal-1")

    history = await engine.history.execute(allocated.assignment.id)

    assert history == []


@pytest.mark.asyncio
async def test_history_of_unknown_assignment():
    engine = build_engine([consultant(1)])

    result = await engine.history.execute(3)

    assert isinstance(result, AllocationFailure)
    assert result.kind == ErrorKind.ASSIGNMENT_NOT_FOUND
