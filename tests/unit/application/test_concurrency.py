"""Concurrent allocations never push a consultant past capacity."""

from __future__ import annotations

import asyncio

import pytest

from app.application.use_cases.allocate_consultant import AllocationResult
from app.application.use_cases.results import AllocationFailure
from app.domain.errors import ErrorKind
from tests.unit.application.fakes import build_engine, consultant


async def _allocate_with_retry(engine, agent_id: int, attempts: int = 10):
    """Re-run the whole pipeline on CONTENTION, as a caller is expected to."""
    result = None
    for _ in range(attempts):
        result = await engine.allocate.execute(agent_id, f"deal-{agent_id}")
        if not (isinstance(result, AllocationFailure) and result.kind == ErrorKind.CONTENTION):
            return result
    return result


@pytest.mark.asyncio
async def test_single_slot_two_requests_one_contention():
    """Pool of 1 with capacity 1: exactly one success, one CONTENTION."""
    engine = build_engine([consultant(1)], max_active_load=1)

    results = await asyncio.gather(
        engine.allocate.execute(1, "deal-1"),
        engine.allocate.execute(2, "deal-2"),
    )

    successes = [r for r in results if isinstance(r, AllocationResult)]
    failures = [r for r in results if isinstance(r, AllocationFailure)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert failures[0].kind == ErrorKind.CONTENTION
    assert failures[0].retryable is True
    assert engine.store.counters[1].current_load == 1
    assert engine.store.counters[1].allocation_count == 1


@pytest.mark.asyncio
async def test_concurrent_burst_without_retry_never_over_allocates():
    engine = build_engine([consultant(i) for i in range(1, 4)], max_active_load=1)

    results = await asyncio.gather(*(engine.allocate.execute(a, f"deal-{a}") for a in range(1, 9)))

    successes = [r for r in results if isinstance(r, AllocationResult)]
    assert 1 <= len(successes) <= 3
    assert all(
        r.kind in (ErrorKind.CONTENTION, ErrorKind.NO_ELIGIBLE_RESOURCE)
        for r in results
        if isinstance(r, AllocationFailure)
    )
    assert all(c.current_load <= 1 for c in engine.store.counters.values())
    assert engine.store.total_load() == len(successes)


@pytest.mark.asyncio
@pytest.mark.parametrize("n_requests,capacity", [(5, 3), (8, 2), (3, 3)])
async def test_n_requests_against_capacity_k_commit_exactly_k(n_requests, capacity):
    engine = build_engine([consultant(i) for i in range(1, capacity + 1)], max_active_load=1)

    results = await asyncio.gather(
        *(_allocate_with_retry(engine, a) for a in range(1, n_requests + 1))
    )

    successes = [r for r in results if isinstance(r, AllocationResult)]
    assert len(successes) == min(n_requests, capacity)
    assert len({r.assignment.consultant_id for r in successes}) == len(successes)
    assert engine.store.total_load() == len(successes)
    for failure in (r for r in results if isinstance(r, AllocationFailure)):
        assert failure.kind == ErrorKind.NO_ELIGIBLE_RESOURCE


@pytest.mark.asyncio
async def test_concurrent_reassignments_of_one_assignment_apply_once():
    engine = build_engine([consultant(i) for i in range(1, 5)])
    first = await engine.allocate.execute(1, "deal-1")
    assignment_id = first.assignment.id

    results = await asyncio.gather(
        engine.reassign.execute(assignment_id),
        engine.reassign.execute(assignment_id),
    )

    stored = engine.store.assignments[assignment_id]
    assert stored.reassignment_count == 1
    failures = [r for r in results if isinstance(r, AllocationFailure)]
    assert len(failures) == 1
    assert failures[0].kind == ErrorKind.CONTENTION
    successful = [r for r in engine.store.records if r.success]
    assert [r.sequence_number for r in successful] == [1]


@pytest.mark.asyncio
@pytest.mark.parametrize("n_requests,capacity", [(5, 3), (4, 1), (6, 2), (3, 3)])
async def test_single_consultant_with_capacity_k_takes_exactly_k(n_requests, capacity):
    """N concurrent requests, one consultant of capacity K, no retry: K commits, N-K CONTENTION."""
    engine = build_engine([consultant(1)], max_active_load=capacity)

    results = await asyncio.gather(
        *(engine.allocate.execute(a, f"deal-{a}") for a in range(1, n_requests + 1))
    )

    successes = [r for r in results if isinstance(r, AllocationResult)]
    failures = [r for r in results if isinstance(r, AllocationFailure)]
    assert engine.ledger.commits == capacity
    assert len(successes) == capacity
    assert len(failures) == n_requests - capacity
    assert all(f.kind == ErrorKind.CONTENTION for f in failures)
    assert engine.store.counters[1].current_load == capacity
    assert engine.store.counters[1].allocation_count == capacity
