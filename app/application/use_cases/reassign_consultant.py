"""ReassignConsultantUseCase — "give me a different consultant" for one assignment."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime

from app.application.ports.allocation_ledger import AllocationLedger
from app.application.ports.assignment_repo import AssignmentRepository
from app.application.use_cases.allocate_consultant import elapsed_ms
from app.application.use_cases.pipeline import AssignmentPipeline, utc_now
from app.application.use_cases.results import AllocationFailure
from app.domain.entities.assignment import Assignment
from app.domain.entities.reassignment import ReassignmentRecord
from app.domain.errors import (
    AssignmentNotActiveError,
    AssignmentNotFoundError,
    EngineError,
)
from app.domain.value_objects.enums import PipelineStep, ReassignmentSource, StepOutcome

logger = logging.getLogger(__name__)


class ReassignConsultantUseCase:
    """Re-runs the full pipeline with every previously bound consultant excluded.

    Nothing is carried between calls: the exclusion set is rebuilt from the
    assignment's lineage each time. A failed attempt is appended to the
    history log but leaves the binding and reassignment_count untouched.
    No upper bound on the number of reassignments is enforced here.
    processing_duration_ms covers the whole run: the ledger stamps it once
    the row locks are held, just before the record is written.
    """

    def __init__(
        self,
        pipeline: AssignmentPipeline,
        assignment_repo: AssignmentRepository,
        ledger: AllocationLedger,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._pipeline = pipeline
        self._assignments = assignment_repo
        self._ledger = ledger
        self._clock = clock

    async def execute(
        self,
        assignment_id: int,
        reason: str | None = None,
        source: ReassignmentSource = ReassignmentSource.AGENT_REQUEST,
    ) -> ReassignmentRecord | AllocationFailure:
        started = time.perf_counter()
        now = self._clock()

        try:
            assignment = await self._assignments.get_by_id(assignment_id)
            if assignment is None:
                raise AssignmentNotFoundError(f"Assignment {assignment_id} does not exist")
            if not assignment.is_active():
                raise AssignmentNotActiveError(
                    f"Assignment {assignment_id} is {assignment.status.value}"
                )
        except EngineError as e:
            await self._pipeline.emit(
                PipelineStep.REASSIGNMENT, StepOutcome.FAILURE, now,
                assignment_id=assignment_id, details={"error_kind": e.kind.value, "error": e.detail},
            )
            return AllocationFailure.from_error(e)

        exclude = assignment.bound_consultant_ids()
        try:
            outcome = await self._pipeline.run(
                assignment.agent_id,
                assignment.capability_requirements,
                now,
                exclude=exclude,
                assignment_id=assignment.id,
            )
            selection = outcome.selection
            record = ReassignmentRecord(
                id=None,
                assignment_id=assignment.id,
                sequence_number=assignment.next_sequence_number(),
                from_consultant_id=assignment.consultant_id,
                to_consultant_id=selection.consultant_id,
                reason=reason,
                source=source,
                previous_match_score=assignment.match_score,
                new_match_score=(
                    selection.match_score if assignment.capability_requirements else None
                ),
                processing_duration_ms=elapsed_ms(started),
                success=True,
                timestamp=now,
                excluded_consultant_ids=exclude,
            )
            stored = await self._ledger.commit_reassignment(
                assignment, record, self._pipeline.max_active_load, started=started
            )
        except EngineError as e:
            return await self._record_failure(assignment, e, reason, source, exclude, now, started)

        await self._pipeline.emit(
            PipelineStep.REASSIGNMENT, StepOutcome.SUCCESS, now,
            candidates=sorted(exclude), chosen_id=stored.to_consultant_id,
            score=selection.fairness_score, agent_id=assignment.agent_id,
            assignment_id=assignment.id,
            details={
                "sequence_number": stored.sequence_number,
                "from_consultant_id": stored.from_consultant_id,
                "match_score_delta": stored.match_score_delta,
                "source": source.value,
            },
        )
        logger.info(
            "Assignment %s: reassigned %s → %s (#%d, %d ms)",
            assignment.id, stored.from_consultant_id, stored.to_consultant_id,
            stored.sequence_number, stored.processing_duration_ms,
        )
        return stored

    async def _record_failure(
        self,
        assignment: Assignment,
        error: EngineError,
        reason: str | None,
        source: ReassignmentSource,
        exclude: frozenset[int],
        now: datetime,
        started: float,
    ) -> AllocationFailure:
        failed = ReassignmentRecord(
            id=None,
            assignment_id=assignment.id,
            sequence_number=assignment.next_sequence_number(),
            from_consultant_id=assignment.consultant_id,
            to_consultant_id=None,
            reason=reason,
            source=source,
            previous_match_score=assignment.match_score,
            new_match_score=None,
            processing_duration_ms=elapsed_ms(started),
            success=False,
            timestamp=now,
            error_detail=f"{error.kind.value}: {error.detail}",
            excluded_consultant_ids=exclude,
        )
        try:
            failed = await self._ledger.record_failed_reassignment(failed, started=started)
        except EngineError as log_error:
            logger.error(
                "Assignment %s: could not log failed reassignment: %s",
                assignment.id, log_error.detail,
            )
            return AllocationFailure.from_error(error)

        await self._pipeline.emit(
            PipelineStep.REASSIGNMENT, StepOutcome.FAILURE, now,
            candidates=sorted(exclude), agent_id=assignment.agent_id,
            assignment_id=assignment.id,
            details={"error_kind": error.kind.value, "error": error.detail, "source": source.value},
        )
        logger.warning(
            "Assignment %s: reassignment failed (%s), binding kept on consultant %s",
            assignment.id, error.kind.value, assignment.consultant_id,
        )
        return AllocationFailure.from_error(error, record=failed)
