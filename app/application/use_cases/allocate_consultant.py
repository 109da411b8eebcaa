"""AllocateConsultantUseCase — bind a fresh SDR request to a consultant."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from app.application.ports.allocation_ledger import AllocationLedger
from app.application.ports.consultant_repo import ConsultantRepository
from app.application.use_cases.pipeline import AssignmentPipeline, utc_now
from app.application.use_cases.results import AllocationFailure
from app.domain.entities.assignment import Assignment
from app.domain.entities.consultant import Consultant
from app.domain.errors import ConsultantNotFoundError, EngineError
from app.domain.policies.capability_match import compute_matches, validate_requirements
from app.domain.policies.selector import Candidate
from app.domain.value_objects.capability import CapabilityRequirement
from app.domain.value_objects.enums import AssignmentMethod, PipelineStep, StepOutcome

logger = logging.getLogger(__name__)


@dataclass
class AllocationResult:
    """A committed binding plus how it was chosen."""

    assignment: Assignment
    consultant: Consultant
    fairness_score: float | None
    match_score: float
    fallback_used: bool
    alternatives: tuple[Candidate, ...] = ()
    emergency_fallback_used: bool = False
    processing_duration_ms: int = 0


def elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class AllocateConsultantUseCase:
    """Runs the pipeline once and commits the selection through the ledger.

    A lost race is returned as CONTENTION; the caller decides whether to run
    the whole pipeline again (never retry the commit alone, the eligible set
    may have changed).
    """

    def __init__(
        self,
        pipeline: AssignmentPipeline,
        ledger: AllocationLedger,
        consultant_repo: ConsultantRepository,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._pipeline = pipeline
        self._ledger = ledger
        self._consultants = consultant_repo
        self._clock = clock

    async def execute(
        self,
        agent_id: int,
        external_reference_id: str,
        external_reference_name: str | None = None,
        capability_requirements: Sequence[CapabilityRequirement] = (),
    ) -> AllocationResult | AllocationFailure:
        started = time.perf_counter()
        now = self._clock()
        try:
            requirements = validate_requirements(capability_requirements)
        except EngineError as e:
            await self._pipeline.emit(
                PipelineStep.VALIDATION, StepOutcome.FAILURE, now,
                agent_id=agent_id, details={"error": e.detail},
            )
            return AllocationFailure.from_error(e)

        try:
            outcome = await self._pipeline.run(agent_id, requirements, now)
        except EngineError as e:
            # the pipeline has already emitted the failing step
            logger.warning("Agent %s: no selection (%s): %s", agent_id, e.kind.value, e.detail)
            return AllocationFailure.from_error(e)

        selection = outcome.selection
        assignment = Assignment(
            id=None,
            agent_id=agent_id,
            consultant_id=selection.consultant_id,
            external_reference_id=external_reference_id,
            external_reference_name=external_reference_name,
            method=(
                AssignmentMethod.CAPABILITY_BASED if requirements
                else AssignmentMethod.FAIR_ROTATION
            ),
            assigned_at=now,
            bound_at=now,
            capability_requirements=list(requirements),
            match_score=selection.match_score if requirements else None,
            fallback_used=selection.fallback_used,
        )
        try:
            committed = await self._ledger.commit(assignment, self._pipeline.max_active_load)
        except EngineError as e:
            await self._pipeline.emit(
                PipelineStep.COMMIT, StepOutcome.FAILURE, now,
                candidates=[selection.consultant_id], agent_id=agent_id,
                details={"error_kind": e.kind.value, "error": e.detail},
            )
            logger.warning("Agent %s: allocation failed (%s): %s", agent_id, e.kind.value, e.detail)
            return AllocationFailure.from_error(e)

        await self._pipeline.emit(
            PipelineStep.COMMIT, StepOutcome.SUCCESS, now,
            candidates=[selection.consultant_id], chosen_id=selection.consultant_id,
            score=selection.fairness_score, agent_id=agent_id, assignment_id=committed.id,
            details={"method": committed.method.value, "external_reference_id": external_reference_id},
        )
        logger.info(
            "Agent %s → Consultant %s (score=%.2f, match=%.2f, fallback=%s)",
            agent_id, outcome.consultant.name, selection.fairness_score,
            selection.match_score, selection.fallback_used,
        )
        return AllocationResult(
            assignment=committed,
            consultant=outcome.consultant,
            fairness_score=selection.fairness_score,
            match_score=selection.match_score,
            fallback_used=selection.fallback_used,
            alternatives=selection.alternatives,
            emergency_fallback_used=outcome.emergency_fallback_used,
            processing_duration_ms=elapsed_ms(started),
        )

    async def execute_manual(
        self,
        agent_id: int,
        consultant_id: int,
        external_reference_id: str,
        reason: str,
        external_reference_name: str | None = None,
        capability_requirements: Sequence[CapabilityRequirement] = (),
    ) -> AllocationResult | AllocationFailure:
        """Bind a named consultant, skipping scoring but not the capacity re-check."""
        started = time.perf_counter()
        now = self._clock()
        manual = {"method": AssignmentMethod.MANUAL_OVERRIDE.value}
        try:
            requirements = validate_requirements(capability_requirements)
        except EngineError as e:
            await self._pipeline.emit(
                PipelineStep.VALIDATION, StepOutcome.FAILURE, now,
                agent_id=agent_id, details={**manual, "error": e.detail},
            )
            return AllocationFailure.from_error(e)

        try:
            consultant = await self._consultants.get_by_id(consultant_id)
            if consultant is None:
                raise ConsultantNotFoundError(f"Consultant {consultant_id} does not exist")
        except EngineError as e:
            await self._pipeline.emit(
                PipelineStep.SELECTION, StepOutcome.FAILURE, now,
                candidates=[consultant_id], agent_id=agent_id,
                details={**manual, "error_kind": e.kind.value, "error": e.detail},
            )
            return AllocationFailure.from_error(e)

        match = compute_matches([consultant], requirements)[consultant_id]
        assignment = Assignment(
            id=None,
            agent_id=agent_id,
            consultant_id=consultant_id,
            external_reference_id=external_reference_id,
            external_reference_name=external_reference_name,
            method=AssignmentMethod.MANUAL_OVERRIDE,
            assigned_at=now,
            bound_at=now,
            capability_requirements=list(requirements),
            match_score=match.match_score if requirements else None,
            fallback_used=not match.is_exact,
            manual_reason=reason,
        )
        try:
            committed = await self._ledger.commit(assignment, self._pipeline.max_active_load)
        except EngineError as e:
            await self._pipeline.emit(
                PipelineStep.COMMIT, StepOutcome.FAILURE, now,
                candidates=[consultant_id], agent_id=agent_id,
                details={**manual, "error_kind": e.kind.value, "error": e.detail},
            )
            return AllocationFailure.from_error(e)

        await self._pipeline.emit(
            PipelineStep.COMMIT, StepOutcome.SUCCESS, now,
            candidates=[consultant_id], chosen_id=consultant_id,
            agent_id=agent_id, assignment_id=committed.id,
            details={"method": AssignmentMethod.MANUAL_OVERRIDE.value, "reason": reason},
        )
        logger.info("Agent %s → Consultant %s (manual override: %s)", agent_id, consultant.name, reason)
        return AllocationResult(
            assignment=committed,
            consultant=consultant,
            fairness_score=None,
            match_score=match.match_score,
            fallback_used=not match.is_exact,
            processing_duration_ms=elapsed_ms(started),
        )
