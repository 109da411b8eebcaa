"""AssignmentPipeline — eligibility → scoring → capability tiers → selection.

Shared by allocation and reassignment. The pipeline only reads; nothing is
persisted until the caller commits the selection through the ledger, so an
aborted run leaves no trace.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from app.application.ports.assignment_repo import AssignmentRepository
from app.application.ports.audit_port import AuditSink
from app.application.ports.availability_port import AvailabilityPort
from app.application.ports.consultant_repo import ConsultantRepository, ResourceCriteria
from app.domain.entities.audit_event import AuditEvent
from app.domain.entities.consultant import Consultant
from app.domain.errors import EngineError
from app.domain.policies.capability_match import compute_matches, partition_tiers
from app.domain.policies.eligibility import (
    DEFAULT_COOLDOWN,
    DEFAULT_MAX_ACTIVE_LOAD,
    EligibilityResult,
    filter_eligible,
)
from app.domain.policies.fairness import (
    DEFAULT_WEIGHTS,
    RECENT_WINDOW,
    FairnessWeights,
    rank_by_score,
    score_consultants,
)
from app.domain.policies.selector import Selection, select_consultant
from app.domain.value_objects.capability import CapabilityRequirement
from app.domain.value_objects.enums import PipelineStep, StepOutcome

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PipelineOutcome:
    """Everything the committing caller needs from one pipeline run."""

    selection: Selection
    consultant: Consultant
    eligible_count: int
    emergency_fallback_used: bool = False


class AssignmentPipeline:
    """Runs the read-only part of an allocation."""

    def __init__(
        self,
        consultant_repo: ConsultantRepository,
        assignment_repo: AssignmentRepository,
        availability: AvailabilityPort,
        audit: AuditSink,
        *,
        max_active_load: int = DEFAULT_MAX_ACTIVE_LOAD,
        cooldown: timedelta = DEFAULT_COOLDOWN,
        weights: FairnessWeights = DEFAULT_WEIGHTS,
        emergency_fallback: bool = False,
    ):
        self._consultants = consultant_repo
        self._assignments = assignment_repo
        self._availability = availability
        self._audit = audit
        self.max_active_load = max_active_load
        self._cooldown = cooldown
        self._weights = weights
        self._emergency_fallback = emergency_fallback

    async def run(
        self,
        agent_id: int,
        requirements: Sequence[CapabilityRequirement],
        now: datetime,
        exclude: frozenset[int] = frozenset(),
        assignment_id: int | None = None,
    ) -> PipelineOutcome:
        """Select a consultant for the agent.

        Raises:
            NoEligibleResourceError: nobody passes the eligibility rules.
            PersistenceFailureError: propagated from the repositories.
        """
        try:
            consultants = await self._consultants.get_eligible_resources(
                ResourceCriteria(recent_since=now - RECENT_WINDOW)
            )
            agent_assignments = await self._assignments.get_active_for_agent(
                agent_id, now - self._cooldown
            )
            availability = {
                c.id: await self._availability.is_available(c.id, now)
                for c in consultants
                if c.active
            }
        except EngineError as e:
            await self.emit(
                PipelineStep.ELIGIBILITY, StepOutcome.FAILURE, now,
                agent_id=agent_id, assignment_id=assignment_id,
                details={"error_kind": e.kind.value, "error": e.detail},
            )
            raise

        eligibility = filter_eligible(
            consultants,
            now,
            agent_assignments=agent_assignments,
            availability=availability,
            exclude=exclude,
            max_active_load=self.max_active_load,
            cooldown=self._cooldown,
        )
        emergency_used = False
        if not eligibility.eligible and self._emergency_fallback:
            eligibility, emergency_used = await self._emergency(
                consultants, now, exclude, eligibility, agent_id, assignment_id
            )

        if not eligibility.eligible:
            await self.emit(
                PipelineStep.ELIGIBILITY, StepOutcome.FAILURE, now,
                agent_id=agent_id, assignment_id=assignment_id,
                details={
                    "rejected": {str(k): v.value for k, v in eligibility.rejected.items()},
                    "excluded": sorted(exclude),
                },
            )
            logger.warning(
                "Agent %s: no eligible consultant (%d evaluated, %d excluded)",
                agent_id, len(consultants), len(exclude),
            )
            eligibility.ensure_not_empty()

        eligible_ids = eligibility.eligible_ids
        await self.emit(
            PipelineStep.ELIGIBILITY, StepOutcome.SUCCESS, now,
            candidates=eligible_ids, agent_id=agent_id, assignment_id=assignment_id,
            details={"rejected": {str(k): v.value for k, v in eligibility.rejected.items()}},
        )

        scores = score_consultants(eligibility.eligible, now, self._weights)
        ranking = rank_by_score(scores)
        await self.emit(
            PipelineStep.SCORING, StepOutcome.SUCCESS, now,
            candidates=ranking, chosen_id=ranking[0], score=scores[ranking[0]],
            agent_id=agent_id, assignment_id=assignment_id,
            details={"scores": {str(cid): scores[cid] for cid in ranking}},
        )

        matches = compute_matches(eligibility.eligible, requirements)
        tiers = partition_tiers(matches)
        await self.emit(
            PipelineStep.CAPABILITY_MATCH,
            StepOutcome.DEGRADED if tiers.fallback_used else StepOutcome.SUCCESS,
            now,
            candidates=sorted(tiers.preferred), score=tiers.tier_score,
            agent_id=agent_id, assignment_id=assignment_id,
            details={
                "requirements": [r.to_dict() for r in requirements],
                "fallback_used": tiers.fallback_used,
                "missing": {str(cid): list(m.missing) for cid, m in matches.items() if m.missing},
            },
        )
        if tiers.fallback_used:
            logger.info(
                "Agent %s: no exact capability match, best partial tier %.2f",
                agent_id, tiers.tier_score,
            )

        selection = select_consultant(eligible_ids, scores, tiers)
        await self.emit(
            PipelineStep.SELECTION, StepOutcome.SUCCESS, now,
            candidates=eligible_ids, chosen_id=selection.consultant_id,
            score=selection.fairness_score, agent_id=agent_id, assignment_id=assignment_id,
            details={
                "match_score": selection.match_score,
                "fallback_used": selection.fallback_used,
                "alternatives": [a.consultant_id for a in selection.alternatives],
            },
        )

        chosen = next(c for c in eligibility.eligible if c.id == selection.consultant_id)
        return PipelineOutcome(
            selection=selection,
            consultant=chosen,
            eligible_count=len(eligible_ids),
            emergency_fallback_used=emergency_used,
        )

    async def _emergency(
        self,
        consultants: list[Consultant],
        now: datetime,
        exclude: frozenset[int],
        strict: EligibilityResult,
        agent_id: int,
        assignment_id: int | None,
    ) -> tuple[EligibilityResult, bool]:
        """Opt-in: drop the cool-down and availability rules, keep the load cap."""
        relaxed = filter_eligible(
            consultants,
            now,
            exclude=exclude,
            max_active_load=self.max_active_load,
            enforce_soft_rules=False,
        )
        if not relaxed.eligible:
            return strict, False

        logger.warning(
            "Agent %s: emergency fallback relaxed soft rules (%d candidates)",
            agent_id, len(relaxed.eligible),
        )
        await self.emit(
            PipelineStep.EMERGENCY_FALLBACK, StepOutcome.DEGRADED, now,
            candidates=relaxed.eligible_ids, agent_id=agent_id, assignment_id=assignment_id,
            details={"strict_rejected": {str(k): v.value for k, v in strict.rejected.items()}},
        )
        return relaxed, True

    async def emit(
        self,
        step: PipelineStep,
        outcome: StepOutcome,
        now: datetime,
        *,
        candidates: Sequence[int] = (),
        chosen_id: int | None = None,
        score: float | None = None,
        agent_id: int | None = None,
        assignment_id: int | None = None,
        details: dict | None = None,
    ) -> None:
        await self._audit.emit(
            AuditEvent(
                step=step,
                outcome=outcome,
                timestamp=now,
                candidates=tuple(candidates),
                chosen_id=chosen_id,
                score=score,
                agent_id=agent_id,
                assignment_id=assignment_id,
                details=details or {},
            )
        )
