"""EligibilityFilter — hard rules a consultant must pass before scoring."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from app.domain.entities.assignment import Assignment
from app.domain.entities.consultant import Consultant
from app.domain.errors import NoEligibleResourceError
from app.domain.value_objects.enums import RejectionReason

DEFAULT_MAX_ACTIVE_LOAD = 3
DEFAULT_COOLDOWN = timedelta(hours=24)


@dataclass(frozen=True)
class EligibilityResult:
    """Consultants that passed, plus why every other one was dropped."""

    eligible: list[Consultant]
    rejected: dict[int, RejectionReason] = field(default_factory=dict)

    @property
    def eligible_ids(self) -> list[int]:
        return [c.id for c in self.eligible]

    def ensure_not_empty(self) -> None:
        """Raises NoEligibleResourceError when nothing passed the filter."""
        if not self.eligible:
            reasons = sorted({r.value for r in self.rejected.values()})
            detail = "No consultant passed the eligibility rules"
            if reasons:
                detail += f" (rejected: {', '.join(reasons)})"
            raise NoEligibleResourceError(detail)


def cooldown_consultant_ids(
    agent_assignments: Iterable[Assignment],
    now: datetime,
    cooldown: timedelta = DEFAULT_COOLDOWN,
) -> set[int]:
    """Consultants bound to an active assignment of the agent within the cool-down."""
    cutoff = now - cooldown
    ids: set[int] = set()
    for assignment in agent_assignments:
        if not assignment.is_active():
            continue
        bound_at = assignment.bound_at or assignment.assigned_at
        if bound_at is not None and bound_at >= cutoff:
            ids.add(assignment.consultant_id)
    return ids


def filter_eligible(
    consultants: Iterable[Consultant],
    now: datetime,
    *,
    agent_assignments: Iterable[Assignment] = (),
    availability: Mapping[int, bool] | None = None,
    exclude: Iterable[int] = (),
    max_active_load: int = DEFAULT_MAX_ACTIVE_LOAD,
    cooldown: timedelta = DEFAULT_COOLDOWN,
    enforce_soft_rules: bool = True,
) -> EligibilityResult:
    """Pure function: apply every hard rule and report per-consultant verdicts.

    Rules (all must hold):
      1. consultant is active
      2. current_load < max_active_load
      3. consultant id is not in the exclusion set
      4. not paired with the same agent on an active assignment within the cool-down
      5. the injected availability verdict for ``now`` is True

    Rules 4 and 5 are the soft rules; ``enforce_soft_rules=False`` skips them
    for the opt-in emergency fallback. Rules 1-3 are never relaxed.
    """
    excluded = set(exclude)
    paired = cooldown_consultant_ids(agent_assignments, now, cooldown) if enforce_soft_rules else set()
    verdicts = availability or {}

    eligible: list[Consultant] = []
    rejected: dict[int, RejectionReason] = {}
    for consultant in consultants:
        reason = None
        if not consultant.active:
            reason = RejectionReason.INACTIVE
        elif consultant.current_load >= max_active_load:
            reason = RejectionReason.AT_CAPACITY
        elif consultant.id in excluded:
            reason = RejectionReason.EXCLUDED
        elif consultant.id in paired:
            reason = RejectionReason.COOLDOWN
        elif enforce_soft_rules and not verdicts.get(consultant.id, True):
            reason = RejectionReason.UNAVAILABLE

        if reason is None:
            eligible.append(consultant)
        else:
            rejected[consultant.id] = reason

    return EligibilityResult(eligible=eligible, rejected=rejected)
