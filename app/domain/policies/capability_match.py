"""CapabilityMatcher — skill coverage per consultant and two-tier selection.

Capability routing must never turn a fairness-acceptable candidate into
"no candidate": when nobody covers every requested skill, the best partial
tier is used and the caller is told a fallback happened.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from app.domain.entities.consultant import Consultant
from app.domain.errors import InvalidCapabilityRequirementError
from app.domain.value_objects.capability import CapabilityRequirement


@dataclass(frozen=True)
class CapabilityMatch:
    consultant_id: int
    matched: int
    requested: int
    missing: tuple[str, ...] = ()  # ordered by requirement priority

    @property
    def match_score(self) -> float:
        if self.requested == 0:
            return 1.0
        return self.matched / self.requested

    @property
    def is_exact(self) -> bool:
        return self.matched == self.requested


@dataclass(frozen=True)
class CapabilityTiers:
    """Result of the tiering step."""

    preferred: frozenset[int]
    tier_score: float
    fallback_used: bool
    matches: dict[int, CapabilityMatch]


def validate_requirements(
    requirements: Iterable[CapabilityRequirement],
) -> tuple[CapabilityRequirement, ...]:
    """Reject malformed requirement lists before any filtering happens.

    Raises:
        InvalidCapabilityRequirementError: blank id, duplicate id or priority < 1.
    """
    validated: list[CapabilityRequirement] = []
    seen: set[str] = set()
    for req in requirements:
        if not isinstance(req, CapabilityRequirement):
            raise InvalidCapabilityRequirementError(f"Not a capability requirement: {req!r}")
        if not isinstance(req.id, str) or not req.id.strip():
            raise InvalidCapabilityRequirementError("Capability id must be a non-empty string")
        if isinstance(req.priority, bool) or not isinstance(req.priority, int) or req.priority < 1:
            raise InvalidCapabilityRequirementError(
                f"Capability {req.id!r} has invalid priority {req.priority!r}"
            )
        if req.id in seen:
            raise InvalidCapabilityRequirementError(f"Capability {req.id!r} requested twice")
        seen.add(req.id)
        validated.append(req)
    return tuple(validated)


def compute_matches(
    consultants: Iterable[Consultant],
    requirements: Sequence[CapabilityRequirement],
) -> dict[int, CapabilityMatch]:
    """Match every consultant against the requested capabilities."""
    by_priority = sorted(requirements, key=lambda r: r.priority)
    matches: dict[int, CapabilityMatch] = {}
    for consultant in consultants:
        missing = tuple(r.id for r in by_priority if not consultant.has_capability(r.id))
        matches[consultant.id] = CapabilityMatch(
            consultant_id=consultant.id,
            matched=len(requirements) - len(missing),
            requested=len(requirements),
            missing=missing,
        )
    return matches


def partition_tiers(matches: dict[int, CapabilityMatch]) -> CapabilityTiers:
    """Exact tier if anyone covers every capability, else the best partial tier.

    With no requirements every match is trivially exact, so the whole pool is
    preferred and no fallback is reported. An all-zero pool is still a valid
    (maximally degraded) tier.
    """
    if not matches:
        return CapabilityTiers(preferred=frozenset(), tier_score=0.0, fallback_used=False, matches={})

    exact = frozenset(cid for cid, m in matches.items() if m.is_exact)
    if exact:
        return CapabilityTiers(preferred=exact, tier_score=1.0, fallback_used=False, matches=matches)

    best = max(m.matched for m in matches.values())
    partial = frozenset(cid for cid, m in matches.items() if m.matched == best)
    tier_score = matches[next(iter(partial))].match_score
    return CapabilityTiers(preferred=partial, tier_score=tier_score, fallback_used=True, matches=matches)
