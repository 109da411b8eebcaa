"""Selector — combine eligibility, fairness and capability tiers into one pick."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from app.domain.errors import NoEligibleResourceError
from app.domain.policies.capability_match import CapabilityTiers

MAX_ALTERNATIVES = 2


@dataclass(frozen=True)
class Candidate:
    consultant_id: int
    fairness_score: float
    match_score: float


@dataclass(frozen=True)
class Selection:
    """Result of the selector."""

    consultant_id: int
    fairness_score: float
    match_score: float
    fallback_used: bool
    alternatives: tuple[Candidate, ...] = ()


def select_consultant(
    eligible_ids: Sequence[int],
    scores: Mapping[int, float],
    tiers: CapabilityTiers,
) -> Selection:
    """Pick the lowest fairness score inside the preferred capability tier.

    Ranking key: (outside preferred tier, -match_score, fairness score, id).
    The head of the ranking is chosen; the next two are reported as
    alternatives.

    Raises:
        NoEligibleResourceError: if there is nothing to select from.
    """
    if not eligible_ids:
        raise NoEligibleResourceError("No eligible consultant to select from")

    def match_of(cid: int) -> float:
        match = tiers.matches.get(cid)
        return match.match_score if match else 1.0

    ranked = sorted(
        eligible_ids,
        key=lambda cid: (cid not in tiers.preferred, -match_of(cid), scores[cid], cid),
    )
    candidates = [
        Candidate(consultant_id=cid, fairness_score=scores[cid], match_score=match_of(cid))
        for cid in ranked
    ]
    chosen = candidates[0]
    return Selection(
        consultant_id=chosen.consultant_id,
        fairness_score=chosen.fairness_score,
        match_score=chosen.match_score,
        fallback_used=tiers.fallback_used,
        alternatives=tuple(candidates[1 : 1 + MAX_ALTERNATIVES]),
    )
