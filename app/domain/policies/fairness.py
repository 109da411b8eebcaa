"""FairnessScorer — lower score means the consultant should be picked sooner."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.domain.entities.consultant import Consultant

# Window used for the "allocated recently" penalty
RECENT_WINDOW = timedelta(hours=24)


@dataclass(frozen=True)
class FairnessWeights:
    recent_allocation: float = 2.0
    active_load: float = 1.5
    idle_hours_divisor: float = 24.0
    idle_bonus_cap: float = 2.0
    new_consultant_bonus: float = 10.0


DEFAULT_WEIGHTS = FairnessWeights()


def hours_since(moment: datetime, now: datetime) -> float:
    return max((now - moment).total_seconds() / 3600.0, 0.0)


def fairness_score(
    consultant: Consultant,
    mean_allocations: float,
    now: datetime,
    weights: FairnessWeights = DEFAULT_WEIGHTS,
) -> float:
    """Score one consultant against the mean of the eligible pool.

    score = (allocation_count - mean)
          + recent_allocation * allocations within 24h
          + active_load * current load
          - min(hours idle / 24, idle cap)
          - new_consultant_bonus if never allocated
    """
    score = consultant.allocation_count - mean_allocations
    score += weights.recent_allocation * consultant.recent_allocations
    score += weights.active_load * consultant.current_load

    if consultant.never_allocated():
        score -= weights.new_consultant_bonus
    else:
        idle = hours_since(consultant.last_allocated_at, now) / weights.idle_hours_divisor
        score -= min(idle, weights.idle_bonus_cap)

    return round(score, 2)


def score_consultants(
    consultants: Iterable[Consultant],
    now: datetime,
    weights: FairnessWeights = DEFAULT_WEIGHTS,
) -> dict[int, float]:
    """Score every eligible consultant. Returns {consultant_id: score}."""
    pool = list(consultants)
    if not pool:
        return {}
    mean = sum(c.allocation_count for c in pool) / len(pool)
    return {c.id: fairness_score(c, mean, now, weights) for c in pool}


def rank_by_score(scores: Mapping[int, float]) -> list[int]:
    """Consultant ids ordered by (score ASC, id ASC)."""
    return sorted(scores, key=lambda cid: (scores[cid], cid))
