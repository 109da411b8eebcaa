"""ReassignmentRecord — one immutable entry in an assignment's lineage."""

import time
from dataclasses import dataclass, field, replace
from datetime import datetime

from app.domain.value_objects.enums import ReassignmentSource


@dataclass(frozen=True)
class ReassignmentRecord:
    id: int | None
    assignment_id: int
    sequence_number: int
    from_consultant_id: int
    to_consultant_id: int | None  # None when the attempt failed
    reason: str | None
    source: ReassignmentSource
    previous_match_score: float | None
    new_match_score: float | None
    processing_duration_ms: int
    success: bool
    timestamp: datetime
    error_detail: str | None = None
    excluded_consultant_ids: frozenset[int] = field(default_factory=frozenset)

    @property
    def match_score_delta(self) -> float | None:
        if self.previous_match_score is None or self.new_match_score is None:
            return None
        return round(self.new_match_score - self.previous_match_score, 4)

    def with_duration_since(self, started: float) -> "ReassignmentRecord":
        """Copy with processing_duration_ms measured from a ``time.perf_counter()`` reading."""
        return replace(self, processing_duration_ms=int((time.perf_counter() - started) * 1000))
