"""AuditEvent — structured record of one engine decision point."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.domain.value_objects.enums import PipelineStep, StepOutcome


@dataclass(frozen=True)
class AuditEvent:
    step: PipelineStep
    outcome: StepOutcome
    timestamp: datetime
    candidates: tuple[int, ...] = ()
    chosen_id: int | None = None
    score: float | None = None
    agent_id: int | None = None
    assignment_id: int | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step.value,
            "outcome": self.outcome.value,
            "timestamp": self.timestamp.isoformat(),
            "candidates": list(self.candidates),
            "chosen_id": self.chosen_id,
            "score": self.score,
            "agent_id": self.agent_id,
            "assignment_id": self.assignment_id,
            "details": self.details,
        }
