"""Typed failure result shared by the engine use cases."""

from __future__ import annotations

from dataclasses import dataclass

from app.domain.entities.reassignment import ReassignmentRecord
from app.domain.errors import USER_MESSAGES, EngineError, ErrorKind


@dataclass(frozen=True)
class AllocationFailure:
    """Why an engine call did not produce a binding."""

    kind: ErrorKind
    detail: str
    retryable: bool = False
    record: ReassignmentRecord | None = None  # failed reassignment attempt, if one was logged

    @property
    def user_message(self) -> str:
        return USER_MESSAGES[self.kind]

    @classmethod
    def from_error(
        cls, error: EngineError, record: ReassignmentRecord | None = None
    ) -> "AllocationFailure":
        return cls(kind=error.kind, detail=error.detail, retryable=error.retryable, record=record)
