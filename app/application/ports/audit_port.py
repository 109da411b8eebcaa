"""Port interface for the audit sink."""

from abc import ABC, abstractmethod

from app.domain.entities.audit_event import AuditEvent


class AuditSink(ABC):
    @abstractmethod
    async def emit(self, event: AuditEvent) -> None:
        """Record one decision point. Must not raise on sink failure."""
        ...
