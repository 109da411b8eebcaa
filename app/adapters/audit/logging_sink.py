"""Audit sink that writes one JSON line per decision point to a logger."""

from __future__ import annotations

import json
import logging

from app.application.ports.audit_port import AuditSink
from app.config import settings
from app.domain.entities.audit_event import AuditEvent
from app.domain.value_objects.enums import StepOutcome

logger = logging.getLogger(__name__)


class LoggingAuditSink(AuditSink):
    """Failures go out at WARNING, everything else at INFO."""

    def __init__(self, logger_name: str | None = None):
        self._audit = logging.getLogger(logger_name or settings.audit_logger_name)

    async def emit(self, event: AuditEvent) -> None:
        try:
            line = json.dumps(event.to_dict(), ensure_ascii=False, default=str, sort_keys=True)
        except (TypeError, ValueError) as e:
            logger.error("Unserializable audit event for step %s: %s", event.step.value, e)
            return

        level = logging.WARNING if event.outcome == StepOutcome.FAILURE else logging.INFO
        self._audit.log(level, "%s", line)
