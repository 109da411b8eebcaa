"""ReleaseAssignmentUseCase — complete or cancel an assignment and free its load."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from app.application.ports.allocation_ledger import AllocationLedger
from app.application.ports.audit_port import AuditSink
from app.application.use_cases.pipeline import utc_now
from app.application.use_cases.results import AllocationFailure
from app.domain.entities.assignment import Assignment
from app.domain.entities.audit_event import AuditEvent
from app.domain.errors import EngineError
from app.domain.value_objects.enums import AssignmentStatus, PipelineStep, StepOutcome

logger = logging.getLogger(__name__)


class ReleaseAssignmentUseCase:
    def __init__(
        self,
        ledger: AllocationLedger,
        audit: AuditSink,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._ledger = ledger
        self._audit = audit
        self._clock = clock

    async def execute(
        self, assignment_id: int, status: AssignmentStatus
    ) -> Assignment | AllocationFailure:
        """Move an active assignment to ``status``.

        An assignment that is already closed comes back unchanged and no
        counter moves.

        Raises:
            ValueError: if ``status`` is ACTIVE (not a release).
        """
        if status == AssignmentStatus.ACTIVE:
            raise ValueError("Release target must be completed or cancelled")

        now = self._clock()
        try:
            released = await self._ledger.release(assignment_id, status, now)
        except EngineError as e:
            await self._audit.emit(
                AuditEvent(
                    step=PipelineStep.RELEASE, outcome=StepOutcome.FAILURE, timestamp=now,
                    assignment_id=assignment_id,
                    details={"status": status.value, "error_kind": e.kind.value, "error": e.detail},
                )
            )
            return AllocationFailure.from_error(e)

        details = {"status": released.status.value, "requested": status.value}
        try:
            counter = await self._ledger.get_counter(released.consultant_id)
        except EngineError as e:
            logger.warning("Assignment %s: counter not reported: %s", released.id, e.detail)
        else:
            details.update(
                current_load=counter.current_load, allocation_count=counter.allocation_count
            )

        await self._audit.emit(
            AuditEvent(
                step=PipelineStep.RELEASE, outcome=StepOutcome.SUCCESS, timestamp=now,
                candidates=(released.consultant_id,), chosen_id=released.consultant_id,
                agent_id=released.agent_id, assignment_id=released.id,
                details=details,
            )
        )
        logger.info("Assignment %s released as %s", released.id, released.status.value)
        return released
