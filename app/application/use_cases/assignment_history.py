"""AssignmentHistoryUseCase — the reassignment lineage of one assignment."""

from __future__ import annotations

from app.application.ports.assignment_repo import AssignmentRepository
from app.application.use_cases.results import AllocationFailure
from app.domain.entities.reassignment import ReassignmentRecord
from app.domain.errors import AssignmentNotFoundError, EngineError


class AssignmentHistoryUseCase:
    def __init__(self, assignment_repo: AssignmentRepository):
        self._assignments = assignment_repo

    async def execute(self, assignment_id: int) -> list[ReassignmentRecord] | AllocationFailure:
        """Every attempt, successful or failed, in the order it was written."""
        try:
            if await self._assignments.get_by_id(assignment_id) is None:
                raise AssignmentNotFoundError(f"Assignment {assignment_id} does not exist")
            return await self._assignments.get_history(assignment_id)
        except EngineError as e:
            return AllocationFailure.from_error(e)
