"""Port interface for assignment reads."""

from abc import ABC, abstractmethod
from datetime import datetime

from app.domain.entities.assignment import Assignment
from app.domain.entities.reassignment import ReassignmentRecord


class AssignmentRepository(ABC):
    @abstractmethod
    async def get_by_id(self, assignment_id: int) -> Assignment | None:
        """Load an assignment with its successful reassignment history."""
        ...

    @abstractmethod
    async def get_active_for_agent(self, agent_id: int, since: datetime) -> list[Assignment]:
        """Active assignments of the agent whose current binding is at or after ``since``."""
        ...

    @abstractmethod
    async def get_history(self, assignment_id: int) -> list[ReassignmentRecord]:
        """Every reassignment attempt (successful or not) in the order written."""
        ...
