"""Assignment entity — an SDR's request bound to a consultant."""

from dataclasses import dataclass, field
from datetime import datetime

from app.domain.entities.reassignment import ReassignmentRecord
from app.domain.value_objects.capability import CapabilityRequirement
from app.domain.value_objects.enums import AssignmentMethod, AssignmentStatus


@dataclass
class Assignment:
    id: int | None
    agent_id: int
    consultant_id: int
    external_reference_id: str
    external_reference_name: str | None = None
    status: AssignmentStatus = AssignmentStatus.ACTIVE
    method: AssignmentMethod = AssignmentMethod.FAIR_ROTATION
    assigned_at: datetime | None = None
    bound_at: datetime | None = None  # when the current consultant was bound
    capability_requirements: list[CapabilityRequirement] = field(default_factory=list)
    match_score: float | None = None
    fallback_used: bool = False
    manual_reason: str | None = None
    reassignment_count: int = 0
    # Successful reassignments only; failed attempts live in the history log
    reassignment_history: list[ReassignmentRecord] = field(default_factory=list)

    def is_active(self) -> bool:
        return self.status == AssignmentStatus.ACTIVE

    def next_sequence_number(self) -> int:
        return self.reassignment_count + 1

    def original_consultant_id(self) -> int:
        if self.reassignment_history:
            return self.reassignment_history[0].from_consultant_id
        return self.consultant_id

    def binding_events(self) -> list[tuple[int, datetime | None]]:
        """(consultant_id, bound_at) for every binding this assignment has made.

        The original allocation counts at assigned_at, each successful
        reassignment at its timestamp. Cancelling takes the current binding
        back, the same way it takes back allocation_count.
        """
        events = [(self.original_consultant_id(), self.assigned_at)]
        events.extend((r.to_consultant_id, r.timestamp) for r in self.reassignment_history)
        if self.status == AssignmentStatus.CANCELLED:
            events.pop()
        return events

    def bound_consultant_ids(self) -> frozenset[int]:
        """Every consultant this assignment has ever been bound to."""
        ids = {self.consultant_id}
        for record in self.reassignment_history:
            ids.add(record.from_consultant_id)
            if record.to_consultant_id is not None:
                ids.add(record.to_consultant_id)
        return frozenset(ids)

    def apply_reassignment(self, record: ReassignmentRecord) -> None:
        """Move the binding to the record's target consultant.

        Raises:
            ValueError: if the record is a failure or does not continue the chain.
        """
        if not record.success or record.to_consultant_id is None:
            raise ValueError("Only successful reassignments change the binding")
        if record.sequence_number != self.next_sequence_number():
            raise ValueError(
                f"Expected sequence {self.next_sequence_number()}, got {record.sequence_number}"
            )
        if record.from_consultant_id != self.consultant_id:
            raise ValueError("Reassignment does not start from the current consultant")

        self.reassignment_history.append(record)
        self.consultant_id = record.to_consultant_id
        self.reassignment_count += 1
        self.match_score = record.new_match_score
        self.bound_at = record.timestamp
