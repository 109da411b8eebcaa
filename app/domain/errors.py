"""Typed engine errors.

Domain policies and adapters raise these; use cases catch them and hand the
caller an ``AllocationFailure`` so that "nothing to allocate" can always be
told apart from "system broken".
"""

from enum import Enum


class ErrorKind(str, Enum):
    NO_ELIGIBLE_RESOURCE = "no_eligible_resource"
    CONTENTION = "contention"
    INVALID_CAPABILITY_REQUIREMENT = "invalid_capability_requirement"
    PERSISTENCE_FAILURE = "persistence_failure"
    ASSIGNMENT_NOT_FOUND = "assignment_not_found"
    ASSIGNMENT_NOT_ACTIVE = "assignment_not_active"
    CONSULTANT_NOT_FOUND = "consultant_not_found"


USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.NO_ELIGIBLE_RESOURCE: "No consultant is currently available",
    ErrorKind.CONTENTION: "The consultant was taken by another request, please retry",
    ErrorKind.INVALID_CAPABILITY_REQUIREMENT: "The requested skills are not valid",
    ErrorKind.PERSISTENCE_FAILURE: "The assignment service is temporarily unavailable, please retry",
    ErrorKind.ASSIGNMENT_NOT_FOUND: "Assignment not found",
    ErrorKind.ASSIGNMENT_NOT_ACTIVE: "Only active assignments can be changed",
    ErrorKind.CONSULTANT_NOT_FOUND: "Consultant not found",
}


class EngineError(Exception):
    kind: ErrorKind = ErrorKind.PERSISTENCE_FAILURE
    retryable: bool = False

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    @property
    def user_message(self) -> str:
        return USER_MESSAGES[self.kind]


class NoEligibleResourceError(EngineError):
    kind = ErrorKind.NO_ELIGIBLE_RESOURCE


class ContentionError(EngineError):
    kind = ErrorKind.CONTENTION
    retryable = True


class InvalidCapabilityRequirementError(EngineError):
    kind = ErrorKind.INVALID_CAPABILITY_REQUIREMENT


class PersistenceFailureError(EngineError):
    kind = ErrorKind.PERSISTENCE_FAILURE
    retryable = True


class AssignmentNotFoundError(EngineError):
    kind = ErrorKind.ASSIGNMENT_NOT_FOUND


class AssignmentNotActiveError(EngineError):
    kind = ErrorKind.ASSIGNMENT_NOT_ACTIVE


class ConsultantNotFoundError(EngineError):
    kind = ErrorKind.CONSULTANT_NOT_FOUND
