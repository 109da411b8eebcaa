"""Domain enums — pure Python, no external dependencies."""

from enum import Enum


class AssignmentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AssignmentMethod(str, Enum):
    FAIR_ROTATION = "fair_rotation"
    CAPABILITY_BASED = "capability_based"
    MANUAL_OVERRIDE = "manual_override"


class ReassignmentSource(str, Enum):
    AGENT_REQUEST = "agent_request"
    SYSTEM_AUTOMATIC = "system_automatic"
    ADMIN_OVERRIDE = "admin_override"


class RejectionReason(str, Enum):
    INACTIVE = "inactive"
    AT_CAPACITY = "at_capacity"
    COOLDOWN = "cooldown"
    EXCLUDED = "excluded"
    UNAVAILABLE = "unavailable"


class PipelineStep(str, Enum):
    VALIDATION = "validation"
    ELIGIBILITY = "eligibility"
    EMERGENCY_FALLBACK = "emergency_fallback"
    SCORING = "scoring"
    CAPABILITY_MATCH = "capability_match"
    SELECTION = "selection"
    COMMIT = "commit"
    REASSIGNMENT = "reassignment"
    RELEASE = "release"


class StepOutcome(str, Enum):
    SUCCESS = "success"
    DEGRADED = "degraded"
    FAILURE = "failure"
