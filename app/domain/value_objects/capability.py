"""CapabilityRequirement value object — a skill a request would like covered."""

from dataclasses import dataclass


@dataclass(frozen=True)
class CapabilityRequirement:
    id: str
    priority: int = 1  # 1 = most important

    def to_dict(self) -> dict:
        return {"id": self.id, "priority": self.priority}

    @classmethod
    def from_dict(cls, data: dict) -> "CapabilityRequirement":
        return cls(id=data["id"], priority=int(data.get("priority", 1)))
