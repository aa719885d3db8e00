"""
Operation outcomes for the stateful claim services.

Stateful calls never signal expected results with exceptions. Callers get
an Outcome saying whether the operation changed state, found the target
state already satisfied, was refused, or hit contention worth retrying.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class OutcomeStatus(str, Enum):
    APPLIED = "APPLIED"        # State changed
    NOOP = "NOOP"              # Already in the requested state
    REJECTED = "REJECTED"      # Current state does not permit the operation
    RETRY = "RETRY"            # Transient contention, safe to retry
    NOT_FOUND = "NOT_FOUND"


@dataclass
class Outcome:
    status: OutcomeStatus
    message: str
    entity: Any = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return self.status == OutcomeStatus.APPLIED

    @property
    def ok(self) -> bool:
        """APPLIED and NOOP both leave the entity in the requested state."""
        return self.status in (OutcomeStatus.APPLIED, OutcomeStatus.NOOP)

    @classmethod
    def applied(cls, message: str, entity: Any = None, **data) -> "Outcome":
        return cls(OutcomeStatus.APPLIED, message, entity, data)

    @classmethod
    def noop(cls, message: str, entity: Any = None, **data) -> "Outcome":
        return cls(OutcomeStatus.NOOP, message, entity, data)

    @classmethod
    def rejected(cls, message: str, entity: Any = None, **data) -> "Outcome":
        return cls(OutcomeStatus.REJECTED, message, entity, data)

    @classmethod
    def retry(cls, message: str, entity: Any = None, **data) -> "Outcome":
        return cls(OutcomeStatus.RETRY, message, entity, data)

    @classmethod
    def not_found(cls, message: str) -> "Outcome":
        return cls(OutcomeStatus.NOT_FOUND, message)

    def to_dict(self, entity_view: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        result = {
            "status": self.status.value,
            "message": self.message,
            **self.data,
        }
        if entity_view is not None:
            result["entity"] = entity_view
        return result
