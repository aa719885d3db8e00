"""
Rental Claims Core - Claims

Claim lifecycle, account holds, deadlines and commission negotiation.
"""
from .outcomes import Outcome, OutcomeStatus
from .state_machine import ClaimStateMachine, STATE_CONFIG, EXPIRABLE_STATES
from .persistence import ClaimsPersistence, SaveResult
from .holds import AccountHoldEnforcer
from .lifecycle import ClaimFiling, ClaimLifecycleService, claim_to_dict
from .negotiation import CommissionNegotiationService, validate_terms
from .deadline_engine import DeadlineEngine
from .scheduler import DeadlineScheduler
from .editability import VehicleEditability, resolve_vehicle_editability

__all__ = [
    "Outcome",
    "OutcomeStatus",
    "ClaimStateMachine",
    "STATE_CONFIG",
    "EXPIRABLE_STATES",
    "ClaimsPersistence",
    "SaveResult",
    "AccountHoldEnforcer",
    "ClaimFiling",
    "ClaimLifecycleService",
    "claim_to_dict",
    "CommissionNegotiationService",
    "validate_terms",
    "DeadlineEngine",
    "DeadlineScheduler",
    "VehicleEditability",
    "resolve_vehicle_editability",
]
