"""
Claim State Machine

Deterministic state machine for the claim lifecycle.
States never move backwards; RESOLVED is terminal.
All transitions are recorded in the append-only transition trail.
"""
from typing import Any, Dict, List, Optional, Tuple

from ...models.db_models import ClaimState


# =============================================================================
# STATE CONFIGURATION
# =============================================================================
#
# AUTHORITY MODEL:
# - PARTY: a guest or host action (file, respond)
# - SYSTEM: the deadline sweep (expiry)
# - ADMIN: manual review and resolution
#
# lifts_hold marks states whose entry is a qualifying reason to lift the
# account hold.
# required_action is the single thing the respondent can do, if any.
#
# =============================================================================

STATE_CONFIG = {
    ClaimState.FILED: {
        "description": "Claim filed, counterparty not yet notified",
        "allowed_transitions": [
            ClaimState.AWAITING_RESPONSE,
            ClaimState.RESPONSE_EXPIRED,
        ],
        "lifts_hold": False,
        "required_action": None,
    },
    ClaimState.AWAITING_RESPONSE: {
        "description": "Counterparty notified, response window open",
        "allowed_transitions": [
            ClaimState.RESPONDED,
            ClaimState.RESPONSE_EXPIRED,
        ],
        "lifts_hold": False,
        "required_action": "respond",
    },
    ClaimState.RESPONDED: {
        "description": "Counterparty responded before the deadline",
        "allowed_transitions": [ClaimState.UNDER_REVIEW],
        "lifts_hold": True,
        "required_action": None,
    },
    ClaimState.RESPONSE_EXPIRED: {
        "description": "No response before the deadline, escalated to manual review",
        "allowed_transitions": [ClaimState.UNDER_REVIEW],
        "lifts_hold": False,
        "required_action": None,
    },
    ClaimState.UNDER_REVIEW: {
        "description": "Claim under review",
        "allowed_transitions": [ClaimState.RESOLVED],
        "lifts_hold": False,
        "required_action": None,
    },
    ClaimState.RESOLVED: {
        "description": "Claim resolved (approved, denied or settled)",
        "allowed_transitions": [],  # Terminal state
        "lifts_hold": True,
        "required_action": None,
    },
}

# States the deadline sweep may expire
EXPIRABLE_STATES = [ClaimState.FILED, ClaimState.AWAITING_RESPONSE]

HOLD_LIFTING_STATES = [state for state, config in STATE_CONFIG.items() if config["lifts_hold"]]


class ClaimStateMachine:
    """
    Transition rules for claims.

    Pure lookup over STATE_CONFIG; persistence and side effects live in
    the lifecycle service.
    """

    def get_state_config(self, state: ClaimState) -> Dict[str, Any]:
        """Get configuration for a state."""
        return STATE_CONFIG.get(state, {})

    def can_transition(
        self,
        from_state: ClaimState,
        to_state: ClaimState,
    ) -> Tuple[bool, str]:
        """
        Check if a state transition is allowed.

        Returns (allowed, reason)
        """
        config = self.get_state_config(from_state)
        if to_state in config.get("allowed_transitions", []):
            return True, "Transition allowed"

        return False, f"Cannot transition from {from_state.value} to {to_state.value}"

    def is_terminal_state(self, state: ClaimState) -> bool:
        """Check if a state is terminal (no further transitions)."""
        config = self.get_state_config(state)
        return len(config.get("allowed_transitions", [])) == 0

    def get_next_states(self, state: ClaimState) -> List[ClaimState]:
        """Get possible next states from current state."""
        return list(self.get_state_config(state).get("allowed_transitions", []))

    def required_action(self, state: ClaimState) -> Optional[str]:
        return self.get_state_config(state).get("required_action")

    def lifts_hold(self, state: ClaimState) -> bool:
        return state in HOLD_LIFTING_STATES
