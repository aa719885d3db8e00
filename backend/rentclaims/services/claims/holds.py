"""
Account Hold Enforcer

AUTHORITY: SYSTEM
Applies, escalates and lifts account restrictions tied to claim deadlines.

Key behaviors:
- At most one active hold per (account, claim); re-applying is a no-op
- A hold is lifted only when its claim reaches a qualifying state
  (RESPONDED, RESOLVED) or by a manual admin override
- Escalation keeps the hold active and clears its auto-expiry
- is_restricted() is a single EXISTS query, safe on hot request paths
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from ...clock import utcnow
from ...models.db_models import ClaimState, HoldLiftedBy
from ...models.domain import AccountHold
from .outcomes import Outcome
from .persistence import ClaimsPersistence, SaveResult
from .state_machine import ClaimStateMachine

logger = logging.getLogger(__name__)


class AccountHoldEnforcer:
    """Owns every mutation of account holds."""

    def __init__(
        self,
        persistence: ClaimsPersistence,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.persistence = persistence
        self.clock = clock
        self.state_machine = ClaimStateMachine()

    def apply_hold(
        self,
        account_id: str,
        claim_id: str,
        reason: str,
        expires_at: Optional[datetime] = None,
    ) -> Outcome:
        """
        Restrict an account pending a claim response.

        Idempotent: an existing active hold is returned unchanged, keeping
        its original applied_at.
        """
        existing = self.persistence.get_active_hold(account_id, claim_id)
        if existing:
            return Outcome.noop("Hold already active", existing)

        hold = AccountHold(
            id=str(uuid4()),
            account_id=account_id,
            claim_id=claim_id,
            reason=reason,
            applied_at=self.clock(),
            expires_at=expires_at,
        )
        result = self.persistence.insert_hold(hold)
        if result == SaveResult.DUPLICATE:
            # Lost the insert race; the winner's hold is the active one
            existing = self.persistence.get_active_hold(account_id, claim_id)
            return Outcome.noop("Hold already active", existing)

        logger.info(f"Hold applied on account {account_id} for claim {claim_id}")
        return Outcome.applied("Hold applied", hold)

    def lift_hold(
        self,
        account_id: str,
        claim_id: str,
        trigger_state: Optional[ClaimState] = None,
        manual: bool = False,
    ) -> Outcome:
        """
        Lift the active hold for (account, claim).

        Requires trigger_state to be a hold-lifting claim state, or
        manual=True. Lifting an absent or already-lifted hold is a no-op.
        """
        if not manual and (trigger_state is None or not self.state_machine.lifts_hold(trigger_state)):
            state_label = trigger_state.value if trigger_state else "none"
            return Outcome.rejected(
                f"Claim state {state_label} does not allow lifting the hold",
                trigger_state=state_label,
            )

        hold = self.persistence.get_active_hold(account_id, claim_id)
        if not hold:
            return Outcome.noop("No active hold")

        hold.lifted_at = self.clock()
        hold.lifted_by = HoldLiftedBy.MANUAL if manual else HoldLiftedBy.SYSTEM
        if self.persistence.save_hold(hold) == SaveResult.STALE:
            return Outcome.noop("Hold already lifted")

        logger.info(
            f"Hold lifted on account {account_id} for claim {claim_id} "
            f"({hold.lifted_by.value})"
        )
        return Outcome.applied("Hold lifted", hold)

    def escalate_hold(self, account_id: str, claim_id: str) -> Outcome:
        """Keep the hold in place past its deadline and clear auto-expiry."""
        hold = self.persistence.get_active_hold(account_id, claim_id)
        if not hold:
            return Outcome.noop("No active hold")
        if hold.escalated_at is not None:
            return Outcome.noop("Hold already escalated", hold)

        hold.escalated_at = self.clock()
        hold.expires_at = None
        if self.persistence.save_hold(hold) == SaveResult.STALE:
            return Outcome.noop("Hold lifted before escalation")

        logger.info(f"Hold escalated on account {account_id} for claim {claim_id}")
        return Outcome.applied("Hold escalated", hold)

    def lift_all_for_claim(
        self,
        claim_id: str,
        trigger_state: ClaimState,
    ) -> List[AccountHold]:
        """Lift every active hold tied to a claim. Returns the holds lifted."""
        lifted = []
        for hold in self.persistence.list_active_holds(claim_id=claim_id):
            outcome = self.lift_hold(hold.account_id, claim_id, trigger_state=trigger_state)
            if outcome.changed:
                lifted.append(outcome.entity)
        return lifted

    def is_restricted(self, account_id: str) -> bool:
        return self.persistence.has_active_hold(account_id)

    def hold_status(self, account_id: str) -> Dict[str, Any]:
        """
        Restriction summary for an account.

        Each active hold reports the claim deadline, the time remaining and
        the single action that lifts it.
        """
        now = self.clock()
        holds = []
        for hold in self.persistence.list_active_holds(account_id=account_id):
            claim = self.persistence.load_claim(hold.claim_id)
            deadline = claim.response_deadline if claim else hold.expires_at
            remaining = None
            if deadline is not None:
                remaining = max(int((deadline - now).total_seconds()), 0)
            required_action = self.state_machine.required_action(claim.state) if claim else None

            holds.append({
                "hold_id": hold.id,
                "claim_id": hold.claim_id,
                "reason": hold.reason,
                "applied_at": hold.applied_at.isoformat(),
                "escalated": hold.escalated_at is not None,
                "claim_state": claim.state.value if claim else None,
                "response_deadline": deadline.isoformat() if deadline else None,
                "remaining_seconds": remaining,
                "required_action": required_action,
            })

        return {
            "account_id": account_id,
            "restricted": len(holds) > 0,
            "holds": holds,
        }
