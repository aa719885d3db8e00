"""
Commission Negotiation

Fleet-management invitations: a manager proposes a revenue split to a
vehicle owner and the two sides counter until one accepts, one declines,
the rounds run out or the response window lapses.

    PENDING -> COUNTER_OFFERED (round N) -> ... -> ROUNDS_EXHAUSTED
            -> ACCEPTED | DECLINED | EXPIRED

Each counter extends the deadline by the grace period and passes the turn
to the other party. Saves are version-checked like claim transitions.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from ...clock import utcnow
from ...config import CoreSettings
from ...exceptions import NegotiationValidationError
from ...models.db_models import NegotiationParty, NegotiationStatus
from ...models.domain import Negotiation
from ..notifications import NotificationDispatcher, NotificationIntent, TemplateKind
from .deadline_engine import DeadlineEngine
from .outcomes import Outcome
from .persistence import ClaimsPersistence, SaveResult

logger = logging.getLogger(__name__)


# =============================================================================
# NEGOTIATION STATE CONFIGURATION
# =============================================================================

NEGOTIATION_STATE_CONFIG = {
    NegotiationStatus.PENDING: {
        "description": "Invitation sent, awaiting the owner",
        "allowed_actions": ["counter", "accept", "decline", "expire"],
    },
    NegotiationStatus.COUNTER_OFFERED: {
        "description": "Counter-offer awaiting the other party",
        "allowed_actions": ["counter", "accept", "decline", "expire"],
    },
    NegotiationStatus.ROUNDS_EXHAUSTED: {
        "description": "No counters left, accept or decline only",
        "allowed_actions": ["accept", "decline", "expire"],
    },
    NegotiationStatus.ACCEPTED: {
        "description": "Terms agreed",
        "allowed_actions": [],
    },
    NegotiationStatus.DECLINED: {
        "description": "Declined by a party",
        "allowed_actions": [],
    },
    NegotiationStatus.EXPIRED: {
        "description": "Response window lapsed",
        "allowed_actions": [],
    },
}

OPEN_STATUSES = [
    status for status, config in NEGOTIATION_STATE_CONFIG.items()
    if config["allowed_actions"]
]


def validate_terms(owner_percent: Any, manager_percent: Any) -> None:
    """Percentages are integers in 1..99 summing to 100."""
    for name, value in (("owner_percent", owner_percent), ("manager_percent", manager_percent)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise NegotiationValidationError(f"{name} must be an integer", field=name)
        if not 1 <= value <= 99:
            raise NegotiationValidationError(f"{name} must be between 1 and 99", field=name)
    if owner_percent + manager_percent != 100:
        raise NegotiationValidationError(
            f"Split must total 100 (got {owner_percent + manager_percent})",
            field="owner_percent",
        )


def _other(party: NegotiationParty) -> NegotiationParty:
    return NegotiationParty.MANAGER if party == NegotiationParty.OWNER else NegotiationParty.OWNER


class CommissionNegotiationService:

    def __init__(
        self,
        persistence: ClaimsPersistence,
        settings: Optional[CoreSettings] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.persistence = persistence
        self.settings = settings or CoreSettings()
        self.clock = clock
        self.deadlines = DeadlineEngine(persistence, self.settings, clock)
        self.dispatcher = dispatcher or NotificationDispatcher(persistence, settings=self.settings, clock=clock)

    def open_invitation(
        self,
        owner_id: str,
        manager_id: str,
        owner_percent: int,
        manager_percent: int,
        vehicle_ids: Optional[List[str]] = None,
        message: Optional[str] = None,
    ) -> Outcome:
        """Manager proposes terms to an owner. The owner responds first."""
        if not owner_id or not manager_id:
            raise NegotiationValidationError("Owner and manager are required", field="owner_id")
        if owner_id == manager_id:
            raise NegotiationValidationError("Owner and manager must be different accounts", field="manager_id")
        validate_terms(owner_percent, manager_percent)

        now = self.clock()
        negotiation = Negotiation(
            id=str(uuid4()),
            owner_id=owner_id,
            manager_id=manager_id,
            owner_percent=owner_percent,
            manager_percent=manager_percent,
            proposed_by=NegotiationParty.MANAGER,
            awaiting_party=NegotiationParty.OWNER,
            status=NegotiationStatus.PENDING,
            rounds_used=0,
            max_rounds=self.settings.max_negotiation_rounds,
            response_deadline=self.deadlines.invitation_deadline(now),
            created_at=now,
            vehicle_ids=list(vehicle_ids or []),
        )
        self._append_history(negotiation, "PROPOSED", NegotiationParty.MANAGER, message, now)

        self.persistence.insert_negotiation(negotiation)
        logger.info(f"Negotiation {negotiation.id} opened: {owner_percent}/{manager_percent}")
        return Outcome.applied("Invitation sent", negotiation)

    def get_negotiation(self, negotiation_id: str) -> Optional[Negotiation]:
        return self.persistence.load_negotiation(negotiation_id)

    def counter(
        self,
        negotiation_id: str,
        party: NegotiationParty,
        owner_percent: int,
        manager_percent: int,
        message: Optional[str] = None,
    ) -> Outcome:
        """
        Counter-offer by the party whose turn it is.

        Consumes a round and extends the deadline by the grace period.
        The last permitted counter moves the negotiation to ROUNDS_EXHAUSTED.
        """
        validate_terms(owner_percent, manager_percent)
        now = self.clock()

        def plan(n: Negotiation) -> Optional[Outcome]:
            early = self._check_action(n, "counter", party, now)
            if early:
                return early
            n.owner_percent = owner_percent
            n.manager_percent = manager_percent
            n.proposed_by = party
            n.awaiting_party = _other(party)
            n.rounds_used += 1
            n.response_deadline = self.deadlines.extend_deadline(n.response_deadline)
            if n.rounds_used >= n.max_rounds:
                n.status = NegotiationStatus.ROUNDS_EXHAUSTED
            else:
                n.status = NegotiationStatus.COUNTER_OFFERED
            self._append_history(n, "COUNTER", party, message, now)
            return None

        outcome = self._apply(negotiation_id, plan)
        if outcome.changed:
            n = outcome.entity
            self.dispatcher.dispatch([
                NotificationIntent.build(
                    n.account_for(n.awaiting_party),
                    TemplateKind.COUNTER_OFFER_RECEIVED,
                    reference_id=n.id,
                    negotiation_id=n.id,
                    round=n.rounds_used,
                    proposed_by=party.value,
                    owner_percent=n.owner_percent,
                    manager_percent=n.manager_percent,
                    rounds_remaining=n.rounds_remaining,
                    expires_at=n.response_deadline,
                    message=message,
                )
            ])
        return outcome

    def accept(self, negotiation_id: str, party: NegotiationParty) -> Outcome:
        now = self.clock()

        def plan(n: Negotiation) -> Optional[Outcome]:
            if n.status == NegotiationStatus.ACCEPTED:
                return Outcome.noop("Terms already accepted", n)
            early = self._check_action(n, "accept", party, now)
            if early:
                return early
            self._conclude(n, NegotiationStatus.ACCEPTED, party, now)
            return None

        return self._finish(self._apply(negotiation_id, plan))

    def decline(self, negotiation_id: str, party: NegotiationParty, message: Optional[str] = None) -> Outcome:
        """Either party may walk away while the negotiation is open."""
        now = self.clock()

        def plan(n: Negotiation) -> Optional[Outcome]:
            if n.status == NegotiationStatus.DECLINED:
                return Outcome.noop("Already declined", n)
            early = self._check_action(n, "decline", None, now)
            if early:
                return early
            self._conclude(n, NegotiationStatus.DECLINED, party, now, message)
            return None

        return self._finish(self._apply(negotiation_id, plan))

    def expire(self, negotiation_id: str) -> Outcome:
        """SYSTEM: close a negotiation whose deadline has elapsed."""
        now = self.clock()

        def plan(n: Negotiation) -> Optional[Outcome]:
            if n.status not in OPEN_STATUSES:
                return Outcome.noop(f"Negotiation is {n.status.value}", n)
            if now < n.response_deadline:
                return Outcome.noop("Deadline not reached", n)
            self._conclude(n, NegotiationStatus.EXPIRED, None, now)
            return None

        return self._finish(self._apply(negotiation_id, plan))

    def to_view(self, n: Negotiation) -> Dict[str, Any]:
        now = self.clock()
        open_ = n.status in OPEN_STATUSES
        return {
            "id": n.id,
            "owner_id": n.owner_id,
            "manager_id": n.manager_id,
            "vehicle_ids": n.vehicle_ids,
            "status": n.status.value,
            "owner_percent": n.owner_percent,
            "manager_percent": n.manager_percent,
            "proposed_by": n.proposed_by.value,
            "awaiting_party": n.awaiting_party.value if n.awaiting_party else None,
            "rounds_used": n.rounds_used,
            "rounds_remaining": n.rounds_remaining,
            "allowed_actions": NEGOTIATION_STATE_CONFIG[n.status]["allowed_actions"] if open_ else [],
            "expires_at": n.response_deadline.isoformat(),
            "remaining_seconds": max(int((n.response_deadline - now).total_seconds()), 0) if open_ else None,
            "history": n.history,
            "concluded_at": n.concluded_at.isoformat() if n.concluded_at else None,
            "version": n.version,
        }

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _check_action(
        self,
        n: Negotiation,
        action: str,
        party: Optional[NegotiationParty],
        now: datetime,
    ) -> Optional[Outcome]:
        allowed = NEGOTIATION_STATE_CONFIG[n.status]["allowed_actions"]
        if action not in allowed:
            return Outcome.rejected(f"Cannot {action} a negotiation in {n.status.value}", n)
        if now >= n.response_deadline:
            return Outcome.rejected("Negotiation window has closed", n)
        if party is not None and party != n.awaiting_party:
            return Outcome.rejected(f"Waiting on {n.awaiting_party.value}, not {party.value}", n)
        return None

    def _conclude(
        self,
        n: Negotiation,
        status: NegotiationStatus,
        party: Optional[NegotiationParty],
        now: datetime,
        message: Optional[str] = None,
    ) -> None:
        n.status = status
        n.awaiting_party = None
        n.concluded_at = now
        self._append_history(n, status.value, party, message, now)

    @staticmethod
    def _append_history(
        n: Negotiation,
        action: str,
        party: Optional[NegotiationParty],
        message: Optional[str],
        now: datetime,
    ) -> None:
        n.history = n.history + [{
            "round": n.rounds_used,
            "action": action,
            "proposed_by": party.value if party else "SYSTEM",
            "owner_percent": n.owner_percent,
            "manager_percent": n.manager_percent,
            "message": message,
            "at": now.isoformat(),
        }]

    def _apply(self, negotiation_id: str, plan: Callable[[Negotiation], Optional[Outcome]]) -> Outcome:
        for attempt in range(self.settings.max_save_retries + 1):
            n = self.persistence.load_negotiation(negotiation_id)
            if not n:
                return Outcome.not_found(f"Negotiation {negotiation_id} not found")

            before = n.status
            early = plan(n)
            if early is not None:
                return early

            expected_version = n.version
            result = self.persistence.save_negotiation(n, expected_version)
            if result == SaveResult.OK:
                logger.info(f"Negotiation {n.id}: {before.value} -> {n.status.value}")
                return Outcome.applied(f"{before.value} -> {n.status.value}", n)
            if result == SaveResult.NOT_FOUND:
                return Outcome.not_found(f"Negotiation {negotiation_id} not found")

            logger.info(f"Stale save on negotiation {negotiation_id}, attempt {attempt + 1}")

        return Outcome.retry(f"Negotiation {negotiation_id} is being updated concurrently, retry later")

    def _finish(self, outcome: Outcome) -> Outcome:
        if outcome.changed:
            n = outcome.entity
            self.dispatcher.dispatch([
                NotificationIntent.build(
                    recipient,
                    TemplateKind.NEGOTIATION_CONCLUDED,
                    reference_id=n.id,
                    negotiation_id=n.id,
                    status=n.status.value,
                    owner_percent=n.owner_percent,
                    manager_percent=n.manager_percent,
                )
                for recipient in (n.owner_id, n.manager_id)
            ])
        return outcome
