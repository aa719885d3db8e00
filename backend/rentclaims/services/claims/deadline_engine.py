"""
Deadline Engine

AUTHORITY: SYSTEM
Owns every deadline the claims core sets, and finds the claims and
negotiations whose deadline has passed.

Key behaviors:
- Response window (default 48h) from filing
- Invitation window (default 7 days) for a commission negotiation
- Each counter-offer extends the negotiation deadline by a grace period
- Lookups for FILED / AWAITING_RESPONSE claims due soon or already overdue
"""
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from ...clock import utcnow
from ...config import CoreSettings
from ...models.db_models import NegotiationStatus
from .persistence import ClaimsPersistence
from .state_machine import EXPIRABLE_STATES


class DeadlineEngine:
    """
    Deadline arithmetic and lookups.

    Core Responsibilities:
    - Calculate the response deadline for a filing time
    - Calculate the deadline of a new negotiation invitation
    - Extend a deadline by a grace period
    - List deadlines coming due
    """

    def __init__(
        self,
        persistence: ClaimsPersistence,
        settings: Optional[CoreSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.persistence = persistence
        self.settings = settings or CoreSettings()
        self.clock = clock

    def response_deadline(self, filed_at: datetime) -> datetime:
        return filed_at + self.settings.response_window

    def invitation_deadline(self, opened_at: datetime) -> datetime:
        return opened_at + self.settings.invitation_window

    def extend_deadline(self, deadline: datetime, grace: Optional[timedelta] = None) -> datetime:
        return deadline + (grace if grace is not None else self.settings.counter_offer_grace)

    def get_upcoming_deadlines(self, hours_ahead: int = 24) -> List[Dict[str, Any]]:
        """Open claims whose response deadline falls within the next N hours."""
        now = self.clock()
        claims = self.persistence.find_claims_due_between(
            now, now + timedelta(hours=hours_ahead), EXPIRABLE_STATES
        )
        return [
            {
                "claim_id": c.id,
                "booking_id": c.booking_id,
                "respondent_id": c.respondent_id,
                "state": c.state.value,
                "response_deadline": c.response_deadline.isoformat(),
                "hours_remaining": round((c.response_deadline - now).total_seconds() / 3600, 1),
            }
            for c in claims
        ]

    def get_expired_claim_ids(self) -> List[str]:
        return self.persistence.find_expired_claim_ids(self.clock(), EXPIRABLE_STATES)

    def get_expired_negotiation_ids(self, statuses: Iterable[NegotiationStatus]) -> List[str]:
        """Negotiations in one of `statuses` whose response deadline has passed."""
        return self.persistence.find_expired_negotiation_ids(self.clock(), list(statuses))
