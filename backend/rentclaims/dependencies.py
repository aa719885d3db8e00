"""
Rental Claims Core - FastAPI wiring

Builds the claims services per request from the request's DB session.
Collaborators (notifier, payment processor, preferences, clock) are
separate dependencies so tests and deployments can override each one.
"""
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from .clock import utcnow
from .config import CoreSettings
from .database import get_db
from .services.claims import (
    AccountHoldEnforcer,
    ClaimLifecycleService,
    ClaimsPersistence,
    CommissionNegotiationService,
    DeadlineScheduler,
    Outcome,
    OutcomeStatus,
)
from .services.insurance import TierCache
from .services.notifications import LoggingNotifier, NotificationDispatcher, Notifier, PreferenceLookup
from .services.payments import DepositSettlementService, LoggingPaymentProcessor, PaymentProcessor

# Tier resolutions are keyed by document fingerprint, so sharing is safe
_tier_cache = TierCache()


@lru_cache()
def get_settings() -> CoreSettings:
    return CoreSettings.from_env()


def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_notifier() -> Notifier:
    return LoggingNotifier()


def get_payment_processor() -> PaymentProcessor:
    return LoggingPaymentProcessor()


def get_preferences() -> PreferenceLookup:
    return PreferenceLookup()


def get_persistence(db: Session = Depends(get_db)) -> ClaimsPersistence:
    return ClaimsPersistence(db)


def get_dispatcher(
    persistence: ClaimsPersistence = Depends(get_persistence),
    notifier: Notifier = Depends(get_notifier),
    preferences: PreferenceLookup = Depends(get_preferences),
    settings: CoreSettings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> NotificationDispatcher:
    return NotificationDispatcher(persistence, notifier, preferences, settings, clock)


def get_hold_enforcer(
    persistence: ClaimsPersistence = Depends(get_persistence),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AccountHoldEnforcer:
    return AccountHoldEnforcer(persistence, clock)


def get_lifecycle(
    persistence: ClaimsPersistence = Depends(get_persistence),
    settings: CoreSettings = Depends(get_settings),
    enforcer: AccountHoldEnforcer = Depends(get_hold_enforcer),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    processor: PaymentProcessor = Depends(get_payment_processor),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> ClaimLifecycleService:
    settlement = DepositSettlementService(persistence, processor, dispatcher, settings, clock)
    return ClaimLifecycleService(
        persistence,
        settings=settings,
        enforcer=enforcer,
        dispatcher=dispatcher,
        settlement=settlement,
        tier_cache=_tier_cache,
        clock=clock,
    )


def get_negotiation_service(
    persistence: ClaimsPersistence = Depends(get_persistence),
    settings: CoreSettings = Depends(get_settings),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> CommissionNegotiationService:
    return CommissionNegotiationService(persistence, settings, dispatcher, clock)


def get_scheduler(
    lifecycle: ClaimLifecycleService = Depends(get_lifecycle),
    negotiations: CommissionNegotiationService = Depends(get_negotiation_service),
) -> DeadlineScheduler:
    return DeadlineScheduler(lifecycle, negotiations)


# =============================================================================
# OUTCOME -> HTTP
# =============================================================================

def outcome_response(outcome: Outcome, entity_view: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Map an Outcome to a response body, raising for refusals.

    APPLIED / NOOP -> 200, REJECTED -> 409, RETRY -> 503, NOT_FOUND -> 404
    """
    if outcome.status == OutcomeStatus.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=outcome.message)
    if outcome.status == OutcomeStatus.REJECTED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=outcome.message)
    if outcome.status == OutcomeStatus.RETRY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=outcome.message,
            headers={"Retry-After": "1"},
        )
    return outcome.to_dict(entity_view)
