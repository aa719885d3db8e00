"""
Claim Lifecycle Service

Drives a claim from filing to resolution:

    FILED -> AWAITING_RESPONSE -> RESPONDED | RESPONSE_EXPIRED
          -> UNDER_REVIEW -> RESOLVED (APPROVED | DENIED | SETTLED)

Each transition is a version-checked save committed together with its
transition record. Holds, deposit settlement and notifications run only
after that commit; a failure there never undoes the transition.

Replaying an operation whose effect is already in place returns NOOP.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import uuid4

from ...clock import utcnow
from ...config import CoreSettings
from ...exceptions import ClaimValidationError
from ...models.db_models import (
    ActorType, ClaimantRole, ClaimState, ClaimType, ResolutionOutcome,
)
from ...models.domain import Claim, TransitionRecord
from ..insurance import TierCache, build_hierarchy, to_cents
from ..insurance.deposit_split import ZERO
from ..notifications import (
    NotificationDispatcher, NotificationIntent, TemplateKind, money,
)
from ..alerts import AlertKind, raise_operational_alert
from ..payments import DepositSettlementService
from .deadline_engine import DeadlineEngine
from .holds import AccountHoldEnforcer
from .outcomes import Outcome, OutcomeStatus
from .persistence import ClaimsPersistence, SaveResult
from .state_machine import EXPIRABLE_STATES, ClaimStateMachine

logger = logging.getLogger(__name__)

MIN_DESCRIPTION_LENGTH = 20

PAYOUT_OUTCOMES = [ResolutionOutcome.APPROVED, ResolutionOutcome.SETTLED]


@dataclass
class ClaimFiling:
    """Raw filing input, validated by ClaimLifecycleService.validate_filing."""
    booking_id: str
    filer_account_id: str
    claim_type: Union[ClaimType, str]
    incident_date: date
    estimated_cost: Union[Decimal, int, str, float]
    description: str


def _actor_for(role: ClaimantRole) -> ActorType:
    return ActorType.HOST if role == ClaimantRole.HOST else ActorType.GUEST


def _parse_amount(value, field: str) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        amount = to_cents(value)
    except (InvalidOperation, ValueError, TypeError):
        raise ClaimValidationError(f"{field} is not a valid amount", field=field)
    if amount < ZERO:
        raise ClaimValidationError(f"{field} must not be negative", field=field)
    return amount


class ClaimLifecycleService:

    def __init__(
        self,
        persistence: ClaimsPersistence,
        settings: Optional[CoreSettings] = None,
        enforcer: Optional[AccountHoldEnforcer] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        settlement: Optional[DepositSettlementService] = None,
        tier_cache: Optional[TierCache] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.persistence = persistence
        self.settings = settings or CoreSettings()
        self.clock = clock
        self.deadlines = DeadlineEngine(persistence, self.settings, clock)
        self.enforcer = enforcer or AccountHoldEnforcer(persistence, clock)
        self.dispatcher = dispatcher or NotificationDispatcher(persistence, settings=self.settings, clock=clock)
        self.settlement = settlement or DepositSettlementService(
            persistence, dispatcher=self.dispatcher, settings=self.settings, clock=clock
        )
        self.tier_cache = tier_cache or TierCache()
        self.state_machine = ClaimStateMachine()

    # =========================================================================
    # FILING
    # =========================================================================

    def validate_filing(self, filing: ClaimFiling, booking) -> Dict[str, Any]:
        """
        Validate a filing against its booking.

        Raises ClaimValidationError before anything is written.
        """
        claimant_role = booking.party_role(filing.filer_account_id)
        if claimant_role is None:
            raise ClaimValidationError("Filer is not a party to this booking", field="filer_account_id")

        try:
            claim_type = ClaimType(filing.claim_type)
        except ValueError:
            raise ClaimValidationError(f"Unknown claim type: {filing.claim_type}", field="claim_type")

        description = (filing.description or "").strip()
        if len(description) < MIN_DESCRIPTION_LENGTH:
            raise ClaimValidationError(
                f"Description must be at least {MIN_DESCRIPTION_LENGTH} characters",
                field="description",
            )

        if not isinstance(filing.incident_date, date):
            raise ClaimValidationError("Incident date is required", field="incident_date")
        if filing.incident_date > self.clock().date():
            raise ClaimValidationError("Incident date cannot be in the future", field="incident_date")

        estimated_cost = _parse_amount(filing.estimated_cost, "estimated_cost")
        if estimated_cost is None:
            raise ClaimValidationError("estimated_cost is required", field="estimated_cost")

        return {
            "claimant_role": claimant_role,
            "claim_type": claim_type,
            "description": description,
            "estimated_cost": estimated_cost,
        }

    def get_coverage_preview(self, booking_id: str) -> Optional[Dict[str, Any]]:
        """Tier and payer order for a booking, shown before any incident."""
        booking = self.persistence.load_booking(booking_id)
        if not booking:
            return None
        tier, hierarchy, _ = self._coverage_for(booking)
        return {
            "booking_id": booking.id,
            "tier": tier.value,
            "tier_label": tier.label,
            "host_percentage": tier.host_percentage,
            "deductible": money(tier.deductible),
            "coverage": hierarchy.as_snapshot(),
        }

    def file_claim(self, filing: ClaimFiling) -> Outcome:
        """
        File a claim against a booking.

        Snapshots tier and coverage, applies a hold on the counterparty,
        locks the vehicle listing and opens the response window.
        """
        booking = self.persistence.load_booking(filing.booking_id)
        if not booking:
            return Outcome.not_found(f"Booking {filing.booking_id} not found")

        fields = self.validate_filing(filing, booking)
        claimant_role = fields["claimant_role"]

        existing = self.persistence.find_claim(booking.id, claimant_role)
        if existing:
            return Outcome.noop("Claim already filed for this booking", existing)

        now = self.clock()
        tier, hierarchy, _ = self._coverage_for(booking)

        claim = Claim(
            id=str(uuid4()),
            booking_id=booking.id,
            vehicle_id=booking.vehicle_id,
            host_id=booking.host_id,
            guest_id=booking.guest_id,
            claimant_role=claimant_role,
            claim_type=fields["claim_type"],
            incident_date=filing.incident_date,
            estimated_cost=fields["estimated_cost"],
            description=fields["description"],
            state=ClaimState.FILED,
            filed_at=now,
            response_deadline=self.deadlines.response_deadline(now),
            tier=tier,
            coverage=hierarchy,
            deductible=tier.deductible,
            listing_locked_at=now,
        )
        record = TransitionRecord(
            claim_id=claim.id,
            from_state=None,
            to_state=ClaimState.FILED,
            trigger="claim_filed",
            actor=_actor_for(claimant_role),
            created_at=now,
            details={"tier": tier.value, "claim_type": claim.claim_type.value},
        )

        if self.persistence.insert_claim(claim, record) == SaveResult.DUPLICATE:
            existing = self.persistence.find_claim(booking.id, claimant_role)
            return Outcome.noop("Claim already filed for this booking", existing)

        logger.info(
            f"Claim {claim.id} filed by {claimant_role.value} on booking "
            f"{booking.booking_code} (tier {tier.value})"
        )

        hold = self.enforcer.apply_hold(
            claim.respondent_id,
            claim.id,
            reason=f"Response required for {claim.claim_type.value.lower()} claim",
            expires_at=claim.response_deadline,
        )

        notified = self._apply_transition(
            claim.id,
            ClaimState.AWAITING_RESPONSE,
            trigger="counterparty_notified",
            actor=ActorType.SYSTEM,
            plan=lambda c: None,
        )
        if notified.status == OutcomeStatus.APPLIED:
            claim = notified.entity

        self.dispatcher.dispatch(self._filing_notices(claim, booking.booking_code, hold.changed))

        return Outcome.applied(
            "Claim filed",
            claim,
            tier=tier.value,
            hold_applied=hold.changed,
        )

    # =========================================================================
    # RESPONSE / EXPIRY
    # =========================================================================

    def respond(self, claim_id: str, responder_account_id: str, statement: str) -> Outcome:
        """Counterparty response, accepted strictly before the deadline."""
        statement = (statement or "").strip()
        if not statement:
            raise ClaimValidationError("Response statement is required", field="statement")

        now = self.clock()

        def plan(claim: Claim) -> Optional[Outcome]:
            if responder_account_id != claim.respondent_id:
                return Outcome.rejected("Only the counterparty may respond to this claim", claim)
            if claim.responded_at is not None:
                return Outcome.noop("Claim already responded", claim)
            if claim.state == ClaimState.RESPONSE_EXPIRED or now >= claim.response_deadline:
                return Outcome.rejected("Response window closed", claim)
            claim.response_statement = statement
            claim.responded_at = now
            return None

        outcome = self._apply_transition(
            claim_id,
            ClaimState.RESPONDED,
            trigger="counterparty_responded",
            actor=ActorType.SYSTEM,
            plan=plan,
            actor_from_claim=lambda c: _actor_for(c.respondent_role),
        )

        if outcome.status == OutcomeStatus.NOOP and outcome.entity is not None:
            # Converge a response committed before its hold was lifted
            self.enforcer.lift_hold(outcome.entity.respondent_id, claim_id, trigger_state=ClaimState.RESPONDED)

        if outcome.changed:
            claim = outcome.entity
            lifted = self.enforcer.lift_hold(claim.respondent_id, claim.id, trigger_state=ClaimState.RESPONDED)
            booking_code = self._booking_code(claim)
            notices = [
                NotificationIntent.build(
                    claim.filer_id,
                    TemplateKind.CLAIM_RESPONSE_RECEIVED,
                    reference_id=claim.id,
                    claim_id=claim.id,
                    booking_code=booking_code,
                    responded_at=claim.responded_at,
                )
            ]
            if lifted.changed:
                notices.append(self._hold_released_notice(claim.respondent_id, claim.id, "Claim response received"))
            self.dispatcher.dispatch(notices)
            outcome.data["hold_lifted"] = lifted.changed

        return outcome

    def expire(self, claim_id: str) -> Outcome:
        """
        SYSTEM: close the response window once the deadline has elapsed.

        Flags the claim for manual review and escalates the hold.
        Anything else is a no-op.
        """
        now = self.clock()

        def plan(claim: Claim) -> Optional[Outcome]:
            if claim.state not in EXPIRABLE_STATES:
                return Outcome.noop(f"Claim is {claim.state.value}, nothing to expire", claim)
            if now < claim.response_deadline:
                return Outcome.noop("Response deadline not reached", claim)
            claim.manual_review_required = True
            claim.manual_review_reason = "No response before the deadline"
            return None

        outcome = self._apply_transition(
            claim_id,
            ClaimState.RESPONSE_EXPIRED,
            trigger="response_deadline_elapsed",
            actor=ActorType.SYSTEM,
            plan=plan,
        )

        if outcome.changed:
            claim = outcome.entity
            escalated = self.enforcer.escalate_hold(claim.respondent_id, claim.id)
            booking_code = self._booking_code(claim)
            self.dispatcher.dispatch([
                NotificationIntent.build(
                    recipient,
                    TemplateKind.CLAIM_RESPONSE_EXPIRED,
                    reference_id=claim.id,
                    claim_id=claim.id,
                    booking_code=booking_code,
                    response_deadline=claim.response_deadline,
                    recipient_role=role,
                )
                for recipient, role in ((claim.filer_id, "FILER"), (claim.respondent_id, "RESPONDENT"))
            ])
            outcome.data["hold_escalated"] = escalated.changed

        return outcome

    # =========================================================================
    # REVIEW / RESOLUTION
    # =========================================================================

    def begin_review(self, claim_id: str, actor: ActorType = ActorType.ADMIN) -> Outcome:
        def plan(claim: Claim) -> Optional[Outcome]:
            if claim.state == ClaimState.UNDER_REVIEW:
                return Outcome.noop("Claim already under review", claim)
            return None

        return self._apply_transition(
            claim_id,
            ClaimState.UNDER_REVIEW,
            trigger="review_started",
            actor=actor,
            plan=plan,
        )

    def resolve(
        self,
        claim_id: str,
        outcome: Union[ResolutionOutcome, str],
        actor: ActorType = ActorType.ADMIN,
        payout_amount=None,
        deposit_charge=None,
        notes: Optional[str] = None,
    ) -> Outcome:
        """
        Resolve a claim under review.

        Lifts every hold on the claim, releases the listing lock, settles
        the booking deposit once no other claim on it is open, and confirms
        any payout.
        """
        try:
            resolution = ResolutionOutcome(outcome)
        except ValueError:
            raise ClaimValidationError(f"Unknown resolution outcome: {outcome}", field="outcome")

        payout = _parse_amount(payout_amount, "payout_amount")
        charge = _parse_amount(deposit_charge, "deposit_charge")
        if resolution == ResolutionOutcome.DENIED and payout and payout > ZERO:
            raise ClaimValidationError("A denied claim cannot carry a payout", field="payout_amount")

        now = self.clock()

        def plan(claim: Claim) -> Optional[Outcome]:
            if claim.state == ClaimState.RESOLVED:
                if claim.resolution_outcome == resolution:
                    return Outcome.noop("Claim already resolved", claim)
                return Outcome.rejected(
                    f"Claim already resolved as {claim.resolution_outcome.value}", claim
                )
            claim.resolution_outcome = resolution
            claim.resolution_notes = notes
            claim.resolved_at = now
            claim.payout_amount = payout
            claim.deposit_charge = charge
            claim.listing_unlocked_at = now
            return None

        result = self._apply_transition(
            claim_id,
            ClaimState.RESOLVED,
            trigger=f"resolved_{resolution.value.lower()}",
            actor=actor,
            plan=plan,
            details={"outcome": resolution.value},
        )

        if result.status == OutcomeStatus.NOOP and result.entity is not None:
            self.enforcer.lift_all_for_claim(claim_id, ClaimState.RESOLVED)
            booking = self.persistence.load_booking(result.entity.booking_id)
            result.data["deposit_settlement"] = self._release_deposit(result.entity, booking)

        if result.changed:
            result.data.update(self._complete_resolution(result.entity))

        return result

    def _release_deposit(self, claim: Claim, booking) -> Optional[Dict[str, Any]]:
        """
        Settle the booking's deposit once its last open claim is resolved.

        Deposit charges from every claim on the booking are summed. A replayed
        resolution reaches this too, so a release that failed to record is
        picked up the next time the resolution is submitted.
        """
        if booking is None or booking.deposit_released_at is not None:
            return None
        if self.persistence.has_other_open_claims(booking.id, claim.id):
            return None

        total_charge = sum(
            (c.deposit_charge or ZERO for c in self.persistence.list_claims_for_booking(booking.id)),
            ZERO,
        )
        try:
            return self.settlement.settle(booking, total_charge, claim_id=claim.id)
        except Exception as e:
            logger.error(f"Deposit release for booking {booking.booking_code} not recorded: {e}")
            raise_operational_alert(
                AlertKind.FINANCIAL,
                "Deposit release not recorded",
                booking_id=booking.id,
                claim_id=claim.id,
                error=str(e),
            )
            return None

    def _complete_resolution(self, claim: Claim) -> Dict[str, Any]:
        lifted = self.enforcer.lift_all_for_claim(claim.id, ClaimState.RESOLVED)
        booking = self.persistence.load_booking(claim.booking_id)
        booking_code = booking.booking_code if booking else claim.booking_id
        settlement = self._release_deposit(claim, booking)

        notices = [
            NotificationIntent.build(
                recipient,
                TemplateKind.CLAIM_RESOLVED,
                reference_id=claim.id,
                claim_id=claim.id,
                outcome=claim.resolution_outcome.value,
                notes=claim.resolution_notes,
            )
            for recipient in (claim.filer_id, claim.respondent_id)
        ]
        for hold in lifted:
            notices.append(self._hold_released_notice(hold.account_id, claim.id, "Claim resolved"))
        if claim.resolution_outcome in PAYOUT_OUTCOMES and claim.payout_amount and claim.payout_amount > ZERO:
            notices.append(NotificationIntent.build(
                claim.filer_id,
                TemplateKind.PAYOUT_CONFIRMATION,
                reference_id=claim.id,
                claim_id=claim.id,
                amount=money(claim.payout_amount),
            ))
        self.dispatcher.dispatch(notices)

        logger.info(f"Claim {claim.id} resolved {claim.resolution_outcome.value} (booking {booking_code})")
        return {
            "holds_lifted": len(lifted),
            "listing_unlocked": True,
            "deposit_settlement": settlement,
        }

    # =========================================================================
    # ADMIN OVERRIDES
    # =========================================================================

    def lift_hold_manually(self, account_id: str, claim_id: str) -> Outcome:
        """Lift a hold regardless of claim state and tell the account holder."""
        outcome = self.enforcer.lift_hold(account_id, claim_id, manual=True)
        if outcome.changed:
            self.dispatcher.dispatch([
                self._hold_released_notice(account_id, claim_id, "Lifted by claims admin")
            ])
        return outcome

    # =========================================================================
    # VIEWS
    # =========================================================================

    def get_claim_view(self, claim_id: str) -> Optional[Dict[str, Any]]:
        """Current state, deadline, remaining time, required action and trail."""
        claim = self.persistence.load_claim(claim_id)
        if not claim:
            return None

        now = self.clock()
        remaining = None
        if claim.state in EXPIRABLE_STATES:
            remaining = max(int((claim.response_deadline - now).total_seconds()), 0)

        view = claim_to_dict(claim)
        view.update({
            "remaining_seconds": remaining,
            "state_description": self.state_machine.get_state_config(claim.state)["description"],
            "required_action": self.state_machine.required_action(claim.state),
            "next_states": [s.value for s in self.state_machine.get_next_states(claim.state)],
            "timeline": [
                {
                    "from_state": t.from_state.value if t.from_state else None,
                    "to_state": t.to_state.value,
                    "trigger": t.trigger,
                    "actor": t.actor.value,
                    "at": t.created_at.isoformat(),
                    "details": t.details,
                }
                for t in self.persistence.list_transitions(claim.id)
            ],
        })
        return view

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _apply_transition(
        self,
        claim_id: str,
        to_state: ClaimState,
        trigger: str,
        actor: ActorType,
        plan: Callable[[Claim], Optional[Outcome]],
        details: Optional[Dict[str, Any]] = None,
        actor_from_claim: Optional[Callable[[Claim], ActorType]] = None,
    ) -> Outcome:
        """
        Load, plan, validate and save one transition.

        `plan` inspects the freshly loaded claim and either returns an
        early Outcome (NOOP / REJECTED) or mutates the claim's fields.
        A stale save reloads and re-plans, up to max_save_retries times.
        """
        for attempt in range(self.settings.max_save_retries + 1):
            claim = self.persistence.load_claim(claim_id)
            if not claim:
                return Outcome.not_found(f"Claim {claim_id} not found")

            early = plan(claim)
            if early is not None:
                return early

            from_state = claim.state
            allowed, reason = self.state_machine.can_transition(from_state, to_state)
            if not allowed:
                return Outcome.rejected(reason, claim)

            expected_version = claim.version
            claim.state = to_state
            record = TransitionRecord(
                claim_id=claim.id,
                from_state=from_state,
                to_state=to_state,
                trigger=trigger,
                actor=actor_from_claim(claim) if actor_from_claim else actor,
                created_at=self.clock(),
                details=details or {},
            )

            result = self.persistence.save_claim(claim, expected_version, record)
            if result == SaveResult.OK:
                logger.info(f"Claim {claim.id}: {from_state.value} -> {to_state.value} ({trigger})")
                return Outcome.applied(
                    f"{from_state.value} -> {to_state.value}",
                    claim,
                    from_state=from_state.value,
                    to_state=to_state.value,
                )
            if result == SaveResult.NOT_FOUND:
                return Outcome.not_found(f"Claim {claim_id} not found")

            logger.info(f"Stale save on claim {claim_id} ({trigger}), attempt {attempt + 1}")

        return Outcome.retry(f"Claim {claim_id} is being updated concurrently, retry later")

    def _coverage_for(self, booking):
        docs = self.persistence.load_host_insurance(booking.host_id, self.clock().date())
        tier = self.tier_cache.get(booking.host_id, docs)
        hierarchy = build_hierarchy(
            tier,
            booking.guest_has_personal_policy,
            host_policy_id=docs.host_policy_id,
            platform_policy_id=self.settings.platform_policy_id,
            guest_policy_id=booking.guest_policy_id,
        )
        return tier, hierarchy, docs

    def _booking_code(self, claim: Claim) -> str:
        booking = self.persistence.load_booking(claim.booking_id)
        return booking.booking_code if booking else claim.booking_id

    def _filing_notices(self, claim: Claim, booking_code: str, hold_applied: bool) -> List[NotificationIntent]:
        hours_to_respond = max(int((claim.response_deadline - self.clock()).total_seconds() // 3600), 0)
        action_kind = (
            TemplateKind.CLAIM_FILED_HOST
            if claim.respondent_role == ClaimantRole.HOST
            else TemplateKind.CLAIM_FILED_GUEST
        )
        notices = [
            NotificationIntent.build(
                claim.filer_id,
                TemplateKind.CLAIM_FILED_CONFIRMATION,
                reference_id=claim.id,
                claim_id=claim.id,
                booking_code=booking_code,
                claim_type=claim.claim_type.value,
                estimated_cost=money(claim.estimated_cost),
                response_deadline=claim.response_deadline,
            ),
            NotificationIntent.build(
                claim.respondent_id,
                action_kind,
                reference_id=claim.id,
                claim_id=claim.id,
                booking_code=booking_code,
                claim_type=claim.claim_type.value,
                filed_by=claim.claimant_role.value,
                incident_summary=claim.incident_summary(),
                estimated_cost=money(claim.estimated_cost),
                response_deadline=claim.response_deadline,
                hours_to_respond=hours_to_respond,
            ),
        ]
        if hold_applied:
            notices.append(NotificationIntent.build(
                claim.respondent_id,
                TemplateKind.ACCOUNT_HOLD_APPLIED,
                reference_id=claim.id,
                claim_id=claim.id,
                reason="Respond to the claim to lift this restriction",
                response_deadline=claim.response_deadline,
            ))
        return notices

    @staticmethod
    def _hold_released_notice(account_id: str, claim_id: str, reason: str) -> NotificationIntent:
        return NotificationIntent.build(
            account_id,
            TemplateKind.ACCOUNT_HOLD_RELEASED,
            reference_id=claim_id,
            claim_id=claim_id,
            reason=reason,
        )


def claim_to_dict(claim: Claim) -> Dict[str, Any]:
    return {
        "id": claim.id,
        "booking_id": claim.booking_id,
        "vehicle_id": claim.vehicle_id,
        "host_id": claim.host_id,
        "guest_id": claim.guest_id,
        "claimant_role": claim.claimant_role.value,
        "claim_type": claim.claim_type.value,
        "incident_date": claim.incident_date.isoformat(),
        "estimated_cost": money(claim.estimated_cost),
        "description": claim.description,
        "state": claim.state.value,
        "filed_at": claim.filed_at.isoformat(),
        "response_deadline": claim.response_deadline.isoformat(),
        "tier": claim.tier.value,
        "deductible": money(claim.deductible),
        "coverage": claim.coverage.as_snapshot(),
        "response_statement": claim.response_statement,
        "responded_at": claim.responded_at.isoformat() if claim.responded_at else None,
        "manual_review_required": claim.manual_review_required,
        "manual_review_reason": claim.manual_review_reason,
        "resolution_outcome": claim.resolution_outcome.value if claim.resolution_outcome else None,
        "resolution_notes": claim.resolution_notes,
        "resolved_at": claim.resolved_at.isoformat() if claim.resolved_at else None,
        "payout_amount": money(claim.payout_amount) if claim.payout_amount is not None else None,
        "deposit_charge": money(claim.deposit_charge) if claim.deposit_charge is not None else None,
        "listing_locked": claim.listing_locked,
        "version": claim.version,
    }
