"""
Claims Persistence

Durable storage for claims, holds, negotiations and outbox tasks behind a
SQLAlchemy session.

Every mutating call commits its own transaction. Claim and negotiation
saves carry the version the caller loaded; a conditional UPDATE makes a
stale write fail with SaveResult.STALE instead of overwriting a newer state.
Outbox tasks are claimed the same way before any outward call, so two
workers never act on one task at once.
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.db_models import (
    AccountDB, AccountHoldDB, BookingDB, ClaimDB, ClaimTransitionDB,
    CommissionNegotiationDB, HostInsuranceDB, OutboxTaskDB, VehicleDB,
    WalletCreditDB,
    ClaimantRole, ClaimState, NegotiationStatus, OutboxStatus, OutboxTaskType,
)
from ...models.domain import (
    AccountHold, BookingContext, Claim, Negotiation, OutboxTask,
    TransitionRecord, VehicleRecord,
)
from ..insurance.coverage_hierarchy import CoverageHierarchy
from ..insurance.tier_resolver import HostInsuranceDocs, InsuranceTier

logger = logging.getLogger(__name__)


class SaveResult(str, Enum):
    OK = "OK"
    STALE = "STALE"            # expected_version no longer current
    NOT_FOUND = "NOT_FOUND"
    DUPLICATE = "DUPLICATE"    # unique constraint hit on insert


def _active_key(account_id: str, claim_id: str) -> str:
    return f"{account_id}:{claim_id}"


class ClaimsPersistence:
    """
    Storage capability handed to each claims-core service.

    Instances wrap one session and are not shared across threads.
    """

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session

    # =========================================================================
    # EXTERNAL CONTEXT (read-only)
    # =========================================================================

    def load_booking(self, booking_id: str) -> Optional[BookingContext]:
        row = self.db.query(BookingDB).populate_existing().filter(BookingDB.id == booking_id).first()
        if not row:
            return None
        return BookingContext(
            id=row.id,
            booking_code=row.booking_code,
            vehicle_id=row.vehicle_id,
            host_id=row.host_id,
            guest_id=row.guest_id,
            start_date=row.start_date,
            end_date=row.end_date,
            guest_has_personal_policy=bool(row.guest_has_personal_policy),
            guest_policy_id=row.guest_policy_id,
            deposit_card_amount=Decimal(row.deposit_card_amount or 0),
            deposit_wallet_amount=Decimal(row.deposit_wallet_amount or 0),
            card_payment_reference=row.card_payment_reference,
            deposit_released_at=row.deposit_released_at,
        )

    def load_vehicle(self, vehicle_id: str) -> Optional[VehicleRecord]:
        row = self.db.query(VehicleDB).filter(VehicleDB.id == vehicle_id).first()
        if not row:
            return None
        return VehicleRecord(
            id=row.id,
            host_id=row.host_id,
            make=row.make,
            model=row.model,
            year=row.year,
            state=row.state,
            approval_status=row.approval_status,
        )

    def load_host_insurance(self, host_id: str, today: date) -> HostInsuranceDocs:
        """Host documentation flags; no record means no insurance."""
        row = self.db.query(HostInsuranceDB).filter(HostInsuranceDB.host_id == host_id).first()
        if not row:
            return HostInsuranceDocs()
        return HostInsuranceDocs(
            has_commercial_policy=bool(row.has_commercial_policy),
            has_p2p_endorsement=bool(row.has_p2p_endorsement),
            policy_covers_rental_use=bool(row.policy_covers_rental_use),
            policy_expired=row.policy_expires_on is not None and row.policy_expires_on < today,
            host_policy_id=row.host_policy_id,
        )

    def load_account_email(self, account_id: str) -> Optional[str]:
        row = self.db.query(AccountDB.email).filter(AccountDB.id == account_id).first()
        return row[0] if row else None

    def record_deposit_release(
        self,
        booking_id: str,
        released_at: datetime,
        tasks: List[OutboxTask],
    ) -> bool:
        """
        Stamp the booking's deposit as released and queue its payout tasks.

        Marker and tasks commit together, so a release is either fully
        queued or not recorded at all. False if the deposit was already
        released; nothing is queued then.
        """
        try:
            updated = self.db.query(BookingDB).filter(
                BookingDB.id == booking_id,
                BookingDB.deposit_released_at.is_(None),
            ).update({"deposit_released_at": released_at}, synchronize_session=False)
            if updated != 1:
                self.db.rollback()
                return False
            for task in tasks:
                self.db.add(self._task_row(task))
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return True

    # =========================================================================
    # CLAIMS
    # =========================================================================

    def load_claim(self, claim_id: str) -> Optional[Claim]:
        row = self.db.query(ClaimDB).populate_existing().filter(ClaimDB.id == claim_id).first()
        return self._claim_from_row(row) if row else None

    def find_claim(self, booking_id: str, claimant_role: ClaimantRole) -> Optional[Claim]:
        row = self.db.query(ClaimDB).populate_existing().filter(
            ClaimDB.booking_id == booking_id,
            ClaimDB.claimant_role == claimant_role,
        ).first()
        return self._claim_from_row(row) if row else None

    def list_claims_for_booking(self, booking_id: str) -> List[Claim]:
        rows = self.db.query(ClaimDB).populate_existing().filter(
            ClaimDB.booking_id == booking_id
        ).order_by(ClaimDB.filed_at.asc()).all()
        return [self._claim_from_row(r) for r in rows]

    def insert_claim(self, claim: Claim, transition: Optional[TransitionRecord] = None) -> SaveResult:
        """Insert a new claim. DUPLICATE if this party already filed on the booking."""
        row = ClaimDB(id=claim.id, **self._claim_values(claim))
        self.db.add(row)
        if transition:
            self.db.add(self._transition_row(transition))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(f"Duplicate claim for booking {claim.booking_id} by {claim.claimant_role.value}")
            return SaveResult.DUPLICATE
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return SaveResult.OK

    def save_claim(
        self,
        claim: Claim,
        expected_version: int,
        transition: Optional[TransitionRecord] = None,
    ) -> SaveResult:
        """
        Persist claim changes if the stored version still equals expected_version.

        The transition record commits in the same transaction as the state
        change. On success claim.version is advanced.
        """
        values = self._claim_values(claim)
        values["version"] = expected_version + 1
        try:
            updated = self.db.query(ClaimDB).filter(
                ClaimDB.id == claim.id,
                ClaimDB.version == expected_version,
            ).update(values, synchronize_session=False)

            if updated == 0:
                self.db.rollback()
                exists = self.db.query(ClaimDB.id).filter(ClaimDB.id == claim.id).first()
                return SaveResult.STALE if exists else SaveResult.NOT_FOUND

            if transition:
                self.db.add(self._transition_row(transition))
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        claim.version = expected_version + 1
        return SaveResult.OK

    def list_transitions(self, claim_id: str) -> List[TransitionRecord]:
        rows = self.db.query(ClaimTransitionDB).filter(
            ClaimTransitionDB.claim_id == claim_id
        ).order_by(ClaimTransitionDB.created_at.asc(), ClaimTransitionDB.id.asc()).all()
        return [
            TransitionRecord(
                claim_id=r.claim_id,
                from_state=r.from_state,
                to_state=r.to_state,
                trigger=r.trigger,
                actor=r.actor,
                created_at=r.created_at,
                details=r.details or {},
            )
            for r in rows
        ]

    def find_expired_claim_ids(
        self,
        now: datetime,
        states: List[ClaimState],
        limit: int = 500,
    ) -> List[str]:
        """Claims in one of `states` whose response deadline is at or before now."""
        rows = self.db.query(ClaimDB.id).filter(
            ClaimDB.state.in_(states),
            ClaimDB.response_deadline <= now,
        ).order_by(ClaimDB.response_deadline.asc()).limit(limit).all()
        return [r[0] for r in rows]

    def find_claims_due_between(
        self,
        start: datetime,
        end: datetime,
        states: List[ClaimState],
    ) -> List[Claim]:
        rows = self.db.query(ClaimDB).filter(
            ClaimDB.state.in_(states),
            ClaimDB.response_deadline > start,
            ClaimDB.response_deadline <= end,
        ).order_by(ClaimDB.response_deadline.asc()).all()
        return [self._claim_from_row(r) for r in rows]

    def has_other_open_claims(self, booking_id: str, exclude_claim_id: str) -> bool:
        row = self.db.query(ClaimDB.id).filter(
            ClaimDB.booking_id == booking_id,
            ClaimDB.id != exclude_claim_id,
            ClaimDB.state != ClaimState.RESOLVED,
        ).first()
        return row is not None

    def has_listing_lock(self, vehicle_id: str) -> bool:
        row = self.db.query(ClaimDB.id).filter(
            ClaimDB.vehicle_id == vehicle_id,
            ClaimDB.listing_locked_at.isnot(None),
            ClaimDB.listing_unlocked_at.is_(None),
        ).first()
        return row is not None

    # =========================================================================
    # ACCOUNT HOLDS
    # =========================================================================

    def get_active_hold(self, account_id: str, claim_id: str) -> Optional[AccountHold]:
        row = self.db.query(AccountHoldDB).populate_existing().filter(
            AccountHoldDB.active_key == _active_key(account_id, claim_id)
        ).first()
        return self._hold_from_row(row) if row else None

    def insert_hold(self, hold: AccountHold) -> SaveResult:
        """Insert an active hold. DUPLICATE if one is already active for the pair."""
        row = AccountHoldDB(
            id=hold.id,
            account_id=hold.account_id,
            claim_id=hold.claim_id,
            active_key=_active_key(hold.account_id, hold.claim_id),
            reason=hold.reason,
            applied_at=hold.applied_at,
            expires_at=hold.expires_at,
            escalated_at=hold.escalated_at,
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return SaveResult.DUPLICATE
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return SaveResult.OK

    def save_hold(self, hold: AccountHold) -> SaveResult:
        """Update an active hold. STALE if it was lifted in the meantime."""
        values = {
            "reason": hold.reason,
            "expires_at": hold.expires_at,
            "escalated_at": hold.escalated_at,
            "lifted_at": hold.lifted_at,
            "lifted_by": hold.lifted_by,
            "active_key": None if hold.lifted_at else _active_key(hold.account_id, hold.claim_id),
        }
        try:
            updated = self.db.query(AccountHoldDB).filter(
                AccountHoldDB.id == hold.id,
                AccountHoldDB.lifted_at.is_(None),
            ).update(values, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return SaveResult.OK if updated == 1 else SaveResult.STALE

    def list_active_holds(
        self,
        account_id: Optional[str] = None,
        claim_id: Optional[str] = None,
    ) -> List[AccountHold]:
        query = self.db.query(AccountHoldDB).populate_existing().filter(AccountHoldDB.lifted_at.is_(None))
        if account_id:
            query = query.filter(AccountHoldDB.account_id == account_id)
        if claim_id:
            query = query.filter(AccountHoldDB.claim_id == claim_id)
        return [self._hold_from_row(r) for r in query.order_by(AccountHoldDB.applied_at.asc()).all()]

    def list_holds_for_claim(self, claim_id: str) -> List[AccountHold]:
        rows = self.db.query(AccountHoldDB).populate_existing().filter(
            AccountHoldDB.claim_id == claim_id
        ).order_by(AccountHoldDB.applied_at.asc()).all()
        return [self._hold_from_row(r) for r in rows]

    def has_active_hold(self, account_id: str) -> bool:
        row = self.db.query(AccountHoldDB.id).filter(
            AccountHoldDB.account_id == account_id,
            AccountHoldDB.lifted_at.is_(None),
        ).first()
        return row is not None

    # =========================================================================
    # COMMISSION NEGOTIATIONS
    # =========================================================================

    def load_negotiation(self, negotiation_id: str) -> Optional[Negotiation]:
        row = self.db.query(CommissionNegotiationDB).populate_existing().filter(
            CommissionNegotiationDB.id == negotiation_id
        ).first()
        return self._negotiation_from_row(row) if row else None

    def insert_negotiation(self, negotiation: Negotiation) -> SaveResult:
        self.db.add(CommissionNegotiationDB(id=negotiation.id, **self._negotiation_values(negotiation)))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return SaveResult.DUPLICATE
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return SaveResult.OK

    def save_negotiation(self, negotiation: Negotiation, expected_version: int) -> SaveResult:
        values = self._negotiation_values(negotiation)
        values["version"] = expected_version + 1
        try:
            updated = self.db.query(CommissionNegotiationDB).filter(
                CommissionNegotiationDB.id == negotiation.id,
                CommissionNegotiationDB.version == expected_version,
            ).update(values, synchronize_session=False)
            if updated == 0:
                self.db.rollback()
                exists = self.db.query(CommissionNegotiationDB.id).filter(
                    CommissionNegotiationDB.id == negotiation.id
                ).first()
                return SaveResult.STALE if exists else SaveResult.NOT_FOUND
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        negotiation.version = expected_version + 1
        return SaveResult.OK

    def find_expired_negotiation_ids(
        self,
        now: datetime,
        statuses: List[NegotiationStatus],
        limit: int = 500,
    ) -> List[str]:
        rows = self.db.query(CommissionNegotiationDB.id).filter(
            CommissionNegotiationDB.status.in_(statuses),
            CommissionNegotiationDB.response_deadline <= now,
        ).order_by(CommissionNegotiationDB.response_deadline.asc()).limit(limit).all()
        return [r[0] for r in rows]

    # =========================================================================
    # OUTBOX
    # =========================================================================

    def enqueue_task(self, task: OutboxTask) -> OutboxTask:
        self.db.add(self._task_row(task))
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return task

    def claim_task(
        self,
        task: OutboxTask,
        claimed_at: datetime,
        lease_expired_before: Optional[datetime] = None,
    ) -> bool:
        """
        Take exclusive ownership of a task before acting on it.

        The UPDATE matches only while the row still has the attempt count
        the caller read and is PENDING, FAILED, or IN_FLIGHT with a claim
        older than `lease_expired_before`. On success the row (and `task`)
        is IN_FLIGHT with attempts + 1; False means another worker owns it.
        """
        claimable = OutboxTaskDB.status.in_([OutboxStatus.PENDING, OutboxStatus.FAILED])
        if lease_expired_before is not None:
            claimable = or_(claimable, and_(
                OutboxTaskDB.status == OutboxStatus.IN_FLIGHT,
                OutboxTaskDB.claimed_at <= lease_expired_before,
            ))
        try:
            updated = self.db.query(OutboxTaskDB).filter(
                OutboxTaskDB.id == task.id,
                OutboxTaskDB.attempts == task.attempts,
                claimable,
            ).update({
                "status": OutboxStatus.IN_FLIGHT,
                "attempts": OutboxTaskDB.attempts + 1,
                "claimed_at": claimed_at,
            }, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        if updated != 1:
            return False
        task.status = OutboxStatus.IN_FLIGHT
        task.attempts += 1
        task.claimed_at = claimed_at
        return True

    def save_task(self, task: OutboxTask) -> bool:
        """
        Record the result of a claimed attempt.

        Only the claim holder can write: False means the lease expired and
        another worker re-claimed the task in the meantime.
        """
        try:
            updated = self.db.query(OutboxTaskDB).filter(
                OutboxTaskDB.id == task.id,
                OutboxTaskDB.status == OutboxStatus.IN_FLIGHT,
                OutboxTaskDB.attempts == task.attempts,
            ).update({
                "status": task.status,
                "last_error": task.last_error,
                "completed_at": task.completed_at,
            }, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return updated == 1

    def list_retryable_tasks(
        self,
        task_type: OutboxTaskType,
        max_attempts: int,
        limit: int = 100,
        lease_expired_before: Optional[datetime] = None,
    ) -> List[OutboxTask]:
        """PENDING and FAILED tasks under the attempt limit, plus IN_FLIGHT ones whose claim lapsed."""
        retryable = OutboxTaskDB.status.in_([OutboxStatus.PENDING, OutboxStatus.FAILED])
        if lease_expired_before is not None:
            retryable = or_(retryable, and_(
                OutboxTaskDB.status == OutboxStatus.IN_FLIGHT,
                OutboxTaskDB.claimed_at <= lease_expired_before,
            ))
        rows = self.db.query(OutboxTaskDB).populate_existing().filter(
            OutboxTaskDB.task_type == task_type,
            retryable,
            OutboxTaskDB.attempts < max_attempts,
        ).order_by(OutboxTaskDB.created_at.asc()).limit(limit).all()
        return [self._task_from_row(r) for r in rows]

    def list_tasks(self, reference_id: str) -> List[OutboxTask]:
        rows = self.db.query(OutboxTaskDB).populate_existing().filter(
            OutboxTaskDB.reference_id == reference_id
        ).order_by(OutboxTaskDB.created_at.asc()).all()
        return [self._task_from_row(r) for r in rows]

    def load_task(self, task_id: str) -> Optional[OutboxTask]:
        row = self.db.query(OutboxTaskDB).populate_existing().filter(OutboxTaskDB.id == task_id).first()
        return self._task_from_row(row) if row else None

    # =========================================================================
    # WALLET LEDGER
    # =========================================================================

    def record_wallet_credit(
        self,
        account_id: str,
        amount: Decimal,
        reference: str,
        created_at: datetime,
        description: str = None,
    ) -> bool:
        """Append a wallet credit. False if `reference` was already credited."""
        self.db.add(WalletCreditDB(
            id=str(uuid4()),
            account_id=account_id,
            amount=amount,
            reference=reference,
            description=description,
            created_at=created_at,
        ))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return True

    def wallet_balance(self, account_id: str) -> Decimal:
        rows = self.db.query(WalletCreditDB.amount).filter(WalletCreditDB.account_id == account_id).all()
        return sum((Decimal(r[0]) for r in rows), Decimal("0.00"))

    # =========================================================================
    # ROW MAPPING
    # =========================================================================

    @staticmethod
    def _claim_values(claim: Claim) -> dict:
        return {
            "booking_id": claim.booking_id,
            "vehicle_id": claim.vehicle_id,
            "host_id": claim.host_id,
            "guest_id": claim.guest_id,
            "claimant_role": claim.claimant_role,
            "claim_type": claim.claim_type,
            "incident_date": claim.incident_date,
            "estimated_cost": claim.estimated_cost,
            "description": claim.description,
            "state": claim.state,
            "filed_at": claim.filed_at,
            "response_deadline": claim.response_deadline,
            "tier": claim.tier.value,
            "coverage_snapshot": claim.coverage.as_snapshot(),
            "deductible": claim.deductible,
            "response_statement": claim.response_statement,
            "responded_at": claim.responded_at,
            "manual_review_required": claim.manual_review_required,
            "manual_review_reason": claim.manual_review_reason,
            "resolution_outcome": claim.resolution_outcome,
            "resolution_notes": claim.resolution_notes,
            "resolved_at": claim.resolved_at,
            "payout_amount": claim.payout_amount,
            "deposit_charge": claim.deposit_charge,
            "listing_locked_at": claim.listing_locked_at,
            "listing_unlocked_at": claim.listing_unlocked_at,
            "version": claim.version,
        }

    @staticmethod
    def _claim_from_row(row: ClaimDB) -> Claim:
        return Claim(
            id=row.id,
            booking_id=row.booking_id,
            vehicle_id=row.vehicle_id,
            host_id=row.host_id,
            guest_id=row.guest_id,
            claimant_role=row.claimant_role,
            claim_type=row.claim_type,
            incident_date=row.incident_date,
            estimated_cost=Decimal(row.estimated_cost or 0),
            description=row.description,
            state=row.state,
            filed_at=row.filed_at,
            response_deadline=row.response_deadline,
            tier=InsuranceTier(row.tier),
            coverage=CoverageHierarchy.from_snapshot(row.coverage_snapshot or []),
            deductible=Decimal(row.deductible or 0),
            response_statement=row.response_statement,
            responded_at=row.responded_at,
            manual_review_required=bool(row.manual_review_required),
            manual_review_reason=row.manual_review_reason,
            resolution_outcome=row.resolution_outcome,
            resolution_notes=row.resolution_notes,
            resolved_at=row.resolved_at,
            payout_amount=Decimal(row.payout_amount) if row.payout_amount is not None else None,
            deposit_charge=Decimal(row.deposit_charge) if row.deposit_charge is not None else None,
            listing_locked_at=row.listing_locked_at,
            listing_unlocked_at=row.listing_unlocked_at,
            version=row.version,
        )

    @staticmethod
    def _transition_row(record: TransitionRecord) -> ClaimTransitionDB:
        return ClaimTransitionDB(
            claim_id=record.claim_id,
            from_state=record.from_state,
            to_state=record.to_state,
            trigger=record.trigger,
            actor=record.actor,
            details=record.details,
            created_at=record.created_at,
        )

    @staticmethod
    def _hold_from_row(row: AccountHoldDB) -> AccountHold:
        return AccountHold(
            id=row.id,
            account_id=row.account_id,
            claim_id=row.claim_id,
            reason=row.reason,
            applied_at=row.applied_at,
            expires_at=row.expires_at,
            escalated_at=row.escalated_at,
            lifted_at=row.lifted_at,
            lifted_by=row.lifted_by,
        )

    @staticmethod
    def _negotiation_values(n: Negotiation) -> dict:
        return {
            "owner_id": n.owner_id,
            "manager_id": n.manager_id,
            "vehicle_ids": list(n.vehicle_ids),
            "owner_percent": n.owner_percent,
            "manager_percent": n.manager_percent,
            "proposed_by": n.proposed_by,
            "awaiting_party": n.awaiting_party,
            "status": n.status,
            "rounds_used": n.rounds_used,
            "max_rounds": n.max_rounds,
            "response_deadline": n.response_deadline,
            "history": [dict(entry) for entry in n.history],
            "created_at": n.created_at,
            "concluded_at": n.concluded_at,
            "version": n.version,
        }

    @staticmethod
    def _negotiation_from_row(row: CommissionNegotiationDB) -> Negotiation:
        return Negotiation(
            id=row.id,
            owner_id=row.owner_id,
            manager_id=row.manager_id,
            owner_percent=row.owner_percent,
            manager_percent=row.manager_percent,
            proposed_by=row.proposed_by,
            awaiting_party=row.awaiting_party,
            status=row.status,
            rounds_used=row.rounds_used,
            max_rounds=row.max_rounds,
            response_deadline=row.response_deadline,
            created_at=row.created_at,
            vehicle_ids=list(row.vehicle_ids or []),
            history=list(row.history or []),
            concluded_at=row.concluded_at,
            version=row.version,
        )

    @staticmethod
    def _task_row(task: OutboxTask) -> OutboxTaskDB:
        return OutboxTaskDB(
            id=task.id,
            task_type=task.task_type,
            status=task.status,
            reference_id=task.reference_id,
            payload=task.payload,
            attempts=task.attempts,
            last_error=task.last_error,
            created_at=task.created_at,
            claimed_at=task.claimed_at,
            completed_at=task.completed_at,
        )

    @staticmethod
    def _task_from_row(row: OutboxTaskDB) -> OutboxTask:
        return OutboxTask(
            id=row.id,
            task_type=row.task_type,
            payload=dict(row.payload or {}),
            created_at=row.created_at,
            status=row.status,
            reference_id=row.reference_id,
            attempts=row.attempts,
            last_error=row.last_error,
            claimed_at=row.claimed_at,
            completed_at=row.completed_at,
        )
