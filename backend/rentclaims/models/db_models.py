"""
Rental Claims Core - SQLAlchemy ORM Models
PostgreSQL database models for persistent storage
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, DateTime, Text, JSON, ForeignKey, Enum as SQLEnum,
    Boolean, Date, Numeric, UniqueConstraint,
)
from ..database import Base


# =============================================================================
# ENUMS FOR CLAIMS / HOLDS / NEGOTIATION
# =============================================================================

class AccountRole(str, Enum):
    """Roles an account can hold on the marketplace."""
    GUEST = "GUEST"
    HOST = "HOST"
    ADMIN = "ADMIN"


class ClaimantRole(str, Enum):
    """Which side of the booking filed the claim."""
    GUEST = "GUEST"
    HOST = "HOST"


class ClaimType(str, Enum):
    """Incident categories accepted at filing."""
    ACCIDENT = "ACCIDENT"
    THEFT = "THEFT"
    VANDALISM = "VANDALISM"
    CLEANING = "CLEANING"
    MECHANICAL = "MECHANICAL"
    WEATHER = "WEATHER"
    OTHER = "OTHER"


class ClaimState(str, Enum):
    """States in the claim lifecycle state machine."""
    FILED = "FILED"
    AWAITING_RESPONSE = "AWAITING_RESPONSE"
    RESPONDED = "RESPONDED"
    RESPONSE_EXPIRED = "RESPONSE_EXPIRED"
    UNDER_REVIEW = "UNDER_REVIEW"
    RESOLVED = "RESOLVED"


class ResolutionOutcome(str, Enum):
    """Terminal outcome of a resolved claim."""
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    SETTLED = "SETTLED"


class ActorType(str, Enum):
    """Actor types for the transition trail."""
    GUEST = "GUEST"
    HOST = "HOST"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class HoldLiftedBy(str, Enum):
    """Who lifted an account hold."""
    SYSTEM = "SYSTEM"
    MANUAL = "MANUAL"


class NegotiationStatus(str, Enum):
    """Commission negotiation (fleet-management invitation) states."""
    PENDING = "PENDING"
    COUNTER_OFFERED = "COUNTER_OFFERED"
    ROUNDS_EXHAUSTED = "ROUNDS_EXHAUSTED"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"


class NegotiationParty(str, Enum):
    """Sides of a commission negotiation."""
    OWNER = "OWNER"
    MANAGER = "MANAGER"


class VehicleApprovalStatus(str, Enum):
    """Fleet review status of a vehicle listing."""
    APPROVED = "APPROVED"
    PENDING_REVIEW = "PENDING_REVIEW"


class OutboxTaskType(str, Enum):
    """Side effects that run after a transition has committed."""
    NOTIFICATION = "NOTIFICATION"
    CARD_REFUND = "CARD_REFUND"
    WALLET_CREDIT = "WALLET_CREDIT"


class OutboxStatus(str, Enum):
    """Delivery status of an outbox task."""
    PENDING = "PENDING"
    IN_FLIGHT = "IN_FLIGHT"  # Claimed by one worker until claimed_at + lease
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


# =============================================================================
# EXTERNAL CONTEXT (read-only for the core)
# =============================================================================

class AccountDB(Base):
    """Guest, host or admin account."""
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True)  # UUID
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(SQLEnum(AccountRole), nullable=False, default=AccountRole.GUEST)
    display_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class HostInsuranceDB(Base):
    """Verified insurance documentation flags for a host."""
    __tablename__ = "host_insurance_documents"

    host_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True)
    host_policy_id = Column(String(100), nullable=True)
    has_commercial_policy = Column(Boolean, default=False, nullable=False)
    has_p2p_endorsement = Column(Boolean, default=False, nullable=False)
    policy_covers_rental_use = Column(Boolean, default=False, nullable=False)
    policy_expires_on = Column(Date, nullable=True)  # NULL = no expiry on file
    verified_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class VehicleDB(Base):
    """Vehicle listing."""
    __tablename__ = "vehicles"

    id = Column(String(36), primary_key=True)  # UUID
    host_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    make = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    year = Column(Integer, nullable=False)
    state = Column(String(2), nullable=True)  # 2-letter registration state
    approval_status = Column(SQLEnum(VehicleApprovalStatus), default=VehicleApprovalStatus.APPROVED)
    is_active = Column(Boolean, default=True)


class BookingDB(Base):
    """Booking context: parties, trip dates and the held security deposit."""
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True)  # UUID
    booking_code = Column(String(32), unique=True, nullable=False, index=True)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False, index=True)
    host_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    guest_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    # Guest personal coverage (opted in at booking time)
    guest_has_personal_policy = Column(Boolean, default=False)
    guest_policy_id = Column(String(100), nullable=True)

    # Security deposit, by collection channel
    deposit_card_amount = Column(Numeric(12, 2), default=0)
    deposit_wallet_amount = Column(Numeric(12, 2), default=0)
    card_payment_reference = Column(String(100), nullable=True)
    deposit_released_at = Column(DateTime, nullable=True)  # Set once, at settlement


# =============================================================================
# CLAIMS (owned by the claim lifecycle)
# =============================================================================

class ClaimDB(Base):
    """
    A claim filed against a booking.

    Never deleted. State changes only through the lifecycle service,
    guarded by the version column.
    """
    __tablename__ = "claims"
    __table_args__ = (
        UniqueConstraint("booking_id", "claimant_role", name="uq_claim_booking_role"),
    )

    id = Column(String(36), primary_key=True)  # UUID
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    vehicle_id = Column(String(36), nullable=False, index=True)
    host_id = Column(String(36), nullable=False, index=True)
    guest_id = Column(String(36), nullable=False, index=True)

    claimant_role = Column(SQLEnum(ClaimantRole), nullable=False)
    claim_type = Column(SQLEnum(ClaimType), nullable=False)
    incident_date = Column(Date, nullable=False)
    estimated_cost = Column(Numeric(12, 2), nullable=False, default=0)
    description = Column(Text, nullable=False)

    state = Column(SQLEnum(ClaimState), nullable=False, default=ClaimState.FILED, index=True)
    filed_at = Column(DateTime, nullable=False)
    response_deadline = Column(DateTime, nullable=False, index=True)

    # Snapshot taken at filing - never recomputed for an open claim
    tier = Column(String(20), nullable=False)
    coverage_snapshot = Column(JSON, nullable=False)
    deductible = Column(Numeric(12, 2), nullable=False)

    response_statement = Column(Text, nullable=True)
    responded_at = Column(DateTime, nullable=True)

    manual_review_required = Column(Boolean, default=False)
    manual_review_reason = Column(String(255), nullable=True)

    resolution_outcome = Column(SQLEnum(ResolutionOutcome), nullable=True)
    resolution_notes = Column(Text, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    payout_amount = Column(Numeric(12, 2), nullable=True)
    deposit_charge = Column(Numeric(12, 2), nullable=True)

    # Vehicle listing lock (independent of the account hold)
    listing_locked_at = Column(DateTime, nullable=True)
    listing_unlocked_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ClaimTransitionDB(Base):
    """
    Immutable log of claim state transitions.
    Append-only audit trail.
    """
    __tablename__ = "claim_transitions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    claim_id = Column(String(36), ForeignKey("claims.id"), nullable=False, index=True)

    from_state = Column(SQLEnum(ClaimState), nullable=True)  # NULL for filing
    to_state = Column(SQLEnum(ClaimState), nullable=False)
    trigger = Column(String(100), nullable=False)
    actor = Column(SQLEnum(ActorType), nullable=False)
    details = Column(JSON, nullable=True)

    created_at = Column(DateTime, nullable=False)


class AccountHoldDB(Base):
    """
    Restriction on one account, caused by one claim.

    active_key is "<account_id>:<claim_id>" while the hold is active and
    NULL once lifted, so the unique constraint allows at most one active
    hold per (account, claim) pair.
    """
    __tablename__ = "account_holds"

    id = Column(String(36), primary_key=True)  # UUID
    account_id = Column(String(36), nullable=False, index=True)
    claim_id = Column(String(36), ForeignKey("claims.id"), nullable=False, index=True)
    active_key = Column(String(80), unique=True, nullable=True)

    reason = Column(String(255), nullable=False)
    applied_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=True)     # Auto-expiry (the response deadline)
    escalated_at = Column(DateTime, nullable=True)   # Set when the deadline passed unanswered
    lifted_at = Column(DateTime, nullable=True)
    lifted_by = Column(SQLEnum(HoldLiftedBy), nullable=True)


# =============================================================================
# COMMISSION NEGOTIATION (fleet-management invitations)
# =============================================================================

class CommissionNegotiationDB(Base):
    """Owner/manager commission negotiation with capped counter-offer rounds."""
    __tablename__ = "commission_negotiations"

    id = Column(String(36), primary_key=True)  # UUID
    owner_id = Column(String(36), nullable=False, index=True)
    manager_id = Column(String(36), nullable=False, index=True)
    vehicle_ids = Column(JSON, nullable=True)

    owner_percent = Column(Integer, nullable=False)
    manager_percent = Column(Integer, nullable=False)
    proposed_by = Column(SQLEnum(NegotiationParty), nullable=False)
    awaiting_party = Column(SQLEnum(NegotiationParty), nullable=True)  # NULL once concluded

    status = Column(SQLEnum(NegotiationStatus), nullable=False, default=NegotiationStatus.PENDING, index=True)
    rounds_used = Column(Integer, nullable=False, default=0)
    max_rounds = Column(Integer, nullable=False)
    response_deadline = Column(DateTime, nullable=False, index=True)
    history = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, nullable=False)
    concluded_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False, default=1)


# =============================================================================
# SIDE EFFECTS
# =============================================================================

class OutboxTaskDB(Base):
    """
    Notification, card refund or wallet credit queued after a committed
    transition. Retried independently of the transition that produced it.
    A worker must claim a task (IN_FLIGHT, attempts + 1) before acting on it.
    """
    __tablename__ = "outbox_tasks"

    id = Column(String(36), primary_key=True)  # UUID
    task_type = Column(SQLEnum(OutboxTaskType), nullable=False, index=True)
    status = Column(SQLEnum(OutboxStatus), nullable=False, default=OutboxStatus.PENDING, index=True)
    reference_id = Column(String(36), nullable=True, index=True)  # Claim or negotiation id

    payload = Column(JSON, nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False)
    claimed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)


class WalletCreditDB(Base):
    """Append-only internal wallet ledger credit."""
    __tablename__ = "wallet_credits"

    id = Column(String(36), primary_key=True)  # UUID
    account_id = Column(String(36), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    reference = Column(String(100), unique=True, nullable=False)  # Idempotency key
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False)
