"""
Rental Claims Core - Domain Models

Plain dataclasses passed between the persistence layer and the services.
Services never touch ORM rows directly; ClaimsPersistence maps between the
two so every write goes through a version check.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .db_models import (
    ActorType, ClaimantRole, ClaimState, ClaimType, HoldLiftedBy,
    NegotiationParty, NegotiationStatus, OutboxStatus, OutboxTaskType,
    ResolutionOutcome, VehicleApprovalStatus,
)
from ..services.insurance.coverage_hierarchy import CoverageHierarchy
from ..services.insurance.tier_resolver import InsuranceTier


# =============================================================================
# EXTERNAL CONTEXT
# =============================================================================

@dataclass(frozen=True)
class BookingContext:
    """Read-only booking data the core needs."""
    id: str
    booking_code: str
    vehicle_id: str
    host_id: str
    guest_id: str
    start_date: date
    end_date: date
    guest_has_personal_policy: bool = False
    guest_policy_id: Optional[str] = None
    deposit_card_amount: Decimal = Decimal("0.00")
    deposit_wallet_amount: Decimal = Decimal("0.00")
    card_payment_reference: Optional[str] = None
    deposit_released_at: Optional[datetime] = None

    @property
    def deposit_total(self) -> Decimal:
        return self.deposit_card_amount + self.deposit_wallet_amount

    def party_role(self, account_id: str) -> Optional[ClaimantRole]:
        if account_id == self.host_id:
            return ClaimantRole.HOST
        if account_id == self.guest_id:
            return ClaimantRole.GUEST
        return None


@dataclass(frozen=True)
class VehicleRecord:
    id: str
    host_id: str
    make: str
    model: str
    year: int
    state: Optional[str] = None
    approval_status: VehicleApprovalStatus = VehicleApprovalStatus.APPROVED


# =============================================================================
# CLAIM
# =============================================================================

@dataclass
class Claim:
    """
    A single incident tied to one booking.

    tier, coverage and deductible are snapshotted at filing and never
    recomputed for an open claim.
    """
    id: str
    booking_id: str
    vehicle_id: str
    host_id: str
    guest_id: str
    claimant_role: ClaimantRole
    claim_type: ClaimType
    incident_date: date
    estimated_cost: Decimal
    description: str
    state: ClaimState
    filed_at: datetime
    response_deadline: datetime
    tier: InsuranceTier
    coverage: CoverageHierarchy
    deductible: Decimal
    response_statement: Optional[str] = None
    responded_at: Optional[datetime] = None
    manual_review_required: bool = False
    manual_review_reason: Optional[str] = None
    resolution_outcome: Optional[ResolutionOutcome] = None
    resolution_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    payout_amount: Optional[Decimal] = None
    deposit_charge: Optional[Decimal] = None
    listing_locked_at: Optional[datetime] = None
    listing_unlocked_at: Optional[datetime] = None
    version: int = 1

    @property
    def filer_id(self) -> str:
        return self.host_id if self.claimant_role == ClaimantRole.HOST else self.guest_id

    @property
    def respondent_id(self) -> str:
        return self.guest_id if self.claimant_role == ClaimantRole.HOST else self.host_id

    @property
    def respondent_role(self) -> ClaimantRole:
        if self.claimant_role == ClaimantRole.HOST:
            return ClaimantRole.GUEST
        return ClaimantRole.HOST

    @property
    def is_open(self) -> bool:
        return self.state != ClaimState.RESOLVED

    @property
    def listing_locked(self) -> bool:
        return self.listing_locked_at is not None and self.listing_unlocked_at is None

    def incident_summary(self, limit: int = 140) -> str:
        text = " ".join(self.description.split())
        if len(text) <= limit:
            return text
        return text[: limit - 3].rstrip() + "..."


@dataclass(frozen=True)
class TransitionRecord:
    """One entry of the append-only claim transition trail."""
    claim_id: str
    from_state: Optional[ClaimState]
    to_state: ClaimState
    trigger: str
    actor: ActorType
    created_at: datetime
    details: Dict[str, Any] = field(default_factory=dict)


# =============================================================================
# ACCOUNT HOLD
# =============================================================================

@dataclass
class AccountHold:
    id: str
    account_id: str
    claim_id: str
    reason: str
    applied_at: datetime
    expires_at: Optional[datetime] = None
    escalated_at: Optional[datetime] = None
    lifted_at: Optional[datetime] = None
    lifted_by: Optional[HoldLiftedBy] = None

    @property
    def is_active(self) -> bool:
        return self.lifted_at is None


# =============================================================================
# COMMISSION NEGOTIATION
# =============================================================================

@dataclass
class Negotiation:
    id: str
    owner_id: str
    manager_id: str
    owner_percent: int
    manager_percent: int
    proposed_by: NegotiationParty
    awaiting_party: Optional[NegotiationParty]
    status: NegotiationStatus
    rounds_used: int
    max_rounds: int
    response_deadline: datetime
    created_at: datetime
    vehicle_ids: List[str] = field(default_factory=list)
    history: List[Dict[str, Any]] = field(default_factory=list)
    concluded_at: Optional[datetime] = None
    version: int = 1

    @property
    def rounds_remaining(self) -> int:
        return max(self.max_rounds - self.rounds_used, 0)

    def account_for(self, party: NegotiationParty) -> str:
        return self.owner_id if party == NegotiationParty.OWNER else self.manager_id

    def party_of(self, account_id: str) -> Optional[NegotiationParty]:
        if account_id == self.owner_id:
            return NegotiationParty.OWNER
        if account_id == self.manager_id:
            return NegotiationParty.MANAGER
        return None


# =============================================================================
# OUTBOX
# =============================================================================

@dataclass
class OutboxTask:
    id: str
    task_type: OutboxTaskType
    payload: Dict[str, Any]
    created_at: datetime
    status: OutboxStatus = OutboxStatus.PENDING
    reference_id: Optional[str] = None
    attempts: int = 0
    last_error: Optional[str] = None
    claimed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
