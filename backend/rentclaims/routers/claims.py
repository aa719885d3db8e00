"""
Claims API Routes

Filing, response, review and resolution of booking claims.
Parties act on their own claims; review and resolution are admin-only.
"""
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..auth import get_current_user, require_admin
from ..dependencies import get_lifecycle, outcome_response
from ..models.db_models import AccountDB, AccountRole, ActorType
from ..services.claims import ClaimFiling, ClaimLifecycleService, claim_to_dict


router = APIRouter(prefix="/claims", tags=["claims"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class FileClaimRequest(BaseModel):
    """Request to file a claim against a booking."""
    booking_id: str = Field(..., description="Booking the incident happened on")
    claim_type: str = Field(..., description="ACCIDENT, THEFT, VANDALISM, CLEANING, MECHANICAL, WEATHER or OTHER")
    incident_date: date = Field(..., description="Date of the incident")
    estimated_cost: Decimal = Field(..., description="Estimated repair or loss amount")
    description: str = Field(..., description="What happened (at least 20 characters)")


class RespondRequest(BaseModel):
    statement: str = Field(..., description="Counterparty's account of the incident")


class ResolveRequest(BaseModel):
    outcome: str = Field(..., description="APPROVED, DENIED or SETTLED")
    payout_amount: Optional[Decimal] = Field(None, description="Amount paid to the claimant")
    deposit_charge: Optional[Decimal] = Field(None, description="Amount withheld from the guest deposit")
    notes: Optional[str] = None


def _ensure_party_or_admin(claim_view: dict, user: AccountDB) -> None:
    if user.role == AccountRole.ADMIN:
        return
    if user.id not in (claim_view["host_id"], claim_view["guest_id"]):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a party to this claim")


# =============================================================================
# PARTY ENDPOINTS
# =============================================================================

@router.post("", response_model=dict)
async def file_claim(
    request: FileClaimRequest,
    current_user: AccountDB = Depends(get_current_user),
    lifecycle: ClaimLifecycleService = Depends(get_lifecycle),
):
    """
    File a claim.

    Places a hold on the counterparty and locks the vehicle listing until
    the claim is resolved.
    """
    outcome = lifecycle.file_claim(ClaimFiling(
        booking_id=request.booking_id,
        filer_account_id=current_user.id,
        claim_type=request.claim_type,
        incident_date=request.incident_date,
        estimated_cost=request.estimated_cost,
        description=request.description,
    ))
    view = claim_to_dict(outcome.entity) if outcome.entity is not None else None
    return outcome_response(outcome, view)


@router.get("/coverage/{booking_id}", response_model=dict)
async def get_coverage(
    booking_id: str,
    current_user: AccountDB = Depends(get_current_user),
    lifecycle: ClaimLifecycleService = Depends(get_lifecycle),
):
    """Tier and payer order that would apply to a claim on this booking."""
    booking = lifecycle.persistence.load_booking(booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    _ensure_party_or_admin({"host_id": booking.host_id, "guest_id": booking.guest_id}, current_user)
    return lifecycle.get_coverage_preview(booking_id)


@router.get("/{claim_id}", response_model=dict)
async def get_claim(
    claim_id: str,
    current_user: AccountDB = Depends(get_current_user),
    lifecycle: ClaimLifecycleService = Depends(get_lifecycle),
):
    """Claim state, deadline, time remaining and the required action."""
    view = lifecycle.get_claim_view(claim_id)
    if view is None:
        raise HTTPException(status_code=404, detail="Claim not found")
    _ensure_party_or_admin(view, current_user)
    return view


@router.get("/{claim_id}/timeline", response_model=dict)
async def get_timeline(
    claim_id: str,
    current_user: AccountDB = Depends(get_current_user),
    lifecycle: ClaimLifecycleService = Depends(get_lifecycle),
):
    view = lifecycle.get_claim_view(claim_id)
    if view is None:
        raise HTTPException(status_code=404, detail="Claim not found")
    _ensure_party_or_admin(view, current_user)
    return {"claim_id": claim_id, "state": view["state"], "timeline": view["timeline"]}


@router.post("/{claim_id}/respond", response_model=dict)
async def respond_to_claim(
    claim_id: str,
    request: RespondRequest,
    current_user: AccountDB = Depends(get_current_user),
    lifecycle: ClaimLifecycleService = Depends(get_lifecycle),
):
    """
    Counterparty response.

    Accepted only before the response deadline; lifts the account hold.
    """
    outcome = lifecycle.respond(claim_id, current_user.id, request.statement)
    view = claim_to_dict(outcome.entity) if outcome.entity is not None else None
    return outcome_response(outcome, view)


# =============================================================================
# ADMIN ENDPOINTS
# =============================================================================

@router.post("/{claim_id}/review", response_model=dict)
async def begin_review(
    claim_id: str,
    admin: AccountDB = Depends(require_admin),
    lifecycle: ClaimLifecycleService = Depends(get_lifecycle),
):
    outcome = lifecycle.begin_review(claim_id, actor=ActorType.ADMIN)
    view = claim_to_dict(outcome.entity) if outcome.entity is not None else None
    return outcome_response(outcome, view)


@router.post("/{claim_id}/resolve", response_model=dict)
async def resolve_claim(
    claim_id: str,
    request: ResolveRequest,
    admin: AccountDB = Depends(require_admin),
    lifecycle: ClaimLifecycleService = Depends(get_lifecycle),
):
    """
    Resolve a claim under review.

    Lifts all holds, unlocks the listing and settles the deposit once no
    other claim on the booking is open.
    """
    outcome = lifecycle.resolve(
        claim_id,
        request.outcome,
        actor=ActorType.ADMIN,
        payout_amount=request.payout_amount,
        deposit_charge=request.deposit_charge,
        notes=request.notes,
    )
    view = claim_to_dict(outcome.entity) if outcome.entity is not None else None
    return outcome_response(outcome, view)
