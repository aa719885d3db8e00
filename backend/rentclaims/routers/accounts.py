"""
Account and listing guard routes

Read the restriction state other parts of the marketplace check before
letting an account book or a host edit a listing.
"""
from fastapi import APIRouter, Depends, HTTPException, status

from ..auth import get_current_user, require_admin
from ..dependencies import get_hold_enforcer, get_lifecycle, get_persistence, outcome_response
from ..models.db_models import AccountDB, AccountRole
from ..services.claims import (
    AccountHoldEnforcer, ClaimLifecycleService, ClaimsPersistence, resolve_vehicle_editability,
)
from ..services.claims.editability import editability_view


router = APIRouter(tags=["guards"])


@router.get("/accounts/{account_id}/restriction", response_model=dict)
async def get_restriction(
    account_id: str,
    current_user: AccountDB = Depends(get_current_user),
    enforcer: AccountHoldEnforcer = Depends(get_hold_enforcer),
):
    """Active holds on an account with deadlines and the action that lifts each."""
    if current_user.id != account_id and current_user.role != AccountRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your account")
    return enforcer.hold_status(account_id)


@router.post("/accounts/{account_id}/holds/{claim_id}/lift", response_model=dict)
async def lift_hold_manually(
    account_id: str,
    claim_id: str,
    admin: AccountDB = Depends(require_admin),
    lifecycle: ClaimLifecycleService = Depends(get_lifecycle),
):
    """Admin override: lift a hold regardless of claim state. The account holder is notified."""
    outcome = lifecycle.lift_hold_manually(account_id, claim_id)
    view = None
    if outcome.entity is not None:
        view = {
            "hold_id": outcome.entity.id,
            "lifted_at": outcome.entity.lifted_at.isoformat() if outcome.entity.lifted_at else None,
            "lifted_by": outcome.entity.lifted_by.value if outcome.entity.lifted_by else None,
        }
    return outcome_response(outcome, view)


@router.get("/vehicles/{vehicle_id}/editability", response_model=dict)
async def get_vehicle_editability(
    vehicle_id: str,
    current_user: AccountDB = Depends(get_current_user),
    persistence: ClaimsPersistence = Depends(get_persistence),
):
    vehicle = persistence.load_vehicle(vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=404, detail="Vehicle not found")
    editability = resolve_vehicle_editability(vehicle, persistence.has_listing_lock(vehicle_id))
    return editability_view(vehicle, editability)
