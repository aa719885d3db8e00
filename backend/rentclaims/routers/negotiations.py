"""
Commission Negotiation API Routes

Fleet-management invitations: the manager opens with proposed terms, the
owner and manager counter in turns until someone accepts or declines.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..auth import get_current_user
from ..dependencies import get_negotiation_service, outcome_response
from ..models.db_models import AccountDB, AccountRole, NegotiationParty
from ..services.claims import CommissionNegotiationService


router = APIRouter(prefix="/negotiations", tags=["negotiations"])


class OpenInvitationRequest(BaseModel):
    owner_id: str = Field(..., description="Vehicle owner being invited")
    owner_percent: int
    manager_percent: int
    vehicle_ids: List[str] = Field(default_factory=list)
    message: Optional[str] = None


class CounterOfferRequest(BaseModel):
    owner_percent: int
    manager_percent: int
    message: Optional[str] = None


class DeclineRequest(BaseModel):
    message: Optional[str] = None


def _party_for(service: CommissionNegotiationService, negotiation_id: str, user: AccountDB) -> NegotiationParty:
    negotiation = service.get_negotiation(negotiation_id)
    if not negotiation:
        raise HTTPException(status_code=404, detail="Negotiation not found")
    party = negotiation.party_of(user.id)
    if party is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a party to this negotiation")
    return party


def _view(service: CommissionNegotiationService, outcome):
    return service.to_view(outcome.entity) if outcome.entity is not None else None


@router.post("", response_model=dict)
async def open_invitation(
    request: OpenInvitationRequest,
    current_user: AccountDB = Depends(get_current_user),
    service: CommissionNegotiationService = Depends(get_negotiation_service),
):
    """The calling account invites an owner as fleet manager."""
    outcome = service.open_invitation(
        owner_id=request.owner_id,
        manager_id=current_user.id,
        owner_percent=request.owner_percent,
        manager_percent=request.manager_percent,
        vehicle_ids=request.vehicle_ids,
        message=request.message,
    )
    return outcome_response(outcome, _view(service, outcome))


@router.get("/{negotiation_id}", response_model=dict)
async def get_negotiation(
    negotiation_id: str,
    current_user: AccountDB = Depends(get_current_user),
    service: CommissionNegotiationService = Depends(get_negotiation_service),
):
    negotiation = service.get_negotiation(negotiation_id)
    if not negotiation:
        raise HTTPException(status_code=404, detail="Negotiation not found")
    if negotiation.party_of(current_user.id) is None and current_user.role != AccountRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a party to this negotiation")
    return service.to_view(negotiation)


@router.post("/{negotiation_id}/counter", response_model=dict)
async def counter_offer(
    negotiation_id: str,
    request: CounterOfferRequest,
    current_user: AccountDB = Depends(get_current_user),
    service: CommissionNegotiationService = Depends(get_negotiation_service),
):
    party = _party_for(service, negotiation_id, current_user)
    outcome = service.counter(
        negotiation_id, party, request.owner_percent, request.manager_percent, request.message
    )
    return outcome_response(outcome, _view(service, outcome))


@router.post("/{negotiation_id}/accept", response_model=dict)
async def accept_terms(
    negotiation_id: str,
    current_user: AccountDB = Depends(get_current_user),
    service: CommissionNegotiationService = Depends(get_negotiation_service),
):
    party = _party_for(service, negotiation_id, current_user)
    outcome = service.accept(negotiation_id, party)
    return outcome_response(outcome, _view(service, outcome))


@router.post("/{negotiation_id}/decline", response_model=dict)
async def decline_terms(
    negotiation_id: str,
    request: DeclineRequest,
    current_user: AccountDB = Depends(get_current_user),
    service: CommissionNegotiationService = Depends(get_negotiation_service),
):
    party = _party_for(service, negotiation_id, current_user)
    outcome = service.decline(negotiation_id, party, request.message)
    return outcome_response(outcome, _view(service, outcome))
