"""Whether a host may edit a vehicle listing right now."""
from enum import Enum
from typing import Any, Dict

from ...models.db_models import VehicleApprovalStatus
from ...models.domain import VehicleRecord


class VehicleEditability(str, Enum):
    OPEN = "OPEN"
    LOCKED_BY_CLAIM = "LOCKED_BY_CLAIM"
    LOCKED_BY_APPROVAL = "LOCKED_BY_APPROVAL"


EDITABILITY_REASONS = {
    VehicleEditability.OPEN: None,
    VehicleEditability.LOCKED_BY_CLAIM: "An open claim on this vehicle locks the listing until it is resolved",
    VehicleEditability.LOCKED_BY_APPROVAL: "Listing changes are locked while the vehicle is pending review",
}


def resolve_vehicle_editability(vehicle: VehicleRecord, has_open_claim_lock: bool) -> VehicleEditability:
    # An open claim outranks a pending approval
    if has_open_claim_lock:
        return VehicleEditability.LOCKED_BY_CLAIM
    if vehicle.approval_status == VehicleApprovalStatus.PENDING_REVIEW:
        return VehicleEditability.LOCKED_BY_APPROVAL
    return VehicleEditability.OPEN


def editability_view(vehicle: VehicleRecord, editability: VehicleEditability) -> Dict[str, Any]:
    return {
        "vehicle_id": vehicle.id,
        "editability": editability.value,
        "editable": editability == VehicleEditability.OPEN,
        "reason": EDITABILITY_REASONS[editability],
    }
