"""
Coverage Hierarchy

Ordered list of payers for a booking: who pays first, second, third.

The hierarchy depends only on the host tier and the guest's personal-policy
flag, so both parties can be shown it before any incident occurs.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .tier_resolver import InsuranceTier

DEFAULT_PLATFORM_POLICY_ID = "PLATFORM-MASTER"


class PayerRole(str, Enum):
    PRIMARY = "PRIMARY"
    SECONDARY = "SECONDARY"
    TERTIARY = "TERTIARY"


class PolicyHolder(str, Enum):
    HOST = "HOST"
    PLATFORM = "PLATFORM"
    GUEST = "GUEST"


@dataclass(frozen=True)
class PayerRef:
    """One payer position bound to a policy reference (possibly unknown)."""
    role: PayerRole
    holder: PolicyHolder
    policy_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "holder": self.holder.value,
            "policy_id": self.policy_id,
        }


@dataclass(frozen=True)
class CoverageHierarchy:
    payers: Tuple[PayerRef, ...]

    @property
    def primary(self) -> PayerRef:
        return self.payers[0]

    def payer_for(self, role: PayerRole) -> Optional[PayerRef]:
        for payer in self.payers:
            if payer.role == role:
                return payer
        return None

    def holders(self) -> List[PolicyHolder]:
        return [p.holder for p in self.payers]

    def as_snapshot(self) -> List[Dict[str, Any]]:
        return [p.to_dict() for p in self.payers]

    @classmethod
    def from_snapshot(cls, snapshot: List[Dict[str, Any]]) -> "CoverageHierarchy":
        return cls(payers=tuple(
            PayerRef(
                role=PayerRole(item["role"]),
                holder=PolicyHolder(item["holder"]),
                policy_id=item.get("policy_id"),
            )
            for item in snapshot
        ))

    def __len__(self) -> int:
        return len(self.payers)


def build_hierarchy(
    tier: InsuranceTier,
    guest_has_personal_policy: bool,
    host_policy_id: Optional[str] = None,
    platform_policy_id: str = DEFAULT_PLATFORM_POLICY_ID,
    guest_policy_id: Optional[str] = None,
) -> CoverageHierarchy:
    """
    Build the payer order for a tier.

    Non-BASIC: host policy primary, platform secondary.
    BASIC: platform primary, no secondary.
    A guest personal policy is always tertiary and never displaces the
    platform.
    """
    payers: List[PayerRef] = []

    if tier.host_insurance_primary:
        payers.append(PayerRef(PayerRole.PRIMARY, PolicyHolder.HOST, host_policy_id))
        payers.append(PayerRef(PayerRole.SECONDARY, PolicyHolder.PLATFORM, platform_policy_id))
    else:
        payers.append(PayerRef(PayerRole.PRIMARY, PolicyHolder.PLATFORM, platform_policy_id))

    if guest_has_personal_policy:
        payers.append(PayerRef(PayerRole.TERTIARY, PolicyHolder.GUEST, guest_policy_id))

    return CoverageHierarchy(payers=tuple(payers))
