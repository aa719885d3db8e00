"""
Tier Resolver

Maps a host's verified insurance documentation to an earning/coverage tier.

Total and deterministic: every documentation set maps to exactly one tier.
Missing, lapsed or contradictory insurance never blocks a listing; it only
drops the host to BASIC.
"""
import hashlib
import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class InsuranceTier(str, Enum):
    """Host earning/coverage tier."""
    BASIC = "BASIC"
    STANDARD = "STANDARD"
    PREMIUM = "PREMIUM"

    @property
    def host_percentage(self) -> int:
        return TIER_CONFIG[self]["host_percentage"]

    @property
    def platform_percentage(self) -> int:
        return 100 - TIER_CONFIG[self]["host_percentage"]

    @property
    def deductible(self) -> Decimal:
        return TIER_CONFIG[self]["deductible"]

    @property
    def host_insurance_primary(self) -> bool:
        return TIER_CONFIG[self]["host_insurance_primary"]

    @property
    def label(self) -> str:
        return TIER_CONFIG[self]["label"]


TIER_CONFIG = {
    InsuranceTier.BASIC: {
        "host_percentage": 40,
        "deductible": Decimal("2500.00"),
        "host_insurance_primary": False,
        "label": "40% (Platform Only)",
    },
    InsuranceTier.STANDARD: {
        "host_percentage": 75,
        "deductible": Decimal("1500.00"),
        "host_insurance_primary": True,
        "label": "75% (P2P Insurance)",
    },
    InsuranceTier.PREMIUM: {
        "host_percentage": 90,
        "deductible": Decimal("1000.00"),
        "host_insurance_primary": True,
        "label": "90% (Commercial Insurance)",
    },
}


@dataclass(frozen=True)
class HostInsuranceDocs:
    """Verified documentation flags for one host."""
    has_commercial_policy: bool = False
    has_p2p_endorsement: bool = False
    policy_covers_rental_use: bool = False
    policy_expired: bool = False
    host_policy_id: Optional[str] = None

    def fingerprint(self) -> str:
        """Stable digest of the flags, used to detect document changes."""
        raw = "|".join([
            str(self.has_commercial_policy),
            str(self.has_p2p_endorsement),
            str(self.policy_covers_rental_use),
            str(self.policy_expired),
            self.host_policy_id or "",
        ])
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()


NO_INSURANCE = HostInsuranceDocs()


def resolve_tier(docs: Optional[HostInsuranceDocs]) -> InsuranceTier:
    """
    Resolve the tier for a host's documentation.

    Rules, first match wins:
    - lapsed policy -> BASIC
    - commercial policy -> PREMIUM
    - P2P endorsement covering rental use -> STANDARD
    - anything else (including no documentation) -> BASIC
    """
    if docs is None:
        return InsuranceTier.BASIC

    if docs.policy_expired:
        return InsuranceTier.BASIC

    if docs.has_commercial_policy:
        return InsuranceTier.PREMIUM

    if docs.has_p2p_endorsement:
        if docs.policy_covers_rental_use:
            return InsuranceTier.STANDARD
        # Endorsement on a policy that excludes rental use contradicts itself
        logger.info("P2P endorsement without rental-use coverage, resolving BASIC")
        return InsuranceTier.BASIC

    return InsuranceTier.BASIC


class TierCache:
    """
    Per-host tier cache.

    An entry is reused only while the host's documentation fingerprint is
    unchanged, so a document change always yields a fresh resolution.
    """

    def __init__(self):
        self._entries: Dict[str, Tuple[str, InsuranceTier]] = {}
        self._lock = threading.Lock()

    def get(self, host_id: str, docs: Optional[HostInsuranceDocs]) -> InsuranceTier:
        fingerprint = (docs or NO_INSURANCE).fingerprint()
        with self._lock:
            cached = self._entries.get(host_id)
            if cached and cached[0] == fingerprint:
                return cached[1]

        tier = resolve_tier(docs)
        with self._lock:
            self._entries[host_id] = (fingerprint, tier)
        return tier

    def invalidate(self, host_id: str) -> None:
        with self._lock:
            self._entries.pop(host_id, None)

    def __len__(self) -> int:
        return len(self._entries)
