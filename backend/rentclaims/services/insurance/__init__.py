"""Rental Claims Core - Insurance

Pure computations: tier resolution, payer hierarchy, deposit split.
No I/O, no locking.
"""
from .tier_resolver import (
    InsuranceTier,
    HostInsuranceDocs,
    TierCache,
    TIER_CONFIG,
    resolve_tier,
)
from .coverage_hierarchy import (
    CoverageHierarchy,
    PayerRef,
    PayerRole,
    PolicyHolder,
    build_hierarchy,
)
from .deposit_split import DepositRelease, split_deposit, to_cents

__all__ = [
    "InsuranceTier",
    "HostInsuranceDocs",
    "TierCache",
    "TIER_CONFIG",
    "resolve_tier",
    "CoverageHierarchy",
    "PayerRef",
    "PayerRole",
    "PolicyHolder",
    "build_hierarchy",
    "DepositRelease",
    "split_deposit",
    "to_cents",
]
