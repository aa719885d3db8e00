"""
Rental Claims Core - Configuration

Environment-driven settings. Services receive a CoreSettings instance
explicitly; nothing in the core reads the environment on its own.
"""
import os
from dataclasses import dataclass, fields
from datetime import timedelta


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


@dataclass(frozen=True)
class CoreSettings:
    """
    Tunables for the claims core.

    Every integer setting must be positive; a zero or negative window would
    put deadlines at or before the moment they are set.
    """
    response_window_hours: int = 48
    counter_offer_grace_days: int = 3
    max_negotiation_rounds: int = 3
    invitation_window_days: int = 7
    sweep_interval_seconds: int = 300
    max_save_retries: int = 3
    outbox_max_attempts: int = 5
    outbox_claim_lease_seconds: int = 300
    platform_policy_id: str = "PLATFORM-MASTER"

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, int) and value <= 0:
                raise ValueError(f"{f.name} must be positive, got {value}")

    @property
    def response_window(self) -> timedelta:
        return timedelta(hours=self.response_window_hours)

    @property
    def counter_offer_grace(self) -> timedelta:
        return timedelta(days=self.counter_offer_grace_days)

    @property
    def invitation_window(self) -> timedelta:
        return timedelta(days=self.invitation_window_days)

    @property
    def outbox_claim_lease(self) -> timedelta:
        """How long a claimed outbox task stays owned before the sweep may take it over."""
        return timedelta(seconds=self.outbox_claim_lease_seconds)

    @classmethod
    def from_env(cls) -> "CoreSettings":
        """
        Build settings from RENTCLAIMS_* environment variables.

        Raises ValueError for a non-integer or non-positive value.
        """
        return cls(
            response_window_hours=_int_env("RENTCLAIMS_RESPONSE_WINDOW_HOURS", 48),
            counter_offer_grace_days=_int_env("RENTCLAIMS_COUNTER_OFFER_GRACE_DAYS", 3),
            max_negotiation_rounds=_int_env("RENTCLAIMS_MAX_NEGOTIATION_ROUNDS", 3),
            invitation_window_days=_int_env("RENTCLAIMS_INVITATION_WINDOW_DAYS", 7),
            sweep_interval_seconds=_int_env("RENTCLAIMS_SWEEP_INTERVAL_SECONDS", 300),
            max_save_retries=_int_env("RENTCLAIMS_MAX_SAVE_RETRIES", 3),
            outbox_max_attempts=_int_env("RENTCLAIMS_OUTBOX_MAX_ATTEMPTS", 5),
            outbox_claim_lease_seconds=_int_env("RENTCLAIMS_OUTBOX_CLAIM_LEASE_SECONDS", 300),
            platform_policy_id=os.getenv("RENTCLAIMS_PLATFORM_POLICY_ID", "PLATFORM-MASTER"),
        )
