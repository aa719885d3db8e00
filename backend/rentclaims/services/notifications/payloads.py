"""
Notification Payloads

One typed payload per template kind. A payload that does not match its
kind, carries unknown fields or a malformed money amount fails at
construction, before anything is queued.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from ...exceptions import PayloadValidationError
from ..insurance.deposit_split import to_cents

MONEY_PATTERN = r"^-?\d+\.\d{2}$"


def money(amount: Union[Decimal, int, str, float]) -> str:
    """Format an amount as a two-decimal string."""
    return str(to_cents(amount))


class TemplateKind(str, Enum):
    CLAIM_FILED_CONFIRMATION = "CLAIM_FILED_CONFIRMATION"
    CLAIM_FILED_HOST = "CLAIM_FILED_HOST"
    CLAIM_FILED_GUEST = "CLAIM_FILED_GUEST"
    ACCOUNT_HOLD_APPLIED = "ACCOUNT_HOLD_APPLIED"
    ACCOUNT_HOLD_RELEASED = "ACCOUNT_HOLD_RELEASED"
    CLAIM_RESPONSE_RECEIVED = "CLAIM_RESPONSE_RECEIVED"
    CLAIM_RESPONSE_EXPIRED = "CLAIM_RESPONSE_EXPIRED"
    CLAIM_RESOLVED = "CLAIM_RESOLVED"
    DEPOSIT_RELEASED = "DEPOSIT_RELEASED"
    PAYOUT_CONFIRMATION = "PAYOUT_CONFIRMATION"
    COUNTER_OFFER_RECEIVED = "COUNTER_OFFER_RECEIVED"
    NEGOTIATION_CONCLUDED = "NEGOTIATION_CONCLUDED"


class Criticality(str, Enum):
    CRITICAL = "CRITICAL"            # Always delivered, preferences not consulted
    TRANSACTIONAL = "TRANSACTIONAL"  # Respects unsubscribe, fails open


CRITICAL_KINDS = {
    TemplateKind.CLAIM_FILED_HOST,
    TemplateKind.CLAIM_FILED_GUEST,
    TemplateKind.ACCOUNT_HOLD_APPLIED,
    TemplateKind.CLAIM_RESPONSE_EXPIRED,
}


def criticality_of(kind: TemplateKind) -> Criticality:
    return Criticality.CRITICAL if kind in CRITICAL_KINDS else Criticality.TRANSACTIONAL


# =============================================================================
# PAYLOAD MODELS
# =============================================================================

class NotificationPayload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ClaimFiledConfirmationPayload(NotificationPayload):
    claim_id: str
    booking_code: str
    claim_type: str
    estimated_cost: str = Field(pattern=MONEY_PATTERN)
    response_deadline: datetime


class ClaimActionRequiredPayload(NotificationPayload):
    """Sent to the counterparty; the single required action is to respond."""
    claim_id: str
    booking_code: str
    claim_type: str
    filed_by: str
    incident_summary: str
    estimated_cost: str = Field(pattern=MONEY_PATTERN)
    response_deadline: datetime
    hours_to_respond: int = Field(ge=0)


class AccountHoldAppliedPayload(NotificationPayload):
    claim_id: str
    reason: str
    response_deadline: datetime


class AccountHoldReleasedPayload(NotificationPayload):
    claim_id: str
    reason: str


class ClaimResponseReceivedPayload(NotificationPayload):
    claim_id: str
    booking_code: str
    responded_at: datetime


class ClaimResponseExpiredPayload(NotificationPayload):
    claim_id: str
    booking_code: str
    response_deadline: datetime
    recipient_role: str


class ClaimResolvedPayload(NotificationPayload):
    claim_id: str
    outcome: str
    notes: Optional[str] = None


class DepositReleasedPayload(NotificationPayload):
    booking_code: str
    channel: str = Field(pattern=r"^(card|wallet)$")
    amount: str = Field(pattern=MONEY_PATTERN)


class PayoutConfirmationPayload(NotificationPayload):
    claim_id: str
    amount: str = Field(pattern=MONEY_PATTERN)


class CounterOfferReceivedPayload(NotificationPayload):
    negotiation_id: str
    round: int = Field(ge=1)
    proposed_by: str
    owner_percent: int = Field(ge=1, le=99)
    manager_percent: int = Field(ge=1, le=99)
    rounds_remaining: int = Field(ge=0)
    expires_at: datetime
    message: Optional[str] = None


class NegotiationConcludedPayload(NotificationPayload):
    negotiation_id: str
    status: str
    owner_percent: int
    manager_percent: int


TEMPLATE_PAYLOADS = {
    TemplateKind.CLAIM_FILED_CONFIRMATION: ClaimFiledConfirmationPayload,
    TemplateKind.CLAIM_FILED_HOST: ClaimActionRequiredPayload,
    TemplateKind.CLAIM_FILED_GUEST: ClaimActionRequiredPayload,
    TemplateKind.ACCOUNT_HOLD_APPLIED: AccountHoldAppliedPayload,
    TemplateKind.ACCOUNT_HOLD_RELEASED: AccountHoldReleasedPayload,
    TemplateKind.CLAIM_RESPONSE_RECEIVED: ClaimResponseReceivedPayload,
    TemplateKind.CLAIM_RESPONSE_EXPIRED: ClaimResponseExpiredPayload,
    TemplateKind.CLAIM_RESOLVED: ClaimResolvedPayload,
    TemplateKind.DEPOSIT_RELEASED: DepositReleasedPayload,
    TemplateKind.PAYOUT_CONFIRMATION: PayoutConfirmationPayload,
    TemplateKind.COUNTER_OFFER_RECEIVED: CounterOfferReceivedPayload,
    TemplateKind.NEGOTIATION_CONCLUDED: NegotiationConcludedPayload,
}


def build_payload(kind: TemplateKind, **fields: Any) -> NotificationPayload:
    """Construct the payload model for `kind`, raising PayloadValidationError."""
    model = TEMPLATE_PAYLOADS[kind]
    try:
        return model(**fields)
    except PydanticValidationError as e:
        raise PayloadValidationError(f"Invalid {kind.value} payload: {e}") from e


@dataclass(frozen=True)
class NotificationIntent:
    """A notification a service wants sent, before it is queued."""
    recipient_id: str
    kind: TemplateKind
    payload: NotificationPayload
    reference_id: Optional[str] = None

    def __post_init__(self):
        expected = TEMPLATE_PAYLOADS[self.kind]
        if not isinstance(self.payload, expected):
            raise PayloadValidationError(
                f"{self.kind.value} requires {expected.__name__}, "
                f"got {type(self.payload).__name__}",
                field="payload",
            )

    @classmethod
    def build(
        cls,
        recipient_id: str,
        kind: TemplateKind,
        reference_id: Optional[str] = None,
        **fields: Any,
    ) -> "NotificationIntent":
        return cls(recipient_id, kind, build_payload(kind, **fields), reference_id)

    def to_task_payload(self) -> Dict[str, Any]:
        return {
            "recipient_id": self.recipient_id,
            "kind": self.kind.value,
            "payload": self.payload.model_dump(mode="json"),
        }

    @classmethod
    def from_task_payload(cls, data: Dict[str, Any], reference_id: Optional[str] = None) -> "NotificationIntent":
        kind = TemplateKind(data["kind"])
        return cls.build(data["recipient_id"], kind, reference_id, **data["payload"])
