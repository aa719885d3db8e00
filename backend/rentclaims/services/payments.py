"""
Payments - deposit settlement

Returns a released security deposit to the guest through the channels it
was collected on: card refund via the PaymentProcessor, wallet portion as
a ledger credit.

Both payouts are outbox tasks, queued in the same commit that marks the
deposit released. A processor or storage failure never rolls back the
claim resolution and never loses the payout: the task stays queued, is
retried by the sweep and raises a FINANCIAL operational alert each time
it fails. A task is claimed before the gateway is called, and the task id
goes to the gateway as the refund's idempotency key.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from ..clock import utcnow
from ..config import CoreSettings
from ..exceptions import RefundLimitError
from ..models.db_models import OutboxStatus, OutboxTaskType
from ..models.domain import BookingContext, OutboxTask
from .alerts import AlertKind, raise_operational_alert
from .insurance.deposit_split import ZERO, DepositRelease, split_deposit, to_cents
from .notifications import NotificationDispatcher, NotificationIntent, TemplateKind, money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefundOutcome:
    succeeded: bool
    refund_id: Optional[str] = None
    error: Optional[str] = None


class PaymentProcessor:
    """
    Card payment gateway boundary. Subclasses implement refund().

    A gateway must treat a repeated `idempotency_key` as the same refund.
    """

    def refund(self, payment_reference: str, amount: Decimal, idempotency_key: Optional[str] = None) -> RefundOutcome:
        raise NotImplementedError


class LoggingPaymentProcessor(PaymentProcessor):
    """Records refunds in memory and the log; no gateway call."""

    def __init__(self):
        self.refunds: List[Dict[str, Any]] = []

    def refund(self, payment_reference: str, amount: Decimal, idempotency_key: Optional[str] = None) -> RefundOutcome:
        for previous in self.refunds:
            if idempotency_key is not None and previous["idempotency_key"] == idempotency_key:
                return RefundOutcome(succeeded=True, refund_id=previous["refund_id"])

        refund_id = f"re_{uuid4().hex[:16]}"
        self.refunds.append({
            "payment_reference": payment_reference,
            "amount": amount,
            "refund_id": refund_id,
            "idempotency_key": idempotency_key,
        })
        logger.info(f"Refund {refund_id}: {amount} to {payment_reference}")
        return RefundOutcome(succeeded=True, refund_id=refund_id)


def wallet_reference(booking_id: str) -> str:
    """Idempotency reference for a booking's wallet deposit return."""
    return f"deposit-release:{booking_id}"


class DepositSettlementService:

    def __init__(
        self,
        persistence,
        processor: Optional[PaymentProcessor] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        settings: Optional[CoreSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.persistence = persistence
        self.processor = processor or LoggingPaymentProcessor()
        self.dispatcher = dispatcher or NotificationDispatcher(persistence, settings=settings, clock=clock)
        self.settings = settings or CoreSettings()
        self.clock = clock

    def compute_release(self, booking: BookingContext, deposit_charge: Decimal = ZERO) -> DepositRelease:
        """Deposit left after the charge, split across the original channels."""
        charge = to_cents(deposit_charge or ZERO)
        total = booking.deposit_total
        release_total = total - charge if charge < total else ZERO
        return split_deposit(release_total, booking.deposit_card_amount, booking.deposit_wallet_amount)

    def settle(
        self,
        booking: BookingContext,
        deposit_charge: Decimal = ZERO,
        claim_id: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Release a booking's deposit, once.

        The booking's deposit_released_at marker and one outbox task per
        non-zero channel commit together; returns None if the deposit was
        already released. Each task is then attempted right away. Whatever
        does not complete stays queued for the retry sweep.
        """
        release = self.compute_release(booking, deposit_charge)
        now = self.clock()

        tasks = []
        if release.card_refund > ZERO:
            tasks.append(self._new_task(OutboxTaskType.CARD_REFUND, booking, now, {
                "payment_reference": booking.card_payment_reference,
                "amount": money(release.card_refund),
                "card_portion": money(booking.deposit_card_amount),
                "claim_id": claim_id,
            }))
        if release.wallet_return > ZERO:
            tasks.append(self._new_task(OutboxTaskType.WALLET_CREDIT, booking, now, {
                "amount": money(release.wallet_return),
                "reference": wallet_reference(booking.id),
                "claim_id": claim_id,
            }))

        if not self.persistence.record_deposit_release(booking.id, now, tasks):
            logger.info(f"Deposit for booking {booking.booking_code} was already released")
            return None

        result = {
            "booking_id": booking.id,
            "claim_id": claim_id,
            "release": release.to_dict(),
            "card_refund_status": None,
            "wallet_credit_status": None,
            "wallet_credited": False,
        }
        for task in tasks:
            status = self._run(task)
            value = status.value if status else None
            if task.task_type == OutboxTaskType.CARD_REFUND:
                result["card_refund_status"] = value
            else:
                result["wallet_credit_status"] = value
                result["wallet_credited"] = status == OutboxStatus.SENT

        logger.info(
            f"Deposit settled for booking {booking.booking_code}: "
            f"card={release.card_refund} wallet={release.wallet_return}"
        )
        return result

    def refund_card(
        self,
        payment_reference: str,
        amount: Decimal,
        card_portion: Decimal,
        idempotency_key: Optional[str] = None,
    ) -> RefundOutcome:
        """Refund to card, refusing any amount above what the card paid."""
        amount = to_cents(amount)
        if amount > to_cents(card_portion):
            raise RefundLimitError(
                f"Refund {amount} exceeds card portion {to_cents(card_portion)}"
            )
        return self.processor.refund(payment_reference, amount, idempotency_key=idempotency_key)

    def retry_failed_refunds(self, limit: int = 100) -> Dict[str, Any]:
        return self._retry(OutboxTaskType.CARD_REFUND, "refunded", limit)

    def retry_failed_wallet_credits(self, limit: int = 100) -> Dict[str, Any]:
        return self._retry(OutboxTaskType.WALLET_CREDIT, "credited", limit)

    def _retry(self, task_type: OutboxTaskType, done_key: str, limit: int) -> Dict[str, Any]:
        now = self.clock()
        tasks = self.persistence.list_retryable_tasks(
            task_type,
            self.settings.outbox_max_attempts,
            limit,
            lease_expired_before=now - self.settings.outbox_claim_lease,
        )
        summary = {"attempted": 0, done_key: 0, "failed": 0, "contended": 0}
        for task in tasks:
            status = self._run(task)
            if status is None:
                summary["contended"] += 1
                continue
            summary["attempted"] += 1
            if status == OutboxStatus.SENT:
                summary[done_key] += 1
            else:
                summary["failed"] += 1
        return summary

    def _run(self, task: OutboxTask) -> Optional[OutboxStatus]:
        """
        Claim a task and carry it out.

        Returns None when another worker holds the claim. Storage errors
        leave the task to the sweep.
        """
        attempt = self._refund if task.task_type == OutboxTaskType.CARD_REFUND else self._credit_wallet
        now = self.clock()
        try:
            if not self.persistence.claim_task(task, now, now - self.settings.outbox_claim_lease):
                logger.info(f"{task.task_type.value} task {task.id} is owned by another worker")
                return None
            attempt(task)
        except Exception as e:
            logger.error(f"{task.task_type.value} task {task.id} interrupted: {e}")
            raise_operational_alert(
                AlertKind.FINANCIAL,
                "Deposit payout task interrupted",
                task_id=task.id,
                booking_id=task.payload.get("booking_id"),
                amount=task.payload.get("amount"),
                error=str(e),
            )
        return task.status

    def _refund(self, task: OutboxTask):
        payload = task.payload
        try:
            if not payload.get("payment_reference"):
                raise ValueError("Booking has no card payment reference")
            outcome = self.refund_card(
                payload["payment_reference"],
                Decimal(payload["amount"]),
                Decimal(payload["card_portion"]),
                idempotency_key=task.id,
            )
            error = None if outcome.succeeded else (outcome.error or "refund declined")
        except Exception as e:
            outcome = None
            error = str(e)

        if error is None:
            self._complete(task)
            self._notify_release(
                payload["guest_id"], payload["booking_code"], "card",
                Decimal(payload["amount"]), payload["booking_id"],
            )
            logger.info(f"Card refund {outcome.refund_id} for booking {payload['booking_code']}")
        else:
            self._fail(task, "Card refund failed", error)

    def _credit_wallet(self, task: OutboxTask):
        payload = task.payload
        try:
            credited = self.persistence.record_wallet_credit(
                payload["guest_id"],
                Decimal(payload["amount"]),
                payload["reference"],
                self.clock(),
                description=f"Deposit return for booking {payload['booking_code']}",
            )
        except Exception as e:
            self._fail(task, "Wallet credit failed", str(e))
            return

        self._complete(task)
        # False: an earlier attempt already posted this reference
        if credited:
            self._notify_release(
                payload["guest_id"], payload["booking_code"], "wallet",
                Decimal(payload["amount"]), payload["booking_id"],
            )

    def _complete(self, task: OutboxTask):
        task.status = OutboxStatus.SENT
        task.last_error = None
        task.completed_at = self.clock()
        self._record(task)

    def _fail(self, task: OutboxTask, message: str, error: str):
        task.status = OutboxStatus.FAILED
        task.last_error = error
        self._record(task)
        raise_operational_alert(
            AlertKind.FINANCIAL,
            message,
            task_id=task.id,
            booking_id=task.payload.get("booking_id"),
            amount=task.payload.get("amount"),
            attempts=task.attempts,
            error=error,
        )

    def _record(self, task: OutboxTask):
        if not self.persistence.save_task(task):
            logger.warning(f"Claim on {task.task_type.value} task {task.id} lapsed before its result was saved")

    @staticmethod
    def _new_task(
        task_type: OutboxTaskType,
        booking: BookingContext,
        created_at: datetime,
        details: Dict[str, Any],
    ) -> OutboxTask:
        payload = {
            "booking_id": booking.id,
            "booking_code": booking.booking_code,
            "guest_id": booking.guest_id,
        }
        payload.update(details)
        return OutboxTask(
            id=str(uuid4()),
            task_type=task_type,
            payload=payload,
            created_at=created_at,
            reference_id=booking.id,
        )

    def _notify_release(self, guest_id: str, booking_code: str, channel: str, amount: Decimal, booking_id: str):
        self.dispatcher.dispatch([
            NotificationIntent.build(
                guest_id,
                TemplateKind.DEPOSIT_RELEASED,
                reference_id=booking_id,
                booking_code=booking_code,
                channel=channel,
                amount=money(amount),
            )
        ])
