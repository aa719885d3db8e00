"""
Tests for deposit settlement.

- Full and partial releases go back through the channels they came from
- Card refunds never exceed the card portion
- A failed card refund stays queued, raises a FINANCIAL alert and is retried
- The wallet credit is idempotent on its booking reference
- Overlapping sweeps never act on the same payout task twice
- A payout that fails to post stays queued until the sweep completes it
"""
import logging
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from rentclaims.exceptions import RefundLimitError
from rentclaims.models.db_models import OutboxStatus, OutboxTaskType
from rentclaims.services.claims import ClaimsPersistence
from rentclaims.services.notifications import LoggingNotifier, NotificationDispatcher, TemplateKind
from rentclaims.services.payments import (
    DepositSettlementService,
    LoggingPaymentProcessor,
    PaymentProcessor,
    RefundOutcome,
    wallet_reference,
)


class DecliningProcessor(PaymentProcessor):
    """Declines the first `declines` refunds, then records them."""

    def __init__(self, declines):
        self.declines = declines
        self.refunds = []

    def refund(self, payment_reference, amount, idempotency_key=None):
        if self.declines > 0:
            self.declines -= 1
            return RefundOutcome(succeeded=False, error="gateway unavailable")
        self.refunds.append(amount)
        return RefundOutcome(succeeded=True, refund_id="re_ok")


@pytest.fixture
def booking(persistence, marketplace):
    return persistence.load_booking(marketplace["booking_id"])


def make_service(persistence, dispatcher, settings, clock, processor=None):
    return DepositSettlementService(persistence, processor or LoggingPaymentProcessor(), dispatcher, settings, clock)


class TestComputeRelease:

    def test_no_charge_releases_everything(self, persistence, dispatcher, settings, clock, booking):
        release = make_service(persistence, dispatcher, settings, clock).compute_release(booking)

        assert release.card_refund == Decimal("300.00")
        assert release.wallet_return == Decimal("200.00")

    def test_charge_above_deposit_releases_nothing(self, persistence, dispatcher, settings, clock, booking):
        release = make_service(persistence, dispatcher, settings, clock).compute_release(booking, Decimal("750.00"))
        assert release.channels() == []


class TestSettle:

    def test_full_release_refunds_both_channels(self, persistence, dispatcher, settings, clock, booking, notifier):
        """Scenario D: $300 card + $200 wallet, full release."""
        processor = LoggingPaymentProcessor()
        service = make_service(persistence, dispatcher, settings, clock, processor)

        result = service.settle(booking)

        assert result["card_refund_status"] == "SENT"
        assert result["wallet_credited"] is True
        assert processor.refunds[0]["amount"] == Decimal("300.00")
        assert processor.refunds[0]["payment_reference"] == "pi_test_123"
        assert persistence.wallet_balance(booking.guest_id) == Decimal("200.00")

        released = [e["payload"] for e in notifier.sent if e["kind"] == TemplateKind.DEPOSIT_RELEASED]
        assert sorted((p.channel, p.amount) for p in released) == [("card", "300.00"), ("wallet", "200.00")]

    def test_card_only_deposit_sends_single_notice(self, db_session, persistence, dispatcher, settings, clock, notifier):
        from conftest import add_account, add_booking

        booking_id = add_booking(db_session, add_account(db_session), add_account(db_session), wallet=Decimal("0"))
        booking = persistence.load_booking(booking_id)

        result = make_service(persistence, dispatcher, settings, clock).settle(booking)

        assert result["wallet_credited"] is False
        kinds = [e["payload"].channel for e in notifier.sent if e["kind"] == TemplateKind.DEPOSIT_RELEASED]
        assert kinds == ["card"]

    def test_wallet_credit_is_idempotent(self, persistence, dispatcher, settings, clock, booking):
        service = make_service(persistence, dispatcher, settings, clock)
        service.settle(booking)

        again = persistence.record_wallet_credit(
            booking.guest_id, Decimal("200.00"), wallet_reference(booking.id), clock.now,
        )

        assert again is False
        assert persistence.wallet_balance(booking.guest_id) == Decimal("200.00")

    def test_declined_refund_is_queued_with_alert(self, persistence, dispatcher, settings, clock, booking, notifier, caplog):
        service = make_service(persistence, dispatcher, settings, clock, DecliningProcessor(declines=1))

        with caplog.at_level(logging.CRITICAL, logger="rentclaims.alerts"):
            result = service.settle(booking)

        assert result["card_refund_status"] == "FAILED"
        alerts = [r for r in caplog.records if r.name == "rentclaims.alerts"]
        assert len(alerts) == 1
        assert "FINANCIAL" in alerts[0].getMessage()

        # Wallet portion still returned; card notice withheld until the refund lands
        assert persistence.wallet_balance(booking.guest_id) == Decimal("200.00")
        channels = [e["payload"].channel for e in notifier.sent if e["kind"] == TemplateKind.DEPOSIT_RELEASED]
        assert channels == ["wallet"]

    def test_missing_payment_reference_fails_refund(self, db_session, persistence, dispatcher, settings, clock):
        from conftest import add_account, add_booking

        booking_id = add_booking(db_session, add_account(db_session), add_account(db_session), payment_reference=None)
        result = make_service(persistence, dispatcher, settings, clock).settle(persistence.load_booking(booking_id))

        assert result["card_refund_status"] == "FAILED"
        task = [t for t in persistence.list_tasks(booking_id) if t.task_type == OutboxTaskType.CARD_REFUND][0]
        assert "payment reference" in task.last_error


class TestRefundRetry:

    def test_failed_refund_retried_by_sweep(self, persistence, dispatcher, settings, clock, booking, notifier):
        processor = DecliningProcessor(declines=1)
        service = make_service(persistence, dispatcher, settings, clock, processor)
        service.settle(booking)

        summary = service.retry_failed_refunds()

        assert summary == {"attempted": 1, "refunded": 1, "failed": 0, "contended": 0}
        assert processor.refunds == [Decimal("300.00")]
        task = [t for t in persistence.list_tasks(booking.id) if t.task_type == OutboxTaskType.CARD_REFUND][0]
        assert task.status == OutboxStatus.SENT
        assert task.attempts == 2

        channels = [e["payload"].channel for e in notifier.sent if e["kind"] == TemplateKind.DEPOSIT_RELEASED]
        assert sorted(channels) == ["card", "wallet"]

    def test_nothing_to_retry(self, persistence, dispatcher, settings, clock):
        summary = make_service(persistence, dispatcher, settings, clock).retry_failed_refunds()
        assert summary == {"attempted": 0, "refunded": 0, "failed": 0, "contended": 0}


class TestRefundCard:

    def test_refund_above_card_portion_raises(self, persistence, dispatcher, settings, clock):
        service = make_service(persistence, dispatcher, settings, clock)
        with pytest.raises(RefundLimitError):
            service.refund_card("pi_1", Decimal("300.01"), Decimal("300.00"))

    def test_refund_at_card_portion(self, persistence, dispatcher, settings, clock):
        processor = LoggingPaymentProcessor()
        service = make_service(persistence, dispatcher, settings, clock, processor)

        outcome = service.refund_card("pi_1", Decimal("300.00"), Decimal("300.00"))

        assert outcome.succeeded is True
        assert processor.refunds[0]["amount"] == Decimal("300.00")


class GatewayWithHook(PaymentProcessor):
    """Runs `during_refund` once, inside the next gateway call, before the refund lands."""

    def __init__(self):
        self.refunds = []
        self.keys = []
        self.during_refund = None

    def refund(self, payment_reference, amount, idempotency_key=None):
        hook, self.during_refund = self.during_refund, None
        if hook is not None:
            hook()
        self.refunds.append(amount)
        self.keys.append(idempotency_key)
        return RefundOutcome(succeeded=True, refund_id="re_ok")


class FlakyLedger(ClaimsPersistence):
    """Wallet ledger write fails `failures` times with a database error."""

    def __init__(self, db_session, failures=1):
        super().__init__(db_session)
        self.failures = failures

    def record_wallet_credit(self, *args, **kwargs):
        if self.failures > 0:
            self.failures -= 1
            raise OperationalError("INSERT INTO wallet_credits", {}, Exception("database is locked"))
        return super().record_wallet_credit(*args, **kwargs)


@pytest.fixture
def second_worker(engine, settings, clock):
    """Settlement service on its own session, as a second sweep process would have."""
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    persistence = ClaimsPersistence(session)
    dispatcher = NotificationDispatcher(persistence, LoggingNotifier(), settings=settings, clock=clock)
    yield persistence, dispatcher
    session.close()


def card_task(persistence, booking_id):
    return [t for t in persistence.list_tasks(booking_id) if t.task_type == OutboxTaskType.CARD_REFUND][0]


class TestOverlappingSweeps:

    def test_sweep_during_gateway_call_does_not_refund_again(
        self, persistence, dispatcher, settings, clock, booking, second_worker,
    ):
        gateway = GatewayWithHook()
        make_service(persistence, dispatcher, settings, clock, DecliningProcessor(declines=1)).settle(booking)

        other_persistence, other_dispatcher = second_worker
        sweep_a = make_service(persistence, dispatcher, settings, clock, gateway)
        sweep_b = make_service(other_persistence, other_dispatcher, settings, clock, gateway)
        inner = []
        gateway.during_refund = lambda: inner.append(sweep_b.retry_failed_refunds())

        outer = sweep_a.retry_failed_refunds()

        assert outer["refunded"] == 1
        assert inner == [{"attempted": 0, "refunded": 0, "failed": 0, "contended": 0}]
        assert sum(gateway.refunds) == Decimal("300.00")
        assert card_task(persistence, booking.id).status == OutboxStatus.SENT

    def test_stale_listing_loses_the_claim(self, persistence, dispatcher, settings, clock, booking, second_worker):
        make_service(persistence, dispatcher, settings, clock, DecliningProcessor(declines=1)).settle(booking)
        other_persistence, other_dispatcher = second_worker
        stale = other_persistence.list_retryable_tasks(OutboxTaskType.CARD_REFUND, settings.outbox_max_attempts)

        gateway = GatewayWithHook()
        make_service(persistence, dispatcher, settings, clock, gateway).retry_failed_refunds()
        sweep_b = make_service(other_persistence, other_dispatcher, settings, clock, gateway)

        assert [sweep_b._run(task) for task in stale] == [None]
        assert gateway.refunds == [Decimal("300.00")]

    def test_task_id_is_the_gateway_idempotency_key(self, persistence, dispatcher, settings, clock, booking):
        gateway = GatewayWithHook()
        make_service(persistence, dispatcher, settings, clock, gateway).settle(booking)

        assert gateway.keys == [card_task(persistence, booking.id).id]

    def test_abandoned_claim_is_taken_over_after_lease(self, persistence, dispatcher, settings, clock, booking):
        make_service(persistence, dispatcher, settings, clock, DecliningProcessor(declines=1)).settle(booking)
        task = card_task(persistence, booking.id)
        # A worker claims the task and dies before reporting back
        assert persistence.claim_task(task, clock.now) is True

        gateway = GatewayWithHook()
        service = make_service(persistence, dispatcher, settings, clock, gateway)
        assert service.retry_failed_refunds()["attempted"] == 0

        clock.advance(seconds=settings.outbox_claim_lease_seconds)
        summary = service.retry_failed_refunds()

        assert summary["refunded"] == 1
        assert gateway.refunds == [Decimal("300.00")]
        assert card_task(persistence, booking.id).attempts == 3


class TestReleaseDurability:

    def test_release_queues_one_task_per_channel(self, persistence, dispatcher, settings, clock, booking):
        make_service(persistence, dispatcher, settings, clock).settle(booking)

        tasks = {t.task_type: t for t in persistence.list_tasks(booking.id)
                 if t.task_type != OutboxTaskType.NOTIFICATION}
        assert set(tasks) == {OutboxTaskType.CARD_REFUND, OutboxTaskType.WALLET_CREDIT}
        assert tasks[OutboxTaskType.WALLET_CREDIT].payload["reference"] == wallet_reference(booking.id)
        assert all(t.status == OutboxStatus.SENT for t in tasks.values())

    def test_second_settle_is_refused(self, persistence, dispatcher, settings, clock, booking):
        processor = LoggingPaymentProcessor()
        service = make_service(persistence, dispatcher, settings, clock, processor)
        service.settle(booking)

        assert service.settle(persistence.load_booking(booking.id)) is None
        assert len(processor.refunds) == 1
        assert persistence.wallet_balance(booking.guest_id) == Decimal("200.00")

    def test_failed_wallet_write_is_retried_by_sweep(
        self, db_session, dispatcher, settings, clock, marketplace, notifier, caplog,
    ):
        ledger = FlakyLedger(db_session, failures=1)
        booking = ledger.load_booking(marketplace["booking_id"])
        service = make_service(ledger, dispatcher, settings, clock)

        with caplog.at_level(logging.CRITICAL, logger="rentclaims.alerts"):
            result = service.settle(booking)

        assert result["card_refund_status"] == "SENT"
        assert result["wallet_credit_status"] == "FAILED"
        assert ledger.wallet_balance(booking.guest_id) == Decimal("0.00")
        assert ledger.load_booking(booking.id).deposit_released_at is not None
        assert any("FINANCIAL" in r.getMessage() for r in caplog.records if r.name == "rentclaims.alerts")

        summary = service.retry_failed_wallet_credits()

        assert summary == {"attempted": 1, "credited": 1, "failed": 0, "contended": 0}
        assert ledger.wallet_balance(booking.guest_id) == Decimal("200.00")
        channels = [e["payload"].channel for e in notifier.sent if e["kind"] == TemplateKind.DEPOSIT_RELEASED]
        assert sorted(channels) == ["card", "wallet"]

    def test_credit_already_posted_completes_without_second_notice(
        self, persistence, dispatcher, settings, clock, booking, notifier,
    ):
        # Ledger row committed by an attempt whose task result was never saved
        persistence.record_wallet_credit(booking.guest_id, Decimal("200.00"), wallet_reference(booking.id), clock.now)

        result = make_service(persistence, dispatcher, settings, clock).settle(booking)

        assert result["wallet_credit_status"] == "SENT"
        assert persistence.wallet_balance(booking.guest_id) == Decimal("200.00")
        channels = [e["payload"].channel for e in notifier.sent if e["kind"] == TemplateKind.DEPOSIT_RELEASED]
        assert channels == ["card"]
