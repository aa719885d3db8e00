"""
Deadline Scheduler

AUTHORITY: SYSTEM
Periodic sweep that expires claims and negotiations whose deadline has
passed, then retries the outbox.

Runs via the internal sweep endpoint, scripts/run_deadline_sweep.py or
run_forever() in a worker thread. Sweeps are safe to run concurrently:
a lost race shows up as NOOP, never as a second expiry, and outbox tasks
are claimed before they are acted on.
"""
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .deadline_engine import DeadlineEngine
from .lifecycle import ClaimLifecycleService
from .negotiation import OPEN_STATUSES, CommissionNegotiationService
from .outcomes import OutcomeStatus

logger = logging.getLogger(__name__)


class DeadlineScheduler:
    """
    Periodic deadline sweep.

    AUTHORITY: SYSTEM - Runs automatically, no user intervention required.
    """

    def __init__(
        self,
        lifecycle: ClaimLifecycleService,
        negotiations: Optional[CommissionNegotiationService] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.lifecycle = lifecycle
        self.settings = lifecycle.settings
        self.clock = clock or lifecycle.clock
        self.negotiations = negotiations or CommissionNegotiationService(
            lifecycle.persistence,
            settings=self.settings,
            dispatcher=lifecycle.dispatcher,
            clock=self.clock,
        )
        self.engine = DeadlineEngine(lifecycle.persistence, self.settings, self.clock)

    def run_sweep(self) -> Dict[str, Any]:
        """
        Expire every claim and negotiation whose deadline has elapsed.

        Each item is processed independently; a failure is recorded and
        the sweep moves on.
        """
        expired = []
        skipped = []
        errors = []

        for claim_id in self.engine.get_expired_claim_ids():
            try:
                outcome = self.lifecycle.expire(claim_id)
                entry = {"claim_id": claim_id, "status": outcome.status.value, "message": outcome.message}
                if outcome.status == OutcomeStatus.APPLIED:
                    expired.append(entry)
                else:
                    skipped.append(entry)
            except Exception as e:
                logger.exception(f"Deadline sweep failed for claim {claim_id}")
                errors.append({"claim_id": claim_id, "error": str(e)})

        negotiations_expired = []
        for negotiation_id in self.engine.get_expired_negotiation_ids(OPEN_STATUSES):
            try:
                outcome = self.negotiations.expire(negotiation_id)
                if outcome.status == OutcomeStatus.APPLIED:
                    negotiations_expired.append(negotiation_id)
                else:
                    skipped.append({"negotiation_id": negotiation_id, "status": outcome.status.value})
            except Exception as e:
                logger.exception(f"Deadline sweep failed for negotiation {negotiation_id}")
                errors.append({"negotiation_id": negotiation_id, "error": str(e)})

        if expired or negotiations_expired or errors:
            logger.info(
                f"Deadline sweep: {len(expired)} claims expired, "
                f"{len(negotiations_expired)} negotiations expired, {len(errors)} errors"
            )

        return {
            "run_at": self.clock().isoformat(),
            "claims_expired": len(expired),
            "negotiations_expired": len(negotiations_expired),
            "skipped": len(skipped),
            "errors": len(errors),
            "details": {
                "expired": expired,
                "negotiations": negotiations_expired,
                "skipped": skipped,
                "errors": errors,
            },
        }

    def run_outbox_retry(self) -> Dict[str, Any]:
        """Retry what is left in each outbox queue."""
        result = {}
        try:
            result["notifications"] = self.lifecycle.dispatcher.retry_failed()
        except Exception as e:
            logger.exception("Notification retry failed")
            result["notifications"] = {"error": str(e)}
        try:
            result["refunds"] = self.lifecycle.settlement.retry_failed_refunds()
        except Exception as e:
            logger.exception("Refund retry failed")
            result["refunds"] = {"error": str(e)}
        try:
            result["wallet_credits"] = self.lifecycle.settlement.retry_failed_wallet_credits()
        except Exception as e:
            logger.exception("Wallet credit retry failed")
            result["wallet_credits"] = {"error": str(e)}
        return result

    def run_forever(
        self,
        interval_seconds: Optional[int] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        """Sweep on a fixed interval until stop_event is set."""
        interval = interval_seconds or self.settings.sweep_interval_seconds
        stop_event = stop_event or threading.Event()
        logger.info(f"Deadline scheduler started (every {interval}s)")

        while not stop_event.is_set():
            try:
                self.run_sweep()
                self.run_outbox_retry()
            except Exception:
                logger.exception("Deadline sweep iteration failed")
            stop_event.wait(interval)

        logger.info("Deadline scheduler stopped")
