"""
Notification Dispatcher

Queues each notification as an outbox task, then attempts delivery.
Delivery starts by claiming the task, so a notice being sent by one worker
is never sent again by a concurrent retry sweep.
A failed delivery leaves the task FAILED for retry_failed() to pick up;
it never propagates into the claim transition that produced it.

Preference rules:
- CRITICAL kinds are delivered without consulting preferences
- TRANSACTIONAL kinds honor unsubscribes, and are delivered anyway when
  the preference lookup itself fails
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional
from uuid import uuid4

from ...clock import utcnow
from ...config import CoreSettings
from ...models.db_models import OutboxStatus, OutboxTaskType
from ...models.domain import OutboxTask
from ..alerts import AlertKind, raise_operational_alert
from .payloads import (
    Criticality, NotificationIntent, NotificationPayload, TemplateKind, criticality_of,
)

logger = logging.getLogger(__name__)


# =============================================================================
# COLLABORATOR INTERFACES
# =============================================================================

@dataclass(frozen=True)
class SendOutcome:
    delivered: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None


class Notifier:
    """Delivery channel (email, push). Subclasses implement send()."""

    def send(self, recipient: str, kind: TemplateKind, payload: NotificationPayload) -> SendOutcome:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Writes notifications to the log instead of delivering them."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    def send(self, recipient: str, kind: TemplateKind, payload: NotificationPayload) -> SendOutcome:
        message_id = str(uuid4())
        self.sent.append({"recipient": recipient, "kind": kind, "payload": payload})
        logger.info(f"Notification {kind.value} -> {recipient} ({message_id})")
        return SendOutcome(delivered=True, provider_message_id=message_id)


class PreferenceLookup:
    """Unsubscribe lookup. The default subscribes everyone."""

    def is_unsubscribed(self, account_id: str, kind: TemplateKind) -> bool:
        return False


@dataclass(frozen=True)
class PreferenceDecision:
    allowed: bool
    basis: str  # critical | subscribed | unsubscribed | lookup_failed


# =============================================================================
# DISPATCHER
# =============================================================================

class NotificationDispatcher:

    def __init__(
        self,
        persistence,
        notifier: Optional[Notifier] = None,
        preferences: Optional[PreferenceLookup] = None,
        settings: Optional[CoreSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.persistence = persistence
        self.notifier = notifier or LoggingNotifier()
        self.preferences = preferences or PreferenceLookup()
        self.settings = settings or CoreSettings()
        self.clock = clock

    def check_preference(self, recipient_id: str, kind: TemplateKind) -> PreferenceDecision:
        if criticality_of(kind) == Criticality.CRITICAL:
            return PreferenceDecision(True, "critical")
        try:
            if self.preferences.is_unsubscribed(recipient_id, kind):
                return PreferenceDecision(False, "unsubscribed")
        except Exception as e:
            logger.warning(f"Preference lookup failed for {recipient_id} ({kind.value}): {e}")
            return PreferenceDecision(True, "lookup_failed")
        return PreferenceDecision(True, "subscribed")

    def dispatch(self, intents: Iterable[NotificationIntent]) -> List[Dict[str, Any]]:
        """
        Queue and attempt delivery for each intent.

        Returns one result dict per intent. Never raises.
        """
        results = []
        for intent in intents:
            try:
                task = self.persistence.enqueue_task(OutboxTask(
                    id=str(uuid4()),
                    task_type=OutboxTaskType.NOTIFICATION,
                    payload=intent.to_task_payload(),
                    created_at=self.clock(),
                    reference_id=intent.reference_id,
                ))
                results.append(self._deliver(task, intent))
            except Exception as e:
                logger.warning(f"Could not queue {intent.kind.value} for {intent.recipient_id}: {e}")
                results.append({
                    "kind": intent.kind.value,
                    "recipient_id": intent.recipient_id,
                    "status": OutboxStatus.FAILED.value,
                    "error": str(e),
                })
        return results

    def retry_failed(self, limit: int = 100) -> Dict[str, Any]:
        """Re-attempt pending and failed notification tasks, and any whose claim lapsed."""
        now = self.clock()
        tasks = self.persistence.list_retryable_tasks(
            OutboxTaskType.NOTIFICATION,
            self.settings.outbox_max_attempts,
            limit,
            lease_expired_before=now - self.settings.outbox_claim_lease,
        )
        summary = {"attempted": 0, "sent": 0, "skipped": 0, "failed": 0, "contended": 0, "errors": []}

        for task in tasks:
            try:
                intent = NotificationIntent.from_task_payload(task.payload, task.reference_id)
                result = self._deliver(task, intent)
            except Exception as e:
                summary["attempted"] += 1
                summary["failed"] += 1
                summary["errors"].append({"task_id": task.id, "error": str(e)})
                continue

            if result["status"] == OutboxStatus.IN_FLIGHT.value:
                summary["contended"] += 1
                continue
            summary["attempted"] += 1
            if result["status"] == OutboxStatus.SENT.value:
                summary["sent"] += 1
            elif result["status"] == OutboxStatus.SKIPPED.value:
                summary["skipped"] += 1
            else:
                summary["failed"] += 1

        return summary

    def _deliver(self, task: OutboxTask, intent: NotificationIntent) -> Dict[str, Any]:
        result = {
            "task_id": task.id,
            "kind": intent.kind.value,
            "recipient_id": intent.recipient_id,
        }

        now = self.clock()
        if not self.persistence.claim_task(task, now, now - self.settings.outbox_claim_lease):
            logger.info(f"Notification task {task.id} is owned by another worker")
            result["status"] = OutboxStatus.IN_FLIGHT.value
            return result

        decision = self.check_preference(intent.recipient_id, intent.kind)
        result["basis"] = decision.basis

        if not decision.allowed:
            task.status = OutboxStatus.SKIPPED
            task.completed_at = self.clock()
            self._record(task)
            result["status"] = task.status.value
            return result

        try:
            address = self.persistence.load_account_email(intent.recipient_id) or intent.recipient_id
            outcome = self.notifier.send(address, intent.kind, intent.payload)
            error = None if outcome.delivered else (outcome.error or "not delivered")
        except Exception as e:
            error = str(e)

        if error is None:
            task.status = OutboxStatus.SENT
            task.last_error = None
            task.completed_at = self.clock()
        else:
            task.status = OutboxStatus.FAILED
            task.last_error = error
            logger.warning(
                f"Notification {intent.kind.value} to {intent.recipient_id} failed "
                f"(attempt {task.attempts}): {error}"
            )
            if task.attempts >= self.settings.outbox_max_attempts:
                raise_operational_alert(
                    AlertKind.DELIVERY,
                    "Notification retries exhausted",
                    task_id=task.id,
                    kind=intent.kind.value,
                    recipient_id=intent.recipient_id,
                )

        self._record(task)
        result["status"] = task.status.value
        if error:
            result["error"] = error
        return result

    def _record(self, task: OutboxTask):
        if not self.persistence.save_task(task):
            logger.warning(f"Claim on notification task {task.id} lapsed before its result was saved")
