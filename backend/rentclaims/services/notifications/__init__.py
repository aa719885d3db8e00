"""Rental Claims Core - Notifications"""
from .payloads import (
    TemplateKind,
    Criticality,
    CRITICAL_KINDS,
    TEMPLATE_PAYLOADS,
    NotificationIntent,
    NotificationPayload,
    build_payload,
    criticality_of,
    money,
)
from .dispatcher import (
    Notifier,
    LoggingNotifier,
    SendOutcome,
    PreferenceLookup,
    PreferenceDecision,
    NotificationDispatcher,
)

__all__ = [
    "TemplateKind",
    "Criticality",
    "CRITICAL_KINDS",
    "TEMPLATE_PAYLOADS",
    "NotificationIntent",
    "NotificationPayload",
    "build_payload",
    "criticality_of",
    "money",
    "Notifier",
    "LoggingNotifier",
    "SendOutcome",
    "PreferenceLookup",
    "PreferenceDecision",
    "NotificationDispatcher",
]
