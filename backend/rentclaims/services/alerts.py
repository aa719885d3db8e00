"""
Operational alerts.

Failures that need a human (a card refund that did not go through, a
notification that exhausted its retries) are written to the dedicated
`rentclaims.alerts` logger so log routing can page on them.
"""
import logging
from enum import Enum
from typing import Any, Dict

alert_logger = logging.getLogger("rentclaims.alerts")


class AlertKind(str, Enum):
    FINANCIAL = "FINANCIAL"
    DELIVERY = "DELIVERY"


def raise_operational_alert(kind: AlertKind, message: str, **context: Any) -> Dict[str, Any]:
    """Emit an alert record and return it."""
    record = {"kind": kind.value, "message": message, **context}
    alert_logger.critical(f"[{kind.value}] {message} {context}")
    return record
