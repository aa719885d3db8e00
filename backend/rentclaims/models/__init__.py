"""Rental Claims Core - Data Models"""
from .domain import (
    BookingContext, VehicleRecord,
    Claim, TransitionRecord,
    AccountHold,
    Negotiation,
    OutboxTask,
)

__all__ = [
    "BookingContext", "VehicleRecord",
    "Claim", "TransitionRecord",
    "AccountHold",
    "Negotiation",
    "OutboxTask",
]
