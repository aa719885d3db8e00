"""Rental Claims Core - API Routers"""
from .auth import router as auth_router
from .claims import router as claims_router
from .accounts import router as guards_router
from .negotiations import router as negotiations_router
from .scheduler import router as scheduler_router

__all__ = [
    "auth_router",
    "claims_router",
    "guards_router",
    "negotiations_router",
    "scheduler_router",
]
