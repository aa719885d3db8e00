"""
Scheduler API Routes

Internal endpoints for system-automatic tasks.
Deadline sweep, outbox retries, upcoming deadline monitoring.
"""
import os

from fastapi import APIRouter, Depends, HTTPException, Header

from ..dependencies import get_scheduler
from ..services.claims import DeadlineScheduler


router = APIRouter(prefix="/internal", tags=["scheduler"])


# =============================================================================
# INTERNAL API KEY VALIDATION
# =============================================================================

INTERNAL_API_KEY = os.getenv("INTERNAL_API_KEY", "scheduler-internal-key-change-in-production")


async def verify_internal_key(x_internal_key: str = Header(...)):
    """Verify internal API key for scheduler endpoints."""
    if x_internal_key != INTERNAL_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid internal API key")
    return True


# =============================================================================
# SCHEDULER ENDPOINTS (SYSTEM-ONLY)
# =============================================================================

@router.post("/deadline-sweep", response_model=dict)
async def run_deadline_sweep(
    scheduler: DeadlineScheduler = Depends(get_scheduler),
    _: bool = Depends(verify_internal_key),
):
    """
    Expire claims and negotiations past their deadline.

    System-automatic - no user confirmation required.
    """
    return scheduler.run_sweep()


@router.post("/outbox-retry", response_model=dict)
async def run_outbox_retry(
    scheduler: DeadlineScheduler = Depends(get_scheduler),
    _: bool = Depends(verify_internal_key),
):
    """Retry failed notifications, card refunds and wallet credits."""
    return scheduler.run_outbox_retry()


# =============================================================================
# SCHEDULER STATUS ENDPOINTS (READ-ONLY)
# =============================================================================

@router.get("/deadlines", response_model=dict)
async def get_upcoming_deadlines(
    hours_ahead: int = 24,
    scheduler: DeadlineScheduler = Depends(get_scheduler),
    _: bool = Depends(verify_internal_key),
):
    """
    Get upcoming response deadlines for monitoring.
    """
    deadlines = scheduler.engine.get_upcoming_deadlines(hours_ahead)
    return {
        "hours_ahead": hours_ahead,
        "count": len(deadlines),
        "deadlines": deadlines,
    }
