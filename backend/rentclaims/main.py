"""
Rental Claims Core - FastAPI Application

Main entry point for the claims backend.

Architecture:
- Host docs -> TierResolver -> InsuranceTier -> CoverageHierarchy (snapshot at filing)
- Filing -> ClaimLifecycle -> AccountHold + listing lock + response deadline
- DeadlineScheduler -> expiry -> manual review
- Resolution -> hold lift + listing unlock + deposit split (card / wallet)
"""
import logging
import os
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .routers import (
    auth_router, claims_router, guards_router, negotiations_router, scheduler_router,
)
from .database import init_db
from .exceptions import ValidationError

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Rental Claims Core",
    description="""
    Insurance tiers and claim resolution for a peer-to-peer vehicle rental marketplace.

    ## Flow
    1. **Tier**: host insurance documents resolve to BASIC / STANDARD / PREMIUM
    2. **Filing**: tier and payer order are snapshotted; the counterparty is put on hold
    3. **Deadline**: the counterparty has 48 hours to respond, otherwise the claim
       goes to manual review
    4. **Resolution**: holds lift, the listing unlocks and the deposit is split
       between card refund and wallet credit
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.info(f"Rejected input on {request.url.path}: {exc}")
    return JSONResponse(status_code=422, content={"detail": str(exc), "field": exc.field})


# Include routers
app.include_router(auth_router)
app.include_router(claims_router)
app.include_router(guards_router)
app.include_router(negotiations_router)
app.include_router(scheduler_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Rental Claims Core",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m rentclaims.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
