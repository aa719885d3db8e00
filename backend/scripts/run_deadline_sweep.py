#!/usr/bin/env python3
"""
Deadline Sweep Runner
Runs the claim / negotiation deadline sweep outside the web process.

Usage:
    python -m scripts.run_deadline_sweep            # one sweep, then exit
    python -m scripts.run_deadline_sweep --forever  # sweep every RENTCLAIMS_SWEEP_INTERVAL_SECONDS
"""
import argparse
import json
import logging
import os
import signal
import sys
import threading

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rentclaims.config import CoreSettings
from rentclaims.database import SessionLocal, init_db, session_scope
from rentclaims.services.claims import ClaimLifecycleService, ClaimsPersistence, DeadlineScheduler

logger = logging.getLogger("rentclaims.sweep")


def build_scheduler(db, settings: CoreSettings) -> DeadlineScheduler:
    return DeadlineScheduler(ClaimLifecycleService(ClaimsPersistence(db), settings=settings))


def run_once(settings: CoreSettings) -> dict:
    with session_scope() as db:
        scheduler = build_scheduler(db, settings)
        result = scheduler.run_sweep()
        result["outbox"] = scheduler.run_outbox_retry()
        return result


def main():
    parser = argparse.ArgumentParser(description="Run the deadline sweep")
    parser.add_argument("--forever", action="store_true", help="keep sweeping on an interval")
    parser.add_argument("--interval", type=int, default=None, help="seconds between sweeps")
    args = parser.parse_args()

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = CoreSettings.from_env()
    init_db()

    if not args.forever:
        print(json.dumps(run_once(settings), indent=2, default=str))
        return

    stop_event = threading.Event()
    interval = args.interval or settings.sweep_interval_seconds
    logger.info(f"Sweeping every {interval}s until interrupted")
    signal.signal(signal.SIGINT, lambda *_: stop_event.set())
    signal.signal(signal.SIGTERM, lambda *_: stop_event.set())

    db = SessionLocal()
    try:
        build_scheduler(db, settings).run_forever(interval, stop_event)
    finally:
        db.close()


if __name__ == "__main__":
    main()
