"""
Tests for the deadline engine and scheduler.

Verifies:
- Only FILED / AWAITING_RESPONSE claims past their deadline are swept
- Overlapping sweeps and sweep/response races expire a claim at most once
- One failing item never stops the sweep
- Expired negotiations are swept alongside claims
"""
import threading
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from conftest import make_filing
from rentclaims.config import CoreSettings
from rentclaims.models.db_models import ClaimState, NegotiationStatus
from rentclaims.services.claims import (
    ClaimLifecycleService, ClaimsPersistence, DeadlineEngine, DeadlineScheduler, OutcomeStatus,
)


@pytest.fixture
def scheduler(lifecycle):
    return DeadlineScheduler(lifecycle)


@pytest.fixture
def claim(lifecycle, marketplace):
    return lifecycle.file_claim(make_filing(marketplace["booking_id"], marketplace["host_id"])).entity


class TestDeadlineEngine:

    def test_response_deadline_is_48_hours(self, persistence, settings, clock):
        engine = DeadlineEngine(persistence, settings, clock)
        filed_at = datetime(2026, 3, 2, 9, 0, 0)
        assert engine.response_deadline(filed_at) == datetime(2026, 3, 4, 9, 0, 0)

    def test_invitation_deadline_is_7_days(self, persistence, settings, clock):
        engine = DeadlineEngine(persistence, settings, clock)
        assert engine.invitation_deadline(datetime(2026, 3, 2, 9, 0, 0)) == datetime(2026, 3, 9, 9, 0, 0)

    def test_filing_takes_deadline_from_engine(self, persistence, clock, marketplace):
        settings = CoreSettings(response_window_hours=72)
        lifecycle = ClaimLifecycleService(persistence, settings=settings, clock=clock)

        claim = lifecycle.file_claim(make_filing(marketplace["booking_id"], marketplace["host_id"])).entity

        assert claim.response_deadline == lifecycle.deadlines.response_deadline(clock.now)
        assert claim.response_deadline == clock.now + timedelta(hours=72)

    def test_extend_deadline_defaults_to_grace(self, persistence, settings, clock):
        engine = DeadlineEngine(persistence, settings, clock)
        deadline = datetime(2026, 3, 9, 9, 0, 0)
        assert engine.extend_deadline(deadline) == datetime(2026, 3, 12, 9, 0, 0)
        assert engine.extend_deadline(deadline, timedelta(hours=1)) == datetime(2026, 3, 9, 10, 0, 0)

    def test_upcoming_deadlines(self, scheduler, claim, clock):
        assert scheduler.engine.get_upcoming_deadlines(hours_ahead=24) == []

        clock.advance(hours=30)
        upcoming = scheduler.engine.get_upcoming_deadlines(hours_ahead=24)

        assert [u["claim_id"] for u in upcoming] == [claim.id]
        assert upcoming[0]["hours_remaining"] == 18.0

    def test_deadline_boundary(self, scheduler, claim, clock):
        clock.advance(hours=47, minutes=59, seconds=59)
        assert scheduler.engine.get_expired_claim_ids() == []

        clock.advance(seconds=1)
        assert scheduler.engine.get_expired_claim_ids() == [claim.id]


class TestRunSweep:

    def test_sweep_expires_overdue_claims(self, scheduler, persistence, claim, marketplace, clock):
        clock.advance(hours=49)
        result = scheduler.run_sweep()

        assert result["claims_expired"] == 1
        assert result["errors"] == 0
        assert persistence.load_claim(claim.id).state == ClaimState.RESPONSE_EXPIRED
        assert persistence.has_active_hold(marketplace["guest_id"]) is True

    def test_sweep_before_deadline_does_nothing(self, scheduler, persistence, claim, clock):
        clock.advance(hours=10)
        result = scheduler.run_sweep()

        assert result["claims_expired"] == 0
        assert persistence.load_claim(claim.id).state == ClaimState.AWAITING_RESPONSE

    def test_responded_claim_is_not_swept(self, scheduler, lifecycle, persistence, claim, marketplace, clock):
        lifecycle.respond(claim.id, marketplace["guest_id"], "Answered in time.")
        clock.advance(hours=72)

        result = scheduler.run_sweep()

        assert result["claims_expired"] == 0
        assert persistence.load_claim(claim.id).state == ClaimState.RESPONDED

    def test_repeated_sweeps_expire_once(self, scheduler, persistence, claim, clock):
        clock.advance(hours=49)
        first = scheduler.run_sweep()
        second = scheduler.run_sweep()

        assert first["claims_expired"] == 1
        assert second["claims_expired"] == 0
        expiries = [t for t in persistence.list_transitions(claim.id) if t.to_state == ClaimState.RESPONSE_EXPIRED]
        assert len(expiries) == 1

    def test_failure_on_one_claim_does_not_stop_sweep(self, scheduler, lifecycle, db_session, clock):
        from conftest import add_account, add_booking
        from rentclaims.models.db_models import AccountRole

        claim_ids = []
        for _ in range(2):
            host_id = add_account(db_session, AccountRole.HOST)
            guest_id = add_account(db_session, AccountRole.GUEST)
            booking_id = add_booking(db_session, host_id, guest_id)
            claim_ids.append(lifecycle.file_claim(make_filing(booking_id, host_id)).entity.id)
        clock.advance(hours=49)

        real_expire = lifecycle.expire

        def flaky_expire(claim_id):
            if claim_id == claim_ids[0]:
                raise RuntimeError("database hiccup")
            return real_expire(claim_id)

        lifecycle.expire = flaky_expire
        result = scheduler.run_sweep()

        assert result["errors"] == 1
        assert result["claims_expired"] == 1
        assert result["details"]["errors"][0]["claim_id"] == claim_ids[0]


class RacingPersistence(ClaimsPersistence):
    """Lets a competing expiry commit just before this instance's first save."""

    def __init__(self, db_session, competitor):
        super().__init__(db_session)
        self.competitor = competitor

    def save_claim(self, claim, expected_version, transition=None):
        if self.competitor is not None:
            competitor, self.competitor = self.competitor, None
            competitor(claim.id)
        return super().save_claim(claim, expected_version, transition)


class TestSweepRaces:

    def test_concurrent_expiry_applies_once(self, db_session, settings, dispatcher, claim, clock):
        rival = ClaimLifecycleService(ClaimsPersistence(db_session), settings, dispatcher=dispatcher, clock=clock)
        racing = ClaimLifecycleService(
            RacingPersistence(db_session, rival.expire), settings, dispatcher=dispatcher, clock=clock,
        )
        clock.advance(hours=49)

        outcome = racing.expire(claim.id)

        assert outcome.status == OutcomeStatus.NOOP
        expiries = [
            t for t in rival.persistence.list_transitions(claim.id)
            if t.to_state == ClaimState.RESPONSE_EXPIRED
        ]
        assert len(expiries) == 1

    def test_response_committed_first_wins_over_sweep(self, db_session, settings, dispatcher, claim, marketplace, clock):
        """Response lands just before the deadline; the sweep that loaded the old state must not expire it."""
        rival = ClaimLifecycleService(ClaimsPersistence(db_session), settings, dispatcher=dispatcher, clock=clock)
        clock.advance(hours=47)
        rival.respond(claim.id, marketplace["guest_id"], "Just in time.")

        clock.advance(hours=2)
        racing = ClaimLifecycleService(ClaimsPersistence(db_session), settings, dispatcher=dispatcher, clock=clock)
        outcome = racing.expire(claim.id)

        assert outcome.status == OutcomeStatus.NOOP
        assert rival.persistence.load_claim(claim.id).state == ClaimState.RESPONDED


class TestNegotiationSweep:

    def test_sweep_expires_stale_invitation(self, scheduler, persistence, marketplace, clock):
        negotiation = scheduler.negotiations.open_invitation(
            owner_id=marketplace["host_id"],
            manager_id=marketplace["guest_id"],
            owner_percent=70,
            manager_percent=30,
        ).entity
        clock.advance(days=7)

        result = scheduler.run_sweep()

        assert result["negotiations_expired"] == 1
        assert persistence.load_negotiation(negotiation.id).status == NegotiationStatus.EXPIRED


class TestSchedulerLoop:

    def test_run_forever_stops_on_event(self, scheduler):
        stop = threading.Event()
        scheduler.run_sweep = MagicMock(side_effect=lambda: stop.set())
        scheduler.run_outbox_retry = MagicMock(return_value={})

        scheduler.run_forever(interval_seconds=1, stop_event=stop)

        scheduler.run_sweep.assert_called_once()
        scheduler.run_outbox_retry.assert_called_once()

    def test_loop_survives_sweep_exception(self, scheduler):
        stop = threading.Event()
        calls = {"count": 0}

        def sweep():
            calls["count"] += 1
            if calls["count"] == 1:
                raise RuntimeError("boom")
            stop.set()

        scheduler.run_sweep = sweep
        scheduler.run_outbox_retry = MagicMock(return_value={})

        scheduler.run_forever(interval_seconds=0.01, stop_event=stop)

        assert calls["count"] == 2

    def test_outbox_retry_reports_every_queue(self, scheduler):
        result = scheduler.run_outbox_retry()
        assert result["notifications"]["attempted"] == 0
        assert result["refunds"]["attempted"] == 0
        assert result["wallet_credits"]["attempted"] == 0
