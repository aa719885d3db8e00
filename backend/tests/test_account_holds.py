"""
Tests for the account hold enforcer.

1. At most one active hold per (account, claim)
2. Lifting requires a qualifying claim state or a manual override
3. Escalation keeps the hold and clears auto-expiry
4. hold_status reports the deadline and required action
"""
from datetime import timedelta

import pytest

from conftest import make_filing
from rentclaims.models.db_models import ClaimState, HoldLiftedBy
from rentclaims.services.claims import AccountHoldEnforcer, OutcomeStatus


@pytest.fixture
def enforcer(persistence, clock):
    return AccountHoldEnforcer(persistence, clock)


@pytest.fixture
def claim(lifecycle, marketplace):
    return lifecycle.file_claim(make_filing(marketplace["booking_id"], marketplace["host_id"])).entity


class TestApplyHold:

    def test_apply_is_idempotent(self, enforcer, persistence, claim, marketplace, clock):
        guest_id = marketplace["guest_id"]
        original = persistence.get_active_hold(guest_id, claim.id)

        clock.advance(hours=1)
        outcome = enforcer.apply_hold(guest_id, claim.id, reason="Again", expires_at=clock.now)

        assert outcome.status == OutcomeStatus.NOOP
        assert outcome.entity.id == original.id
        assert outcome.entity.applied_at == original.applied_at
        assert len(persistence.list_active_holds(account_id=guest_id)) == 1

    def test_holds_are_per_claim(self, enforcer, persistence, claim, marketplace):
        outcome = enforcer.apply_hold(marketplace["guest_id"], "other-claim", reason="Second claim")

        assert outcome.status == OutcomeStatus.APPLIED
        assert len(persistence.list_active_holds(account_id=marketplace["guest_id"])) == 2

    def test_reapply_after_lift_creates_new_hold(self, enforcer, persistence, marketplace):
        guest_id = marketplace["guest_id"]
        first = enforcer.apply_hold(guest_id, "claim-x", reason="First").entity
        enforcer.lift_hold(guest_id, "claim-x", manual=True)

        second = enforcer.apply_hold(guest_id, "claim-x", reason="Second")

        assert second.status == OutcomeStatus.APPLIED
        assert second.entity.id != first.id
        assert len(persistence.list_holds_for_claim("claim-x")) == 2


class TestLiftHold:

    @pytest.mark.parametrize("state", [
        ClaimState.FILED,
        ClaimState.AWAITING_RESPONSE,
        ClaimState.RESPONSE_EXPIRED,
        ClaimState.UNDER_REVIEW,
    ])
    def test_non_qualifying_state_is_rejected(self, enforcer, persistence, claim, marketplace, state):
        outcome = enforcer.lift_hold(marketplace["guest_id"], claim.id, trigger_state=state)

        assert outcome.status == OutcomeStatus.REJECTED
        assert persistence.has_active_hold(marketplace["guest_id"]) is True

    def test_missing_trigger_is_rejected(self, enforcer, claim, marketplace):
        outcome = enforcer.lift_hold(marketplace["guest_id"], claim.id)
        assert outcome.status == OutcomeStatus.REJECTED

    def test_qualifying_state_lifts(self, enforcer, persistence, claim, marketplace, clock):
        outcome = enforcer.lift_hold(marketplace["guest_id"], claim.id, trigger_state=ClaimState.RESPONDED)

        assert outcome.status == OutcomeStatus.APPLIED
        assert outcome.entity.lifted_by == HoldLiftedBy.SYSTEM
        assert outcome.entity.lifted_at == clock.now
        assert enforcer.is_restricted(marketplace["guest_id"]) is False

    def test_manual_override(self, enforcer, claim, marketplace):
        outcome = enforcer.lift_hold(marketplace["guest_id"], claim.id, manual=True)

        assert outcome.status == OutcomeStatus.APPLIED
        assert outcome.entity.lifted_by == HoldLiftedBy.MANUAL

    def test_lifting_twice_is_noop(self, enforcer, claim, marketplace):
        enforcer.lift_hold(marketplace["guest_id"], claim.id, trigger_state=ClaimState.RESOLVED)
        outcome = enforcer.lift_hold(marketplace["guest_id"], claim.id, trigger_state=ClaimState.RESOLVED)
        assert outcome.status == OutcomeStatus.NOOP

    def test_lifted_hold_stays_in_history(self, enforcer, persistence, claim, marketplace):
        enforcer.lift_hold(marketplace["guest_id"], claim.id, manual=True)

        history = persistence.list_holds_for_claim(claim.id)
        assert len(history) == 1
        assert history[0].is_active is False

    def test_lift_all_for_claim(self, enforcer, persistence, claim, marketplace):
        enforcer.apply_hold(marketplace["host_id"], claim.id, reason="Both parties held")

        lifted = enforcer.lift_all_for_claim(claim.id, ClaimState.RESOLVED)

        assert {h.account_id for h in lifted} == {marketplace["guest_id"], marketplace["host_id"]}
        assert persistence.list_active_holds(claim_id=claim.id) == []


class TestEscalateHold:

    def test_escalation_clears_expiry(self, enforcer, persistence, claim, marketplace, clock):
        clock.advance(hours=48)
        outcome = enforcer.escalate_hold(marketplace["guest_id"], claim.id)

        assert outcome.status == OutcomeStatus.APPLIED
        hold = persistence.get_active_hold(marketplace["guest_id"], claim.id)
        assert hold.escalated_at == clock.now
        assert hold.expires_at is None
        assert hold.is_active

    def test_escalating_twice_is_noop(self, enforcer, claim, marketplace):
        enforcer.escalate_hold(marketplace["guest_id"], claim.id)
        assert enforcer.escalate_hold(marketplace["guest_id"], claim.id).status == OutcomeStatus.NOOP

    def test_no_hold_to_escalate(self, enforcer, marketplace):
        assert enforcer.escalate_hold(marketplace["host_id"], "nothing").status == OutcomeStatus.NOOP


class TestHoldStatus:

    def test_restricted_account_reports_deadline(self, enforcer, claim, marketplace, clock):
        clock.advance(hours=6)
        status = enforcer.hold_status(marketplace["guest_id"])

        assert status["restricted"] is True
        assert len(status["holds"]) == 1
        hold = status["holds"][0]
        assert hold["claim_id"] == claim.id
        assert hold["claim_state"] == "AWAITING_RESPONSE"
        assert hold["remaining_seconds"] == int(timedelta(hours=42).total_seconds())
        assert hold["required_action"] == "respond"
        assert hold["escalated"] is False

    def test_unrestricted_account(self, enforcer, marketplace):
        status = enforcer.hold_status(marketplace["host_id"])
        assert status == {"account_id": marketplace["host_id"], "restricted": False, "holds": []}

    def test_expired_claim_reports_zero_remaining(self, enforcer, lifecycle, claim, marketplace, clock):
        clock.advance(hours=60)
        lifecycle.expire(claim.id)

        hold = enforcer.hold_status(marketplace["guest_id"])["holds"][0]
        assert hold["remaining_seconds"] == 0
        assert hold["escalated"] is True
        assert hold["required_action"] is None
