"""
Tests for commission negotiations (fleet-management invitations).

Scenario under test:
- Manager proposes 70/30, owner counters, rounds run out after three counters
- Each counter extends the deadline by the grace period
- Only the awaiting party may counter or accept; either may decline
"""
from datetime import timedelta

import pytest

from rentclaims.config import CoreSettings
from rentclaims.exceptions import NegotiationValidationError
from rentclaims.models.db_models import AccountRole, NegotiationParty, NegotiationStatus
from rentclaims.services.claims import CommissionNegotiationService, OutcomeStatus, validate_terms
from rentclaims.services.notifications import TemplateKind

OWNER = NegotiationParty.OWNER
MANAGER = NegotiationParty.MANAGER


@pytest.fixture
def service(persistence, settings, dispatcher, clock):
    return CommissionNegotiationService(persistence, settings, dispatcher, clock)


@pytest.fixture
def parties(db_session):
    from conftest import add_account

    return {
        "owner_id": add_account(db_session, AccountRole.HOST),
        "manager_id": add_account(db_session, AccountRole.HOST),
    }


@pytest.fixture
def invitation(service, parties):
    return service.open_invitation(
        parties["owner_id"], parties["manager_id"], 70, 30,
        vehicle_ids=["veh-1", "veh-2"], message="Let me run your fleet",
    ).entity


class TestValidateTerms:

    @pytest.mark.parametrize("owner,manager", [(70, 30), (1, 99), (50, 50)])
    def test_valid_splits(self, owner, manager):
        validate_terms(owner, manager)

    @pytest.mark.parametrize("owner,manager", [
        (0, 100),
        (100, 0),
        (60, 30),
        (70.5, 29.5),
        ("70", "30"),
        (True, 99),
    ])
    def test_invalid_splits(self, owner, manager):
        with pytest.raises(NegotiationValidationError):
            validate_terms(owner, manager)


class TestOpenInvitation:

    def test_invitation_awaits_owner(self, invitation, clock):
        assert invitation.status == NegotiationStatus.PENDING
        assert invitation.awaiting_party == OWNER
        assert invitation.proposed_by == MANAGER
        assert invitation.rounds_used == 0
        assert invitation.response_deadline == clock.now + timedelta(days=7)
        assert invitation.history[0]["action"] == "PROPOSED"

    def test_same_account_on_both_sides(self, service, parties):
        with pytest.raises(NegotiationValidationError):
            service.open_invitation(parties["owner_id"], parties["owner_id"], 70, 30)

    def test_windows_follow_settings(self, persistence, dispatcher, clock, parties):
        settings = CoreSettings(invitation_window_days=2, counter_offer_grace_days=1)
        service = CommissionNegotiationService(persistence, settings, dispatcher, clock)

        opened = service.open_invitation(parties["owner_id"], parties["manager_id"], 70, 30).entity
        countered = service.counter(opened.id, OWNER, 80, 20).entity

        assert opened.response_deadline == clock.now + timedelta(days=2)
        assert countered.response_deadline == clock.now + timedelta(days=3)

    def test_invitation_persists(self, service, invitation):
        loaded = service.get_negotiation(invitation.id)
        assert loaded.vehicle_ids == ["veh-1", "veh-2"]
        assert loaded.version == 1


class TestCounterOffers:

    def test_counter_passes_turn_and_extends_deadline(self, service, invitation, notifier, parties):
        outcome = service.counter(invitation.id, OWNER, 80, 20, message="I keep more")

        assert outcome.status == OutcomeStatus.APPLIED
        n = outcome.entity
        assert n.status == NegotiationStatus.COUNTER_OFFERED
        assert n.awaiting_party == MANAGER
        assert n.rounds_used == 1
        assert n.response_deadline == invitation.response_deadline + timedelta(days=3)

        sent = notifier.sent[-1]
        assert sent["kind"] == TemplateKind.COUNTER_OFFER_RECEIVED
        assert sent["payload"].round == 1
        assert sent["payload"].rounds_remaining == 2

    def test_rounds_exhaust_after_three_counters(self, service, invitation, clock):
        """Scenario E: deadline moves T+7d -> T+16d, fourth counter refused."""
        opened_at = clock.now
        service.counter(invitation.id, OWNER, 80, 20)
        service.counter(invitation.id, MANAGER, 75, 25)
        third = service.counter(invitation.id, OWNER, 78, 22)

        assert third.entity.status == NegotiationStatus.ROUNDS_EXHAUSTED
        assert third.entity.rounds_remaining == 0
        assert third.entity.response_deadline == opened_at + timedelta(days=16)

        fourth = service.counter(invitation.id, MANAGER, 77, 23)
        assert fourth.status == OutcomeStatus.REJECTED

        accepted = service.accept(invitation.id, MANAGER)
        assert accepted.status == OutcomeStatus.APPLIED
        assert accepted.entity.status == NegotiationStatus.ACCEPTED
        assert (accepted.entity.owner_percent, accepted.entity.manager_percent) == (78, 22)

    def test_counter_out_of_turn(self, service, invitation):
        outcome = service.counter(invitation.id, MANAGER, 60, 40)
        assert outcome.status == OutcomeStatus.REJECTED
        assert service.get_negotiation(invitation.id).rounds_used == 0

    def test_counter_after_deadline(self, service, invitation, clock):
        clock.advance(days=7)
        assert service.counter(invitation.id, OWNER, 80, 20).status == OutcomeStatus.REJECTED

    def test_invalid_counter_terms_raise(self, service, invitation):
        with pytest.raises(NegotiationValidationError):
            service.counter(invitation.id, OWNER, 80, 30)

    def test_history_records_every_round(self, service, invitation):
        service.counter(invitation.id, OWNER, 80, 20, message="Counter one")
        service.counter(invitation.id, MANAGER, 75, 25)

        history = service.get_negotiation(invitation.id).history
        assert [h["action"] for h in history] == ["PROPOSED", "COUNTER", "COUNTER"]
        assert [h["proposed_by"] for h in history] == ["MANAGER", "OWNER", "MANAGER"]
        assert history[1]["message"] == "Counter one"


class TestConclusion:

    def test_owner_accepts_invitation(self, service, invitation, notifier):
        outcome = service.accept(invitation.id, OWNER)

        assert outcome.status == OutcomeStatus.APPLIED
        assert outcome.entity.awaiting_party is None
        assert outcome.entity.concluded_at is not None
        concluded = [e for e in notifier.sent if e["kind"] == TemplateKind.NEGOTIATION_CONCLUDED]
        assert len(concluded) == 2

    def test_accept_twice_is_noop(self, service, invitation):
        service.accept(invitation.id, OWNER)
        assert service.accept(invitation.id, OWNER).status == OutcomeStatus.NOOP

    def test_proposer_cannot_accept_own_terms(self, service, invitation):
        assert service.accept(invitation.id, MANAGER).status == OutcomeStatus.REJECTED

    def test_either_party_may_decline(self, service, invitation):
        outcome = service.decline(invitation.id, MANAGER, message="Changed my mind")

        assert outcome.status == OutcomeStatus.APPLIED
        assert outcome.entity.status == NegotiationStatus.DECLINED
        assert outcome.entity.history[-1]["message"] == "Changed my mind"

    def test_cannot_accept_declined(self, service, invitation):
        service.decline(invitation.id, OWNER)
        assert service.accept(invitation.id, OWNER).status == OutcomeStatus.REJECTED

    def test_expire_after_deadline(self, service, invitation, clock):
        clock.advance(days=6)
        assert service.expire(invitation.id).status == OutcomeStatus.NOOP

        clock.advance(days=1)
        outcome = service.expire(invitation.id)
        assert outcome.status == OutcomeStatus.APPLIED
        assert outcome.entity.status == NegotiationStatus.EXPIRED
        assert service.expire(invitation.id).status == OutcomeStatus.NOOP

    def test_unknown_negotiation(self, service):
        assert service.accept("missing", OWNER).status == OutcomeStatus.NOT_FOUND


class TestNegotiationView:

    def test_view_lists_allowed_actions(self, service, invitation, clock):
        clock.advance(days=1)
        view = service.to_view(service.get_negotiation(invitation.id))

        assert view["status"] == "PENDING"
        assert view["awaiting_party"] == "OWNER"
        assert view["allowed_actions"] == ["counter", "accept", "decline", "expire"]
        assert view["remaining_seconds"] == int(timedelta(days=6).total_seconds())

    def test_concluded_view_has_no_actions(self, service, invitation):
        service.decline(invitation.id, OWNER)
        view = service.to_view(service.get_negotiation(invitation.id))

        assert view["allowed_actions"] == []
        assert view["remaining_seconds"] is None
