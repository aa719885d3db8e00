"""
Shared fixtures: in-memory SQLite session, a fixed clock and a seeded
booking (host, guest, vehicle, deposit of $300 card + $200 wallet).
"""
import os

# Must be set before rentclaims.database creates its engine
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rentclaims.config import CoreSettings
from rentclaims.database import Base
from rentclaims.models.db_models import (
    AccountDB, AccountRole, BookingDB, HostInsuranceDB, VehicleDB,
)
from rentclaims.services.claims import ClaimFiling, ClaimLifecycleService, ClaimsPersistence
from rentclaims.services.notifications import LoggingNotifier, NotificationDispatcher
from rentclaims.services.payments import DepositSettlementService, LoggingPaymentProcessor


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 9, 0, 0))


@pytest.fixture
def settings():
    return CoreSettings()


@pytest.fixture
def persistence(db_session):
    return ClaimsPersistence(db_session)


@pytest.fixture
def notifier():
    return LoggingNotifier()


@pytest.fixture
def processor():
    return LoggingPaymentProcessor()


@pytest.fixture
def dispatcher(persistence, notifier, settings, clock):
    return NotificationDispatcher(persistence, notifier, settings=settings, clock=clock)


@pytest.fixture
def lifecycle(persistence, settings, dispatcher, processor, clock):
    settlement = DepositSettlementService(persistence, processor, dispatcher, settings, clock)
    return ClaimLifecycleService(
        persistence,
        settings=settings,
        dispatcher=dispatcher,
        settlement=settlement,
        clock=clock,
    )


# =============================================================================
# SEED DATA
# =============================================================================

def add_account(db, role=AccountRole.GUEST, email=None, password_hash="not-a-real-hash"):
    account = AccountDB(
        id=str(uuid4()),
        email=email or f"{uuid4().hex[:10]}@example.com",
        username=uuid4().hex[:12],
        password_hash=password_hash,
        role=role,
    )
    db.add(account)
    db.commit()
    return account.id


def add_host_insurance(db, host_id, **flags):
    db.add(HostInsuranceDB(host_id=host_id, **flags))
    db.commit()


def add_booking(
    db,
    host_id,
    guest_id,
    vehicle_id=None,
    card=Decimal("300.00"),
    wallet=Decimal("200.00"),
    guest_has_personal_policy=False,
    payment_reference="pi_test_123",
):
    if vehicle_id is None:
        vehicle_id = str(uuid4())
        db.add(VehicleDB(id=vehicle_id, host_id=host_id, make="Toyota", model="Camry", year=2024, state="AZ"))
    booking_id = str(uuid4())
    db.add(BookingDB(
        id=booking_id,
        booking_code=f"RENTTOYCAM-{uuid4().int % 1000000:06d}-AZ24",
        vehicle_id=vehicle_id,
        host_id=host_id,
        guest_id=guest_id,
        start_date=date(2026, 2, 20),
        end_date=date(2026, 2, 25),
        guest_has_personal_policy=guest_has_personal_policy,
        guest_policy_id="GUEST-POL-9" if guest_has_personal_policy else None,
        deposit_card_amount=card,
        deposit_wallet_amount=wallet,
        card_payment_reference=payment_reference,
    ))
    db.commit()
    return booking_id


@pytest.fixture
def marketplace(db_session):
    """Host with a P2P policy covering rental use, a guest and one booking."""
    host_id = add_account(db_session, AccountRole.HOST)
    guest_id = add_account(db_session, AccountRole.GUEST)
    add_host_insurance(
        db_session, host_id,
        host_policy_id="HOST-P2P-1",
        has_p2p_endorsement=True,
        policy_covers_rental_use=True,
        policy_expires_on=date(2027, 1, 1),
    )
    booking_id = add_booking(db_session, host_id, guest_id)
    booking = db_session.query(BookingDB).filter(BookingDB.id == booking_id).first()
    return {
        "host_id": host_id,
        "guest_id": guest_id,
        "booking_id": booking_id,
        "vehicle_id": booking.vehicle_id,
    }


def make_filing(booking_id, filer_id, **overrides):
    fields = {
        "booking_id": booking_id,
        "filer_account_id": filer_id,
        "claim_type": "ACCIDENT",
        "incident_date": date(2026, 2, 24),
        "estimated_cost": Decimal("1250.00"),
        "description": "Rear bumper dented while parked at the trailhead lot.",
    }
    fields.update(overrides)
    return ClaimFiling(**fields)
