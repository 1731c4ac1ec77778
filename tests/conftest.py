import os

# Settings are read at import time; point the app at an in-memory database first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SWEEPER_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret"

import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.models.event import Event
from app.models.payment import Payment
from app.models.seat import Seat, SeatStatus
from app.models.venue import Venue
from app.schemas.user import CurrentUser, UserRole

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Principals
# ---------------------------------------------------------------------------


@pytest.fixture()
def alice():
    return CurrentUser(id=uuid.uuid4(), role=UserRole.CUSTOMER)


@pytest.fixture()
def bob():
    return CurrentUser(id=uuid.uuid4(), role=UserRole.CUSTOMER)


@pytest.fixture()
def manager():
    return CurrentUser(id=uuid.uuid4(), role=UserRole.VENUE_MANAGER)


@pytest.fixture()
def organizer():
    return CurrentUser(id=uuid.uuid4(), role=UserRole.ORGANIZER)


@pytest.fixture()
def admin():
    return CurrentUser(id=uuid.uuid4(), role=UserRole.ADMIN)


def auth_headers(user: CurrentUser) -> dict:
    token = create_access_token(str(user.id), user.role.value)
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------


@pytest.fixture()
def venue(db, manager):
    venue = Venue(name="Riverside Arena", manager_id=manager.id)
    db.add(venue)
    db.commit()
    return venue


@pytest.fixture()
def event(db, venue, organizer):
    event = Event(venue_id=venue.id, organizer_id=organizer.id, title="Spring Concert", currency="USD")
    db.add(event)
    db.commit()
    return event


def add_seats(db, event, count, section="A", row="1", price=None, price_tier=None, **extra):
    seats = [
        Seat(
            event_id=event.id,
            section=section,
            row=row,
            seat_number=str(n),
            price=price,
            price_tier=price_tier,
            status=SeatStatus.AVAILABLE,
            **extra,
        )
        for n in range(1, count + 1)
    ]
    db.add_all(seats)
    db.commit()
    return sorted(seats, key=lambda s: s.id)


@pytest.fixture()
def seats(db, event):
    """Six available seats at 25.00 each, sorted by id."""
    return add_seats(db, event, 6, price=Decimal("25.00"))


def add_payment(db, user_id, hold_id=None, status="completed", amount=Decimal("50.00")):
    payment = Payment(user_id=user_id, hold_id=hold_id, status=status, amount=amount, currency="USD")
    db.add(payment)
    db.commit()
    return payment
