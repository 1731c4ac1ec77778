import threading
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.core.errors import (
    ConflictError,
    ForbiddenError,
    InternalInconsistencyError,
    InvalidRequestError,
    NotFoundError,
)
from app.db.base import Base
from app.models.audit_log import AuditLog
from app.models.event import Event
from app.models.hold import HoldState, SeatHold
from app.models.seat import Seat, SeatStatus
from app.models.venue import Venue
from app.services import holds, seat_store
from tests.conftest import add_seats

T0 = datetime(2030, 5, 1, 12, 0, tzinfo=timezone.utc)


def _fresh_seat(db, seat_id):
    db.expire_all()
    return db.get(Seat, seat_id)


class TestReserve:
    def test_holds_every_seat_under_one_pending_hold(self, db, event, seats, alice):
        ids = [seats[0].id, seats[1].id, seats[2].id]
        result = holds.reserve(db, event.id, alice.id, ids, now=T0)

        assert result.hold.state == HoldState.PENDING
        assert result.expires_at == T0 + timedelta(seconds=settings.HOLD_TTL_SECONDS)
        assert result.total_price == Decimal("75.00")
        assert result.currency == "USD"
        assert sorted(result.hold.seat_ids) == sorted(ids)
        for seat in result.seats:
            assert seat.status == SeatStatus.HELD
            assert seat.holder_id == alice.id
            assert seat.hold_id == result.hold.id
            assert seat.held_at is not None
        assert _fresh_seat(db, seats[3].id).status == SeatStatus.AVAILABLE
        assert db.query(AuditLog).filter(AuditLog.action == "SEATS_RESERVED").count() == 1

    def test_overlapping_reserve_loses_without_side_effects(self, db, event, seats, alice, bob):
        holds.reserve(db, event.id, alice.id, [seats[0].id, seats[1].id, seats[2].id], now=T0)

        with pytest.raises(ConflictError) as exc:
            holds.reserve(db, event.id, bob.id, [seats[0].id, seats[3].id], now=T0)

        assert exc.value.offenders == [seats[0].id]
        assert _fresh_seat(db, seats[3].id).status == SeatStatus.AVAILABLE
        assert db.query(SeatHold).filter(SeatHold.user_id == bob.id).count() == 0

    def test_duplicate_ids_are_collapsed(self, db, event, seats, alice):
        result = holds.reserve(db, event.id, alice.id, [seats[0].id, seats[0].id, seats[1].id], now=T0)
        assert len(result.hold.seat_ids) == 2
        assert result.total_price == Decimal("50.00")

    def test_empty_request_is_invalid(self, db, event, alice):
        with pytest.raises(InvalidRequestError):
            holds.reserve(db, event.id, alice.id, [], now=T0)

    def test_too_many_seats_is_invalid(self, db, event, seats, alice, monkeypatch):
        monkeypatch.setattr(settings, "MAX_SEATS_PER_HOLD", 2)
        with pytest.raises(InvalidRequestError):
            holds.reserve(db, event.id, alice.id, [s.id for s in seats[:3]], now=T0)

    def test_unknown_event_is_not_found(self, db, seats, alice):
        with pytest.raises(NotFoundError):
            holds.reserve(db, uuid.uuid4(), alice.id, [seats[0].id], now=T0)

    def test_seats_of_another_event_are_invalid(self, db, venue, event, seats, alice):
        other = Event(venue_id=venue.id, title="Matinee")
        db.add(other)
        db.commit()
        foreign = add_seats(db, other, 1)

        with pytest.raises(InvalidRequestError):
            holds.reserve(db, event.id, alice.id, [seats[0].id, foreign[0].id], now=T0)
        assert _fresh_seat(db, seats[0].id).status == SeatStatus.AVAILABLE

    def test_unknown_seat_is_a_conflict(self, db, event, seats, alice):
        ghost = uuid.uuid4()
        with pytest.raises(ConflictError) as exc:
            holds.reserve(db, event.id, alice.id, [seats[0].id, ghost], now=T0)
        assert exc.value.offenders == [ghost]

    def test_blocked_seat_is_a_conflict(self, db, event, seats, alice):
        seat_store.transition(db, seats[1].id, SeatStatus.AVAILABLE, SeatStatus.BLOCKED)
        db.commit()
        with pytest.raises(ConflictError) as exc:
            holds.reserve(db, event.id, alice.id, [seats[0].id, seats[1].id], now=T0)
        assert exc.value.offenders == [seats[1].id]
        assert _fresh_seat(db, seats[0].id).status == SeatStatus.AVAILABLE
        assert db.query(SeatHold).count() == 0

    def test_sold_seat_in_request_leaves_the_rest_available(self, db, event, seats, alice, bob):
        sold, free = seats[4], seats[5]
        seat_store.transition(
            db, sold.id, SeatStatus.AVAILABLE, SeatStatus.SOLD,
            {"sold_to": bob.id, "payment_id": uuid.uuid4()},
        )
        db.commit()

        with pytest.raises(ConflictError) as exc:
            holds.reserve(db, event.id, alice.id, [sold.id, free.id], now=T0)

        assert exc.value.offenders == [sold.id]
        db.expire_all()
        [after] = seat_store.load_seats(db, event.id, ids=[free.id])
        assert after.status == SeatStatus.AVAILABLE
        assert after.hold_id is None and after.holder_id is None
        assert db.query(SeatHold).filter(SeatHold.user_id == alice.id).count() == 0

    def test_losing_a_seat_mid_way_rolls_everything_back(self, db, event, seats, alice, bob, monkeypatch):
        # Bob's view was read before Alice's sale of the last seat landed
        ids = [s.id for s in seats[3:]]
        seat_store.transition(
            db, ids[-1], SeatStatus.AVAILABLE, SeatStatus.SOLD,
            {"sold_to": alice.id, "payment_id": uuid.uuid4()},
        )
        db.commit()

        stale_view = [
            SimpleNamespace(id=i, event_id=event.id, status=SeatStatus.AVAILABLE, price=Decimal("25"), price_tier=None)
            for i in ids
        ]
        monkeypatch.setattr(holds, "_load_requested_seats", lambda db, seat_ids: stale_view)

        with pytest.raises(ConflictError) as exc:
            holds.reserve(db, event.id, bob.id, ids, now=T0)

        assert exc.value.offenders == [ids[-1]]
        assert db.query(SeatHold).count() == 0
        for seat_id in ids[:-1]:
            seat = _fresh_seat(db, seat_id)
            assert seat.status == SeatStatus.AVAILABLE
            assert seat.hold_id is None

    def test_custom_ttl(self, db, event, seats, alice):
        result = holds.reserve(db, event.id, alice.id, [seats[0].id], ttl_seconds=30, now=T0)
        assert result.expires_at == T0 + timedelta(seconds=30)


class TestRelease:
    def test_owner_release_frees_seats(self, db, event, seats, alice):
        hold = holds.reserve(db, event.id, alice.id, [seats[0].id, seats[1].id], now=T0).hold

        result = holds.release(db, hold.id, alice.id, now=T0 + timedelta(minutes=1))

        assert result.hold.state == HoldState.RELEASED
        assert result.released_count == 2
        assert result.hold.released_at is not None
        for seat_id in (seats[0].id, seats[1].id):
            seat = _fresh_seat(db, seat_id)
            assert seat.status == SeatStatus.AVAILABLE
            assert seat.holder_id is None and seat.hold_id is None and seat.held_at is None

    def test_release_again_is_a_no_op(self, db, event, seats, alice):
        hold = holds.reserve(db, event.id, alice.id, [seats[0].id], now=T0).hold
        holds.release(db, hold.id, alice.id)

        again = holds.release(db, hold.id, alice.id)
        assert again.hold.state == HoldState.RELEASED
        assert again.released_count == 0

    def test_other_user_is_forbidden(self, db, event, seats, alice, bob):
        hold = holds.reserve(db, event.id, alice.id, [seats[0].id], now=T0).hold
        with pytest.raises(ForbiddenError):
            holds.release(db, hold.id, bob.id)
        assert _fresh_seat(db, seats[0].id).status == SeatStatus.HELD

    def test_unknown_hold_is_not_found(self, db, alice):
        with pytest.raises(NotFoundError):
            holds.release(db, uuid.uuid4(), alice.id)

    def test_confirmed_hold_cannot_be_released(self, db, event, seats, alice):
        hold = holds.reserve(db, event.id, alice.id, [seats[0].id], now=T0).hold
        holds.confirm(db, hold.id, uuid.uuid4(), now=T0)

        with pytest.raises(ConflictError) as exc:
            holds.release(db, hold.id, alice.id)
        assert exc.value.current_state == "confirmed"
        assert _fresh_seat(db, seats[0].id).status == SeatStatus.SOLD


class TestConfirm:
    def test_confirm_sells_every_seat(self, db, event, seats, alice):
        ids = [seats[0].id, seats[1].id]
        hold = holds.reserve(db, event.id, alice.id, ids, now=T0).hold
        payment_id = uuid.uuid4()

        result = holds.confirm(db, hold.id, payment_id, now=T0 + timedelta(minutes=5))

        assert result.hold.state == HoldState.CONFIRMED
        assert result.hold.payment_id == payment_id
        assert result.confirmed_count == 2
        for seat_id in ids:
            seat = _fresh_seat(db, seat_id)
            assert seat.status == SeatStatus.SOLD
            assert seat.sold_to == alice.id
            assert seat.payment_id == payment_id
            assert seat.sold_at is not None
            assert seat.hold_id is None and seat.holder_id is None

    def test_confirm_is_idempotent_for_the_same_payment(self, db, event, seats, alice):
        hold = holds.reserve(db, event.id, alice.id, [seats[0].id], now=T0).hold
        payment_id = uuid.uuid4()
        holds.confirm(db, hold.id, payment_id, now=T0)

        again = holds.confirm(db, hold.id, payment_id, now=T0)
        assert again.hold.state == HoldState.CONFIRMED
        assert again.confirmed_count == 1
        assert db.query(AuditLog).filter(AuditLog.action == "SEATS_CONFIRMED").count() == 1

    def test_second_payment_conflicts(self, db, event, seats, alice):
        hold = holds.reserve(db, event.id, alice.id, [seats[0].id], now=T0).hold
        holds.confirm(db, hold.id, uuid.uuid4(), now=T0)
        with pytest.raises(ConflictError):
            holds.confirm(db, hold.id, uuid.uuid4(), now=T0)

    def test_one_payment_cannot_confirm_two_holds(self, db, event, seats, alice):
        first = holds.reserve(db, event.id, alice.id, [seats[0].id], now=T0).hold
        second = holds.reserve(db, event.id, alice.id, [seats[1].id, seats[2].id], now=T0).hold
        payment_id = uuid.uuid4()
        holds.confirm(db, first.id, payment_id, now=T0)

        with pytest.raises(ConflictError):
            holds.confirm(db, second.id, payment_id, now=T0)

        db.expire_all()
        assert holds.get_hold(db, second.id).state == HoldState.PENDING
        assert holds.get_hold(db, second.id).payment_id is None
        for seat_id in (seats[1].id, seats[2].id):
            assert _fresh_seat(db, seat_id).status == SeatStatus.HELD
        assert db.query(Seat).filter(Seat.status == SeatStatus.SOLD).count() == 1

    def test_payment_id_is_unique_across_holds(self, db, event, alice):
        payment_id = uuid.uuid4()
        for _ in range(2):
            db.add(SeatHold(
                event_id=event.id, user_id=alice.id, state=HoldState.CONFIRMED,
                expires_at=T0, payment_id=payment_id,
            ))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

        # Holds without a payment are not constrained
        for _ in range(2):
            db.add(SeatHold(event_id=event.id, user_id=alice.id, expires_at=T0))
        db.commit()
        assert db.query(SeatHold).filter(SeatHold.payment_id.is_(None)).count() == 2

    def test_released_hold_cannot_be_confirmed(self, db, event, seats, alice):
        hold = holds.reserve(db, event.id, alice.id, [seats[0].id], now=T0).hold
        holds.release(db, hold.id, alice.id)
        with pytest.raises(ConflictError) as exc:
            holds.confirm(db, hold.id, uuid.uuid4())
        assert exc.value.current_state == "released"
        assert _fresh_seat(db, seats[0].id).status == SeatStatus.AVAILABLE

    def test_overdue_but_unswept_hold_can_still_be_confirmed(self, db, event, seats, alice):
        hold = holds.reserve(db, event.id, alice.id, [seats[0].id], ttl_seconds=60, now=T0).hold
        result = holds.confirm(db, hold.id, uuid.uuid4(), now=T0 + timedelta(hours=1))
        assert result.hold.state == HoldState.CONFIRMED

    def test_other_user_is_forbidden(self, db, event, seats, alice, bob):
        hold = holds.reserve(db, event.id, alice.id, [seats[0].id], now=T0).hold
        with pytest.raises(ForbiddenError):
            holds.confirm(db, hold.id, uuid.uuid4(), user_id=bob.id)

    def test_tampered_seat_aborts_confirm(self, db, event, seats, alice):
        hold = holds.reserve(db, event.id, alice.id, [seats[0].id, seats[1].id], now=T0).hold
        # A seat freed outside the hold protocol
        seat_store.transition(db, seats[1].id, SeatStatus.HELD, SeatStatus.AVAILABLE)
        db.commit()

        with pytest.raises(InternalInconsistencyError):
            holds.confirm(db, hold.id, uuid.uuid4(), now=T0)

        db.expire_all()
        assert holds.get_hold(db, hold.id).state == HoldState.PENDING
        assert _fresh_seat(db, seats[0].id).status == SeatStatus.HELD


class TestExpire:
    def test_expire_before_deadline_conflicts(self, db, event, seats, alice):
        hold = holds.reserve(db, event.id, alice.id, [seats[0].id], now=T0).hold
        with pytest.raises(ConflictError):
            holds.expire(db, hold.id, now=T0 + timedelta(seconds=10))
        assert _fresh_seat(db, seats[0].id).status == SeatStatus.HELD

    def test_expire_after_deadline_frees_seats(self, db, event, seats, alice):
        result = holds.reserve(db, event.id, alice.id, [seats[0].id, seats[1].id], ttl_seconds=60, now=T0)
        hold = result.hold

        expired = holds.expire(db, hold.id, now=T0 + timedelta(seconds=61))

        assert expired.state == HoldState.EXPIRED
        assert expired.expired_at is not None
        assert _fresh_seat(db, seats[0].id).status == SeatStatus.AVAILABLE
        with pytest.raises(ConflictError):
            holds.confirm(db, hold.id, uuid.uuid4())

    def test_zero_ttl_is_immediately_expirable(self, db, event, seats, alice):
        hold = holds.reserve(db, event.id, alice.id, [seats[0].id], ttl_seconds=0, now=T0).hold
        assert holds.expire(db, hold.id, now=T0).state == HoldState.EXPIRED

    def test_terminal_holds_never_change(self, db, event, seats, alice):
        hold = holds.reserve(db, event.id, alice.id, [seats[0].id], ttl_seconds=0, now=T0).hold
        holds.release(db, hold.id, alice.id, now=T0)
        with pytest.raises(ConflictError):
            holds.expire(db, hold.id, now=T0 + timedelta(days=1))
        db.expire_all()
        assert holds.get_hold(db, hold.id).state == HoldState.RELEASED


class TestListHolds:
    def test_newest_first_with_status_filter(self, db, event, seats, alice, bob):
        first = holds.reserve(db, event.id, alice.id, [seats[0].id], now=T0).hold.id
        second = holds.reserve(db, event.id, alice.id, [seats[1].id], now=T0 + timedelta(minutes=1)).hold.id
        holds.reserve(db, event.id, bob.id, [seats[2].id], now=T0)
        holds.release(db, first, alice.id)

        items, total = holds.list_holds(db, alice.id)
        assert total == 2
        assert [h.id for h in items] == [second, first]

        items, total = holds.list_holds(db, alice.id, status=HoldState.RELEASED)
        assert total == 1 and items[0].id == first

        items, total = holds.list_holds(db, alice.id, page=2, limit=1)
        assert total == 2 and [h.id for h in items] == [first]


def test_every_held_seat_belongs_to_exactly_one_pending_hold(db, event, seats, alice, bob):
    a = holds.reserve(db, event.id, alice.id, [seats[0].id, seats[1].id], now=T0).hold.id
    b = holds.reserve(db, event.id, bob.id, [seats[2].id], now=T0).hold.id
    holds.release(db, b, bob.id)
    holds.reserve(db, event.id, bob.id, [seats[2].id, seats[3].id], now=T0)
    holds.confirm(db, a, uuid.uuid4(), now=T0)

    db.expire_all()
    pending = {h.id: set(h.seat_ids) for h in db.query(SeatHold).filter(SeatHold.state == HoldState.PENDING)}
    held = db.query(Seat).filter(Seat.status == SeatStatus.HELD).all()
    assert {s.id for s in held} == set().union(*pending.values())
    for seat in held:
        assert seat.id in pending[seat.hold_id]


def test_concurrent_reserves_of_one_seat_have_a_single_winner(tmp_path):
    # A file database so every worker gets its own connection
    race_engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=race_engine)
    RaceSession = sessionmaker(autocommit=False, autoflush=False, bind=race_engine)

    setup = RaceSession()
    venue = Venue(name="Riverside Arena")
    setup.add(venue)
    setup.commit()
    event = Event(venue_id=venue.id, title="Spring Concert", currency="USD")
    setup.add(event)
    setup.commit()
    [seat] = add_seats(setup, event, 1, price=Decimal("25.00"))
    event_id, seat_id = event.id, seat.id
    setup.close()

    workers = 8
    barrier = threading.Barrier(workers)
    outcomes = []
    lock = threading.Lock()

    def attempt():
        session = RaceSession()
        try:
            barrier.wait()
            try:
                holds.reserve(session, event_id, uuid.uuid4(), [seat_id])
                outcome = "won"
            except ConflictError as exc:
                outcome = ("conflict", exc.offenders)
        finally:
            session.close()
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=attempt) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    try:
        assert len(outcomes) == workers
        assert outcomes.count("won") == 1
        assert outcomes.count(("conflict", [seat_id])) == workers - 1

        check = RaceSession()
        try:
            pending = check.query(SeatHold).filter(SeatHold.state == HoldState.PENDING).all()
            assert len(pending) == 1
            after = check.get(Seat, seat_id)
            assert after.status == SeatStatus.HELD
            assert after.hold_id == pending[0].id
        finally:
            check.close()
    finally:
        race_engine.dispose()
