"""
Seat holds (reservations): reserve, release, confirm and expire.

A hold moves ``pending -> confirmed | released | expired`` and never leaves a
terminal state. Each state change is a conditional UPDATE on
``state = 'pending'``, so a confirm racing the sweeper or a release has
exactly one winner. Each operation is one transaction: on any failure the
session is rolled back and nothing it touched is left changed.
"""
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, NamedTuple, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.core.config import settings
from app.core.errors import (
    ConflictError,
    ForbiddenError,
    InternalInconsistencyError,
    InvalidRequestError,
    NotFoundError,
)
from app.models.hold import HoldState, SeatHold, SeatHoldSeat
from app.models.seat import Seat, SeatStatus
from app.services import audit, pricing, seat_store
from app.services.guards import get_event

logger = logging.getLogger(__name__)


class ReserveResult(NamedTuple):
    hold: SeatHold
    seats: List[Seat]
    expires_at: datetime
    total_price: Decimal
    currency: Optional[str]


class ReleaseResult(NamedTuple):
    hold: SeatHold
    released_count: int


class ConfirmResult(NamedTuple):
    hold: SeatHold
    confirmed_count: int


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _set_pending_hold_state(db: Session, hold_id: UUID, values: dict, *conditions) -> bool:
    stmt = (
        update(SeatHold)
        .where(SeatHold.id == hold_id, SeatHold.state == HoldState.PENDING, *conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount == 1


def _load_requested_seats(db: Session, seat_ids: List[UUID]) -> List[Seat]:
    return (
        db.query(Seat)
        .filter(Seat.id.in_(seat_ids), Seat.deleted_at.is_(None))
        .all()
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_hold(db: Session, hold_id: UUID) -> SeatHold:
    hold = (
        db.query(SeatHold)
        .options(selectinload(SeatHold.items))
        .filter(SeatHold.id == hold_id)
        .first()
    )
    if not hold:
        raise NotFoundError("Reservation not found")
    return hold


def list_holds(
    db: Session,
    user_id: UUID,
    status: Optional[HoldState] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[SeatHold], int]:
    query = db.query(SeatHold).filter(SeatHold.user_id == user_id)
    if status:
        query = query.filter(SeatHold.state == status)

    total = query.count()
    holds = (
        query.options(selectinload(SeatHold.items), selectinload(SeatHold.event))
        .order_by(SeatHold.created_at.desc(), SeatHold.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return holds, total


# ---------------------------------------------------------------------------
# Reserve
# ---------------------------------------------------------------------------

def reserve(
    db: Session,
    event_id: UUID,
    user_id: UUID,
    seat_ids: List[UUID],
    ttl_seconds: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ReserveResult:
    """
    Put a set of available seats of one event on hold for ``user_id``.

    All-or-nothing: either every seat becomes ``held`` under one new pending
    hold, or no seat changes and no hold row exists.
    """
    now = now or _utcnow()
    ttl = settings.HOLD_TTL_SECONDS if ttl_seconds is None else ttl_seconds
    if ttl < 0:
        raise InvalidRequestError("Hold TTL cannot be negative")

    ids = list(dict.fromkeys(seat_ids or []))
    if not ids:
        raise InvalidRequestError("seatIds must be a non-empty array")
    if len(ids) > settings.MAX_SEATS_PER_HOLD:
        raise InvalidRequestError(
            f"Cannot reserve more than {settings.MAX_SEATS_PER_HOLD} seats at once"
        )

    event = get_event(db, event_id)
    seats = _load_requested_seats(db, ids)

    foreign = [s.id for s in seats if s.event_id != event.id]
    if foreign:
        raise InvalidRequestError("All seats must belong to the requested event")

    found = {s.id for s in seats}
    missing = [i for i in ids if i not in found]
    if missing:
        raise ConflictError("Some seats do not exist", offenders=missing)

    unavailable = [s.id for s in seats if s.status != SeatStatus.AVAILABLE]
    if unavailable:
        raise ConflictError("Some seats are no longer available", offenders=unavailable)

    tier_prices = pricing.effective_tiers(db, event).price_map()
    total = sum((pricing.resolve_price(s, tier_prices) for s in seats), Decimal("0"))
    expires_at = now + timedelta(seconds=ttl)

    hold = SeatHold(
        id=uuid4(),
        event_id=event.id,
        user_id=user_id,
        state=HoldState.PENDING,
        total_price=total,
        currency=event.currency,
        expires_at=expires_at,
        created_at=now,
        items=[SeatHoldSeat(seat_id=i) for i in sorted(ids)],
    )
    db.add(hold)
    db.flush()

    losers = seat_store.transition_many(
        db,
        ids,
        SeatStatus.AVAILABLE,
        SeatStatus.HELD,
        {"holder_id": user_id, "hold_id": hold.id, "held_at": now},
    )
    if losers:
        db.rollback()
        logger.info("Reserve for user %s lost seats %s to a concurrent writer", user_id, losers)
        raise ConflictError("Some seats are no longer available", offenders=losers)

    audit.log_action(
        db,
        "SEATS_RESERVED",
        "seats",
        resource_id=hold.id,
        user_id=user_id,
        new_values={
            "event_id": str(event.id),
            "seat_ids": [str(i) for i in sorted(ids)],
            "expires_at": expires_at.isoformat(),
        },
    )
    db.commit()
    logger.info("Hold %s created: %d seats for user %s, expires %s", hold.id, len(ids), user_id, expires_at)

    seats = seat_store.load_seats(db, event.id, ids=ids)
    return ReserveResult(hold, seats, expires_at, total, event.currency)


# ---------------------------------------------------------------------------
# Release
# ---------------------------------------------------------------------------

def release(
    db: Session,
    hold_id: UUID,
    user_id: UUID,
    now: Optional[datetime] = None,
) -> ReleaseResult:
    """Give a pending hold's seats back. Releasing an already released or expired hold is a no-op."""
    now = now or _utcnow()
    hold = get_hold(db, hold_id)
    if hold.user_id != user_id:
        raise ForbiddenError("Reservation belongs to another user")

    if hold.state in (HoldState.RELEASED, HoldState.EXPIRED):
        return ReleaseResult(hold, 0)
    if hold.state == HoldState.CONFIRMED:
        raise ConflictError("Reservation is already confirmed", current_state=hold.state.value)

    member_ids = hold.seat_ids
    if not _set_pending_hold_state(db, hold.id, {"state": HoldState.RELEASED, "released_at": now}):
        db.rollback()
        hold = get_hold(db, hold_id)
        if hold.state in (HoldState.RELEASED, HoldState.EXPIRED):
            return ReleaseResult(hold, 0)
        raise ConflictError("Reservation is no longer pending", current_state=hold.state.value)

    released = seat_store.release_held(db, member_ids, hold.id)
    audit.log_action(
        db,
        "SEATS_RELEASED",
        "seats",
        resource_id=hold.id,
        user_id=user_id,
        new_values={"seat_ids": [str(i) for i in member_ids], "released": released},
    )
    db.commit()
    logger.info("Hold %s released by user %s (%d seats)", hold.id, user_id, released)
    return ReleaseResult(get_hold(db, hold_id), released)


# ---------------------------------------------------------------------------
# Confirm
# ---------------------------------------------------------------------------

def confirm(
    db: Session,
    hold_id: UUID,
    payment_id: UUID,
    now: Optional[datetime] = None,
    user_id: Optional[UUID] = None,
) -> ConfirmResult:
    """
    Turn a pending hold into a sale paid by ``payment_id``.

    Confirming again with the same payment returns the confirmed hold. A hold
    past its expiry but not yet swept can still be confirmed; whichever of
    confirm and expire flips the state first wins. A payment can confirm only
    one hold.
    """
    now = now or _utcnow()
    hold = get_hold(db, hold_id)
    if user_id is not None and hold.user_id != user_id:
        raise ForbiddenError("Reservation belongs to another user")

    if hold.state == HoldState.CONFIRMED and hold.payment_id == payment_id:
        return ConfirmResult(hold, len(hold.seat_ids))
    if hold.state != HoldState.PENDING:
        raise ConflictError(
            f"Reservation is {hold.state.value} and cannot be confirmed",
            current_state=hold.state.value,
        )

    spent = (
        db.query(SeatHold.id)
        .filter(SeatHold.payment_id == payment_id, SeatHold.id != hold.id)
        .first()
    )
    if spent:
        raise ConflictError("Payment already confirmed another reservation")

    member_ids = hold.seat_ids
    owner_id = hold.user_id
    try:
        won = _set_pending_hold_state(
            db,
            hold.id,
            {"state": HoldState.CONFIRMED, "payment_id": payment_id, "confirmed_at": now},
        )
    except IntegrityError:
        # Another confirm with this payment committed first
        db.rollback()
        raise ConflictError("Payment already confirmed another reservation")
    if not won:
        db.rollback()
        hold = get_hold(db, hold_id)
        if hold.state == HoldState.CONFIRMED and hold.payment_id == payment_id:
            return ConfirmResult(hold, len(hold.seat_ids))
        raise ConflictError(
            f"Reservation is {hold.state.value} and cannot be confirmed",
            current_state=hold.state.value,
        )

    losers = seat_store.transition_many(
        db,
        member_ids,
        SeatStatus.HELD,
        SeatStatus.SOLD,
        {"sold_to": owner_id, "sold_at": now, "payment_id": payment_id},
        expected_hold_id=hold.id,
    )
    if losers:
        db.rollback()
        logger.error(
            "Hold %s is pending but seats %s are not held by it; confirm aborted",
            hold_id, losers,
        )
        raise InternalInconsistencyError("Reserved seats are no longer held by this reservation")

    audit.log_action(
        db,
        "SEATS_CONFIRMED",
        "seats",
        resource_id=hold.id,
        user_id=owner_id,
        new_values={"payment_id": str(payment_id), "seat_ids": [str(i) for i in member_ids]},
    )
    db.commit()
    logger.info("Hold %s confirmed with payment %s (%d seats)", hold_id, payment_id, len(member_ids))
    return ConfirmResult(get_hold(db, hold_id), len(member_ids))


# ---------------------------------------------------------------------------
# Expire
# ---------------------------------------------------------------------------

def expire(db: Session, hold_id: UUID, now: Optional[datetime] = None) -> SeatHold:
    """Expire a pending hold whose deadline has passed and free its seats."""
    now = now or _utcnow()
    won = _set_pending_hold_state(
        db,
        hold_id,
        {"state": HoldState.EXPIRED, "expired_at": now},
        SeatHold.expires_at <= now,
    )
    if not won:
        db.rollback()
        hold = get_hold(db, hold_id)
        raise ConflictError(
            "Reservation is not a pending reservation past its expiry",
            current_state=hold.state.value,
        )

    hold = get_hold(db, hold_id)
    member_ids = hold.seat_ids
    released = seat_store.release_held(db, member_ids, hold.id)
    audit.log_action(
        db,
        "SEATS_EXPIRED",
        "seats",
        resource_id=hold.id,
        user_id=hold.user_id,
        new_values={"seat_ids": [str(i) for i in member_ids], "released": released},
    )
    db.commit()
    logger.info("Hold %s expired (%d seats released)", hold_id, released)
    return get_hold(db, hold_id)
