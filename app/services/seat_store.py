"""
Seat rows of an event and the only code paths that change their status.

Every status change is a conditional UPDATE (``WHERE id = :id AND status = :from``)
checked by rowcount, so two writers racing for one seat can never both win.
The status transitions here never commit; the caller owns the transaction.
``create_seats`` is the exception: it commits (or rolls back) its own batch.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, InvalidRequestError
from app.models.event import Event
from app.models.seat import Seat, SeatStatus
from app.services import audit, pricing

logger = logging.getLogger(__name__)

HOLD_STAMPS = ("holder_id", "hold_id", "held_at")


def _seat_key(descriptor: dict):
    return (descriptor["section"], descriptor["row"], str(descriptor["seat_number"]))


def _label(key) -> str:
    return "{}-{}-{}".format(*key)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

def create_seats(db: Session, event: Event, descriptors: List[dict], user_id: Optional[UUID] = None) -> List[Seat]:
    """
    Bulk-create seats for an event, all ``available``.

    ``descriptors`` are dicts with section, row, seat_number and the optional
    price, price_tier and accessibility_type. The batch is all-or-nothing:
    a duplicate location, within the batch or against existing rows, rejects it.
    """
    if not descriptors:
        raise InvalidRequestError("Seats data must be a non-empty array")

    seen = set()
    duplicates = []
    for descriptor in descriptors:
        key = _seat_key(descriptor)
        if key in seen:
            duplicates.append(key)
        seen.add(key)
    if duplicates:
        raise ConflictError(
            "Duplicate seats in batch: " + ", ".join(sorted(_label(k) for k in duplicates))
        )

    # The unique constraint also covers soft-deleted rows, so compare against all of them
    sections = {key[0] for key in seen}
    existing = {
        (s.section, s.row, s.seat_number)
        for s in db.query(Seat.section, Seat.row, Seat.seat_number)
        .filter(Seat.event_id == event.id, Seat.section.in_(sections))
        .all()
    }
    clashes = seen & existing
    if clashes:
        raise ConflictError(
            "Seats already exist: " + ", ".join(sorted(_label(k) for k in clashes))
        )

    seats = [
        Seat(
            event_id=event.id,
            section=d["section"],
            row=d["row"],
            seat_number=str(d["seat_number"]),
            price=d.get("price"),
            price_tier=d.get("price_tier"),
            accessibility_type=d.get("accessibility_type"),
            status=SeatStatus.AVAILABLE,
        )
        for d in descriptors
    ]
    db.add_all(seats)
    try:
        db.flush()
    except IntegrityError:
        # Lost a race with another batch for the same locations
        db.rollback()
        raise ConflictError("Seats already exist for this event")

    audit.log_action(
        db,
        "SEATS_BATCH_CREATED",
        "seats",
        resource_id=event.id,
        user_id=user_id,
        new_values={"event_id": str(event.id), "count": len(seats)},
    )
    db.commit()
    logger.info("Created %d seats for event %s", len(seats), event.id)
    return seats


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def load_seats(
    db: Session,
    event_id: UUID,
    section: Optional[str] = None,
    row: Optional[str] = None,
    status: Optional[SeatStatus] = None,
    ids: Optional[Iterable[UUID]] = None,
) -> List[Seat]:
    query = db.query(Seat).filter(Seat.event_id == event_id, Seat.deleted_at.is_(None))
    if section:
        query = query.filter(Seat.section == section)
    if row:
        query = query.filter(Seat.row == row)
    if status:
        query = query.filter(Seat.status == status)
    if ids is not None:
        query = query.filter(Seat.id.in_(list(ids)))
    return query.order_by(Seat.section, Seat.row, Seat.seat_number).all()


def seat_stats(db: Session, event: Event) -> Dict[str, object]:
    """Counts per status plus revenue over sold seats, priced the way a hold prices them."""
    base = db.query(Seat).filter(Seat.event_id == event.id, Seat.deleted_at.is_(None))

    by_status = dict(
        base.with_entities(Seat.status, func.count(Seat.id)).group_by(Seat.status).all()
    )
    accessible = base.filter(Seat.accessibility_type.isnot(None)).count()

    tier_prices = pricing.effective_tiers(db, event).price_map()
    sold = base.filter(Seat.status == SeatStatus.SOLD).with_entities(Seat.price, Seat.price_tier).all()
    revenue = sum((pricing.resolve_price(s, tier_prices) for s in sold), Decimal("0"))
    average = (revenue / len(sold)).quantize(Decimal("0.01")) if sold else None

    return {
        "total_seats": sum(by_status.values()),
        "available_seats": by_status.get(SeatStatus.AVAILABLE, 0),
        "held_seats": by_status.get(SeatStatus.HELD, 0),
        "sold_seats": by_status.get(SeatStatus.SOLD, 0),
        "blocked_seats": by_status.get(SeatStatus.BLOCKED, 0),
        "maintenance_seats": by_status.get(SeatStatus.MAINTENANCE, 0),
        "accessible_seats": accessible,
        "total_revenue": revenue,
        "average_price": average,
    }


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------

def _transition_values(to_status: SeatStatus, stamps: Optional[dict]) -> dict:
    stamps = dict(stamps or {})
    values = {"status": to_status}

    if to_status == SeatStatus.HELD:
        if not stamps.get("holder_id") or not stamps.get("hold_id"):
            raise InvalidRequestError("A held seat needs holder_id and hold_id")
        values["holder_id"] = stamps["holder_id"]
        values["hold_id"] = stamps["hold_id"]
        values["held_at"] = stamps.get("held_at") or datetime.now(timezone.utc)
    elif to_status == SeatStatus.SOLD:
        if not stamps.get("sold_to") or not stamps.get("payment_id"):
            raise InvalidRequestError("A sold seat needs sold_to and payment_id")
        values.update({name: None for name in HOLD_STAMPS})
        values["sold_to"] = stamps["sold_to"]
        values["payment_id"] = stamps["payment_id"]
        values["sold_at"] = stamps.get("sold_at") or datetime.now(timezone.utc)
    else:
        values.update({name: None for name in HOLD_STAMPS})

    return values


def _compare_and_set(db: Session, seat_id: UUID, from_status: SeatStatus, values: dict,
                     expected_hold_id: Optional[UUID] = None) -> bool:
    stmt = update(Seat).where(
        Seat.id == seat_id,
        Seat.status == from_status,
        Seat.deleted_at.is_(None),
    )
    if expected_hold_id is not None:
        stmt = stmt.where(Seat.hold_id == expected_hold_id)
    stmt = stmt.values(**values).execution_options(synchronize_session=False)
    return db.execute(stmt).rowcount == 1


def _check_transition(from_status: SeatStatus, to_status: SeatStatus) -> None:
    if from_status == SeatStatus.SOLD:
        raise ConflictError("Sold seats cannot change status")
    if from_status == to_status:
        raise InvalidRequestError(f"Seat is already {to_status.value}")


def transition(
    db: Session,
    seat_id: UUID,
    from_status: SeatStatus,
    to_status: SeatStatus,
    stamps: Optional[dict] = None,
    expected_hold_id: Optional[UUID] = None,
) -> None:
    """
    Move one seat from ``from_status`` to ``to_status`` if it is still in ``from_status``.

    Raises ConflictError naming the seat when it was not. Session objects for
    the seat are not refreshed until the caller commits or expires them.
    """
    _check_transition(from_status, to_status)
    values = _transition_values(to_status, stamps)
    if not _compare_and_set(db, seat_id, from_status, values, expected_hold_id):
        raise ConflictError(f"Seat is no longer {from_status.value}", offenders=[seat_id])


def transition_many(
    db: Session,
    seat_ids: Iterable[UUID],
    from_status: SeatStatus,
    to_status: SeatStatus,
    stamps: Optional[dict] = None,
    expected_hold_id: Optional[UUID] = None,
) -> List[UUID]:
    """
    Apply ``transition`` to each seat in ascending id order.

    Stops at the first seat that loses and returns the losers (empty on
    success). Whatever was already applied must be rolled back by the caller.
    """
    _check_transition(from_status, to_status)
    values = _transition_values(to_status, stamps)
    for seat_id in sorted(set(seat_ids)):
        if not _compare_and_set(db, seat_id, from_status, values, expected_hold_id):
            return [seat_id]
    return []


def release_held(db: Session, seat_ids: Iterable[UUID], hold_id: UUID) -> int:
    """Return the given seats to ``available`` where they are still held by ``hold_id``."""
    ids = list(seat_ids)
    if not ids:
        return 0
    values = _transition_values(SeatStatus.AVAILABLE, None)
    stmt = (
        update(Seat)
        .where(
            Seat.id.in_(ids),
            Seat.status == SeatStatus.HELD,
            Seat.hold_id == hold_id,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    released = db.execute(stmt).rowcount
    if released != len(ids):
        logger.warning(
            "Hold %s released %d of %d member seats; the rest were no longer held by it",
            hold_id, released, len(ids),
        )
    return released
