"""Read-only views over an event's seats: flat lists, the section map, and statistics."""
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.seat import Seat, SeatStatus
from app.services import pricing, seat_store
from app.services.guards import get_event


def occupancy_rate(sold: int, total: int) -> int:
    """Sold share of all seats as a whole percentage, rounded half up."""
    if not total:
        return 0
    rate = Decimal(sold) * 100 / Decimal(total)
    return int(rate.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def event_seats(
    db: Session,
    event_id: UUID,
    section: Optional[str] = None,
    row: Optional[str] = None,
    status: Optional[SeatStatus] = None,
) -> List[Seat]:
    event = get_event(db, event_id)
    return seat_store.load_seats(db, event.id, section=section, row=row, status=status)


def event_stats(db: Session, event_id: UUID) -> Dict[str, object]:
    event = get_event(db, event_id)
    stats = seat_store.seat_stats(db, event)
    stats["occupancy_rate"] = occupancy_rate(stats["sold_seats"], stats["total_seats"])
    return stats


def seat_map(db: Session, event_id: UUID) -> Dict[str, object]:
    event = get_event(db, event_id)
    seats = seat_store.load_seats(db, event.id)

    by_section: Dict[str, List[Seat]] = {}
    for seat in seats:
        by_section.setdefault(seat.section, []).append(seat)

    catalog = pricing.effective_tiers(db, event)
    stats = seat_store.seat_stats(db, event)
    stats["occupancy_rate"] = occupancy_rate(stats["sold_seats"], stats["total_seats"])

    return {
        "event_id": event.id,
        "seats": seats,
        "seats_by_section": by_section,
        "pricing_tiers": catalog.tiers,
        "source": catalog.source,
        "statistics": stats,
    }


def seats_by_section(
    db: Session,
    event_id: UUID,
    section: str,
    page: int = 1,
    limit: int = 50,
) -> Tuple[List[Seat], Dict[str, int], int]:
    """One page of a section's seats, the section's status counts, and its seat total."""
    event = get_event(db, event_id)
    base = db.query(Seat).filter(
        Seat.event_id == event.id,
        Seat.section == section,
        Seat.deleted_at.is_(None),
    )

    counts = dict(
        base.with_entities(Seat.status, func.count(Seat.id)).group_by(Seat.status).all()
    )
    total = sum(counts.values())
    seats = (
        base.order_by(Seat.row, Seat.seat_number)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    statistics = {
        "total": total,
        "available": counts.get(SeatStatus.AVAILABLE, 0),
        "held": counts.get(SeatStatus.HELD, 0),
        "sold": counts.get(SeatStatus.SOLD, 0),
    }
    return seats, statistics, total
