from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.models.seat import SeatStatus
from app.schemas.common import Pagination
from app.schemas.pricing import EventPricingResponse, VenuePricingResponse
from app.schemas.seat import (
    SeatListResponse,
    SeatMapResponse,
    SeatStatistics,
    SectionSeatsResponse,
)
from app.services import pricing, seat_map
from app.services.guards import get_event, get_venue

router = APIRouter(prefix="/seats", tags=["Seats"])


# ---------------------------------------------------------------------------
# Event seats
# ---------------------------------------------------------------------------


@router.get("/event/{event_id}", response_model=SeatListResponse)
def list_event_seats(
    event_id: UUID,
    section: Optional[str] = Query(None),
    row: Optional[str] = Query(None),
    status: Optional[SeatStatus] = Query(None),
    db: Session = Depends(get_db),
):
    seats = seat_map.event_seats(db, event_id, section=section, row=row, status=status)
    return SeatListResponse(event_id=event_id, seats=seats, total_seats=len(seats))


@router.get("/event/{event_id}/map", response_model=SeatMapResponse)
def get_seat_map(event_id: UUID, db: Session = Depends(get_db)):
    return seat_map.seat_map(db, event_id)


@router.get("/event/{event_id}/section/{section}", response_model=SectionSeatsResponse)
def get_section_seats(
    event_id: UUID,
    section: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    seats, statistics, total = seat_map.seats_by_section(db, event_id, section, page=page, limit=limit)
    return SectionSeatsResponse(
        section=section,
        seats=seats,
        statistics=statistics,
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/event/{event_id}/stats", response_model=SeatStatistics)
def get_event_stats(event_id: UUID, db: Session = Depends(get_db)):
    return seat_map.event_stats(db, event_id)


# ---------------------------------------------------------------------------
# Pricing tiers
# ---------------------------------------------------------------------------


@router.get("/event/{event_id}/pricing", response_model=EventPricingResponse)
def get_event_pricing(event_id: UUID, db: Session = Depends(get_db)):
    event = get_event(db, event_id)
    catalog = pricing.effective_tiers(db, event)
    return EventPricingResponse(event_id=event.id, pricing_tiers=catalog.tiers, source=catalog.source)


@router.get("/venue/{venue_id}/pricing-tiers", response_model=VenuePricingResponse)
def get_venue_pricing_tiers(venue_id: UUID, db: Session = Depends(get_db)):
    venue = get_venue(db, venue_id)
    return VenuePricingResponse(venue_id=venue.id, pricing_tiers=pricing.venue_tiers(db, venue))
