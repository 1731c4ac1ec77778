from typing import Optional, List
from pydantic import BaseModel, UUID4
from decimal import Decimal
from datetime import datetime
from uuid import UUID

from app.models.hold import HoldState
from app.schemas.common import CamelModel, Pagination
from app.schemas.seat import Seat


# Reserve (POST /seats/reserve)
class ReserveRequest(CamelModel):
    event_id: UUID4
    seat_ids: List[UUID4]


class ReserveResponse(CamelModel):
    reservation_id: UUID4
    seats: List[Seat]
    expires_at: datetime
    total_price: Decimal
    currency: Optional[str] = None


# Release (POST /seats/release)
class ReleaseRequest(CamelModel):
    reservation_id: UUID4


class ReleaseResponse(CamelModel):
    reservation_id: UUID4
    status: HoldState
    released_seats_count: int


# Confirm (POST /seats/confirm): payment ids come from the payment subsystem
class ConfirmRequest(CamelModel):
    reservation_id: UUID4
    payment_id: UUID


class ConfirmResponse(CamelModel):
    reservation_id: UUID4
    payment_id: UUID
    status: HoldState
    confirmed_seats_count: int


# --- Reservation history (GET /seats/reservations) ---

class Reservation(BaseModel):
    id: UUID4
    event_id: UUID4
    event_title: Optional[str] = None
    user_id: UUID
    status: HoldState
    seat_ids: List[UUID4]
    seat_count: int
    total_price: Decimal
    currency: Optional[str] = None
    expires_at: datetime
    payment_id: Optional[UUID] = None
    created_at: datetime
    released_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None


class ReservationListResponse(BaseModel):
    reservations: List[Reservation]
    pagination: Pagination
