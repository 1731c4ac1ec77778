from typing import Dict, Optional, List
from pydantic import BaseModel, Field, UUID4, field_validator
from decimal import Decimal
from datetime import datetime
from uuid import UUID

from app.models.seat import SeatStatus
from app.schemas.common import CamelModel, Pagination
from app.schemas.pricing import PricingTier


# Seat: one entry of a create-batch body
class SeatDescriptor(BaseModel):
    section: str = Field(min_length=1, max_length=50)
    row: str = Field(min_length=1, max_length=10)
    seat_number: str = Field(min_length=1, max_length=20)
    price: Optional[Decimal] = Field(default=None, ge=0)
    price_tier: Optional[str] = None
    accessibility_type: Optional[str] = None

    @field_validator("seat_number", "row", mode="before")
    @classmethod
    def coerce_label(cls, v):
        if isinstance(v, int):
            return str(v)
        return v


class Seat(BaseModel):
    id: UUID4
    event_id: UUID4
    section: str
    row: str
    seat_number: str
    price: Optional[Decimal] = None
    price_tier: Optional[str] = None
    accessibility_type: Optional[str] = None
    status: SeatStatus
    holder_id: Optional[UUID] = None
    hold_id: Optional[UUID4] = None
    held_at: Optional[datetime] = None
    sold_to: Optional[UUID] = None
    sold_at: Optional[datetime] = None
    payment_id: Optional[UUID] = None

    class Config:
        from_attributes = True


# Bulk seat creation (POST /seats/create-batch)
class SeatBatchCreate(CamelModel):
    event_id: UUID4
    seats_data: List[SeatDescriptor]


class SeatBatchCreateResponse(BaseModel):
    seats: List[Seat]
    count: int


class SeatListResponse(CamelModel):
    event_id: UUID4
    seats: List[Seat]
    total_seats: int


# --- Statistics ---

class SeatStatistics(BaseModel):
    total_seats: int
    available_seats: int
    held_seats: int
    sold_seats: int
    blocked_seats: int
    maintenance_seats: int
    accessible_seats: int
    total_revenue: Decimal
    average_price: Optional[Decimal] = None
    occupancy_rate: int


class SectionStatistics(BaseModel):
    total: int
    available: int
    held: int
    sold: int


# --- Seat Map ---

class SeatMapResponse(CamelModel):
    event_id: UUID4
    seats: List[Seat]
    seats_by_section: Dict[str, List[Seat]]
    pricing_tiers: List[PricingTier]
    source: str
    statistics: SeatStatistics


class SectionSeatsResponse(CamelModel):
    section: str
    seats: List[Seat]
    statistics: SectionStatistics
    pagination: Pagination
