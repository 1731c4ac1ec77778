from typing import Optional, List, Literal
from pydantic import BaseModel, Field, UUID4
from decimal import Decimal

from app.schemas.common import CamelModel


# Tier: fields accepted on write
class PricingTierBase(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    price: Decimal = Field(ge=0)
    color: Optional[str] = Field(default=None, max_length=16)
    section: Optional[str] = Field(default=None, max_length=64)
    description: Optional[str] = Field(default=None, max_length=255)


class VenueTierIn(PricingTierBase):
    pass


class EventTierIn(PricingTierBase):
    id: Optional[UUID4] = None


class PricingTier(PricingTierBase):
    id: UUID4
    color: str
    venue_id: Optional[UUID4] = None
    event_id: Optional[UUID4] = None
    is_venue_tier: bool

    class Config:
        from_attributes = True


# POST /seats/venue/{id}/pricing-tiers
class VenueTiersUpdate(CamelModel):
    tiers: List[VenueTierIn]
    expected_tier_ids: Optional[List[UUID4]] = None


class VenuePricingResponse(CamelModel):
    venue_id: UUID4
    pricing_tiers: List[PricingTier]


# POST /seats/event/{id}/pricing
class EventTiersUpdate(CamelModel):
    tiers: List[EventTierIn]


class EventTierResult(PricingTier):
    created: bool = False
    updated: bool = False


class EventPricingUpdateResponse(CamelModel):
    event_id: UUID4
    results: List[EventTierResult]


class EventPricingResponse(CamelModel):
    event_id: UUID4
    pricing_tiers: List[PricingTier]
    source: Literal["event", "venue"]
