from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_pricing_editor, get_current_venue_manager
from app.schemas.pricing import (
    EventPricingUpdateResponse,
    EventTierResult,
    EventTiersUpdate,
    PricingTier as PricingTierSchema,
    VenuePricingResponse,
    VenueTiersUpdate,
)
from app.schemas.user import CurrentUser
from app.services import pricing
from app.services.guards import get_event, get_venue

router = APIRouter(prefix="/seats", tags=["Admin - Pricing"])


@router.post("/venue/{venue_id}/pricing-tiers", response_model=VenuePricingResponse)
def replace_venue_pricing_tiers(
    venue_id: UUID,
    body: VenueTiersUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_venue_manager),
):
    venue = get_venue(db, venue_id)
    tiers = pricing.replace_venue_tiers(
        db,
        venue,
        [t.model_dump() for t in body.tiers],
        current_user,
        expected_tier_ids=body.expected_tier_ids,
    )
    return VenuePricingResponse(venue_id=venue.id, pricing_tiers=tiers)


@router.post("/event/{event_id}/pricing", response_model=EventPricingUpdateResponse)
def upsert_event_pricing(
    event_id: UUID,
    body: EventTiersUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_pricing_editor),
):
    event = get_event(db, event_id)
    results = pricing.upsert_event_tiers(db, event, [t.model_dump() for t in body.tiers], current_user)
    return EventPricingUpdateResponse(
        event_id=event.id,
        results=[
            EventTierResult(
                **PricingTierSchema.model_validate(tier).model_dump(),
                created=created,
                updated=not created,
            )
            for tier, created in results
        ],
    )
