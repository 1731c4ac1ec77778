"""
Pricing tier catalogs.

A venue owns a default catalog; an event may override it with its own. The
effective catalog of an event is the event's live tiers if it has any,
otherwise its venue's live tiers. The two are never mixed.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, InvalidRequestError
from app.models.event import Event
from app.models.pricing_tier import PricingTier
from app.models.venue import Venue
from app.schemas.user import CurrentUser
from app.services import audit
from app.services.guards import ensure_event_organizer, ensure_venue_manager

logger = logging.getLogger(__name__)

DEFAULT_VENUE_TIER_COLOR = "#CCCCCC"
DEFAULT_EVENT_TIER_COLOR = "#888888"


@dataclass
class TierCatalog:
    source: str  # "event" or "venue"
    tiers: List[PricingTier] = field(default_factory=list)

    def price_map(self) -> Dict[str, Decimal]:
        return {tier.name: Decimal(tier.price) for tier in self.tiers}


def resolve_price(seat, tier_prices: Dict[str, Decimal]) -> Decimal:
    """Per-seat override first, then the seat's tier in the effective catalog, else zero."""
    if seat.price is not None:
        return Decimal(seat.price)
    if seat.price_tier and seat.price_tier in tier_prices:
        return tier_prices[seat.price_tier]
    return Decimal("0")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def _live_venue_tiers(db: Session, venue_id: UUID):
    return db.query(PricingTier).filter(
        PricingTier.venue_id == venue_id,
        PricingTier.is_venue_tier == True,  # noqa: E712
        PricingTier.deleted_at.is_(None),
    )


def venue_tiers(db: Session, venue: Venue) -> List[PricingTier]:
    return (
        _live_venue_tiers(db, venue.id)
        .order_by(PricingTier.price.desc(), PricingTier.name)
        .all()
    )


def event_tiers(db: Session, event: Event) -> List[PricingTier]:
    return (
        db.query(PricingTier)
        .filter(
            PricingTier.event_id == event.id,
            PricingTier.is_venue_tier == False,  # noqa: E712
            PricingTier.deleted_at.is_(None),
        )
        .order_by(PricingTier.price.desc(), PricingTier.name)
        .all()
    )


def effective_tiers(db: Session, event: Event) -> TierCatalog:
    tiers = event_tiers(db, event)
    if tiers:
        return TierCatalog("event", tiers)

    if event.venue_id is not None:
        tiers = (
            _live_venue_tiers(db, event.venue_id)
            .order_by(PricingTier.price.desc(), PricingTier.name)
            .all()
        )
        if tiers:
            return TierCatalog("venue", tiers)

    return TierCatalog("event", [])


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def _validate_tier_entries(tiers: List[dict]) -> None:
    if not tiers:
        raise InvalidRequestError("Tiers must be a non-empty array")
    for entry in tiers:
        if not (entry.get("name") or "").strip():
            raise InvalidRequestError("Every tier needs a name")
        if entry.get("price") is None or Decimal(entry["price"]) < 0:
            raise InvalidRequestError(f"Tier '{entry['name']}' needs a non-negative price")


def _duplicates(values: Iterable) -> List:
    seen, dupes = set(), []
    for value in values:
        if value in seen:
            dupes.append(value)
        seen.add(value)
    return dupes


def replace_venue_tiers(
    db: Session,
    venue: Venue,
    tiers: List[dict],
    user: CurrentUser,
    expected_tier_ids: Optional[List[UUID]] = None,
) -> List[PricingTier]:
    """
    Replace the venue's live catalog with ``tiers`` in one transaction.

    The catalog read at the start is the snapshot: it is soft-deleted with a
    conditional UPDATE, and a rowcount short of the snapshot means another
    editor got there first. ``expected_tier_ids`` lets the caller pin the
    snapshot they were looking at.
    """
    ensure_venue_manager(venue, user)
    _validate_tier_entries(tiers)
    dupes = _duplicates(t["name"].strip() for t in tiers)
    if dupes:
        raise InvalidRequestError("Duplicate tier names: " + ", ".join(sorted(set(dupes))))

    # Serialises concurrent editors of one venue on backends with row locks
    db.query(Venue).filter(Venue.id == venue.id).with_for_update().first()

    snapshot = [row.id for row in _live_venue_tiers(db, venue.id).with_entities(PricingTier.id).all()]
    if expected_tier_ids is not None and set(expected_tier_ids) != set(snapshot):
        db.rollback()
        raise ConflictError("Pricing tiers changed since they were read; refresh and retry")

    now = datetime.now(timezone.utc)
    if snapshot:
        result = db.execute(
            update(PricingTier)
            .where(PricingTier.id.in_(snapshot), PricingTier.deleted_at.is_(None))
            .values(deleted_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(snapshot):
            db.rollback()
            raise ConflictError("Pricing tiers changed since they were read; refresh and retry")

    created = [
        PricingTier(
            name=t["name"].strip(),
            description=t.get("description"),
            price=t["price"],
            color=t.get("color") or DEFAULT_VENUE_TIER_COLOR,
            section=t.get("section"),
            venue_id=venue.id,
            event_id=None,
            is_venue_tier=True,
        )
        for t in tiers
    ]
    db.add_all(created)
    audit.log_action(
        db,
        "UPDATE_VENUE_PRICING_TIERS",
        "seat_pricing_tiers",
        resource_id=venue.id,
        user_id=user.id,
        new_values={
            "venue_id": str(venue.id),
            "replaced": [str(i) for i in snapshot],
            "tiers": [{"name": t.name, "price": str(t.price)} for t in created],
        },
    )
    db.commit()
    logger.info("Venue %s pricing catalog replaced: %d -> %d tiers", venue.id, len(snapshot), len(created))
    return sorted(created, key=lambda t: (-Decimal(t.price), t.name))


def upsert_event_tiers(
    db: Session,
    event: Event,
    tiers: List[dict],
    user: CurrentUser,
) -> List[Tuple[PricingTier, bool]]:
    """
    Update tiers that carry an id, insert the rest. Tiers not mentioned are left alone.

    Returns ``(tier, created)`` pairs in request order.
    """
    ensure_event_organizer(event, user)
    _validate_tier_entries(tiers)

    dupe_ids = _duplicates(t["id"] for t in tiers if t.get("id"))
    if dupe_ids:
        raise InvalidRequestError("Duplicate tier ids: " + ", ".join(sorted(str(i) for i in set(dupe_ids))))
    dupe_names = _duplicates(t["name"].strip() for t in tiers if not t.get("id"))
    if dupe_names:
        raise InvalidRequestError("Duplicate tier names: " + ", ".join(sorted(set(dupe_names))))

    results = []
    for entry in tiers:
        if entry.get("id"):
            tier = (
                db.query(PricingTier)
                .filter(
                    PricingTier.id == entry["id"],
                    PricingTier.event_id == event.id,
                    PricingTier.is_venue_tier == False,  # noqa: E712
                )
                .first()
            )
            if not tier:
                db.rollback()
                raise InvalidRequestError(f"Tier {entry['id']} is not a pricing tier of this event")
            tier.name = entry["name"].strip()
            tier.price = entry["price"]
            tier.color = entry.get("color") or tier.color
            tier.section = entry.get("section")
            tier.description = entry.get("description")
            tier.deleted_at = None
            results.append((tier, False))
        else:
            tier = PricingTier(
                name=entry["name"].strip(),
                description=entry.get("description"),
                price=entry["price"],
                color=entry.get("color") or DEFAULT_EVENT_TIER_COLOR,
                section=entry.get("section"),
                event_id=event.id,
                venue_id=None,
                is_venue_tier=False,
            )
            db.add(tier)
            results.append((tier, True))

    db.flush()
    audit.log_action(
        db,
        "UPDATE_EVENT_PRICING_TIERS",
        "seat_pricing_tiers",
        resource_id=event.id,
        user_id=user.id,
        new_values={
            "event_id": str(event.id),
            "created": [str(t.id) for t, created in results if created],
            "updated": [str(t.id) for t, created in results if not created],
        },
    )
    db.commit()
    for tier, _ in results:
        db.refresh(tier)
    logger.info("Event %s pricing tiers upserted: %d entries", event.id, len(results))
    return results
