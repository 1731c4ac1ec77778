"""Loaders for the read-only venue/event rows, and the ownership policies that go with them."""
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.errors import ForbiddenError, NotFoundError
from app.models.event import Event
from app.models.venue import Venue
from app.schemas.user import CurrentUser, UserRole


def get_event(db: Session, event_id: UUID) -> Event:
    event = (
        db.query(Event)
        .filter(Event.id == event_id, Event.deleted_at.is_(None))
        .first()
    )
    if not event:
        raise NotFoundError("Event not found")
    return event


def get_venue(db: Session, venue_id: UUID) -> Venue:
    venue = (
        db.query(Venue)
        .filter(Venue.id == venue_id, Venue.deleted_at.is_(None))
        .first()
    )
    if not venue:
        raise NotFoundError("Venue not found")
    return venue


def ensure_venue_manager(venue: Venue, user: CurrentUser) -> None:
    if user.role == UserRole.ADMIN:
        return
    if venue.manager_id is None or venue.manager_id != user.id:
        raise ForbiddenError("Only the venue manager can manage this venue")


def ensure_event_organizer(event: Event, user: CurrentUser) -> None:
    if user.role == UserRole.ADMIN:
        return
    if event.organizer_id is None or event.organizer_id != user.id:
        raise ForbiddenError("Only the event organizer or admin can update pricing tiers")
