from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_venue_manager
from app.schemas.seat import SeatBatchCreate, SeatBatchCreateResponse
from app.schemas.user import CurrentUser
from app.services import seat_store
from app.services.guards import ensure_venue_manager, get_event, get_venue

router = APIRouter(prefix="/seats", tags=["Admin - Seats"])


@router.post("/create-batch", response_model=SeatBatchCreateResponse, status_code=status.HTTP_201_CREATED)
def create_seats_batch(
    body: SeatBatchCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_venue_manager),
):
    """Bulk-create the seats of an event. Only the manager of the event's venue may do this."""
    event = get_event(db, body.event_id)
    venue = get_venue(db, event.venue_id)
    ensure_venue_manager(venue, current_user)

    seats = seat_store.create_seats(
        db,
        event,
        [d.model_dump() for d in body.seats_data],
        user_id=current_user.id,
    )
    return SeatBatchCreateResponse(seats=seats, count=len(seats))
