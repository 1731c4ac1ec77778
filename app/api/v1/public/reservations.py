from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_user
from app.core.errors import ForbiddenError
from app.models.hold import HoldState, SeatHold
from app.schemas.common import Pagination
from app.schemas.reservation import (
    ConfirmRequest,
    ConfirmResponse,
    ReleaseRequest,
    ReleaseResponse,
    ReserveRequest,
    ReserveResponse,
    Reservation,
    ReservationListResponse,
)
from app.schemas.user import CurrentUser
from app.services import holds, payment_listener

router = APIRouter(prefix="/seats", tags=["Reservations"])


def _serialize_hold(hold: SeatHold) -> Reservation:
    seat_ids = hold.seat_ids
    return Reservation(
        id=hold.id,
        event_id=hold.event_id,
        event_title=hold.event.title if hold.event else None,
        user_id=hold.user_id,
        status=hold.state,
        seat_ids=seat_ids,
        seat_count=len(seat_ids),
        total_price=hold.total_price,
        currency=hold.currency,
        expires_at=hold.expires_at,
        payment_id=hold.payment_id,
        created_at=hold.created_at,
        released_at=hold.released_at,
        confirmed_at=hold.confirmed_at,
        expired_at=hold.expired_at,
    )


# ---------------------------------------------------------------------------
# Reserve / release / confirm
# ---------------------------------------------------------------------------


@router.post("/reserve", response_model=ReserveResponse, status_code=status.HTTP_201_CREATED)
def reserve_seats(
    body: ReserveRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    result = holds.reserve(db, body.event_id, current_user.id, body.seat_ids)
    return ReserveResponse(
        reservation_id=result.hold.id,
        seats=result.seats,
        expires_at=result.expires_at,
        total_price=result.total_price,
        currency=result.currency,
    )


@router.post("/release", response_model=ReleaseResponse)
def release_seats(
    body: ReleaseRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    result = holds.release(db, body.reservation_id, current_user.id)
    return ReleaseResponse(
        reservation_id=result.hold.id,
        status=result.hold.state,
        released_seats_count=result.released_count,
    )


@router.post("/confirm", response_model=ConfirmResponse)
def confirm_seats(
    body: ConfirmRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    hold = holds.get_hold(db, body.reservation_id)
    if hold.user_id != current_user.id:
        raise ForbiddenError("Reservation belongs to another user")

    payment_listener.verify_payment_for_hold(db, body.payment_id, current_user.id, hold_id=hold.id)
    result = holds.confirm(db, hold.id, body.payment_id, user_id=current_user.id)
    return ConfirmResponse(
        reservation_id=result.hold.id,
        payment_id=body.payment_id,
        status=result.hold.state,
        confirmed_seats_count=result.confirmed_count,
    )


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@router.get("/reservations", response_model=ReservationListResponse)
def list_reservations(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[HoldState] = Query(None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    reservations, total = holds.list_holds(db, current_user.id, status=status, page=page, limit=limit)
    return ReservationListResponse(
        reservations=[_serialize_hold(h) for h in reservations],
        pagination=Pagination.build(page, limit, total),
    )
