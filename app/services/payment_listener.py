"""
Turns completed payments into confirmed holds.

The payment subsystem writes ``payments`` rows and binds each to the hold it
pays for (``payments.hold_id``) when the payment is initiated.
"""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError
from app.models.hold import HoldState, SeatHold
from app.models.payment import Payment
from app.services import holds

logger = logging.getLogger(__name__)

PAYMENT_COMPLETED = "completed"


def verify_payment_for_hold(
    db: Session,
    payment_id: UUID,
    user_id: UUID,
    hold_id: Optional[UUID] = None,
) -> Payment:
    """
    The payment must be the user's and completed. When ``hold_id`` is given the
    payment must also be bound to exactly that hold.
    """
    payment = (
        db.query(Payment)
        .filter(Payment.id == payment_id, Payment.user_id == user_id)
        .first()
    )
    if not payment:
        raise NotFoundError("Payment not found")
    if payment.status != PAYMENT_COMPLETED:
        raise ConflictError("Payment not completed")
    if hold_id is not None:
        if payment.hold_id is None:
            raise ConflictError("Payment is not bound to a reservation")
        if payment.hold_id != hold_id:
            raise ConflictError("Payment is bound to a different reservation")
    return payment


def _hold_for_payment(db: Session, payment: Payment, user_id: UUID) -> Optional[SeatHold]:
    query = db.query(SeatHold).filter(SeatHold.user_id == user_id)
    if payment.hold_id is not None:
        query = query.filter(SeatHold.id == payment.hold_id)
    else:
        query = query.filter(SeatHold.payment_id == payment.id)
    # Prefer the pending hold when several carry the payment
    candidates = query.order_by(SeatHold.created_at.desc()).all()
    for hold in candidates:
        if hold.state == HoldState.PENDING:
            return hold
    return candidates[0] if candidates else None


def on_payment_completed(
    db: Session,
    payment_id: UUID,
    user_id: UUID,
    now: Optional[datetime] = None,
) -> holds.ConfirmResult:
    """Confirm the hold a completed payment pays for. Safe to call more than once."""
    payment = verify_payment_for_hold(db, payment_id, user_id)
    hold = _hold_for_payment(db, payment, user_id)
    if not hold:
        raise NotFoundError("No reservation is bound to this payment")

    logger.info("Payment %s completed for hold %s", payment.id, hold.id)
    return holds.confirm(db, hold.id, payment.id, now=now, user_id=user_id)
