import uuid
import enum
from sqlalchemy import Column, String, DECIMAL, ForeignKey, DateTime, func, text, Index, Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.db.session import Base

class HoldState(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    RELEASED = "released"
    EXPIRED = "expired"

class SeatHold(Base):
    """A user's time-limited claim over a set of seats of one event (a "reservation")."""
    __tablename__ = "seat_holds"
    __table_args__ = (
        Index("ix_seat_holds_user_state", "user_id", "state"),
        Index("ix_seat_holds_state_expires", "state", "expires_at"),
        # A payment pays for at most one hold
        Index(
            "uq_seat_holds_payment",
            "payment_id",
            unique=True,
            postgresql_where=text("payment_id IS NOT NULL"),
            sqlite_where=text("payment_id IS NOT NULL"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(UUID(as_uuid=True), ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    state = Column(
        SAEnum(HoldState, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        default=HoldState.PENDING,
        nullable=False,
    )
    total_price = Column(DECIMAL(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    payment_id = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    released_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    expired_at = Column(DateTime(timezone=True), nullable=True)

    event = relationship("Event")
    items = relationship(
        "SeatHoldSeat",
        back_populates="hold",
        cascade="all, delete-orphan",
        order_by="SeatHoldSeat.seat_id",
    )

    @property
    def seat_ids(self):
        return [item.seat_id for item in self.items]

class SeatHoldSeat(Base):
    """Member list of a hold. The hold owns these ids, not the seat rows."""
    __tablename__ = "seat_hold_seats"

    hold_id = Column(UUID(as_uuid=True), ForeignKey("seat_holds.id"), primary_key=True)
    seat_id = Column(UUID(as_uuid=True), ForeignKey("seats.id"), primary_key=True, index=True)

    hold = relationship("SeatHold", back_populates="items")
