import uuid
import enum
from sqlalchemy import (
    Column, String, DECIMAL, ForeignKey, DateTime, func, Index, UniqueConstraint,
    Enum as SAEnum,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.db.session import Base

class SeatStatus(str, enum.Enum):
    AVAILABLE = "available"
    HELD = "held"
    SOLD = "sold"
    BLOCKED = "blocked"
    MAINTENANCE = "maintenance"

class Seat(Base):
    __tablename__ = "seats"
    __table_args__ = (
        UniqueConstraint("event_id", "section", "row", "seat_number", name="uq_seat_location"),
        Index("ix_seats_event_status", "event_id", "status"),
        Index("ix_seats_holder_status", "holder_id", "status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(UUID(as_uuid=True), ForeignKey("events.id"), nullable=False, index=True)
    section = Column(String(50), nullable=False)
    row = Column(String(10), nullable=False)
    seat_number = Column(String(20), nullable=False)
    price = Column(DECIMAL(10, 2), nullable=True) # per-seat override; else resolved via tier
    price_tier = Column(String(64), nullable=True) # tier name in the event's effective catalog
    accessibility_type = Column(String(32), nullable=True)
    status = Column(
        SAEnum(SeatStatus, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        default=SeatStatus.AVAILABLE,
        nullable=False,
    )

    # Ownership stamps: hold stamps are set only while held, sale stamps only once sold
    holder_id = Column(UUID(as_uuid=True), nullable=True)
    hold_id = Column(UUID(as_uuid=True), ForeignKey("seat_holds.id"), nullable=True, index=True)
    held_at = Column(DateTime(timezone=True), nullable=True)
    sold_to = Column(UUID(as_uuid=True), nullable=True)
    sold_at = Column(DateTime(timezone=True), nullable=True)
    payment_id = Column(UUID(as_uuid=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    event = relationship("Event", back_populates="seats")
