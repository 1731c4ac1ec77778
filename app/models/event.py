import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.db.session import Base

class Event(Base):
    """Owned by event management; the seating core only reads it."""
    __tablename__ = "events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    venue_id = Column(UUID(as_uuid=True), ForeignKey("venues.id"), nullable=True, index=True)
    organizer_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=True)
    currency = Column(String(3), default="USD", nullable=False)
    has_seating = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    venue = relationship("Venue", back_populates="events")
    seats = relationship("Seat", back_populates="event")
    pricing_tiers = relationship("PricingTier", back_populates="event")
