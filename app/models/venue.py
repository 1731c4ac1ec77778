import uuid
from sqlalchemy import Column, String, DateTime, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.db.session import Base

class Venue(Base):
    """Owned by venue management; the seating core only reads it."""
    __tablename__ = "venues"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    manager_id = Column(UUID(as_uuid=True), nullable=True, index=True) # venue_manager user
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    events = relationship("Event", back_populates="venue")
    pricing_tiers = relationship("PricingTier", back_populates="venue")
