import uuid
from sqlalchemy import (
    Column, String, Boolean, DECIMAL, ForeignKey, DateTime, func, Index, CheckConstraint, text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.db.session import Base

class PricingTier(Base):
    __tablename__ = "seat_pricing_tiers"
    __table_args__ = (
        # Venue-scoped XOR event-scoped
        CheckConstraint(
            "(is_venue_tier AND venue_id IS NOT NULL AND event_id IS NULL) OR "
            "(NOT is_venue_tier AND event_id IS NOT NULL)",
            name="chk_tier_scope",
        ),
        CheckConstraint("price >= 0", name="chk_tier_price"),
        Index(
            "ix_tiers_live_venue",
            "venue_id",
            postgresql_where=text("is_venue_tier AND deleted_at IS NULL"),
        ),
        Index(
            "ix_tiers_live_event",
            "event_id",
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(64), nullable=False)
    description = Column(String(255), nullable=True)
    price = Column(DECIMAL(10, 2), nullable=False)
    color = Column(String(16), nullable=False, default="#CCCCCC")
    section = Column(String(64), nullable=True)
    venue_id = Column(UUID(as_uuid=True), ForeignKey("venues.id"), nullable=True)
    event_id = Column(UUID(as_uuid=True), ForeignKey("events.id"), nullable=True)
    is_venue_tier = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    venue = relationship("Venue", back_populates="pricing_tiers")
    event = relationship("Event", back_populates="pricing_tiers")
