import uuid
from sqlalchemy import Column, String, DECIMAL, ForeignKey, DateTime, func
from sqlalchemy.dialects.postgresql import UUID
from app.db.session import Base

class Payment(Base):
    """
    Written by the payment subsystem. ``hold_id`` is bound when the payment
    is initiated; the seating core only reads this table.
    """
    __tablename__ = "payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    hold_id = Column(UUID(as_uuid=True), ForeignKey("seat_holds.id"), nullable=True, index=True)
    amount = Column(DECIMAL(10, 2), nullable=True)
    currency = Column(String(3), nullable=True)
    status = Column(String(20), default="pending", index=True) # pending, completed, failed, refunded
    created_at = Column(DateTime(timezone=True), server_default=func.now())
