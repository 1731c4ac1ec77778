import uuid
from sqlalchemy import Column, String, DateTime, func, JSON
from sqlalchemy.dialects.postgresql import UUID
from app.db.session import Base

class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=True, index=True) # null for sweeper actions
    action = Column(String(64), nullable=False, index=True) # SEATS_RESERVED, SEATS_EXPIRED, ...
    resource = Column(String(64), nullable=False)
    resource_id = Column(UUID(as_uuid=True), nullable=True)
    new_values = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
