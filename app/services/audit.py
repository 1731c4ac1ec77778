from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog


def log_action(
    db: Session,
    action: str,
    resource: str,
    resource_id: Optional[UUID] = None,
    user_id: Optional[UUID] = None,
    new_values: Optional[dict] = None,
) -> None:
    """Stage an audit row in the caller's transaction; it commits or rolls back with it."""
    db.add(AuditLog(
        user_id=user_id,
        action=action,
        resource=resource,
        resource_id=resource_id,
        new_values=new_values,
    ))
