import enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    ORGANIZER = "organizer"
    VENUE_MANAGER = "venue_manager"
    ADMIN = "admin"


# Claims carried by the bearer token
class TokenPayload(BaseModel):
    sub: Optional[str] = None
    role: UserRole = UserRole.CUSTOMER


# Authenticated principal; users themselves live in the identity service
class CurrentUser(BaseModel):
    id: UUID
    role: UserRole
