from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from app.core.security import decode_token
from app.schemas.user import CurrentUser, TokenPayload, UserRole

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    """Resolve the caller from the bearer token. Users are owned by the identity service."""
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized

    claims = decode_token(credentials.credentials)
    if not claims:
        raise unauthorized
    try:
        payload = TokenPayload(**claims)
        return CurrentUser(id=payload.sub, role=payload.role)
    except ValidationError:
        raise unauthorized


def require_roles(*roles: UserRole):
    def dependency(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return dependency


get_current_venue_manager = require_roles(UserRole.VENUE_MANAGER, UserRole.ADMIN)
get_current_pricing_editor = require_roles(UserRole.ORGANIZER, UserRole.VENUE_MANAGER, UserRole.ADMIN)
