"""
Authentication dependencies for the API routers.
"""
import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ...services.auth_service import auth_service, Principal

logger = logging.getLogger(__name__)

# Security scheme for JWT
security = HTTPBearer(auto_error=False)


async def get_current_principal_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Principal]:
    """Principal from the bearer token (optional - None if not authenticated)."""
    if not credentials:
        return None
    return auth_service.principal_from_token(credentials.credentials)


async def get_current_principal(
    principal: Optional[Principal] = Depends(get_current_principal_optional),
) -> Principal:
    """Principal from the bearer token (required - raises 401 if not authenticated)."""
    if not principal:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


async def get_current_staff(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Teacher, admin or superadmin (raises 403 otherwise)."""
    auth_service.ensure_staff(principal)
    return principal
