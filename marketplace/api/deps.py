from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from marketplace.core.security import verify_token
from typing import Optional
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

CONSUMER_ROLE = "consumer"
ADMIN_ROLE = "admin"


class CurrentUser(BaseModel):
    """Identity carried by a bearer token issued by the auth service"""
    user_id: str
    role: str


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    """Validate bearer token and return the caller's identity"""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    payload = verify_token(credentials.credentials, "access")
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    if not payload.get("user_id"):
        logger.warning("[AUTH] Token without user_id rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials - no user_id",
        )

    return CurrentUser(user_id=str(payload["user_id"]), role=payload.get("role", ""))


async def get_current_consumer(
    current_user: CurrentUser = Depends(get_current_user)
) -> CurrentUser:
    """Verify current user is a consumer (carts and reviews)"""
    if current_user.role != CONSUMER_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Consumer access required",
        )
    return current_user


async def get_current_admin(
    current_user: CurrentUser = Depends(get_current_user)
) -> CurrentUser:
    """Verify current user is admin"""
    if current_user.role != ADMIN_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user
