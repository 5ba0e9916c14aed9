"""Authentication gate for FastAPI.

The pipeline assumes identity is already validated; this module only decides
whether a request gets through. Two methods:
1. Admin API key (X-API-Key header) - for internal tools
2. Supabase JWT (Bearer auth) - verified with auth.get_user
"""

import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# HTTP Bearer scheme for Authorization header
security = HTTPBearer(auto_error=False)

SYSTEM_USER_ID = "00000000-0000-0000-0000-000000000001"


class AuthContext:
    """Context object containing authenticated caller info."""

    def __init__(self, user_id: str, token: str, via_api_key: bool = False):
        self.user_id = user_id
        self.token = token
        self.via_api_key = via_api_key


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> Optional[AuthContext]:
    """
    Extract and validate the current caller from the request.

    Returns None if no valid auth is present.
    """
    admin_key = get_settings().ADMIN_API_KEY
    if x_api_key and admin_key and hmac.compare_digest(x_api_key, admin_key):
        logger.debug("Authenticated via admin API key")
        return AuthContext(user_id=SYSTEM_USER_ID, token="api-key", via_api_key=True)

    if not credentials:
        return None

    token = credentials.credentials
    supabase = getattr(request.app.state, "supabase", None)
    if supabase is None:
        logger.warning("Bearer auth attempted before Supabase client was ready")
        return None

    try:
        # Validates signature and expiration server-side
        auth_response = await supabase.auth.get_user(token)
    except Exception as e:
        logger.warning(f"Auth error: {e}")
        return None

    if not auth_response or not auth_response.user:
        return None

    return AuthContext(user_id=str(auth_response.user.id), token=token)


async def require_auth(
    auth: Optional[AuthContext] = Depends(get_current_user),
) -> AuthContext:
    """Require authentication. Raises 401 if not authenticated."""
    if not auth:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return auth
