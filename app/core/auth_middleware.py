"""Authentication dependencies for FastAPI."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from supabase import Client

from app.core.errors import Unauthorized
from app.db.supabase_client import get_supabase

logger = logging.getLogger(__name__)

# HTTP Bearer scheme for Authorization header
security = HTTPBearer(auto_error=False)


class AuthContext:
    """Context object containing authenticated user info."""

    def __init__(self, user_id: UUID, token: str, email: Optional[str] = None):
        self.user_id = user_id
        self.token = token
        self.email = email

    def __repr__(self) -> str:
        return f"AuthContext(user_id={self.user_id})"


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    client: Client = Depends(get_supabase),
) -> Optional[AuthContext]:
    """
    Extract and validate the current user from the request.

    Verifies the Supabase session JWT from ``Authorization: Bearer <token>``.
    Returns None if no valid auth is present (for optional auth endpoints).
    """
    if not credentials or not credentials.credentials:
        return None

    token = credentials.credentials

    try:
        # Supabase validates the JWT signature and expiration
        auth_response = client.auth.get_user(token)
    except Exception as e:
        logger.warning(f"Auth error: {e}")
        return None

    if not auth_response or not auth_response.user:
        return None

    return AuthContext(
        user_id=UUID(str(auth_response.user.id)),
        token=token,
        email=auth_response.user.email,
    )


async def require_auth(
    auth: Optional[AuthContext] = Depends(get_current_user),
) -> AuthContext:
    """Require authentication. Raises 401 if not authenticated."""
    if not auth:
        raise Unauthorized()
    return auth
