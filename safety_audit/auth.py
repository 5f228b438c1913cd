"""
Authentication & Access

Bearer-token dependencies for the API. Tokens are verified with python-jose and
the caller's role is taken from the token (service role) or their profile.
"""

import uuid
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from safety_audit.schemas import UserRole
from safety_audit.supabase_client import verify_supabase_token, get_user_profile

logger = logging.getLogger(__name__)

SERVICE_ROLE = "service_role"


class AuthContext:
    """
    Authorization context for a request.
    """
    def __init__(
        self,
        user_id: Optional[str],
        email: Optional[str] = None,
        token_role: Optional[str] = None,
        profile_role: Optional[str] = None,
        request_id: Optional[str] = None
    ):
        self.user_id = user_id
        self.email = email
        self.token_role = token_role
        self.profile_role = profile_role
        self.request_id = request_id or str(uuid.uuid4())[:8]

    @property
    def is_service(self) -> bool:
        return self.token_role == SERVICE_ROLE

    @property
    def is_admin(self) -> bool:
        return self.profile_role == UserRole.ADMIN.value

    def to_log_context(self) -> dict:
        return {
            "user_id": self.user_id,
            "role": self.profile_role or self.token_role,
            "request_id": self.request_id,
        }


security = HTTPBearer(auto_error=False)


async def get_auth_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> AuthContext:
    """
    Extract and validate authentication, returning an AuthContext.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]

    token = credentials.credentials if credentials else None
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")

    user = verify_supabase_token(token)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    profile_role = None
    if user.get("id"):
        profile = get_user_profile(user["id"])
        profile_role = profile.get("role") if profile else None

    return AuthContext(
        user_id=user.get("id"),
        email=user.get("email"),
        token_role=user.get("role"),
        profile_role=profile_role,
        request_id=request_id
    )


async def get_user_context(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Require a signed-in user (service keys have no inbox)."""
    if not auth.user_id:
        raise HTTPException(status_code=403, detail="A user token is required")
    return auth


async def require_scheduler_access(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Scheduled and system work: the service role or an admin."""
    if not (auth.is_service or auth.is_admin):
        logger.warning(f"Scheduler access denied: {auth.to_log_context()}")
        raise HTTPException(status_code=403, detail="Service role or admin access required")
    return auth
