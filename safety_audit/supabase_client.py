import os
import logging
from supabase import create_client, Client, ClientOptions
from dotenv import load_dotenv
from jose import jwt, JWTError
from typing import Optional

from safety_audit.settings import get_settings

load_dotenv()

logger = logging.getLogger(__name__)

SUPABASE_URL = os.environ.get("SUPABASE_URL")
SUPABASE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")  # Service role: the escalation pass reads across projects
SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY")
SUPABASE_JWT_SECRET = os.environ.get("SUPABASE_JWT_SECRET")  # JWT secret for token verification


def create_supabase_client(
    url: Optional[str] = None,
    key: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Client | None:
    """
    Build a Supabase client whose PostgREST and Functions calls fail fast.
    Returns None when the project is not configured.
    """
    url = url or SUPABASE_URL
    key = key or SUPABASE_KEY or SUPABASE_ANON_KEY
    if timeout is None:
        timeout = get_settings().http_timeout_seconds

    if not url:
        logger.warning("SUPABASE_URL not set. Supabase features will be disabled.")
        return None
    if not key:
        logger.warning("No Supabase key found. Supabase features will be disabled.")
        return None

    try:
        options = ClientOptions(
            postgrest_client_timeout=timeout,
            function_client_timeout=int(timeout),
        )
        return create_client(url, key, options=options)
    except Exception as e:
        logger.error(f"Could not create Supabase client: {e}")
        return None


supabase: Client | None = create_supabase_client()


def get_supabase() -> Client | None:
    """Get the Supabase client instance."""
    return supabase


def verify_supabase_token(token: str) -> Optional[dict]:
    """
    Verify a Supabase JWT against the project's JWT secret and return the
    caller's identity. Returns None if the signature or expiry check fails,
    no secret is configured, or the token names no subject.
    """
    if not token:
        return None

    if not SUPABASE_JWT_SECRET:
        logger.error("[Auth] SUPABASE_JWT_SECRET not set; rejecting token")
        return None

    try:
        decoded = jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_aud": False},
        )
    except JWTError as decode_error:
        logger.warning(f"[Auth] JWT decode error: {decode_error}")
        return None

    role = decoded.get("role", "authenticated")
    user_id = decoded.get("sub")

    # Service-role keys carry no subject but are valid callers for scheduled work
    if not user_id and role != "service_role":
        logger.warning("[Auth] No user_id (sub) in decoded token")
        return None

    return {
        "id": user_id,
        "email": decoded.get("email"),
        "role": role,
    }


def get_user_profile(user_id: str) -> dict | None:
    """Get user profile from Supabase."""
    if not supabase or not user_id:
        return None

    try:
        response = supabase.table("profiles").select("*").eq("id", user_id).limit(1).execute()
        return response.data[0] if response.data else None
    except Exception as e:
        logger.error(f"Error fetching profile: {e}")
        return None
