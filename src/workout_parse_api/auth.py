"""
Authentication for Supabase JWTs and service API keys.
Provides FastAPI dependencies and the "may act as user" check.
"""
import logging
from typing import Optional

import jwt
from fastapi import Header

from workout_parse_api.config import settings
from workout_parse_api.errors import ApiError


logger = logging.getLogger(__name__)

# Simple service keys (no user suffix) may act on behalf of any user
SERVICE_USER = "admin"
SUPABASE_AUDIENCE = "authenticated"


def _unauthorized(detail: Optional[str] = None) -> ApiError:
    return ApiError(401, "UNAUTHORIZED", "Unauthorized", detail)


async def get_current_user(
    authorization: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> str:
    """
    Authenticate via API key OR Supabase JWT.
    Returns user_id string.

    Usage:
        @router.post("/protected")
        async def protected_route(user_id: str = Depends(get_current_user)):
            return {"user_id": user_id}
    """
    # Option 1: API Key authentication
    if x_api_key:
        return validate_api_key(x_api_key)

    # Option 2: Supabase JWT authentication
    if authorization:
        return validate_jwt(authorization)

    raise _unauthorized("Missing authentication. Provide Authorization header or X-API-Key.")


def validate_api_key(api_key: str) -> str:
    """
    Validate API key and return user_id.

    API key format options:
    - Simple: "sk_test_abc123" -> returns "admin"
    - With user: "sk_test_abc123:user_12345" -> returns "user_12345"
    """
    valid_keys = settings.API_KEYS

    if not valid_keys:
        logger.warning("No API keys configured (API_KEYS env var empty)")
        raise _unauthorized("API key authentication not configured")

    key_part = api_key.split(":")[0]
    if key_part not in valid_keys:
        raise _unauthorized("Invalid API key")

    if ":" in api_key:
        return api_key.split(":", 1)[1]

    return SERVICE_USER


def validate_jwt(authorization: str) -> str:
    """Validate a Supabase access token (HS256) and return its subject."""
    if not authorization.startswith("Bearer "):
        raise _unauthorized("Invalid authorization header format")

    token = authorization.split(" ", 1)[1].strip()
    secret = settings.SUPABASE_JWT_SECRET
    if not secret:
        logger.error("JWT validation not configured (missing SUPABASE_JWT_SECRET)")
        raise _unauthorized("JWT validation not configured")

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=SUPABASE_AUDIENCE,
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except jwt.InvalidTokenError as e:
        raise _unauthorized(f"Invalid token: {str(e)}")

    user_id = payload.get("sub")
    if not user_id:
        raise _unauthorized("Token missing user ID")
    return user_id


async def get_optional_user(
    authorization: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> Optional[str]:
    """
    Returns user_id if authenticated, None otherwise.
    Parsing without saving works anonymously; saving checks the caller.
    """
    try:
        return await get_current_user(authorization, x_api_key)
    except ApiError:
        return None


def ensure_can_act_as(caller_id: Optional[str], user_id: str) -> None:
    """Raise UNAUTHORIZED unless the caller may read and write as user_id."""
    if caller_id is None:
        raise _unauthorized("Authentication required")
    if caller_id != SERVICE_USER and caller_id != user_id:
        logger.warning("Caller %s attempted to act as user %s", caller_id, user_id)
        raise _unauthorized("Caller cannot act as the requested user")
