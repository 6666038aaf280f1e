"""
Security utilities for the humanizer API.

- get_current_user_id: end-user identity from a Supabase access token
- verify_api_key: admin API key check with per-key rate limiting

Both have a dev mode bypass.
"""

import time
from collections import defaultdict
from typing import Optional

from fastapi import HTTPException, Header, Depends

from humanizer.config import config
from humanizer.database.client import get_supabase_auth_client, SupabaseClientError
from humanizer.utils.logging import auth_logger

DEV_USER_ID = "dev-user-id"

# Simple in-memory rate limiter (per API key)
_rate_limit_store: dict[str, list[float]] = defaultdict(list)


async def get_current_user_id(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> str:
    """
    Extract and verify user ID from Authorization header.

    In dev mode with DEV_MODE=true, a missing header maps to a fixed test user.
    """
    if config.DEV_MODE and not authorization:
        return DEV_USER_ID

    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required"
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=401,
            detail="Invalid authorization header format. Use 'Bearer <token>'"
        )

    try:
        user_response = get_supabase_auth_client().auth.get_user(parts[1])
    except SupabaseClientError as e:
        raise HTTPException(
            status_code=503,
            detail=f"Authentication service unavailable: {str(e)}"
        )
    except Exception as e:
        auth_logger.warning("Token verification failed", error=str(e))
        raise HTTPException(
            status_code=401,
            detail="Invalid or expired token"
        )

    if not user_response or not user_response.user:
        raise HTTPException(
            status_code=401,
            detail="Invalid or expired token"
        )

    return str(user_response.user.id)


def get_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> Optional[str]:
    """Extract the admin API key header."""
    return x_api_key


async def verify_api_key(
    api_key: Optional[str] = Depends(get_api_key)
) -> str:
    """
    Verify admin API key authentication.

    In dev mode with no API keys configured, authentication is bypassed.
    Returns the API key (or "dev" if bypassed).
    """
    if not config.auth_required:
        return "dev"

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="API key required. Provide the X-API-Key header."
        )

    if api_key not in config.api_keys_list:
        auth_logger.warning("Rejected invalid admin API key")
        raise HTTPException(
            status_code=403,
            detail="Invalid API key"
        )

    if config.RATE_LIMIT_PER_MINUTE > 0:
        now = time.time()
        window_start = now - 60

        _rate_limit_store[api_key] = [
            t for t in _rate_limit_store[api_key] if t > window_start
        ]

        if len(_rate_limit_store[api_key]) >= config.RATE_LIMIT_PER_MINUTE:
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. Max {config.RATE_LIMIT_PER_MINUTE} requests per minute."
            )

        _rate_limit_store[api_key].append(now)

    return api_key
