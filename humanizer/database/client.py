"""
Supabase Client Configuration

Provides the admin client used by the job store and workers, and the
anon client used to verify end-user access tokens.
"""

from functools import lru_cache

from supabase import create_client, Client

from humanizer.config import config


class SupabaseClientError(Exception):
    """Raised when Supabase client cannot be initialized."""
    pass


def _require(setting: str, value: str | None) -> str:
    if not value:
        raise SupabaseClientError(
            f"{setting} is not configured. "
            "Set it in your .env file or environment variables."
        )
    return value


@lru_cache(maxsize=1)
def get_supabase_admin_client() -> Client:
    """
    Get Supabase client with service role key (admin access).

    Use this for the humanize request store and background workers.

    WARNING: This client bypasses Row Level Security!
    Owner scoping is enforced by the store's queries instead.
    """
    return create_client(
        _require("SUPABASE_URL", config.SUPABASE_URL),
        _require("SUPABASE_SERVICE_KEY", config.SUPABASE_SERVICE_KEY),
    )


@lru_cache(maxsize=1)
def get_supabase_auth_client() -> Client:
    """Get Supabase client with the anon key, for token verification."""
    return create_client(
        _require("SUPABASE_URL", config.SUPABASE_URL),
        _require("SUPABASE_ANON_KEY", config.SUPABASE_ANON_KEY),
    )


def verify_supabase_connection() -> bool:
    """
    Verify that Supabase is properly configured and the queue table exists.

    Returns:
        True if connection successful, False otherwise.
    """
    try:
        client = get_supabase_admin_client()
        client.table("humanize_requests").select("id").limit(1).execute()
        return True
    except Exception as e:
        print(f"Supabase connection failed: {e}")
        return False
