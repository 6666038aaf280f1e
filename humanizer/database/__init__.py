"""
Supabase database layer

Provides the Supabase clients and the Postgres-backed humanize request
store used when JOB_STORE=supabase.
"""

from .client import (
    get_supabase_admin_client,
    get_supabase_auth_client,
    verify_supabase_connection,
    SupabaseClientError,
)
from .requests import SupabaseRequestStore

__all__ = [
    "get_supabase_admin_client",
    "get_supabase_auth_client",
    "verify_supabase_connection",
    "SupabaseClientError",
    "SupabaseRequestStore",
]
