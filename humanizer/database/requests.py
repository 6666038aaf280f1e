"""
Humanize Request Store (Supabase)

Postgres-backed implementation of the humanize request store. Use it when
more than one worker process polls the queue: the claim step runs inside
the `claim_next_humanize_request` database function, which locks the row
with FOR UPDATE SKIP LOCKED (see migrations/001_humanize_requests.sql).
"""

from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, Any, List

from supabase import Client

from humanizer.jobs.database import JobStoreError, RequestStatus, utc_now
from .client import get_supabase_admin_client

TABLE = "humanize_requests"


class SupabaseRequestStore:
    """
    Service class for humanize request persistence.

    Mirrors HumanizeRequestDatabase method for method, so HumanizeQueue
    can run on either store. Client and postgrest errors surface as
    JobStoreError, as they do from the SQLite store.
    """

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    async def connect(self):
        """Resolve the client eagerly so misconfiguration fails at startup."""
        _ = self.client

    async def close(self):
        self._client = None

    def _execute(self, query, action: str):
        try:
            return query.execute()
        except Exception as e:
            raise JobStoreError(f"Failed to {action}: {e}") from e

    def _owned(self, query, user_id: Optional[str]):
        if user_id is None:
            return query.is_("user_id", "null")
        return query.eq("user_id", str(user_id))

    def _claimed(self, query, attempts: int):
        return (
            query
            .eq("status", RequestStatus.PROCESSING.value)
            .eq("attempts", attempts)
        )

    # =========================================================================
    # Creation and lookup
    # =========================================================================

    async def create_request(
        self,
        user_id: Optional[str],
        original_text: str,
        word_count: int
    ) -> Dict[str, Any]:
        now = utc_now()
        row = {
            "user_id": str(user_id) if user_id is not None else None,
            "original_text": original_text,
            "status": RequestStatus.PENDING.value,
            "attempts": 0,
            "word_count": word_count,
            "created_at": now,
            "updated_at": now,
        }
        result = self._execute(self.client.table(TABLE).insert(row), "create request")
        if not result.data:
            raise JobStoreError("Failed to create request: insert returned no row")
        return result.data[0]

    async def get_request(self, request_id: int, user_id: Optional[str]) -> Optional[Dict[str, Any]]:
        query = self.client.table(TABLE).select("*").eq("id", request_id)
        result = self._execute(self._owned(query, user_id), f"fetch request {request_id}")
        return result.data[0] if result.data else None

    async def list_requests(
        self,
        user_id: Optional[str],
        limit: int = 10,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        query = (
            self._owned(self.client.table(TABLE).select("*"), user_id)
            .order("created_at", desc=True)
            .order("id", desc=True)
            .range(offset, offset + limit - 1)
        )
        return self._execute(query, "list requests").data or []

    # =========================================================================
    # Claiming and results
    # =========================================================================

    async def claim_next_pending(self) -> Optional[Dict[str, Any]]:
        """Claim the oldest pending request via the SKIP LOCKED database function."""
        result = self._execute(
            self.client.rpc("claim_next_humanize_request", {}),
            "claim next request"
        )

        rows = result.data or []
        if isinstance(rows, dict):
            rows = [rows]
        # The function returns an empty set (or a null row) when nothing is pending
        rows = [r for r in rows if r and r.get("id") is not None]
        return rows[0] if rows else None

    async def _update_claimed(
        self,
        request_id: int,
        attempts: int,
        update_data: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Apply a result write only while the claim made at `attempts` still holds."""
        query = self._claimed(
            self.client.table(TABLE).update(update_data).eq("id", request_id),
            attempts
        )
        result = self._execute(query, f"update request {request_id}")
        return result.data[0] if result.data else None

    async def mark_completed(
        self,
        request_id: int,
        humanized_text: str,
        attempts: int
    ) -> Optional[Dict[str, Any]]:
        now = utc_now()
        return await self._update_claimed(request_id, attempts, {
            "status": RequestStatus.COMPLETED.value,
            "humanized_text": humanized_text,
            "error_message": None,
            "updated_at": now,
            "completed_at": now,
        })

    async def mark_attempt_failed(
        self,
        request_id: int,
        error_message: str,
        attempts: int,
        final: bool = False
    ) -> Optional[Dict[str, Any]]:
        status = RequestStatus.FAILED if final else RequestStatus.PENDING
        return await self._update_claimed(request_id, attempts, {
            "status": status.value,
            "error_message": error_message,
            "updated_at": utc_now(),
        })

    async def reset_for_retry(self, request_id: int, user_id: Optional[str]) -> Optional[Dict[str, Any]]:
        query = (
            self.client.table(TABLE)
            .update({
                "status": RequestStatus.PENDING.value,
                "error_message": None,
                "updated_at": utc_now(),
            })
            .eq("id", request_id)
            .eq("status", RequestStatus.FAILED.value)
        )
        result = self._execute(self._owned(query, user_id), f"reset request {request_id}")
        return result.data[0] if result.data else None

    # =========================================================================
    # Stats and recovery
    # =========================================================================

    async def get_stats(self) -> Dict[str, Any]:
        """Per-status counts and average turnaround from the humanize_request_stats function."""
        result = self._execute(self.client.rpc("humanize_request_stats", {}), "fetch queue stats")

        by_status = {
            row["status"]: {
                "count": int(row["count"]),
                "avg_processing_time_seconds": float(row.get("avg_processing_time_seconds") or 0),
            }
            for row in (result.data or [])
        }
        return {
            "total": sum(s["count"] for s in by_status.values()),
            "by_status": by_status,
        }

    async def recover_stale_requests(self, stale_minutes: int, max_attempts: int) -> int:
        """
        Release requests stuck in processing (e.g., after worker crash).

        Each update is guarded on the row's status and attempt count, so a
        worker that finishes during the sweep keeps its result.
        """
        cutoff = (datetime.now(timezone.utc) - timedelta(minutes=stale_minutes)).isoformat()

        stale = self._execute(
            self.client.table(TABLE)
            .select("id, attempts")
            .eq("status", RequestStatus.PROCESSING.value)
            .lt("updated_at", cutoff),
            "find stale requests"
        )

        recovered = 0
        for row in stale.data or []:
            attempts = row.get("attempts", 0)
            if attempts < max_attempts:
                update_data = {
                    "status": RequestStatus.PENDING.value,
                    "error_message": "Recovered from stale processing state (worker crash/timeout)",
                }
            else:
                update_data = {
                    "status": RequestStatus.FAILED.value,
                    "error_message": "Max attempts exceeded after stale processing recovery",
                }
            update_data["updated_at"] = utc_now()

            if await self._update_claimed(row["id"], attempts, update_data):
                recovered += 1

        return recovered
