"""
SQLite job store for humanize requests.
Uses aiosqlite for async SQLite operations.
"""

import asyncio
import sqlite3
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, List

import aiosqlite


class RequestStatus(str, Enum):
    """Lifecycle states of a humanize request"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStoreError(Exception):
    """Raised when the job store cannot complete a read or write."""
    pass


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class HumanizeRequestDatabase:
    """
    Handles humanize request storage in SQLite.

    Writes are serialised twice: an asyncio.Lock keeps coroutines sharing
    this connection out of each other's transaction, and BEGIN IMMEDIATE
    keeps other processes on the same file from claiming the same row.
    """

    def __init__(self, db_path: str = "humanize_jobs.db", busy_timeout: float = 5.0):
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self._conn: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    async def connect(self):
        """Connect to database and create tables if needed"""
        db_file = Path(self.db_path)
        db_dir = db_file.parent
        if db_dir and str(db_dir) != "." and not db_dir.exists():
            db_dir.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(self.db_path, timeout=self.busy_timeout)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._create_tables()

    async def _create_tables(self):
        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS humanize_requests (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT,
                original_text TEXT NOT NULL,
                humanized_text TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                attempts INTEGER NOT NULL DEFAULT 0,
                error_message TEXT,
                word_count INTEGER NOT NULL DEFAULT 0,

                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                completed_at TEXT
            )
        """)

        await self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_humanize_requests_status
            ON humanize_requests(status, created_at)
        """)

        await self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_humanize_requests_user
            ON humanize_requests(user_id, created_at)
        """)

        await self._conn.commit()

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise JobStoreError("Job store is not connected")
        return self._conn

    async def _fetch_one(self, sql: str, params: tuple = ()) -> Optional[Dict[str, Any]]:
        cursor = await self.conn.execute(sql, params)
        row = await cursor.fetchone()
        return dict(row) if row else None

    async def _fetch_by_id(self, request_id: int) -> Optional[Dict[str, Any]]:
        return await self._fetch_one(
            "SELECT * FROM humanize_requests WHERE id = ?", (request_id,)
        )

    async def _write(self, sql: str, params: tuple = ()) -> aiosqlite.Cursor:
        async with self._write_lock:
            try:
                cursor = await self.conn.execute(sql, params)
                await self.conn.commit()
            except sqlite3.Error as e:
                await self.conn.rollback()
                raise JobStoreError(f"Write to humanize_requests failed: {e}") from e
        return cursor

    # =========================================================================
    # Creation and lookup
    # =========================================================================

    async def create_request(
        self,
        user_id: Optional[str],
        original_text: str,
        word_count: int
    ) -> Dict[str, Any]:
        """Insert a pending request and return the stored row."""
        now = utc_now()
        cursor = await self._write("""
            INSERT INTO humanize_requests
            (user_id, original_text, status, attempts, word_count, created_at, updated_at)
            VALUES (?, ?, ?, 0, ?, ?, ?)
        """, (
            user_id,
            original_text,
            RequestStatus.PENDING.value,
            word_count,
            now,
            now
        ))
        return await self._fetch_by_id(cursor.lastrowid)

    async def get_request(self, request_id: int, user_id: Optional[str]) -> Optional[Dict[str, Any]]:
        """Get a request only if it belongs to user_id"""
        return await self._fetch_one("""
            SELECT * FROM humanize_requests
            WHERE id = ? AND user_id IS ?
        """, (request_id, user_id))

    async def list_requests(
        self,
        user_id: Optional[str],
        limit: int = 10,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        """Get a page of a user's requests, newest first"""
        cursor = await self.conn.execute("""
            SELECT * FROM humanize_requests
            WHERE user_id IS ?
            ORDER BY created_at DESC, id DESC
            LIMIT ? OFFSET ?
        """, (user_id, limit, offset))
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    # =========================================================================
    # Claiming and results
    # =========================================================================

    async def claim_next_pending(self) -> Optional[Dict[str, Any]]:
        """
        Move the oldest pending request to processing and return it.

        The status guard on the UPDATE makes a lost race return None
        instead of claiming a row twice.
        """
        async with self._write_lock:
            conn = self.conn
            try:
                await conn.execute("BEGIN IMMEDIATE")
                cursor = await conn.execute("""
                    SELECT id FROM humanize_requests
                    WHERE status = 'pending'
                    ORDER BY created_at ASC, id ASC
                    LIMIT 1
                """)
                row = await cursor.fetchone()
                if row is None:
                    await conn.commit()
                    return None

                cursor = await conn.execute("""
                    UPDATE humanize_requests
                    SET status = 'processing',
                        attempts = attempts + 1,
                        updated_at = ?
                    WHERE id = ? AND status = 'pending'
                """, (utc_now(), row["id"]))
                if cursor.rowcount != 1:
                    await conn.rollback()
                    return None

                await conn.commit()
            except sqlite3.Error as e:
                await conn.rollback()
                raise JobStoreError(f"Failed to claim next request: {e}") from e

        return await self._fetch_by_id(row["id"])

    async def mark_completed(
        self,
        request_id: int,
        humanized_text: str,
        attempts: int
    ) -> Optional[Dict[str, Any]]:
        """
        Mark a claimed request as completed with its result.

        `attempts` is the value returned by the claim. Returns None when the
        row is no longer processing under that claim (it was recovered as
        stale and claimed again), leaving the row untouched.
        """
        now = utc_now()
        cursor = await self._write("""
            UPDATE humanize_requests
            SET status = 'completed',
                humanized_text = ?,
                error_message = NULL,
                updated_at = ?,
                completed_at = ?
            WHERE id = ? AND status = 'processing' AND attempts = ?
        """, (humanized_text, now, now, request_id, attempts))
        if cursor.rowcount != 1:
            return None
        return await self._fetch_by_id(request_id)

    async def mark_attempt_failed(
        self,
        request_id: int,
        error_message: str,
        attempts: int,
        final: bool = False
    ) -> Optional[Dict[str, Any]]:
        """
        Record a failed attempt; final attempts end in failed, others go back to pending.

        Guarded on the claim like mark_completed.
        """
        status = RequestStatus.FAILED if final else RequestStatus.PENDING
        cursor = await self._write("""
            UPDATE humanize_requests
            SET status = ?,
                error_message = ?,
                updated_at = ?
            WHERE id = ? AND status = 'processing' AND attempts = ?
        """, (status.value, error_message, utc_now(), request_id, attempts))
        if cursor.rowcount != 1:
            return None
        return await self._fetch_by_id(request_id)

    async def reset_for_retry(self, request_id: int, user_id: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        Put a failed request back in the queue.

        Returns None when the row is missing, foreign, or no longer failed.
        The attempt counter is kept.
        """
        cursor = await self._write("""
            UPDATE humanize_requests
            SET status = 'pending',
                error_message = NULL,
                updated_at = ?
            WHERE id = ? AND user_id IS ? AND status = 'failed'
        """, (utc_now(), request_id, user_id))
        if cursor.rowcount != 1:
            return None
        return await self._fetch_by_id(request_id)

    # =========================================================================
    # Stats and recovery
    # =========================================================================

    async def get_stats(self) -> Dict[str, Any]:
        """Count and average turnaround (updated_at - created_at) per status"""
        cursor = await self.conn.execute("""
            SELECT status,
                   COUNT(*) AS count,
                   AVG((julianday(updated_at) - julianday(created_at)) * 86400.0) AS avg_seconds
            FROM humanize_requests
            GROUP BY status
        """)
        rows = await cursor.fetchall()

        by_status = {
            row["status"]: {
                "count": row["count"],
                "avg_processing_time_seconds": float(row["avg_seconds"] or 0),
            }
            for row in rows
        }
        return {
            "total": sum(s["count"] for s in by_status.values()),
            "by_status": by_status,
        }

    async def recover_stale_requests(self, stale_minutes: int, max_attempts: int) -> int:
        """
        Release requests stuck in processing (e.g., after worker crash).

        Rows untouched for longer than stale_minutes go back to pending, or
        to failed once their attempt budget is spent.
        """
        now = utc_now()
        cutoff = (datetime.now(timezone.utc) - timedelta(minutes=stale_minutes)).isoformat(timespec="microseconds")

        requeued = await self._write("""
            UPDATE humanize_requests
            SET status = 'pending',
                error_message = 'Recovered from stale processing state (worker crash/timeout)',
                updated_at = ?
            WHERE status = 'processing' AND updated_at < ? AND attempts < ?
        """, (now, cutoff, max_attempts))
        failed = await self._write("""
            UPDATE humanize_requests
            SET status = 'failed',
                error_message = 'Max attempts exceeded after stale processing recovery',
                updated_at = ?
            WHERE status = 'processing' AND updated_at < ? AND attempts >= ?
        """, (now, cutoff, max_attempts))

        return requeued.rowcount + failed.rowcount

    async def close(self):
        """Close database connection"""
        if self._conn:
            await self._conn.close()
            self._conn = None
