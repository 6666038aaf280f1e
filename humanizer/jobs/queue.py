"""
Humanize request queue.
Provides the high-level interface for creating, processing and managing
humanize requests on top of a job store.
"""

from typing import Dict, Any, List, Optional

from humanizer.config import config
from humanizer.jobs.database import HumanizeRequestDatabase, RequestStatus
from humanizer.utils.logging import queue_logger

DEFAULT_MAX_ATTEMPTS = 3


class QueueError(Exception):
    """Base class for errors raised to synchronous queue callers."""
    pass


class RequestNotFoundError(QueueError):
    """The request does not exist or belongs to another user."""

    def __init__(self, request_id: Any):
        self.request_id = request_id
        super().__init__("Request not found or not authorized")


class InvalidStateTransitionError(QueueError):
    """The requested operation is not legal in the request's current status."""

    def __init__(self, request_id: Any, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(f"Cannot retry request with status: {status}")


class HumanizeQueue:
    """
    High-level interface for the humanize request queue.

    `store` is a HumanizeRequestDatabase or SupabaseRequestStore;
    `humanizer` is anything with an async `humanize(text) -> str`.

    Usage:
        queue = HumanizeQueue(store, HumanizeClient(url))
        await queue.initialize()

        request = await queue.enqueue(user_id, text, word_count)
        status = await queue.get_status(request["id"], user_id)

        # in a worker
        while await queue.process_next_item():
            pass
    """

    def __init__(self, store, humanizer, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        self.store = store
        self.humanizer = humanizer
        self.max_attempts = max_attempts
        self._initialized = False

    async def initialize(self):
        """Connect the underlying store"""
        if not self._initialized:
            await self.store.connect()
            self._initialized = True

    async def _ensure_initialized(self):
        if not self._initialized:
            await self.initialize()

    # =========================================================================
    # Client-facing operations
    # =========================================================================

    async def enqueue(self, user_id: Optional[str], text: str, word_count: int) -> Dict[str, Any]:
        """
        Queue a new humanize request.

        Limits are checked by the caller; word_count is stored as given.

        Returns:
            The stored request (id, status, created_at, ...)
        """
        await self._ensure_initialized()

        request = await self.store.create_request(
            user_id=user_id,
            original_text=text,
            word_count=word_count
        )
        queue_logger.info(
            f"Added request {request['id']} to queue",
            request_id=request["id"],
            user_id=user_id,
            word_count=word_count
        )
        return request

    async def get_status(self, request_id: int, user_id: Optional[str]) -> Dict[str, Any]:
        """
        Get the full record of one of the user's requests.

        Raises:
            RequestNotFoundError: missing or owned by someone else
        """
        await self._ensure_initialized()

        request = await self.store.get_request(request_id, user_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        return request

    async def list_requests(
        self,
        user_id: Optional[str],
        limit: int = 10,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        """Get a page of the user's requests, newest first"""
        await self._ensure_initialized()
        return await self.store.list_requests(user_id, limit=limit, offset=offset)

    async def retry_request(self, request_id: int, user_id: Optional[str]) -> Dict[str, Any]:
        """
        Put a failed request back in the queue.

        Status goes back to pending and the error is cleared; the attempt
        counter is kept.

        Raises:
            RequestNotFoundError: missing or owned by someone else
            InvalidStateTransitionError: the request is not failed
        """
        request = await self.get_status(request_id, user_id)
        if request["status"] != RequestStatus.FAILED.value:
            raise InvalidStateTransitionError(request_id, request["status"])

        updated = await self.store.reset_for_retry(request_id, user_id)
        if updated is None:
            # Status changed between the read and the guarded update
            current = await self.get_status(request_id, user_id)
            raise InvalidStateTransitionError(request_id, current["status"])

        queue_logger.info(f"Request {request_id} queued for retry", request_id=request_id, user_id=user_id)
        return updated

    async def get_stats(self) -> Dict[str, Any]:
        """Total count plus count and average turnaround per status"""
        await self._ensure_initialized()
        return await self.store.get_stats()

    # =========================================================================
    # Worker-facing operations
    # =========================================================================

    async def process_next_item(self) -> bool:
        """
        Claim and process the oldest pending request.

        Returns:
            False when nothing was pending, True when a request was
            attempted (whether or not the humanize call succeeded).

        Storage errors propagate so the worker can back off.
        """
        await self._ensure_initialized()

        request = await self.store.claim_next_pending()
        if request is None:
            return False

        request_id = request["id"]
        attempts = request["attempts"]
        queue_logger.info(f"Processing request {request_id} (attempt {attempts})", request_id=request_id)

        # The claim is committed; the slow upstream call holds no lock
        try:
            humanized_text = await self.humanizer.humanize(request["original_text"])
        except Exception as e:
            error_message = str(e) or type(e).__name__
            final = attempts >= self.max_attempts

            updated = await self.store.mark_attempt_failed(
                request_id, error_message, attempts, final=final
            )

            if updated is None:
                self._log_lost_claim(request_id, attempts)
            elif final:
                queue_logger.error(
                    f"Request {request_id} failed after {attempts} attempts",
                    request_id=request_id,
                    error=error_message
                )
            else:
                queue_logger.warning(
                    f"Request {request_id} attempt {attempts} failed, will retry",
                    request_id=request_id,
                    error=error_message
                )
            return True

        updated = await self.store.mark_completed(request_id, humanized_text, attempts)
        if updated is None:
            self._log_lost_claim(request_id, attempts)
            return True

        queue_logger.info(
            f"Successfully processed request {request_id}",
            request_id=request_id,
            user_id=request.get("user_id"),
            word_count=request.get("word_count")
        )
        return True

    def _log_lost_claim(self, request_id: int, attempts: int):
        queue_logger.warning(
            f"Dropped result for request {request_id}: claim from attempt {attempts} "
            "no longer holds (request was recovered and reclaimed)",
            request_id=request_id
        )

    async def recover_stale_requests(self, stale_minutes: int) -> int:
        """Release requests left in processing by a crashed worker"""
        await self._ensure_initialized()

        recovered = await self.store.recover_stale_requests(stale_minutes, self.max_attempts)
        if recovered:
            queue_logger.warning(
                f"Recovered {recovered} stale processing request(s)",
                stale_minutes=stale_minutes
            )
        return recovered

    async def close(self):
        """Close the store and the humanizer client"""
        if self._initialized:
            await self.store.close()
            self._initialized = False
        close = getattr(self.humanizer, "close", None)
        if close is not None:
            await close()


def build_store():
    """Create the job store selected by JOB_STORE."""
    if config.JOB_STORE == "supabase":
        from humanizer.database.requests import SupabaseRequestStore
        return SupabaseRequestStore()
    return HumanizeRequestDatabase(config.job_db_path)


def build_queue() -> HumanizeQueue:
    """Create a queue wired from configuration."""
    from humanizer.humanize.client import HumanizeClient

    return HumanizeQueue(
        store=build_store(),
        humanizer=HumanizeClient(
            config.HUMANIZER_API_URL,
            timeout_seconds=config.HUMANIZER_TIMEOUT_SECONDS,
            probe_timeout_seconds=config.HUMANIZER_PROBE_TIMEOUT_SECONDS,
        ),
        max_attempts=config.QUEUE_MAX_ATTEMPTS,
    )


# Global queue instance (initialized on first use)
_queue_instance: Optional[HumanizeQueue] = None


async def get_queue() -> HumanizeQueue:
    """
    Get or create the global queue instance.

    This ensures we reuse the same store connection across the app.
    """
    global _queue_instance

    if _queue_instance is None:
        _queue_instance = build_queue()
        await _queue_instance.initialize()

    return _queue_instance


async def close_queue():
    """Close the global queue instance"""
    global _queue_instance

    if _queue_instance is not None:
        await _queue_instance.close()
        _queue_instance = None
