"""
Background worker for humanize requests.
Drains the queue continuously, sleeping only when it is empty.
"""

import asyncio
import uuid
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from humanizer.jobs.queue import HumanizeQueue
from humanizer.utils.logging import worker_logger


class HumanizeWorker:
    """
    Polling worker that processes humanize requests one at a time.

    Loop control:
    - a processed request loops again immediately
    - an empty queue sleeps poll_interval
    - an exception (e.g. database outage) sleeps poll_interval; after
      max_consecutive_errors in a row it sleeps poll_interval *
      backoff_multiplier and drops the counter to half the threshold

    Several workers may run against the same store; the store's claim
    step keeps them from processing the same request.
    """

    def __init__(
        self,
        queue: HumanizeQueue,
        poll_interval_seconds: float = 5.0,
        max_consecutive_errors: int = 10,
        backoff_multiplier: float = 5.0,
        worker_id: Optional[str] = None,
        stale_minutes: int = 0,
        stale_check_interval_seconds: float = 60.0
    ):
        self.queue = queue
        self.poll_interval = poll_interval_seconds
        self.max_consecutive_errors = max_consecutive_errors
        self.backoff_multiplier = backoff_multiplier
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"
        self.stale_minutes = stale_minutes
        self.stale_check_interval = stale_check_interval_seconds

        self.scheduler: Optional[AsyncIOScheduler] = None
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._consecutive_errors = 0
        self._processed_count = 0
        self._is_running = False

    @property
    def stop_event(self) -> asyncio.Event:
        if self._stop_event is None:
            self._stop_event = asyncio.Event()
        return self._stop_event

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive_errors

    @property
    def processed_count(self) -> int:
        return self._processed_count

    async def _sleep(self, seconds: float):
        """Sleep, waking early if stop() is called."""
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run_once(self) -> bool:
        """Process at most one request and apply the loop-control rules."""
        try:
            processed = await self.queue.process_next_item()
        except Exception as e:
            self._consecutive_errors += 1
            worker_logger.error(
                f"[{self.worker_id}] Error processing queue: {e}",
                consecutive_errors=self._consecutive_errors,
                error_type=type(e).__name__
            )

            if self._consecutive_errors >= self.max_consecutive_errors:
                pause = self.poll_interval * self.backoff_multiplier
                worker_logger.critical(
                    f"[{self.worker_id}] Too many consecutive errors, pausing for recovery",
                    pause_seconds=pause
                )
                await self._sleep(pause)
                self._consecutive_errors = self.max_consecutive_errors // 2
            else:
                await self._sleep(self.poll_interval)
            return False

        if processed:
            self._consecutive_errors = 0
            self._processed_count += 1
            return True

        await self._sleep(self.poll_interval)
        return False

    async def run(self):
        """Main loop. Returns once stop() has been called."""
        self._is_running = True
        worker_logger.info(
            f"[{self.worker_id}] Starting queue processing",
            poll_interval=self.poll_interval
        )
        try:
            while not self.stop_event.is_set():
                await self.run_once()
        finally:
            self._is_running = False
            worker_logger.info(
                f"[{self.worker_id}] Queue processing stopped",
                processed=self._processed_count
            )

    async def recover_stale(self) -> int:
        try:
            return await self.queue.recover_stale_requests(self.stale_minutes)
        except Exception as e:
            worker_logger.error(f"[{self.worker_id}] Stale request recovery failed: {e}")
            return 0

    def _start_recovery_scheduler(self):
        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.recover_stale,
            trigger=IntervalTrigger(seconds=self.stale_check_interval),
            id=f"stale_recovery_{self.worker_id}",
            name="Recover stale processing requests",
            replace_existing=True,
            max_instances=1
        )
        self.scheduler.start()

    def start(self) -> asyncio.Task:
        """Start the loop as a background task on the running event loop."""
        if self._task is None or self._task.done():
            self.stop_event.clear()
            self._task = asyncio.create_task(self.run(), name=self.worker_id)
            if self.stale_minutes > 0:
                self._start_recovery_scheduler()
        return self._task

    def stop(self):
        """Ask the loop to exit after the current iteration."""
        self.stop_event.set()

    async def shutdown(self, grace_seconds: float = 5.0):
        """
        Stop the worker, giving an in-flight request up to grace_seconds to
        finish before the task is cancelled.
        """
        self.stop()

        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self.scheduler = None

        if self._task is None or self._task.done():
            return

        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=grace_seconds)
        except asyncio.TimeoutError:
            worker_logger.warning(
                f"[{self.worker_id}] In-flight request did not finish within {grace_seconds}s, cancelling"
            )
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass


# Global worker instance for running inside the web process
_worker_instance: Optional[HumanizeWorker] = None


async def start_humanize_worker() -> HumanizeWorker:
    """
    Start a background worker in this process.
    Call this during FastAPI startup when ENABLE_QUEUE_WORKER is set.
    """
    global _worker_instance

    from humanizer.config import config
    from humanizer.jobs.queue import get_queue

    if _worker_instance is None:
        _worker_instance = HumanizeWorker(
            queue=await get_queue(),
            poll_interval_seconds=config.WORKER_POLL_INTERVAL,
            max_consecutive_errors=config.WORKER_MAX_CONSECUTIVE_ERRORS,
            backoff_multiplier=config.WORKER_BACKOFF_MULTIPLIER,
            worker_id=config.worker_id,
            stale_minutes=config.STALE_PROCESSING_MINUTES,
        )
        _worker_instance.start()

    return _worker_instance


async def stop_humanize_worker(grace_seconds: float = 5.0):
    """
    Stop the in-process worker.
    Call this during FastAPI shutdown.
    """
    global _worker_instance

    if _worker_instance is not None:
        await _worker_instance.shutdown(grace_seconds)
        _worker_instance = None


def get_worker() -> Optional[HumanizeWorker]:
    """Get the current in-process worker (for status checks)"""
    return _worker_instance
