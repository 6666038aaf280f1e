#!/usr/bin/env python3
"""
Standalone humanize worker process.

Run this as a separate process from the web server. Any number of
copies may run against the same job store.

Usage:
    python -m humanizer.jobs.run_worker
"""

import asyncio
import signal
import sys

from humanizer.config import config
from humanizer.database.client import verify_supabase_connection
from humanizer.jobs.queue import build_queue
from humanizer.jobs.worker import HumanizeWorker
from humanizer.utils.logging import configure_logging, worker_logger


SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def install_signal_handlers(worker: HumanizeWorker, loop: asyncio.AbstractEventLoop):
    """
    Stop the worker on SIGTERM/SIGINT.

    Handlers run on the event loop, so a worker sleeping through a poll
    interval or backoff wakes immediately.
    """
    def handle_shutdown(sig: signal.Signals):
        print(f"\n  [{worker.worker_id}] Received {sig.name}, shutting down gracefully...")
        worker.stop()

    for sig in SHUTDOWN_SIGNALS:
        loop.add_signal_handler(sig, handle_shutdown, sig)


async def main() -> int:
    """Run the humanize worker until SIGTERM/SIGINT."""
    configure_logging(config.LOG_LEVEL)

    worker_id = config.worker_id
    print("=" * 60)
    print(f"Starting Humanize Worker {worker_id}")
    print("=" * 60)
    print(f"  Job store: {config.JOB_STORE}")
    if config.JOB_STORE == "sqlite":
        print(f"  Job database: {config.job_db_path}")
    print(f"  Humanizer: {config.HUMANIZER_API_URL}")
    print(f"  Poll interval: {config.WORKER_POLL_INTERVAL}s")
    print(f"  Max attempts: {config.QUEUE_MAX_ATTEMPTS}")
    print(f"  Stale recovery: {config.STALE_PROCESSING_MINUTES or 'disabled'}"
          f"{' min' if config.STALE_PROCESSING_MINUTES else ''}")
    print("=" * 60)

    queue = build_queue()
    try:
        await queue.initialize()
    except Exception as e:
        worker_logger.critical(f"[{worker_id}] Initialization error: {e}")
        await queue.close()
        return 1

    if config.JOB_STORE == "supabase" and not verify_supabase_connection():
        worker_logger.critical(f"[{worker_id}] humanize_requests table is not reachable")
        await queue.close()
        return 1

    worker = HumanizeWorker(
        queue=queue,
        poll_interval_seconds=config.WORKER_POLL_INTERVAL,
        max_consecutive_errors=config.WORKER_MAX_CONSECUTIVE_ERRORS,
        backoff_multiplier=config.WORKER_BACKOFF_MULTIPLIER,
        worker_id=worker_id,
        stale_minutes=config.STALE_PROCESSING_MINUTES,
    )

    install_signal_handlers(worker, asyncio.get_running_loop())

    try:
        worker.start()
        print("\n  Worker running. Press Ctrl+C to stop.\n")
        await worker.stop_event.wait()
    finally:
        await worker.shutdown(grace_seconds=config.WORKER_SHUTDOWN_GRACE_SECONDS)
        await queue.close()
        print(f"  [{worker_id}] Shutdown complete.")

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
