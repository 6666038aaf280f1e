"""
Humanize request queue system.

Components:
- HumanizeRequestDatabase: SQLite-backed request storage
- HumanizeQueue: enqueue / status / retry / process operations
- HumanizeWorker: polling worker that drains the queue

Usage:
    # In API endpoint - queue a request
    from humanizer.jobs import get_queue
    queue = await get_queue()
    request = await queue.enqueue(user_id, text, word_count)

    # Check status
    request = await queue.get_status(request["id"], user_id)

    # Separate process
    python -m humanizer.jobs.run_worker
"""

from humanizer.jobs.database import HumanizeRequestDatabase, RequestStatus, JobStoreError
from humanizer.jobs.queue import (
    HumanizeQueue,
    QueueError,
    RequestNotFoundError,
    InvalidStateTransitionError,
    build_queue,
    get_queue,
    close_queue,
)
from humanizer.jobs.worker import (
    HumanizeWorker,
    start_humanize_worker,
    stop_humanize_worker,
    get_worker,
)

__all__ = [
    # Database
    "HumanizeRequestDatabase",
    "RequestStatus",
    "JobStoreError",

    # Queue
    "HumanizeQueue",
    "QueueError",
    "RequestNotFoundError",
    "InvalidStateTransitionError",
    "build_queue",
    "get_queue",
    "close_queue",

    # Worker
    "HumanizeWorker",
    "start_humanize_worker",
    "stop_humanize_worker",
    "get_worker",
]
