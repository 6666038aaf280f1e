"""
Admin API Routes

Operator endpoints, guarded by the admin API key:
- Queue statistics and stale request recovery
- Recent logs, errors and warnings from the in-memory buffer
- In-process worker status
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Query

from humanizer.config import config
from humanizer.jobs.queue import HumanizeQueue
from humanizer.jobs.worker import get_worker
from humanizer.routes.humanize import get_humanize_queue
from humanizer.security import verify_api_key
from humanizer.utils.logging import LogLevel, get_log_buffer, get_logger

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(verify_api_key)],
)
logger = get_logger("admin")


# ===== Queue =====

@router.get("/queue/stats")
async def get_queue_stats(queue: HumanizeQueue = Depends(get_humanize_queue)):
    """Queue statistics plus the state of the in-process worker, if any."""
    try:
        stats = await queue.get_stats()
    except Exception as e:
        logger.error(f"Failed to fetch queue stats: {e}", error=str(e))
        raise HTTPException(status_code=500, detail=str(e))

    worker = get_worker()
    return {
        "stats": stats,
        "job_store": config.JOB_STORE,
        "max_attempts": queue.max_attempts,
        "worker": {
            "worker_id": worker.worker_id,
            "running": worker.is_running,
            "processed": worker.processed_count,
            "consecutive_errors": worker.consecutive_errors,
        } if worker else None,
    }


@router.post("/queue/recover-stale")
async def recover_stale_requests(
    stale_minutes: int = Query(10, ge=1, le=24 * 60),
    queue: HumanizeQueue = Depends(get_humanize_queue),
):
    """Requeue (or fail) requests stuck in processing longer than stale_minutes."""
    try:
        recovered = await queue.recover_stale_requests(stale_minutes)
    except Exception as e:
        logger.error(f"Stale recovery failed: {e}", error=str(e))
        raise HTTPException(status_code=500, detail=str(e))

    return {"recovered": recovered, "stale_minutes": stale_minutes}


# ===== Logs =====

@router.get("/logs")
async def get_logs(
    limit: int = Query(100, ge=1, le=500),
    level: Optional[str] = Query(None, description="Filter by level (debug, info, warning, error, critical)"),
    source: Optional[str] = Query(None, description="Filter by source (queue, worker, humanize_api, auth, api)"),
    request_id: Optional[int] = Query(None, description="Only entries about this humanize request")
):
    """Get recent log entries from the in-memory buffer."""
    level_filter = None
    if level:
        try:
            level_filter = LogLevel(level.lower())
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid log level: {level}")

    log_buffer = get_log_buffer()
    return {
        "logs": log_buffer.get_recent(
            limit=limit, level=level_filter, source=source, request_id=request_id
        ),
        "stats": log_buffer.get_stats()
    }


@router.get("/logs/errors")
async def get_error_logs(limit: int = Query(50, ge=1, le=200)):
    """Get recent error and critical log entries."""
    return {"errors": get_log_buffer().get_errors(limit=limit)}


@router.get("/logs/warnings")
async def get_warning_logs(limit: int = Query(50, ge=1, le=200)):
    """Get recent warning log entries."""
    return {"warnings": get_log_buffer().get_warnings(limit=limit)}


@router.post("/logs/clear")
async def clear_logs():
    get_log_buffer().clear()
    logger.info("Log buffer cleared")
    return {"cleared": True}
