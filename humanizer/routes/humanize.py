"""
Humanize Routes

Queue-backed humanization: submit text, poll status, list history,
retry failed requests, and inspect queue statistics.
"""

from typing import Optional, List, Dict, Any

from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel, Field

from humanizer.config import config
from humanizer.jobs.queue import (
    HumanizeQueue,
    InvalidStateTransitionError,
    RequestNotFoundError,
    get_queue,
)
from humanizer.security import get_current_user_id
from humanizer.utils.logging import api_logger

router = APIRouter(prefix="/api/humanize", tags=["humanize"])


# =============================================================================
# Request/Response Models
# =============================================================================

class QueueRequest(BaseModel):
    """Text to humanize."""
    content: Optional[str] = None


class QueuedResponse(BaseModel):
    success: bool = True
    message: str = "Humanization request queued"
    request_id: int
    status: str
    queued_at: str
    word_count: int
    word_limit: int


class LegacyQueuedResponse(QueuedResponse):
    original_content: str
    note: str = "Using async queue. Please use /api/humanize/status/{request_id} to check status."


class RequestDetail(BaseModel):
    """Full view of one humanize request."""
    success: bool = True
    request_id: int
    status: str
    original_text: str
    humanized_text: Optional[str] = None
    word_count: int
    attempts: int
    error_message: Optional[str] = None
    queued_at: str
    updated_at: str
    completed_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "RequestDetail":
        return cls(
            request_id=row["id"],
            status=row["status"],
            original_text=row["original_text"],
            humanized_text=row.get("humanized_text"),
            word_count=row["word_count"],
            attempts=row["attempts"],
            error_message=row.get("error_message"),
            queued_at=str(row["created_at"]),
            updated_at=str(row["updated_at"]),
            completed_at=str(row["completed_at"]) if row.get("completed_at") else None,
        )


class RequestListResponse(BaseModel):
    success: bool = True
    requests: List[Dict[str, Any]]


class RetryResponse(BaseModel):
    success: bool = True
    message: str = "Request queued for retry"
    request_id: int
    status: str
    updated_at: str


class ProbeRequest(BaseModel):
    text: str = Field(default="This is a test of the humanization API.")


# =============================================================================
# Dependencies / helpers
# =============================================================================

async def get_humanize_queue() -> HumanizeQueue:
    return await get_queue()


def count_words(content: str) -> int:
    """Whitespace-delimited token count."""
    return len(content.split())


# =============================================================================
# Routes
# =============================================================================

async def _enqueue_content(content: Optional[str], user_id: str, queue: HumanizeQueue) -> QueuedResponse:
    """Validate, word-limit and enqueue; shared by /queue and the legacy /humanize route."""
    if not content or not content.strip():
        raise HTTPException(status_code=400, detail="No content provided")

    word_count = count_words(content)
    word_limit = config.MAX_WORDS_PER_REQUEST
    if word_count > word_limit:
        raise HTTPException(
            status_code=403,
            detail={
                "error": "Word limit exceeded",
                "word_count": word_count,
                "word_limit": word_limit,
            }
        )

    try:
        request = await queue.enqueue(user_id, content, word_count)
    except Exception as e:
        api_logger.error(f"Error queueing humanization request: {e}", user_id=user_id)
        raise HTTPException(status_code=500, detail="Internal server error")

    return QueuedResponse(
        request_id=request["id"],
        status=request["status"],
        queued_at=str(request["created_at"]),
        word_count=word_count,
        word_limit=word_limit,
    )


@router.post("/queue", status_code=202, response_model=QueuedResponse)
async def queue_humanize_request(
    body: QueueRequest,
    user_id: str = Depends(get_current_user_id),
    queue: HumanizeQueue = Depends(get_humanize_queue),
):
    """
    Queue a humanization request.

    Returns immediately with the request id; poll /status/{id} for the result.
    """
    return await _enqueue_content(body.content, user_id, queue)


@router.post("/humanize", status_code=202, response_model=LegacyQueuedResponse)
async def legacy_humanize(
    body: QueueRequest,
    user_id: str = Depends(get_current_user_id),
    queue: HumanizeQueue = Depends(get_humanize_queue),
):
    """Older clients' entry point. Same behaviour as /queue, plus the submitted text."""
    queued = await _enqueue_content(body.content, user_id, queue)
    return LegacyQueuedResponse(**queued.model_dump(), original_content=body.content)


@router.get("/status/{request_id}", response_model=RequestDetail)
async def get_request_status(
    request_id: int,
    user_id: str = Depends(get_current_user_id),
    queue: HumanizeQueue = Depends(get_humanize_queue),
):
    """Get the status (and result, once completed) of one of your requests."""
    try:
        request = await queue.get_status(request_id, user_id)
    except RequestNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        api_logger.error(f"Error getting request status: {e}", request_id=request_id)
        raise HTTPException(status_code=500, detail="Internal server error")

    return RequestDetail.from_row(request)


@router.get("/requests", response_model=RequestListResponse)
async def list_humanize_requests(
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    queue: HumanizeQueue = Depends(get_humanize_queue),
):
    """List your requests, newest first."""
    try:
        requests = await queue.list_requests(user_id, limit=limit, offset=offset)
    except Exception as e:
        api_logger.error(f"Error getting user requests: {e}", user_id=user_id)
        raise HTTPException(status_code=500, detail="Internal server error")

    return RequestListResponse(requests=requests)


@router.post("/retry/{request_id}", response_model=RetryResponse)
async def retry_humanize_request(
    request_id: int,
    user_id: str = Depends(get_current_user_id),
    queue: HumanizeQueue = Depends(get_humanize_queue),
):
    """Re-queue a request that ran out of attempts."""
    try:
        request = await queue.retry_request(request_id, user_id)
    except RequestNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        api_logger.error(f"Error retrying request: {e}", request_id=request_id)
        raise HTTPException(status_code=500, detail="Internal server error")

    return RetryResponse(
        request_id=request["id"],
        status=request["status"],
        updated_at=str(request["updated_at"]),
    )


@router.get("/queue-stats")
async def get_queue_stats(
    user_id: str = Depends(get_current_user_id),
    queue: HumanizeQueue = Depends(get_humanize_queue),
):
    """Queue totals and per-status turnaround."""
    try:
        stats = await queue.get_stats()
    except Exception as e:
        api_logger.error(f"Error getting queue stats: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"success": True, "stats": stats}


@router.post("/test")
async def test_humanize_api(
    body: ProbeRequest,
    user_id: str = Depends(get_current_user_id),
    queue: HumanizeQueue = Depends(get_humanize_queue),
):
    """Check connectivity to the upstream humanizing service."""
    result = await queue.humanizer.probe(body.text)
    return {
        "success": "error" not in result,
        "message": "API test completed",
        "result": result,
    }
