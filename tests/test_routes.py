"""
Tests for the humanize and admin HTTP routes.

The queue and user dependencies are overridden, so no store or auth
service is touched. TestClient is used without its context manager so the
app lifespan (which builds the real queue) does not run.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from humanizer.api.main import create_app
from humanizer.config import config
from humanizer.jobs.database import JobStoreError
from humanizer.jobs.queue import InvalidStateTransitionError, RequestNotFoundError
from humanizer.routes.humanize import count_words, get_humanize_queue
from humanizer.security import get_current_user_id
from humanizer.utils.logging import get_log_buffer, get_logger

ROW = {
    "id": 42,
    "user_id": "user-1",
    "original_text": "Hello world",
    "humanized_text": None,
    "status": "pending",
    "attempts": 0,
    "error_message": None,
    "word_count": 2,
    "created_at": "2024-05-01T12:00:00.000000+00:00",
    "updated_at": "2024-05-01T12:00:00.000000+00:00",
    "completed_at": None,
}


@pytest.fixture
def mock_queue():
    queue = MagicMock()
    queue.enqueue = AsyncMock(return_value=ROW)
    queue.get_status = AsyncMock(return_value=ROW)
    queue.list_requests = AsyncMock(return_value=[ROW])
    queue.retry_request = AsyncMock(return_value=ROW)
    queue.get_stats = AsyncMock(return_value={"total": 1, "by_status": {}})
    queue.recover_stale_requests = AsyncMock(return_value=0)
    queue.humanizer.probe = AsyncMock(return_value={"status": 200, "data": "ok"})
    queue.max_attempts = 3
    return queue


@pytest.fixture
def client(mock_queue):
    app = create_app()
    app.dependency_overrides[get_humanize_queue] = lambda: mock_queue
    app.dependency_overrides[get_current_user_id] = lambda: "user-1"
    return TestClient(app)


class TestCountWords:

    def test_whitespace_delimited(self):
        assert count_words("Hello   world\n\tagain ") == 3

    def test_blank(self):
        assert count_words("   ") == 0


class TestQueueRoute:

    def test_queue_accepted(self, client, mock_queue):
        response = client.post("/api/humanize/queue", json={"content": "Hello world"})

        assert response.status_code == 202
        body = response.json()
        assert body["success"] is True
        assert body["request_id"] == 42
        assert body["status"] == "pending"
        assert body["word_count"] == 2
        assert body["word_limit"] == config.MAX_WORDS_PER_REQUEST
        mock_queue.enqueue.assert_awaited_once_with("user-1", "Hello world", 2)

    @pytest.mark.parametrize("payload", [{}, {"content": ""}, {"content": "   "}])
    def test_empty_content_rejected(self, client, mock_queue, payload):
        response = client.post("/api/humanize/queue", json=payload)

        assert response.status_code == 400
        assert response.json()["detail"] == "No content provided"
        mock_queue.enqueue.assert_not_called()

    def test_word_limit_exceeded(self, client, mock_queue, monkeypatch):
        monkeypatch.setattr(config, "MAX_WORDS_PER_REQUEST", 3)

        response = client.post("/api/humanize/queue", json={"content": "one two three four"})

        assert response.status_code == 403
        assert response.json()["detail"] == {
            "error": "Word limit exceeded",
            "word_count": 4,
            "word_limit": 3,
        }
        mock_queue.enqueue.assert_not_called()

    def test_legacy_humanize_route_queues(self, client, mock_queue):
        response = client.post("/api/humanize/humanize", json={"content": "Hello world"})

        assert response.status_code == 202
        body = response.json()
        assert body["request_id"] == 42
        assert body["status"] == "pending"
        assert body["original_content"] == "Hello world"
        assert "/api/humanize/status/" in body["note"]
        mock_queue.enqueue.assert_awaited_once_with("user-1", "Hello world", 2)

    def test_legacy_humanize_route_enforces_limits(self, client, mock_queue, monkeypatch):
        monkeypatch.setattr(config, "MAX_WORDS_PER_REQUEST", 1)

        assert client.post("/api/humanize/humanize", json={}).status_code == 400
        assert client.post("/api/humanize/humanize", json={"content": "a b"}).status_code == 403
        mock_queue.enqueue.assert_not_called()

    def test_store_failure_is_500(self, client, mock_queue):
        mock_queue.enqueue.side_effect = JobStoreError("disk full")

        response = client.post("/api/humanize/queue", json={"content": "Hello world"})

        assert response.status_code == 500


class TestStatusAndListRoutes:

    def test_status_found(self, client, mock_queue):
        response = client.get("/api/humanize/status/42")

        assert response.status_code == 200
        body = response.json()
        assert body["request_id"] == 42
        assert body["queued_at"] == ROW["created_at"]
        assert body["humanized_text"] is None
        mock_queue.get_status.assert_awaited_once_with(42, "user-1")

    def test_status_not_found(self, client, mock_queue):
        mock_queue.get_status.side_effect = RequestNotFoundError(42)

        response = client.get("/api/humanize/status/42")

        assert response.status_code == 404
        assert response.json()["detail"] == "Request not found or not authorized"

    def test_list_passes_paging(self, client, mock_queue):
        response = client.get("/api/humanize/requests?limit=5&offset=10")

        assert response.status_code == 200
        assert response.json()["requests"][0]["id"] == 42
        mock_queue.list_requests.assert_awaited_once_with("user-1", limit=5, offset=10)

    def test_list_limit_is_bounded(self, client):
        assert client.get("/api/humanize/requests?limit=0").status_code == 422
        assert client.get("/api/humanize/requests?limit=101").status_code == 422


class TestRetryRoute:

    def test_retry_ok(self, client, mock_queue):
        response = client.post("/api/humanize/retry/42")

        assert response.status_code == 200
        assert response.json()["status"] == "pending"
        mock_queue.retry_request.assert_awaited_once_with(42, "user-1")

    def test_retry_not_found(self, client, mock_queue):
        mock_queue.retry_request.side_effect = RequestNotFoundError(42)

        assert client.post("/api/humanize/retry/42").status_code == 404

    def test_retry_wrong_state(self, client, mock_queue):
        mock_queue.retry_request.side_effect = InvalidStateTransitionError(42, "completed")

        response = client.post("/api/humanize/retry/42")

        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot retry request with status: completed"


class TestStatsAndProbeRoutes:

    def test_queue_stats(self, client):
        response = client.get("/api/humanize/queue-stats")

        assert response.status_code == 200
        assert response.json() == {"success": True, "stats": {"total": 1, "by_status": {}}}

    def test_probe(self, client, mock_queue):
        response = client.post("/api/humanize/test", json={"text": "ping"})

        assert response.status_code == 200
        assert response.json()["success"] is True
        mock_queue.humanizer.probe.assert_awaited_once_with("ping")

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestAdminRoutes:

    def test_logs_in_dev_mode(self, client):
        get_log_buffer().clear()
        get_logger("queue").warning("Something odd")

        response = client.get("/api/admin/logs?level=warning")

        assert response.status_code == 200
        logs = response.json()["logs"]
        assert logs[0]["message"] == "Something odd"
        assert logs[0]["source"] == "queue"

    def test_invalid_log_level(self, client):
        assert client.get("/api/admin/logs?level=loud").status_code == 400

    def test_clear_logs(self, client):
        get_logger("queue").error("boom")

        assert client.post("/api/admin/logs/clear").json() == {"cleared": True}
        assert client.get("/api/admin/logs/errors").json()["errors"] == []

    def test_queue_stats_includes_store_and_worker(self, client):
        body = client.get("/api/admin/queue/stats").json()

        assert body["stats"]["total"] == 1
        assert body["job_store"] == config.JOB_STORE
        assert body["max_attempts"] == 3
        assert body["worker"] is None

    def test_recover_stale(self, client, mock_queue):
        mock_queue.recover_stale_requests.return_value = 2

        response = client.post("/api/admin/queue/recover-stale?stale_minutes=15")

        assert response.json() == {"recovered": 2, "stale_minutes": 15}
        mock_queue.recover_stale_requests.assert_awaited_once_with(15)

    def test_api_key_required_when_configured(self, client, monkeypatch):
        monkeypatch.setattr(config, "API_KEYS", "secret-key")
        monkeypatch.setattr(config, "RATE_LIMIT_PER_MINUTE", 0)

        assert client.get("/api/admin/logs").status_code == 401
        assert client.get("/api/admin/logs", headers={"X-API-Key": "wrong"}).status_code == 403
        assert client.get("/api/admin/logs", headers={"X-API-Key": "secret-key"}).status_code == 200

    def test_logs_filtered_by_request(self, client):
        get_log_buffer().clear()
        logger = get_logger("queue")
        logger.info("Added request 42 to queue", request_id=42)
        logger.info("Added request 43 to queue", request_id=43)

        logs = client.get("/api/admin/logs?request_id=42").json()["logs"]

        assert [entry["message"] for entry in logs] == ["Added request 42 to queue"]
