"""
Tests for the Supabase-backed request store.

The Supabase client is replaced with a recording fake of the postgrest
query builder, so these tests check the queries issued, not Postgres.
"""

from types import SimpleNamespace

import pytest

from humanizer.database.requests import SupabaseRequestStore
from humanizer.jobs.database import JobStoreError


class FakeQuery:
    """Chainable query builder that records every call."""

    def __init__(self, client, target, data):
        self.client = client
        self.target = target
        self.data = data
        self.calls = []

    def __getattr__(self, name):
        def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return method

    def execute(self):
        self.client.executed.append(self)
        if isinstance(self.data, Exception):
            raise self.data
        return SimpleNamespace(data=self.data)


class FakeSupabase:
    """Returns queued responses in order for table() and rpc() calls."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.executed = []

    def _next(self):
        return self.responses.pop(0) if self.responses else []

    def table(self, name):
        return FakeQuery(self, ("table", name), self._next())

    def rpc(self, name, params=None):
        return FakeQuery(self, ("rpc", name), self._next())


def call_names(query):
    return [name for name, _, _ in query.calls]


ROW = {
    "id": 7,
    "user_id": "u1",
    "original_text": "text",
    "status": "processing",
    "attempts": 1,
}


class TestCreateAndLookup:

    @pytest.mark.asyncio
    async def test_create_inserts_pending_row(self):
        client = FakeSupabase([[{**ROW, "status": "pending", "attempts": 0}]])
        store = SupabaseRequestStore(client)

        row = await store.create_request("u1", "text", 1)

        query = client.executed[0]
        assert query.target == ("table", "humanize_requests")
        name, args, _ = query.calls[0]
        assert name == "insert"
        assert args[0]["status"] == "pending"
        assert args[0]["attempts"] == 0
        assert args[0]["word_count"] == 1
        assert row["status"] == "pending"

    @pytest.mark.asyncio
    async def test_get_request_filters_by_owner(self):
        client = FakeSupabase([[ROW]])
        store = SupabaseRequestStore(client)

        row = await store.get_request(7, "u1")

        assert row == ROW
        assert ("eq", ("id", 7), {}) in client.executed[0].calls
        assert ("eq", ("user_id", "u1"), {}) in client.executed[0].calls

    @pytest.mark.asyncio
    async def test_get_request_anonymous_owner_uses_is_null(self):
        client = FakeSupabase([[]])
        store = SupabaseRequestStore(client)

        assert await store.get_request(7, None) is None
        assert ("is_", ("user_id", "null"), {}) in client.executed[0].calls

    @pytest.mark.asyncio
    async def test_list_requests_orders_and_pages(self):
        client = FakeSupabase([[ROW]])
        store = SupabaseRequestStore(client)

        await store.list_requests("u1", limit=10, offset=20)

        calls = client.executed[0].calls
        assert ("order", ("created_at",), {"desc": True}) in calls
        assert ("order", ("id",), {"desc": True}) in calls
        assert ("range", (20, 29), {}) in calls


class TestClaim:

    @pytest.mark.asyncio
    async def test_claim_calls_skip_locked_function(self):
        client = FakeSupabase([[ROW]])
        store = SupabaseRequestStore(client)

        claimed = await store.claim_next_pending()

        assert claimed == ROW
        assert client.executed[0].target == ("rpc", "claim_next_humanize_request")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", [[], None, [None], [{"id": None}]])
    async def test_claim_with_nothing_pending(self, data):
        store = SupabaseRequestStore(FakeSupabase([data]))

        assert await store.claim_next_pending() is None

    @pytest.mark.asyncio
    async def test_claim_accepts_single_object_response(self):
        store = SupabaseRequestStore(FakeSupabase([ROW]))

        assert await store.claim_next_pending() == ROW

    @pytest.mark.asyncio
    async def test_claim_failure_becomes_job_store_error(self):
        store = SupabaseRequestStore(FakeSupabase([ConnectionError("unreachable")]))

        with pytest.raises(JobStoreError):
            await store.claim_next_pending()


class TestUpdates:

    @pytest.mark.asyncio
    async def test_mark_completed(self):
        client = FakeSupabase([[{**ROW, "status": "completed"}]])
        store = SupabaseRequestStore(client)

        await store.mark_completed(7, "TEXT", 1)

        name, args, _ = client.executed[0].calls[0]
        assert name == "update"
        assert args[0]["status"] == "completed"
        assert args[0]["humanized_text"] == "TEXT"
        assert args[0]["error_message"] is None
        assert args[0]["completed_at"] == args[0]["updated_at"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("final,status", [(False, "pending"), (True, "failed")])
    async def test_mark_attempt_failed(self, final, status):
        client = FakeSupabase([[ROW]])
        store = SupabaseRequestStore(client)

        await store.mark_attempt_failed(7, "timeout", 1, final=final)

        _, args, _ = client.executed[0].calls[0]
        assert args[0]["status"] == status
        assert args[0]["error_message"] == "timeout"

    @pytest.mark.asyncio
    async def test_reset_for_retry_is_guarded_on_failed_and_owner(self):
        client = FakeSupabase([[]])
        store = SupabaseRequestStore(client)

        assert await store.reset_for_retry(7, "u1") is None

        calls = client.executed[0].calls
        assert ("eq", ("status", "failed"), {}) in calls
        assert ("eq", ("user_id", "u1"), {}) in calls
        assert "attempts" not in calls[0][1][0]


class TestStatsAndRecovery:

    @pytest.mark.asyncio
    async def test_get_stats_from_rpc(self):
        client = FakeSupabase([[
            {"status": "completed", "count": 4, "avg_processing_time_seconds": 12.5},
            {"status": "pending", "count": 2, "avg_processing_time_seconds": None},
        ]])
        store = SupabaseRequestStore(client)

        stats = await store.get_stats()

        assert client.executed[0].target == ("rpc", "humanize_request_stats")
        assert stats == {
            "total": 6,
            "by_status": {
                "completed": {"count": 4, "avg_processing_time_seconds": 12.5},
                "pending": {"count": 2, "avg_processing_time_seconds": 0.0},
            },
        }

    @pytest.mark.asyncio
    async def test_recover_stale_requeues_or_fails(self):
        # Arrange: select, then one guarded update per row (second loses the race)
        client = FakeSupabase([
            [{"id": 1, "attempts": 1}, {"id": 2, "attempts": 3}, {"id": 3, "attempts": 3}],
            [{"id": 1}],
            [{"id": 2}],
            [],
        ])
        store = SupabaseRequestStore(client)

        # Act
        recovered = await store.recover_stale_requests(stale_minutes=10, max_attempts=3)

        # Assert
        assert recovered == 2
        select, first, second, third = client.executed
        assert ("eq", ("status", "processing"), {}) in select.calls
        assert "lt" in call_names(select)
        assert first.calls[0][1][0]["status"] == "pending"
        assert second.calls[0][1][0]["status"] == "failed"
        assert ("eq", ("status", "processing"), {}) in third.calls
        assert ("eq", ("attempts", 3), {}) in third.calls


class TestClaimGuardAndErrors:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("write", [
        lambda store: store.mark_completed(7, "TEXT", 2),
        lambda store: store.mark_attempt_failed(7, "timeout", 2, final=True),
    ])
    async def test_result_writes_are_guarded_on_claim(self, write):
        client = FakeSupabase([[]])
        store = SupabaseRequestStore(client)

        assert await write(store) is None

        calls = client.executed[0].calls
        assert ("eq", ("id", 7), {}) in calls
        assert ("eq", ("status", "processing"), {}) in calls
        assert ("eq", ("attempts", 2), {}) in calls

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", [
        lambda store: store.create_request("u1", "text", 1),
        lambda store: store.get_request(7, "u1"),
        lambda store: store.list_requests("u1"),
        lambda store: store.mark_completed(7, "TEXT", 1),
        lambda store: store.mark_attempt_failed(7, "timeout", 1),
        lambda store: store.reset_for_retry(7, "u1"),
        lambda store: store.get_stats(),
        lambda store: store.recover_stale_requests(10, 3),
    ])
    async def test_client_errors_become_job_store_errors(self, operation):
        store = SupabaseRequestStore(FakeSupabase([RuntimeError("postgrest 502")]))

        with pytest.raises(JobStoreError, match="postgrest 502"):
            await operation(store)
