"""
Shared test fixtures for the humanizer test suite.

Provides: temp-file SQLite job store, scripted fake humanizer, wired queue
Dependencies: pytest, pytest-asyncio, aiosqlite
"""

from typing import Callable, List, Optional, Union

import pytest
import pytest_asyncio

from humanizer.humanize.client import HumanizeServiceError
from humanizer.jobs.database import HumanizeRequestDatabase
from humanizer.jobs.queue import HumanizeQueue


class FakeHumanizer:
    """
    Stand-in for HumanizeClient.

    `outcomes` is consumed one per call: a string is returned, an exception
    is raised. When exhausted, `default` is used (uppercase the input if None).
    """

    def __init__(
        self,
        outcomes: Optional[List[Union[str, Exception]]] = None,
        default: Optional[Callable[[str], str]] = None
    ):
        self.outcomes = list(outcomes or [])
        self.default = default or (lambda text: text.upper())
        self.calls: List[str] = []
        self.closed = False

    async def humanize(self, text: str) -> str:
        self.calls.append(text)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
        else:
            outcome = self.default(text)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def probe(self, text: str = "") -> dict:
        return {"status": 200, "data": text}

    async def close(self):
        self.closed = True


def always_failing(message: str = "timeout") -> FakeHumanizer:
    def fail(text: str):
        return HumanizeServiceError(message)
    return FakeHumanizer(default=fail)


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "humanize_jobs.db")


@pytest_asyncio.fixture
async def store(db_path):
    """Connected SQLite job store on a temp file."""
    database = HumanizeRequestDatabase(db_path)
    await database.connect()
    yield database
    await database.close()


@pytest.fixture
def humanizer() -> FakeHumanizer:
    return FakeHumanizer()


@pytest_asyncio.fixture
async def queue(store, humanizer):
    """Queue over the temp store with the default fake humanizer."""
    q = HumanizeQueue(store, humanizer, max_attempts=3)
    await q.initialize()
    return q


async def age_request(store: HumanizeRequestDatabase, request_id: int, timestamp: str):
    """Backdate a row's updated_at for stale recovery tests."""
    await store.conn.execute(
        "UPDATE humanize_requests SET updated_at = ? WHERE id = ?",
        (timestamp, request_id)
    )
    await store.conn.commit()
