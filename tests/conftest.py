"""
Shared fixtures.

Async tests run under pytest-asyncio (asyncio_mode = "auto" in pyproject.toml).
Retry policies in tests never actually sleep; they record the delays instead.
"""

import pytest

from voteledger.coordinator import VoteLedger
from voteledger.retry import RetryPolicy
from voteledger.store import InMemoryDocumentStore, PutResult

AGGREGATE = "data/data.json"
LEDGER = "data/votes.json"


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FlakyStore(InMemoryDocumentStore):
    """In-memory store that answers CONFLICT for the next N puts on a path."""

    def __init__(self, documents=None, conflicts=None):
        super().__init__(documents)
        self.conflicts = dict(conflicts or {})
        self.puts = []

    async def put(self, path, content, expected_version, message=""):
        self.puts.append((path, message))
        if self.conflicts.get(path, 0) > 0:
            self.conflicts[path] -= 1
            return PutResult.CONFLICT
        return await super().put(path, content, expected_version, message)


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def policy(sleeper):
    return RetryPolicy(max_attempts=3, backoff=1.0, refresh_delay=0.5, sleep=sleeper)


@pytest.fixture
def store():
    return FlakyStore(
        {
            AGGREGATE: {
                "entries": [
                    {"id": "a1", "votes": 3, "title": "First", "url": "https://a.example"},
                    {"id": "b2", "votes": 0, "title": "Second"},
                ]
            },
            LEDGER: {"votes": {}},
        }
    )


@pytest.fixture
def ledger(store, policy):
    return VoteLedger(store, AGGREGATE, LEDGER, policy=policy, clock_ms=lambda: 1700000000000)
