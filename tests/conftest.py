"""Shared fixtures: in-memory store, scripted fetcher, fixed clock and a
controllable sleep for the token lifecycle manager."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from webex_mcp.errors import TokenStoreError
from webex_mcp.models import TokenRecord
from webex_mcp.token_manager import TokenLifecycleManager

NOW = datetime(2024, 1, 28, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class MemoryStore:
    """Token store keeping one record in memory."""

    def __init__(self, record: TokenRecord | None = None, supported: bool = True):
        self.record = record
        self.supported = supported
        self.fail_on_store = False
        self.clear_calls = 0

    def is_supported(self) -> bool:
        return self.supported

    def store(self, record: TokenRecord) -> None:
        if self.fail_on_store:
            raise TokenStoreError("store unavailable")
        self.record = record

    def load(self) -> TokenRecord | None:
        return self.record

    def clear(self) -> None:
        self.clear_calls += 1
        self.record = None


class ScriptedFetcher:
    """Returns (or raises) the queued results in order; the last one repeats."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def fetch(self) -> TokenRecord:
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


class GatedFetcher(ScriptedFetcher):
    """Like ScriptedFetcher, but every fetch waits until ``gate`` is set."""

    def __init__(self, *results):
        super().__init__(*results)
        self.gate = asyncio.Event()
        self.started = 0

    async def fetch(self) -> TokenRecord:
        self.started += 1
        await self.gate.wait()
        return await super().fetch()


class ControlledSleep:
    """Records requested delays and blocks until ``release()`` is called."""

    def __init__(self):
        self.delays: list[float] = []
        self._gates: list[asyncio.Event] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        gate = asyncio.Event()
        self._gates.append(gate)
        await gate.wait()

    def release(self) -> None:
        gates, self._gates = self._gates, []
        for gate in gates:
            gate.set()


async def settle(rounds: int = 10) -> None:
    """Let pending tasks run until they block again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_record(token: str = "tok-1", expires_in: timedelta = timedelta(hours=2), **kwargs):
    return TokenRecord(token=token, expires_at=NOW + expires_in, **kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def sleep():
    return ControlledSleep()


@pytest.fixture
async def make_manager(clock, sleep):
    managers = []

    def _make(store, fetcher):
        manager = TokenLifecycleManager(store, fetcher, clock=clock, sleep=sleep)
        managers.append(manager)
        return manager

    yield _make

    for manager in managers:
        await manager.shutdown()
