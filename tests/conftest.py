"""Root test configuration for KeyGate.

Shared fixtures:
  - clock / monotonic      — controllable time sources for the lifecycle and cache
  - memory_backend         — InMemoryDocumentBackend (versioned, conditional writes)
  - counting_backend       — wraps memory_backend and counts fetch/write calls
  - key_store / read_cache / manager — wired core objects over the memory backend
  - relay                  — AsyncMock MessagingRelay

Secrets are scrubbed from the environment for every test so a developer's
GITHUB_TOKEN / PANEL_* never leak into config tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import AsyncMock

import pytest

from app.keys.lifecycle import KeyLifecycleManager
from app.store.cache import ReadCache
from app.store.key_store import KeyStore
from app.store.memory_backend import InMemoryDocumentBackend
from app.store.protocol import FetchResult

DOC_PATH = "keys.json"
T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """UTC datetime source that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


class FakeMonotonic:
    """Monotonic seconds source for ReadCache TTL tests."""

    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance_ms(self, ms: float) -> None:
        self.value += ms / 1000.0


class CountingBackend:
    """DocumentBackend wrapper that records every call and can be failed on demand."""

    def __init__(self, inner: InMemoryDocumentBackend) -> None:
        self.inner = inner
        self.fetch_calls: list[Optional[str]] = []
        self.write_calls: list[str] = []
        self.fail_fetch: Optional[Exception] = None

    async def fetch(self, path: str, *, if_none_match: Optional[str] = None) -> FetchResult:
        self.fetch_calls.append(if_none_match)
        if self.fail_fetch is not None:
            raise self.fail_fetch
        return await self.inner.fetch(path, if_none_match=if_none_match)

    async def write(self, path, content, expected_version, message) -> str:
        self.write_calls.append(message)
        return await self.inner.write(path, content, expected_version, message)

    async def health_check(self) -> bool:
        return await self.inner.health_check()

    async def close(self) -> None:
        await self.inner.close()


@pytest.fixture(autouse=True)
def scrub_secret_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "GITHUB_TOKEN",
        "PANEL_USER",
        "PANEL_PASS",
        "KEYGATE_CONFIG",
        "KEYGATE_PORT",
        "KEYGATE_CACHE_DURATION_MS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Reset the in-memory rate limiter storage between tests."""
    from app.auth.limiter import limiter

    limiter.reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def memory_backend() -> InMemoryDocumentBackend:
    return InMemoryDocumentBackend()


@pytest.fixture
def counting_backend(memory_backend: InMemoryDocumentBackend) -> CountingBackend:
    return CountingBackend(memory_backend)


@pytest.fixture
def key_store(memory_backend: InMemoryDocumentBackend) -> KeyStore:
    return KeyStore(memory_backend, DOC_PATH)


@pytest.fixture
def read_cache(counting_backend: CountingBackend, monotonic: FakeMonotonic) -> ReadCache:
    return ReadCache(counting_backend, DOC_PATH, cache_duration_ms=60_000, clock=monotonic)


@pytest.fixture
def relay() -> AsyncMock:
    mock = AsyncMock()
    mock.send_message = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def manager(
    key_store: KeyStore,
    read_cache: ReadCache,
    relay: AsyncMock,
    clock: FakeClock,
) -> KeyLifecycleManager:
    return KeyLifecycleManager(
        key_store,
        read_cache,
        relay,
        expired_message="Your key has expired.",
        clock=clock,
    )
