"""ReadCache — time-boxed, ETag-revalidated copy of the key collection.

Shields the high-frequency validation path from the backend:

    Empty ──fetch──▶ Fresh ──TTL elapses──▶ Stale ──304──▶ Fresh
                                             │
                                             └──200──▶ Fresh (new data)

  - Fresh hit (now - fetched_at < TTL): zero backend calls.
  - Stale/Empty: conditional fetch with the stored ETag.
  - Any failure: serve the last known data (even if stale); None only if the
    cache has never been populated.

The snapshot is a frozen dataclass replaced wholesale — concurrent readers
see either the old or the new snapshot, never a mix. The cache is never
authoritative for writes: every write path goes through KeyStore.load().
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from app.constants import DEFAULT_CACHE_DURATION_MS
from app.errors import BackendUnavailable, MalformedDocument
from app.store.models import AccessKeyRecord, decode_collection
from app.store.protocol import DocumentBackend, FetchStatus
from app.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CacheSnapshot:
    data: Optional[tuple[AccessKeyRecord, ...]]
    fetched_at: float
    """Clock reading (seconds) of the last successful fetch or revalidation."""
    etag: Optional[str]


class ReadCache:
    """Read-through cache over a DocumentBackend path.

    Args:
        backend:           Document backend to read from.
        path:              Document path of the key collection.
        cache_duration_ms: TTL (the ``cacheDurationMs`` option).
        clock:             Monotonic seconds source; injectable for tests.
    """

    def __init__(
        self,
        backend: DocumentBackend,
        path: str,
        cache_duration_ms: int = DEFAULT_CACHE_DURATION_MS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._backend = backend
        self._path = path
        self._ttl_s = cache_duration_ms / 1000.0
        self._clock = clock
        self._snapshot: Optional[CacheSnapshot] = None

    @property
    def snapshot(self) -> Optional[CacheSnapshot]:
        return self._snapshot

    @property
    def cache_duration_ms(self) -> int:
        return int(self._ttl_s * 1000)

    def state(self) -> str:
        """'empty', 'fresh' or 'stale' — for health reporting."""
        snapshot = self._snapshot
        if snapshot is None or snapshot.data is None:
            return "empty"
        if self._clock() - snapshot.fetched_at < self._ttl_s:
            return "fresh"
        return "stale"

    def invalidate(self) -> None:
        """Drop the snapshot; the next get() refetches unconditionally."""
        self._snapshot = None

    async def get(self) -> Optional[list[AccessKeyRecord]]:
        """Return the key collection, or None if it has never been available."""
        snapshot = self._snapshot
        now = self._clock()

        if snapshot is not None and snapshot.data is not None and now - snapshot.fetched_at < self._ttl_s:
            return list(snapshot.data)

        etag = snapshot.etag if snapshot is not None else None
        try:
            result = await self._backend.fetch(self._path, if_none_match=etag)

            if result.status is FetchStatus.NOT_MODIFIED and snapshot is not None:
                self._snapshot = CacheSnapshot(data=snapshot.data, fetched_at=now, etag=etag)
                logger.debug("Key cache revalidated (not modified)")
                return _as_list(snapshot.data)

            if result.status is FetchStatus.NOT_FOUND:
                records: list[AccessKeyRecord] = []
            else:
                try:
                    records = decode_collection(result.content or b"")
                except MalformedDocument as exc:
                    # Pin the broken revision's etag so the next refresh is a
                    # conditional GET; keep serving the last good data.
                    self._snapshot = CacheSnapshot(
                        data=snapshot.data if snapshot is not None else None,
                        fetched_at=now,
                        etag=result.etag,
                    )
                    logger.warning(
                        "Key document is malformed — serving last known snapshot",
                        error=exc.message,
                        has_snapshot=snapshot is not None,
                    )
                    return _as_list(self._snapshot.data)

            self._snapshot = CacheSnapshot(
                data=tuple(records),
                fetched_at=now,
                etag=result.etag,
            )
            logger.debug("Key cache refreshed", records=len(records))
            return records

        except BackendUnavailable as exc:
            logger.warning(
                "Failed to fetch/update keys — serving last known snapshot",
                error=exc.message,
                has_snapshot=snapshot is not None,
            )
            return _as_list(snapshot.data) if snapshot is not None else None


def _as_list(data: Optional[tuple[AccessKeyRecord, ...]]) -> Optional[list[AccessKeyRecord]]:
    return list(data) if data is not None else None
