"""InMemoryDocumentBackend — process-local versioned document store.

Behaves like the GitHub backend without the network:
  - version = git blob sha1 of the content (same value GitHub would report)
  - etag    = the quoted version
  - fetch(if_none_match=etag) → NOT_MODIFIED when unchanged
  - write() with a stale expected_version → ConcurrencyConflict

Used for local development (``store.backend: memory``) and as a test utility.
State is lost on restart.
"""

from __future__ import annotations

import hashlib
from typing import Optional

from app.errors import ConcurrencyConflict
from app.store.protocol import FetchResult, FetchStatus
from app.utils.logger import get_logger

logger = get_logger(__name__)


def blob_sha(content: bytes) -> str:
    """Git blob sha1 of ``content``."""
    header = f"blob {len(content)}\0".encode()
    return hashlib.sha1(header + content).hexdigest()


class InMemoryDocumentBackend:
    """Versioned dict of path → content with conditional writes."""

    def __init__(self, documents: Optional[dict[str, bytes]] = None) -> None:
        self._documents: dict[str, tuple[bytes, str]] = {}
        self.history: list[tuple[str, str]] = []
        """Commit log: (message, new_version) per successful write."""
        for path, content in (documents or {}).items():
            self._documents[path] = (content, blob_sha(content))

    def version_of(self, path: str) -> Optional[str]:
        entry = self._documents.get(path)
        return entry[1] if entry else None

    def content_of(self, path: str) -> Optional[bytes]:
        entry = self._documents.get(path)
        return entry[0] if entry else None

    async def fetch(
        self,
        path: str,
        *,
        if_none_match: Optional[str] = None,
    ) -> FetchResult:
        entry = self._documents.get(path)
        if entry is None:
            return FetchResult.not_found()
        content, version = entry
        etag = f'"{version}"'
        if if_none_match is not None and if_none_match == etag:
            return FetchResult.not_modified(etag)
        return FetchResult(
            status=FetchStatus.OK,
            content=content,
            version=version,
            etag=etag,
        )

    async def write(
        self,
        path: str,
        content: bytes,
        expected_version: Optional[str],
        message: str,
    ) -> str:
        current = self.version_of(path)
        if current != expected_version:
            raise ConcurrencyConflict(
                f"{path} is at {current!r}, write expected {expected_version!r}"
            )
        version = blob_sha(content)
        self._documents[path] = (content, version)
        self.history.append((message, version))
        logger.debug("In-memory document committed", path=path, message=message)
        return version

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        pass
