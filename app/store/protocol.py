"""DocumentBackend Protocol + FetchResult.

A document backend is a content-addressed, version-tagged store:

  - ``fetch()`` returns content plus a version token (and an ETag for cheap
    revalidation), or reports NOT_FOUND / NOT_MODIFIED.
  - ``write()`` requires the caller's last-seen version token and atomically
    rejects stale writes with ConcurrencyConflict.

Implementations: GitHubContentsBackend (production), InMemoryDocumentBackend
(local development and tests). Selection via create_document_backend()
(store/factory.py).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


class FetchStatus(str, enum.Enum):
    OK = "ok"
    NOT_MODIFIED = "not_modified"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class FetchResult:
    """Outcome of a DocumentBackend.fetch() call.

    OK:           content, version and (usually) etag are set.
    NOT_MODIFIED: only returned when if_none_match matched; content is None.
    NOT_FOUND:    the document does not exist; all fields None.
    """

    status: FetchStatus
    content: Optional[bytes] = None
    version: Optional[str] = None
    """Version token required by write() (the git blob sha for GitHub)."""
    etag: Optional[str] = None
    """Revalidation tag for conditional fetches."""

    @classmethod
    def not_found(cls) -> "FetchResult":
        return cls(status=FetchStatus.NOT_FOUND)

    @classmethod
    def not_modified(cls, etag: Optional[str]) -> "FetchResult":
        return cls(status=FetchStatus.NOT_MODIFIED, etag=etag)


@runtime_checkable
class DocumentBackend(Protocol):
    """Remote versioned document store interface."""

    async def fetch(
        self,
        path: str,
        *,
        if_none_match: Optional[str] = None,
    ) -> FetchResult:
        """Read a document.

        Raises:
            BackendUnavailable: Transport failure, timeout, or unexpected status.
        """
        ...

    async def write(
        self,
        path: str,
        content: bytes,
        expected_version: Optional[str],
        message: str,
    ) -> str:
        """Replace a document if its current version equals expected_version.

        ``expected_version=None`` means "create; the document must not exist".
        ``message`` is an audit label attached to the commit.

        Returns:
            The new version token.

        Raises:
            ConcurrencyConflict: expected_version is stale.
            BackendUnavailable:  Any other failure.
        """
        ...

    async def health_check(self) -> bool:
        """Returns True if the backend is reachable. Must not raise."""
        ...

    async def close(self) -> None:
        """Release resources. Called during graceful shutdown."""
        ...
