"""KeyStore — the whole key collection as one versioned document.

The backend only supports whole-document replace, so the collection is read
and written as a single blob guarded by optimistic concurrency:

    records, version = await store.load()
    ... mutate records ...
    await store.save(records, version, "[Panel] Create key: alice")

save() presents the version read by load(); if another writer committed in
between, the backend rejects the write and ConcurrencyConflict propagates.
The store never merges and never retries.

The KeyStore is the sole writer of the remote document.
"""

from __future__ import annotations

from typing import Optional

from app.errors import MalformedDocument
from app.store.models import AccessKeyRecord, decode_collection, encode_collection
from app.store.protocol import DocumentBackend, FetchStatus
from app.utils.logger import get_logger

logger = get_logger(__name__)


class KeyStore:
    """Optimistic-concurrency read/write pair over a DocumentBackend."""

    def __init__(self, backend: DocumentBackend, path: str) -> None:
        self._backend = backend
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    async def load(self) -> tuple[list[AccessKeyRecord], Optional[str]]:
        """Fetch and decode the collection.

        Returns:
            (records, version). A missing document yields ([], None) so the
            first save() creates it. A malformed document yields ([], version):
            the real version is kept so the next save() replaces the corrupt
            document instead of failing on a dropped token.

        Raises:
            BackendUnavailable: Transport or non-404 HTTP failure.
        """
        result = await self._backend.fetch(self._path)

        if result.status is FetchStatus.NOT_FOUND:
            logger.info("Key document not found — starting empty", path=self._path)
            return [], None

        try:
            records = decode_collection(result.content or b"")
        except MalformedDocument as exc:
            logger.warning(
                "Key document is empty or malformed — treating as empty collection",
                path=self._path,
                version=result.version,
                error=exc.message,
            )
            return [], result.version

        return records, result.version

    async def save(
        self,
        records: list[AccessKeyRecord],
        version: Optional[str],
        change_description: str,
    ) -> str:
        """Encode and conditionally commit the collection.

        Args:
            records:            Full collection to persist.
            version:            Version token returned by the load() this
                                write is based on (None = create).
            change_description: Human-readable commit message (audit only).

        Returns:
            The committed version token.

        Raises:
            ConcurrencyConflict: Another writer committed since load().
            BackendUnavailable:  Any other backend failure.
        """
        content = encode_collection(records)
        new_version = await self._backend.write(
            self._path, content, version, change_description
        )
        logger.info(
            "Key document committed",
            path=self._path,
            records=len(records),
            message=change_description,
        )
        return new_version
