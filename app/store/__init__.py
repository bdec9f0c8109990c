"""KeyGate key store package.

Re-exports the public API for ergonomic imports:

    from app.store import KeyStore, ReadCache, AccessKeyRecord

Layout:
    models.py          — AccessKeyRecord + collection JSON codec
    protocol.py        — DocumentBackend Protocol + FetchResult
    github_backend.py  — GitHubContentsBackend (httpx, Contents API, sha = version)
    memory_backend.py  — InMemoryDocumentBackend (dev / tests)
    factory.py         — create_document_backend() — selection by config
    key_store.py       — KeyStore (whole-collection optimistic concurrency)
    cache.py           — ReadCache (TTL + ETag revalidation)
"""

from app.store.cache import CacheSnapshot, ReadCache
from app.store.key_store import KeyStore
from app.store.models import AccessKeyRecord, decode_collection, encode_collection
from app.store.protocol import DocumentBackend, FetchResult, FetchStatus

__all__ = [
    "AccessKeyRecord",
    "CacheSnapshot",
    "DocumentBackend",
    "FetchResult",
    "FetchStatus",
    "KeyStore",
    "ReadCache",
    "decode_collection",
    "encode_collection",
]
