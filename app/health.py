"""Health endpoint for KeyGate.

  GET /health — 503 before ``app.state.ready``; 200 afterwards:

    {
      "status": "ok" | "degraded",
      "backend": "reachable" | "unreachable",
      "store_backend": "github" | "memory",
      "cache": "empty" | "fresh" | "stale",
      "cache_duration_ms": 60000
    }

"degraded" means the document backend health check failed; validation keeps
working from the cache snapshot, writes will fail with 503.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from app.store.cache import ReadCache
from app.store.protocol import DocumentBackend

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={"status": "starting", "message": "KeyGate is starting up."},
        )

    backend: DocumentBackend = request.app.state.document_backend
    cache: ReadCache = request.app.state.read_cache

    reachable = await backend.health_check()
    return {
        "status": "ok" if reachable else "degraded",
        "backend": "reachable" if reachable else "unreachable",
        "store_backend": request.app.state.config.store.backend,
        "cache": cache.state(),
        "cache_duration_ms": cache.cache_duration_ms,
    }
