"""Document backend factory — backend selection and initialization.

Backend selection (config.store.backend):
  - "memory" → InMemoryDocumentBackend (process-local; development only)
  - "github" → GitHubContentsBackend (default). Requires GITHUB_TOKEN plus
               store.owner and store.repo; raises RuntimeError otherwise so
               the FastAPI lifespan refuses startup.
"""

from __future__ import annotations

import httpx

from app.config import Config
from app.store.protocol import DocumentBackend
from app.utils.logger import get_logger

logger = get_logger(__name__)


def create_document_backend(config: Config, client: httpx.AsyncClient) -> DocumentBackend:
    """Create the configured document backend.

    Args:
        config: Application Config.
        client: Shared httpx.AsyncClient (owned by the lifespan).

    Raises:
        RuntimeError: GitHub backend selected without token / owner / repo.
    """
    store = config.store

    if store.backend == "memory":
        from app.store.memory_backend import InMemoryDocumentBackend

        logger.warning(
            "document_backend_selected",
            backend="InMemoryDocumentBackend",
            message="Keys are held in process memory and lost on restart.",
        )
        return InMemoryDocumentBackend()

    missing = [
        name
        for name, value in (
            ("GITHUB_TOKEN", store.token),
            ("store.owner", store.owner),
            ("store.repo", store.repo),
        )
        if not value
    ]
    if missing:
        raise RuntimeError(
            f"Server configuration error: {', '.join(missing)} not set "
            "(required by the github store backend)."
        )

    from app.store.github_backend import GitHubContentsBackend

    backend = GitHubContentsBackend(
        client,
        owner=store.owner,  # type: ignore[arg-type]
        repo=store.repo,  # type: ignore[arg-type]
        token=store.token,  # type: ignore[arg-type]
        branch=store.branch,
        api_url=store.api_url,
    )
    # Never log the token
    logger.info(
        "document_backend_selected",
        backend="GitHubContentsBackend",
        repository=f"{store.owner}/{store.repo}",
        path=store.path,
        branch=store.branch,
    )
    return backend
