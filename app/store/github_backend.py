"""GitHubContentsBackend — the key collection as a file in a GitHub repository.

Uses the GitHub Contents API:
  GET /repos/{owner}/{repo}/contents/{path}[?ref=branch]
  PUT /repos/{owner}/{repo}/contents/{path}

Version token = the file's blob ``sha``. GitHub rejects a PUT whose ``sha`` is
not the current one (409), which gives optimistic concurrency for free.
Revalidation tag = the response ``ETag`` header; a conditional GET with
``If-None-Match`` answers 304 when unchanged (and does not count against the
rate limit).

All calls go through the shared httpx.AsyncClient, whose Timeout bounds every
round-trip. The token is NEVER logged.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any, Optional

import httpx

from app.constants import DEFAULT_GITHUB_API_URL
from app.errors import BackendUnavailable, ConcurrencyConflict
from app.store.protocol import FetchResult, FetchStatus
from app.utils.logger import get_logger, timed_call

logger = get_logger(__name__)

_ACCEPT = "application/vnd.github.v3+json"


class GitHubContentsBackend:
    """DocumentBackend over the GitHub Contents API.

    Usage:
        backend = GitHubContentsBackend(client, owner="org", repo="store", token=token)
        result = await backend.fetch("keys.json")
        new_sha = await backend.write("keys.json", data, result.version, "msg")
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        owner: str,
        repo: str,
        token: str,
        branch: Optional[str] = None,
        api_url: str = DEFAULT_GITHUB_API_URL,
    ) -> None:
        self._client = client
        self._owner = owner
        self._repo = repo
        self._token = token
        self._branch = branch
        self._api_url = api_url.rstrip("/")

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _url(self, path: str) -> str:
        return f"{self._api_url}/repos/{self._owner}/{self._repo}/contents/{path.lstrip('/')}"

    def _headers(self, if_none_match: Optional[str] = None) -> dict[str, str]:
        headers = {
            "Authorization": f"token {self._token}",
            "Accept": _ACCEPT,
        }
        if if_none_match:
            headers["If-None-Match"] = if_none_match
        return headers

    # ── DocumentBackend ───────────────────────────────────────────────────────

    async def fetch(
        self,
        path: str,
        *,
        if_none_match: Optional[str] = None,
    ) -> FetchResult:
        params = {"ref": self._branch} if self._branch else None
        try:
            with timed_call("github_fetch", logger):
                response = await self._client.get(
                    self._url(path),
                    headers=self._headers(if_none_match),
                    params=params,
                )
        except httpx.HTTPError as exc:
            raise BackendUnavailable(
                f"GitHub fetch failed: {type(exc).__name__}: {exc}"
            ) from exc

        if response.status_code == 404:
            return FetchResult.not_found()

        if response.status_code == 304:
            return FetchResult.not_modified(if_none_match)

        if response.status_code != 200:
            raise BackendUnavailable(
                f"GitHub API Error: {response.status_code} {response.reason_phrase}. "
                f"Response: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            # a directory path answers with a JSON array of entries
            if not isinstance(data, dict):
                raise TypeError(f"expected a file object, got {type(data).__name__}")
            content = base64.b64decode(data.get("content") or "")
            version = data["sha"]
        except (ValueError, KeyError, TypeError, binascii.Error) as exc:
            raise BackendUnavailable(
                f"GitHub returned an unreadable contents payload: {exc}",
                status_code=response.status_code,
            ) from exc

        return FetchResult(
            status=FetchStatus.OK,
            content=content,
            version=version,
            etag=response.headers.get("etag"),
        )

    async def write(
        self,
        path: str,
        content: bytes,
        expected_version: Optional[str],
        message: str,
    ) -> str:
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
        }
        if expected_version is not None:
            body["sha"] = expected_version
        if self._branch:
            body["branch"] = self._branch

        headers = self._headers()
        headers["Content-Type"] = "application/json"

        try:
            with timed_call("github_write", logger):
                response = await self._client.put(self._url(path), headers=headers, json=body)
        except httpx.HTTPError as exc:
            raise BackendUnavailable(
                f"GitHub write failed: {type(exc).__name__}: {exc}"
            ) from exc

        if response.status_code in (200, 201):
            try:
                return response.json()["content"]["sha"]
            except (ValueError, KeyError, TypeError) as exc:
                raise BackendUnavailable(
                    f"GitHub write succeeded but returned no sha: {exc}",
                    status_code=response.status_code,
                ) from exc

        api_message = _api_message(response)

        # 409: sha does not match the current blob.
        # 422 without a sha: the file was created by someone else meanwhile.
        if response.status_code == 409 or (
            response.status_code == 422 and expected_version is None
        ):
            logger.info(
                "GitHub rejected stale write",
                path=path,
                status_code=response.status_code,
                api_message=api_message,
            )
            raise ConcurrencyConflict(f"GitHub API Error: {api_message}")

        raise BackendUnavailable(
            f"GitHub API Error: {api_message}",
            status_code=response.status_code,
        )

    async def health_check(self) -> bool:
        """HEAD-equivalent: GET the repository metadata."""
        try:
            response = await self._client.get(
                f"{self._api_url}/repos/{self._owner}/{self._repo}",
                headers=self._headers(),
            )
            return response.status_code == 200
        except httpx.HTTPError as exc:
            logger.warning("GitHub health check failed", error=str(exc))
            return False

    async def close(self) -> None:
        """No-op — the shared httpx client is owned and closed by the lifespan."""
        logger.debug("GitHub backend closed")


def _api_message(response: httpx.Response) -> str:
    """Extract GitHub's ``message`` field, falling back to the status line."""
    try:
        message = response.json().get("message")
    except (ValueError, AttributeError):
        message = None
    return message or f"{response.status_code} {response.reason_phrase}"
