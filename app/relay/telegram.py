"""Messaging relay — Telegram Bot API client.

Each access key owns a bot identity (botToken + chatId). The relay delivers:
  - the message of a /api/send request for a VALID key (awaited)
  - the expiry notice for an EXPIRED key (fire-and-forget, see
    KeyLifecycleManager)

POST {api_url}/bot{botToken}/sendMessage  {"chat_id", "text", "parse_mode"?}

The Bot API answers {"ok": true, "result": ...} or
{"ok": false, "description": "Bad Request: chat not found"}. Every failure
surfaces as RelayError; the bot token is NEVER logged.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

import httpx

from app.constants import DEFAULT_TELEGRAM_API_URL
from app.errors import RelayError
from app.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class MessagingRelay(Protocol):
    """Outbound messaging interface consumed by the lifecycle and /api/send."""

    async def send_message(
        self,
        bot_token: str,
        chat_id: str,
        text: str,
        parse_mode: Optional[str] = None,
    ) -> None:
        """Deliver ``text`` to ``chat_id`` via the bot identified by ``bot_token``.

        Raises:
            RelayError: Delivery failed.
        """
        ...


class TelegramRelay:
    """MessagingRelay over the Telegram Bot API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_url: str = DEFAULT_TELEGRAM_API_URL,
        timeout_s: Optional[float] = None,
    ) -> None:
        self._client = client
        self._api_url = api_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout_s) if timeout_s else None

    async def send_message(
        self,
        bot_token: str,
        chat_id: str,
        text: str,
        parse_mode: Optional[str] = None,
    ) -> None:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode

        url = f"{self._api_url}/bot{bot_token}/sendMessage"
        try:
            if self._timeout is not None:
                response = await self._client.post(url, json=payload, timeout=self._timeout)
            else:
                response = await self._client.post(url, json=payload)
        except httpx.HTTPError as exc:
            raise RelayError(
                f"Telegram request failed: {type(exc).__name__}", transport=True
            ) from exc

        try:
            result = response.json()
        except ValueError as exc:
            raise RelayError(
                f"Telegram returned a non-JSON response (HTTP {response.status_code})"
            ) from exc

        if not isinstance(result, dict) or not result.get("ok"):
            description = (
                result.get("description") if isinstance(result, dict) else None
            ) or f"HTTP {response.status_code}"
            logger.warning(
                "Telegram API Error",
                status_code=response.status_code,
                description=description,
            )
            raise RelayError(description)

        logger.debug("Telegram message delivered", status_code=response.status_code)
