"""Message send endpoint — the hot validation path.

  POST /api/send  {"accessKey": ..., "message": ...}

  400  accessKey or message missing
  503  key collection never became available (cache empty + backend down)
  403  unknown key — "Your key has expired or is invalid..."
  403  expired key — "Access key has expired." (owner notified, fire-and-forget)
  200  valid key, message delivered with the configured footer
  400  relay rejected the owner's bot token / chat id
  502  any other relay failure
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from app.auth.limiter import SEND_RATE_LIMIT, limiter
from app.errors import RelayError
from app.keys.lifecycle import KeyLifecycleManager, ValidationStatus
from app.keys.router import get_key_manager
from app.relay.telegram import MessagingRelay
from app.utils.logger import get_logger, mask_key

logger = get_logger(__name__)

router = APIRouter(tags=["send"])

INVALID_KEY_MESSAGE = "Your key has expired or is invalid. Buy a new key."


class SendRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_key: str = Field(default="", alias="accessKey")
    message: str = ""


def _fail(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


@router.post("/send")
@limiter.limit(SEND_RATE_LIMIT)
async def send(
    body: SendRequest,
    request: Request,
    manager: KeyLifecycleManager = Depends(get_key_manager),
) -> JSONResponse:
    """Validate the access key and deliver the message through the owner's bot."""
    if not body.access_key or not body.message:
        return _fail(400, "Missing accessKey or message in request body.")

    result = await manager.validate_and_consume(body.access_key)

    if result.status is ValidationStatus.INVALID:
        if result.reason == "unavailable":
            return _fail(503, "Service Unavailable: Could not retrieve API keys.")
        return _fail(403, INVALID_KEY_MESSAGE)

    if result.status is ValidationStatus.EXPIRED:
        return _fail(403, "Access key has expired.")

    record = result.record
    assert record is not None
    relay: MessagingRelay = request.app.state.relay
    footer = request.app.state.config.relay.footer
    text = f"{body.message}\n\n{footer}" if footer else body.message

    try:
        await relay.send_message(record.bot_token, record.chat_id, text, parse_mode="Markdown")
    except RelayError as exc:
        logger.warning(
            "Message delivery failed",
            access_key=mask_key(record.access_key),
            description=exc.description,
            transport=exc.transport,
        )
        if exc.is_client_misconfiguration:
            return _fail(
                400,
                f"Telegram error: {exc.description}. "
                "Please check your Bot Token and Chat ID in the panel.",
            )
        return _fail(502, "Bad Gateway: Failed to send message via Telegram.")

    logger.info("Message sent", access_key=mask_key(record.access_key))
    return JSONResponse(
        status_code=200,
        content={"success": True, "message": "Message sent successfully."},
    )
