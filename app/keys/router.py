"""Panel key management endpoints.

  GET    /api/keys              — list all records (authoritative store read)
  POST   /api/keys              — create {name, botToken, chatId, days} → 201 record
  PUT    /api/keys              — extend {accessKey} → 200 record
  DELETE /api/keys?key=<key>    — delete → 200 {"message"}

All endpoints require panel credentials (Depends(require_panel_user)).

Error mapping (the caller decides whether to retry):
  InvalidKeyRequest  → 400
  KeyNotFound        → 404
  WriteConflict      → 409  (reload and retry)
  BackendUnavailable → 503
"""

from __future__ import annotations

from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from app.auth.limiter import KEY_MANAGEMENT_RATE_LIMIT, limiter
from app.auth.panel import require_panel_user
from app.errors import (
    BackendUnavailable,
    InvalidKeyRequest,
    KeyGateError,
    KeyNotFound,
    WriteConflict,
)
from app.keys.lifecycle import KeyLifecycleManager
from app.utils.logger import get_logger, mask_key

logger = get_logger(__name__)

router = APIRouter(tags=["keys"], dependencies=[Depends(require_panel_user)])

_STATUS_BY_ERROR: dict[type[KeyGateError], int] = {
    InvalidKeyRequest: 400,
    KeyNotFound: 404,
    WriteConflict: 409,
    BackendUnavailable: 503,
}


# ─── Request Models ───────────────────────────────────────────────────────────


class CreateKeyRequest(BaseModel):
    """Request body for POST /api/keys. Missing fields are reported as 400."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    bot_token: str = Field(default="", alias="botToken")
    chat_id: Union[str, int] = Field(default="", alias="chatId")
    days: Optional[int] = None


class ExtendKeyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_key: str = Field(default="", alias="accessKey")


# ─── Helpers ──────────────────────────────────────────────────────────────────


def get_key_manager(request: Request) -> KeyLifecycleManager:
    """Dependency: the lifespan-owned KeyLifecycleManager."""
    return request.app.state.key_manager


def to_http_error(exc: KeyGateError) -> HTTPException:
    """Map a lifecycle/store error onto an HTTPException."""
    for error_type, status_code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.message)
    return HTTPException(status_code=500, detail=f"Internal Server Error: {exc.message}")


# ─── Endpoints ────────────────────────────────────────────────────────────────


@router.get("/keys")
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def list_keys(
    request: Request,
    manager: KeyLifecycleManager = Depends(get_key_manager),
) -> list[dict]:
    """Return every key record as persisted (camelCase fields)."""
    try:
        records = await manager.list_keys()
    except KeyGateError as exc:
        raise to_http_error(exc) from exc
    return [record.to_dict() for record in records]


@router.post("/keys", status_code=201)
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def create_key(
    body: CreateKeyRequest,
    request: Request,
    manager: KeyLifecycleManager = Depends(get_key_manager),
) -> dict:
    """Create a key valid for ``days`` days."""
    if not (body.name and body.bot_token and body.chat_id and body.days):
        raise HTTPException(status_code=400, detail="Missing required fields.")
    try:
        record = await manager.create_key(
            body.name, body.bot_token, str(body.chat_id), body.days
        )
    except KeyGateError as exc:
        raise to_http_error(exc) from exc
    return record.to_dict()


@router.put("/keys")
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def extend_key(
    body: ExtendKeyRequest,
    request: Request,
    manager: KeyLifecycleManager = Depends(get_key_manager),
) -> dict:
    """Extend a key by the configured extension period."""
    if not body.access_key:
        raise HTTPException(status_code=400, detail="Missing accessKey.")
    try:
        record = await manager.extend_key(body.access_key)
    except KeyGateError as exc:
        raise to_http_error(exc) from exc
    return record.to_dict()


@router.delete("/keys")
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def delete_key(
    request: Request,
    key: str = Query(default=""),
    manager: KeyLifecycleManager = Depends(get_key_manager),
) -> JSONResponse:
    """Delete the key given by ``?key=``."""
    if not key:
        raise HTTPException(status_code=400, detail="Missing key parameter.")
    try:
        await manager.delete_key(key)
    except KeyGateError as exc:
        raise to_http_error(exc) from exc
    logger.info("Key deleted via panel", access_key=mask_key(key))
    return JSONResponse(status_code=200, content={"message": "Key deleted successfully."})
