"""Panel login endpoint.

  POST /api/auth  {"username": ..., "password": ...}
    200 {"success": true,  "message": "Login successful."}
    401 {"success": false, "message": "Invalid credentials."}
    500 {"message": "Server configuration error: Credentials not set."}

Rate limited (LOGIN_RATE_LIMIT) — the only brute-forceable surface.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.auth.limiter import LOGIN_RATE_LIMIT, limiter
from app.auth.panel import PanelNotConfiguredError, verify_panel_credentials
from app.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["auth"])


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


@router.post("/auth")
@limiter.limit(LOGIN_RATE_LIMIT)
async def login(body: LoginRequest, request: Request) -> JSONResponse:
    """Check panel credentials."""
    try:
        ok = verify_panel_credentials(
            request.app.state.config.panel, body.username, body.password
        )
    except PanelNotConfiguredError as exc:
        logger.error("Panel login attempted without PANEL_USER/PANEL_PASS")
        return JSONResponse(status_code=500, content={"message": exc.message})

    if not ok:
        logger.warning("Panel login failed")
        return JSONResponse(
            status_code=401,
            content={"success": False, "message": "Invalid credentials."},
        )

    logger.info("Panel login succeeded")
    return JSONResponse(
        status_code=200,
        content={"success": True, "message": "Login successful."},
    )
