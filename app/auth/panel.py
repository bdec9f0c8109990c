"""Panel credential checks.

The panel has a single static operator account read from the environment
(PANEL_USER / PANEL_PASS). PANEL_PASS may be plaintext or a bcrypt hash
(``$2b$...``); a hash keeps the plaintext out of the deployment environment.

Provides:
  - verify_panel_credentials() — constant-time username/password check
  - require_panel_user()       — FastAPI Depends() guard for /api/keys (HTTP Basic)
"""

from __future__ import annotations

import secrets
from typing import Optional

import bcrypt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from app.config import PanelConfig
from app.utils.logger import get_logger

logger = get_logger(__name__)

_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")

_basic = HTTPBasic(auto_error=False)


class PanelNotConfiguredError(Exception):
    """PANEL_USER or PANEL_PASS is not set."""

    def __init__(self, message: str = "Server configuration error: Credentials not set.") -> None:
        super().__init__(message)
        self.message = message


def verify_panel_credentials(panel: PanelConfig, username: str, password: str) -> bool:
    """Return True if username/password match the configured panel account.

    Raises:
        PanelNotConfiguredError: PANEL_USER / PANEL_PASS missing.
    """
    if not panel.configured:
        raise PanelNotConfiguredError()

    user_ok = secrets.compare_digest(
        username.encode("utf-8"), panel.username.encode("utf-8")  # type: ignore[union-attr]
    )

    expected = panel.password or ""
    if expected.startswith(_BCRYPT_PREFIXES):
        try:
            pass_ok = bcrypt.checkpw(password.encode("utf-8"), expected.encode("utf-8"))
        except ValueError as exc:
            logger.error("PANEL_PASS is not a valid bcrypt hash", error=str(exc))
            pass_ok = False
    else:
        pass_ok = secrets.compare_digest(password.encode("utf-8"), expected.encode("utf-8"))

    return user_ok and pass_ok


async def require_panel_user(
    request: Request,
    credentials: Optional[HTTPBasicCredentials] = Depends(_basic),
) -> str:
    """FastAPI dependency: require panel credentials via HTTP Basic.

    Returns:
        The authenticated panel username.

    Raises:
        HTTPException(500): Panel credentials not configured.
        HTTPException(401): Missing or wrong credentials.
    """
    panel: PanelConfig = request.app.state.config.panel

    if credentials is None:
        raise HTTPException(
            status_code=401,
            detail="Panel credentials required.",
            headers={"WWW-Authenticate": "Basic"},
        )

    try:
        ok = verify_panel_credentials(panel, credentials.username, credentials.password)
    except PanelNotConfiguredError as exc:
        raise HTTPException(status_code=500, detail=exc.message) from exc

    if not ok:
        logger.warning(
            "Panel authentication failed",
            path=str(request.url.path),
            method=request.method,
        )
        raise HTTPException(
            status_code=401,
            detail="Invalid credentials.",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username
