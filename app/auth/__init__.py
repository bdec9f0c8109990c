"""KeyGate panel authentication package.

Public API:
  - verify_panel_credentials() — static credential check (plaintext or bcrypt)
  - require_panel_user()       — FastAPI Depends() guard for key management
  - PanelNotConfiguredError    — PANEL_USER / PANEL_PASS missing
"""

from __future__ import annotations

from app.auth.panel import (
    PanelNotConfiguredError,
    require_panel_user,
    verify_panel_credentials,
)

__all__ = [
    "PanelNotConfiguredError",
    "require_panel_user",
    "verify_panel_credentials",
]
