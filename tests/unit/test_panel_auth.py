"""Unit tests for app/auth/panel.py — static panel credential checks."""

from __future__ import annotations

import bcrypt
import pytest

from app.auth.panel import PanelNotConfiguredError, verify_panel_credentials
from app.config import PanelConfig


@pytest.fixture
def panel() -> PanelConfig:
    return PanelConfig(username="admin", password="s3cret")


class TestVerifyPanelCredentials:
    def test_match(self, panel: PanelConfig) -> None:
        assert verify_panel_credentials(panel, "admin", "s3cret")

    @pytest.mark.parametrize(
        "username, password",
        [("admin", "wrong"), ("root", "s3cret"), ("", ""), ("admin", "s3cret ")],
    )
    def test_mismatch(self, panel: PanelConfig, username: str, password: str) -> None:
        assert not verify_panel_credentials(panel, username, password)

    @pytest.mark.parametrize("username, password", [(None, "x"), ("admin", None), ("", "")])
    def test_not_configured(self, username, password) -> None:
        with pytest.raises(PanelNotConfiguredError):
            verify_panel_credentials(PanelConfig(username, password), "admin", "x")

    def test_bcrypt_hash(self) -> None:
        hashed = bcrypt.hashpw(b"s3cret", bcrypt.gensalt(rounds=4)).decode()
        panel = PanelConfig(username="admin", password=hashed)
        assert verify_panel_credentials(panel, "admin", "s3cret")
        assert not verify_panel_credentials(panel, "admin", hashed)

    def test_corrupt_bcrypt_hash_never_matches(self) -> None:
        panel = PanelConfig(username="admin", password="$2b$not-a-hash")
        assert not verify_panel_credentials(panel, "admin", "$2b$not-a-hash")

    def test_non_ascii_credentials(self) -> None:
        panel = PanelConfig(username="ädmin", password="pässwort")
        assert verify_panel_credentials(panel, "ädmin", "pässwort")
