"""Integration tests for /api/keys — panel key management over HTTP."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from app.constants import MAX_KEY_DURATION_DAYS
from app.errors import BackendUnavailable, WriteConflict
from app.store.models import AccessKeyRecord

PANEL_AUTH = ("admin", "s3cret")

pytestmark = pytest.mark.asyncio


async def _create(client, **overrides):
    body = {"name": "alice", "botToken": "1:AAA", "chatId": "42", "days": 30}
    body.update(overrides)
    return await client.post("/api/keys", json=body, auth=PANEL_AUTH)


class TestPanelGuard:
    @pytest.mark.parametrize("method", ["GET", "POST", "PUT", "DELETE"])
    async def test_missing_credentials_is_401(self, client, method) -> None:
        response = await client.request(method, "/api/keys")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Basic"

    async def test_wrong_password_is_401(self, client) -> None:
        response = await client.get("/api/keys", auth=("admin", "nope"))
        assert response.status_code == 401
        assert response.json() == {"message": "Invalid credentials."}

    async def test_unconfigured_panel_is_500(self, client, config) -> None:
        config.panel.password = None
        response = await client.get("/api/keys", auth=PANEL_AUTH)
        assert response.status_code == 500
        assert "Credentials not set" in response.json()["message"]


class TestListAndCreate:
    async def test_empty_list(self, client) -> None:
        response = await client.get("/api/keys", auth=PANEL_AUTH)
        assert response.status_code == 200
        assert response.json() == []

    async def test_create_returns_record(self, client, memory_backend) -> None:
        response = await _create(client)

        assert response.status_code == 201
        record = response.json()
        assert record["name"] == "alice"
        assert record["accessKey"].startswith("key-")
        assert record["createdAt"] == "2026-03-01T12:00:00.000Z"
        assert record["expiresAt"] == "2026-03-31T12:00:00.000Z"

        stored = json.loads(memory_backend.content_of("keys.json"))
        assert stored == [record]

    async def test_numeric_chat_id_is_stored_as_string(self, client) -> None:
        response = await _create(client, chatId=987654321)
        assert response.status_code == 201
        assert response.json()["chatId"] == "987654321"

    async def test_list_returns_created_keys_in_order(self, client) -> None:
        a = (await _create(client, name="a")).json()
        b = (await _create(client, name="b")).json()
        listed = (await client.get("/api/keys", auth=PANEL_AUTH)).json()
        assert [r["accessKey"] for r in listed] == [a["accessKey"], b["accessKey"]]

    @pytest.mark.parametrize("missing", ["name", "botToken", "chatId", "days"])
    async def test_missing_field_is_400(self, client, memory_backend, missing) -> None:
        body = {"name": "alice", "botToken": "1:AAA", "chatId": "42", "days": 30}
        del body[missing]
        response = await client.post("/api/keys", json=body, auth=PANEL_AUTH)

        assert response.status_code == 400
        assert response.json() == {"message": "Missing required fields."}
        assert memory_backend.history == []

    async def test_negative_days_is_400(self, client) -> None:
        response = await _create(client, days=-5)
        assert response.status_code == 400

    async def test_write_conflict_is_409(self, client, manager, monkeypatch) -> None:
        monkeypatch.setattr(manager, "create_key", AsyncMock(side_effect=WriteConflict()))
        response = await _create(client)
        assert response.status_code == 409
        assert "Reload and retry" in response.json()["message"]

    async def test_backend_down_is_503(self, client, manager, monkeypatch) -> None:
        monkeypatch.setattr(
            manager, "list_keys", AsyncMock(side_effect=BackendUnavailable("GitHub API Error: 502"))
        )
        response = await client.get("/api/keys", auth=PANEL_AUTH)
        assert response.status_code == 503
        assert response.json() == {"message": "GitHub API Error: 502"}


class TestExtend:
    async def test_extend_adds_thirty_days(self, client) -> None:
        created = (await _create(client, days=1)).json()
        response = await client.put(
            "/api/keys", json={"accessKey": created["accessKey"]}, auth=PANEL_AUTH
        )
        assert response.status_code == 200
        assert response.json()["expiresAt"] == "2026-04-01T12:00:00.000Z"

    async def test_extend_missing_access_key_is_400(self, client) -> None:
        response = await client.put("/api/keys", json={}, auth=PANEL_AUTH)
        assert response.status_code == 400
        assert response.json() == {"message": "Missing accessKey."}

    async def test_extend_unknown_key_is_404(self, client) -> None:
        response = await client.put("/api/keys", json={"accessKey": "key-x"}, auth=PANEL_AUTH)
        assert response.status_code == 404
        assert response.json() == {"message": "Key not found."}


class TestDelete:
    async def test_delete_removes_key(self, client) -> None:
        created = (await _create(client)).json()
        response = await client.delete(
            "/api/keys", params={"key": created["accessKey"]}, auth=PANEL_AUTH
        )
        assert response.status_code == 200
        assert response.json() == {"message": "Key deleted successfully."}
        assert (await client.get("/api/keys", auth=PANEL_AUTH)).json() == []

    async def test_delete_without_key_param_is_400(self, client) -> None:
        response = await client.delete("/api/keys", auth=PANEL_AUTH)
        assert response.status_code == 400
        assert response.json() == {"message": "Missing key parameter."}

    async def test_delete_unknown_key_is_404_and_no_commit(self, client, memory_backend) -> None:
        await _create(client)
        commits = len(memory_backend.history)
        response = await client.delete("/api/keys", params={"key": "key-x"}, auth=PANEL_AUTH)
        assert response.status_code == 404
        assert len(memory_backend.history) == commits


class TestRequestShape:
    @pytest.mark.parametrize(
        "overrides",
        [{"days": 1.5}, {"days": "soon"}, {"name": 123}, {"botToken": ["1:AAA"]}],
    )
    async def test_wrong_typed_field_is_400(self, client, memory_backend, overrides) -> None:
        response = await _create(client, **overrides)
        assert response.status_code == 400
        assert response.json() == {"message": "Missing required fields."}
        assert memory_backend.history == []

    async def test_unparseable_body_is_400(self, client) -> None:
        response = await client.post(
            "/api/keys",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
            auth=PANEL_AUTH,
        )
        assert response.status_code == 400
        assert response.json() == {"message": "Missing required fields."}

    async def test_wrong_typed_body_still_requires_credentials(self, client) -> None:
        response = await client.post("/api/keys", json={"days": "soon"})
        assert response.status_code == 401

    async def test_duration_beyond_maximum_is_400(self, client, memory_backend) -> None:
        response = await _create(client, days=10_000_000)
        assert response.status_code == 400
        assert str(MAX_KEY_DURATION_DAYS) in response.json()["message"]
        assert memory_backend.history == []

    async def test_extend_past_last_date_is_400(self, client, key_store, clock) -> None:
        far = AccessKeyRecord(
            name="far",
            access_key="key-far",
            bot_token="1:AAA",
            chat_id="1",
            created_at=clock.now,
            expires_at=datetime(9999, 12, 20, tzinfo=timezone.utc),
        )
        await key_store.save([far], None, "seed")

        response = await client.put("/api/keys", json={"accessKey": "key-far"}, auth=PANEL_AUTH)

        assert response.status_code == 400
        assert "cannot be extended" in response.json()["message"]


async def test_send_with_wrong_typed_field_is_400(client) -> None:
    response = await client.post("/api/send", json={"accessKey": 42, "message": "hi"})
    assert response.status_code == 400
    assert response.json() == {"message": "Missing required fields."}
