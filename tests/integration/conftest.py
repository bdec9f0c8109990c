"""Integration fixtures: the real KeyGate app over the in-memory backend.

The lifespan is not run; app.state is wired by hand so every test controls
the backend, the relay and the clock.
"""

from __future__ import annotations

from typing import AsyncIterator

import httpx
import pytest

from app.config import Config
from app.keys.lifecycle import KeyLifecycleManager
from app.main import create_app

PANEL_AUTH = ("admin", "s3cret")


@pytest.fixture
def config() -> Config:
    config = Config.defaults()
    config.store.backend = "memory"
    config.panel.username, config.panel.password = PANEL_AUTH
    return config


@pytest.fixture
def api_app(config, memory_backend, key_store, read_cache, relay, manager: KeyLifecycleManager):
    application = create_app()
    application.state.config = config
    application.state.document_backend = memory_backend
    application.state.key_store = key_store
    application.state.read_cache = read_cache
    application.state.relay = relay
    application.state.key_manager = manager
    application.state.ready = True
    return application


@pytest.fixture
async def client(api_app) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=api_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
