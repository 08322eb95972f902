"""Integration test fixtures.

Provides a fully wired AppState and an httpx client that drives the Starlette
app in-process through ``httpx.ASGITransport``. No real server is started.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from pagebrief.config import ProviderSettings, Settings
from pagebrief.server import build_state, create_app

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from pagebrief.state import AppState

SERVER_URL = "http://testserver"


@pytest.fixture()
def dev_settings() -> Settings:
    return Settings(provider=ProviderSettings(dev_mode=True))


@pytest.fixture()
def live_settings() -> Settings:
    """Settings for a real provider; tests mock its endpoint with respx."""
    return Settings(provider=ProviderSettings(api_key="test-key"))


async def _close_state(state: AppState) -> None:
    state.conversations.close()
    if state.http_client is not None:
        await state.http_client.aclose()


@pytest.fixture()
async def app_state(dev_settings: Settings) -> AsyncIterator[AppState]:
    state = build_state(dev_settings)
    yield state
    await _close_state(state)


@pytest.fixture()
async def live_state(live_settings: Settings) -> AsyncIterator[AppState]:
    state = build_state(live_settings)
    yield state
    await _close_state(state)


def _asgi_client(state: AppState) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=create_app(state=state)),
        base_url=SERVER_URL,
    )


@pytest.fixture()
async def server_client(app_state: AppState) -> AsyncIterator[httpx.AsyncClient]:
    """Client for a dev-mode server."""
    async with _asgi_client(app_state) as client:
        yield client


@pytest.fixture()
async def live_client(live_state: AppState) -> AsyncIterator[httpx.AsyncClient]:
    """Client for a server backed by the (mocked) remote model."""
    async with _asgi_client(live_state) as client:
        yield client
