"""Pytest fixtures for IntelliFire Link tests."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from custom_components.intellifire_link.coordinator import IntellifireCoordinator
from custom_components.intellifire_link.models import Device, Transport


class MockRequest:
    """Async context manager standing in for aiohttp's request context."""

    def __init__(self, result: MagicMock | Exception) -> None:
        self._result = result

    async def __aenter__(self) -> MagicMock:
        if isinstance(self._result, Exception):
            raise self._result
        return self._result

    async def __aexit__(self, *exc_info: Any) -> bool:
        return False


def make_response(
    status: int = 200,
    json_data: Any = None,
    text: str = "",
    headers: dict[str, str] | None = None,
) -> MagicMock:
    """Return a mock aiohttp response with its body already read."""
    response = MagicMock()
    response.status = status
    response.ok = status < 400
    response.reason = "OK" if status < 400 else "Error"
    response.headers = headers or {}
    response.url = "http://test/"
    response.read = AsyncMock(return_value=text.encode())
    response.json = AsyncMock(return_value=json_data)
    response.text = AsyncMock(return_value=text)
    return response


def mock_session(*results: MagicMock | Exception) -> MagicMock:
    """Return a mock aiohttp session answering requests in order.

    Once the scripted results run out every further request gets a 200.
    """
    queue = list(results)

    def _next(*args: Any, **kwargs: Any) -> MockRequest:
        return MockRequest(queue.pop(0) if queue else make_response(200, {}))

    session = MagicMock()
    session.request = MagicMock(side_effect=_next)
    session.get = MagicMock(side_effect=_next)
    return session


POLL_BODY = {
    "serial": "ABC123",
    "power": "1",
    "height": "3",
    "fanspeed": "2",
    "light": "0",
    "timestamp": "1700000000",
}


@pytest.fixture
def device() -> Device:
    """Return a fireplace identity."""
    return Device(
        name="Living Room",
        serial="ABC123",
        brand="H&G",
        api_key="00112233445566778899aabbccddeeff",
    )


@pytest.fixture
def mock_hass() -> MagicMock:
    """Return a mock Home Assistant instance."""
    hass = MagicMock()
    hass.loop = MagicMock()
    return hass


@pytest.fixture
def router() -> MagicMock:
    """Return a mock TransportRouter."""
    router = MagicMock()
    router.active = Transport.CLOUD
    router.async_status = AsyncMock()
    router.async_poll = AsyncMock()
    router.async_post = AsyncMock(return_value=True)
    return router


@pytest.fixture
def coordinator(device: Device, router: MagicMock) -> IntellifireCoordinator:
    """Return an IntellifireCoordinator with short timers for testing."""
    return IntellifireCoordinator(
        device,
        router,
        debounce_delay=0.05,
        local_poll_interval=0.01,
        retry_delay=0.01,
    )
