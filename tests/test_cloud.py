"""Tests for the IntelliFire cloud transport."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from yarl import URL

from custom_components.intellifire_link.cloud import CloudTransport, CookieSession
from custom_components.intellifire_link.errors import (
    AuthError,
    ConnectivityError,
    ProtocolError,
)
from custom_components.intellifire_link.models import Device, SessionState, Transport

from .conftest import POLL_BODY, MockRequest, make_response, mock_session

COOKIES = {"user": "u-1", "auth_cookie": "a-2", "web_client_id": "w-3"}


def make_transport(*results: MagicMock | Exception, **kwargs) -> tuple[CloudTransport, MagicMock]:
    """Return a cookie authenticated transport over a scripted session."""
    session = mock_session(*results)
    session.cookie_jar = MagicMock()
    kwargs.setdefault("cookies", COOKIES)
    return CloudTransport(CookieSession(session), **kwargs), session


class TestCookieSession:
    """Tests for CookieSession."""

    async def test_request_url(self) -> None:
        """Test device and account wide URLs."""
        session = mock_session(make_response(200), make_response(200))
        cookie_session = CookieSession(session)

        await cookie_session.async_request("ABC123", "apppoll")
        await cookie_session.async_request(None, "enumlocations")

        urls = [call.args[1] for call in session.request.call_args_list]
        assert urls == [
            "https://iftapi.net/a/ABC123/apppoll",
            "https://iftapi.net/a//enumlocations",
        ]

    async def test_request_network_error(self) -> None:
        """Test network failures become ConnectivityError."""
        cookie_session = CookieSession(mock_session(aiohttp.ClientConnectionError("down")))
        with pytest.raises(ConnectivityError):
            await cookie_session.async_request(None, "enumlocations")

    async def test_request_timeout(self) -> None:
        """Test timeouts become ConnectivityError."""
        cookie_session = CookieSession(mock_session(asyncio.TimeoutError()))
        with pytest.raises(ConnectivityError):
            await cookie_session.async_request(None, "enumlocations")

    async def test_load_cookies(self) -> None:
        """Test stored cookies are scoped to the relay host."""
        session = MagicMock()
        session.cookie_jar = aiohttp.CookieJar()
        cookie_session = CookieSession(session)

        cookie_session.load_cookies(COOKIES)

        assert cookie_session.cookies() == COOKIES
        assert not session.cookie_jar.filter_cookies(URL("https://example.com/"))

    async def test_login_success(self) -> None:
        """Test a successful login leaves the cookies in the jar."""
        session = MagicMock()
        session.cookie_jar = aiohttp.CookieJar()
        cookie_session = CookieSession(session)

        def _login(*args, **kwargs):
            # The relay answers with Set-Cookie headers
            cookie_session.load_cookies(COOKIES)
            return MockRequest(make_response(200))

        session.request = MagicMock(side_effect=_login)

        await cookie_session.async_login("me@example.com", "secret")

        method, url = session.request.call_args.args
        assert method == "POST"
        assert url == "https://iftapi.net/a//login"
        assert session.request.call_args.kwargs["data"] == {
            "username": "me@example.com",
            "password": "secret",
        }
        assert cookie_session.cookies() == COOKIES

    async def test_login_rejected(self) -> None:
        """Test rejected credentials raise AuthError."""
        session = mock_session(make_response(403))
        session.cookie_jar = aiohttp.CookieJar()
        with pytest.raises(AuthError):
            await CookieSession(session).async_login("me@example.com", "wrong")

    async def test_login_without_cookies(self) -> None:
        """Test a 200 that sets no cookies is still an auth failure."""
        session = mock_session(make_response(200))
        session.cookie_jar = aiohttp.CookieJar()
        with pytest.raises(AuthError, match="cookies"):
            await CookieSession(session).async_login("me@example.com", "secret")

    async def test_login_server_error(self) -> None:
        """Test server errors are connectivity problems, not auth problems."""
        session = mock_session(make_response(500))
        session.cookie_jar = aiohttp.CookieJar()
        with pytest.raises(ConnectivityError):
            await CookieSession(session).async_login("me@example.com", "secret")

    async def test_login_missing_credentials(self) -> None:
        """Test empty credentials are rejected before any request."""
        session = mock_session()
        with pytest.raises(AuthError):
            await CookieSession(session).async_login("", "")
        session.request.assert_not_called()


class TestSessionLifecycle:
    """Tests for login, ping and keep-alive."""

    async def test_login_connects_once(self) -> None:
        """Test login plus a good ping emits exactly one connected event."""
        transport, session = make_transport(make_response(200))
        events: list[bool] = []
        transport.register_listener(events.append)

        await transport.async_login()

        assert transport.state is SessionState.CONNECTED
        assert transport.connected is True
        assert events == [True]
        session.cookie_jar.update_cookies.assert_called_once()
        assert session.request.call_args.args[1] == "https://iftapi.net/a//enumlocations"

    async def test_repeated_ping_does_not_reemit(self) -> None:
        """Test listeners only hear transitions."""
        transport, _ = make_transport(make_response(200), make_response(200))
        events: list[bool] = []
        transport.register_listener(events.append)

        await transport.async_login()
        await transport.async_ping()

        assert events == [True]

    async def test_failed_ping_disconnects(self) -> None:
        """Test a failing ping sets disconnected."""
        transport, _ = make_transport(make_response(500))
        events: list[bool] = []
        transport.register_listener(events.append)

        await transport.async_login()

        assert transport.state is SessionState.DISCONNECTED
        assert events == [False]
        assert transport.last_error == "Ping returned 500"

    @pytest.mark.parametrize("status", [401, 403])
    async def test_rejected_cookies(self, status: int) -> None:
        """Test stored cookies the relay refuses are an auth failure."""
        transport, _ = make_transport(make_response(status))

        with pytest.raises(AuthError, match=f"Ping returned {status}"):
            await transport.async_login()

        assert transport.state is SessionState.DISCONNECTED

    async def test_keepalive_stops_on_rejected_cookies(self) -> None:
        """Test an expired session asks for new credentials once and stops retrying."""
        auth_failures: list[AuthError] = []
        transport, session = make_transport(
            make_response(200),  # initial ping
            make_response(403),  # keep-alive ping
            make_response(403),  # ping after retried login
            ping_interval=0.01,
            retry_interval=0.01,
            on_auth_failed=auth_failures.append,
        )

        await transport.async_start()
        for _ in range(50):
            if transport._keepalive_task.done():
                break
            await asyncio.sleep(0.01)

        assert len(auth_failures) == 1
        assert transport.state is SessionState.DISCONNECTED
        assert session.request.call_count == 3
        await transport.async_stop()

    async def test_ping_failure_after_connect(self) -> None:
        """Test connected -> disconnected when the keep-alive ping fails."""
        transport, _ = make_transport(
            make_response(200), aiohttp.ClientConnectionError("gone")
        )
        events: list[bool] = []
        transport.register_listener(events.append)

        await transport.async_login()
        assert await transport.async_ping() is False

        assert transport.connected is False
        assert events == [True, False]

    async def test_missing_credentials(self) -> None:
        """Test login without any credentials raises AuthError."""
        transport, session = make_transport(cookies={})
        with pytest.raises(AuthError):
            await transport.async_login()
        assert transport.state is SessionState.LOGGED_OUT
        session.request.assert_not_called()

    async def test_password_login(self) -> None:
        """Test username/password is used when no cookies are stored."""
        session = mock_session()
        session.cookie_jar = MagicMock()
        cookie_session = CookieSession(session)
        cookie_session.async_login = AsyncMock()
        transport = CloudTransport(cookie_session, username="me", password="pw")

        await transport.async_login()

        cookie_session.async_login.assert_called_once_with("me", "pw")
        assert transport.connected is True

    async def test_password_login_network_failure(self) -> None:
        """Test a login that cannot reach the relay leaves the session disconnected."""
        session = mock_session(aiohttp.ClientConnectionError("down"))
        session.cookie_jar = aiohttp.CookieJar()
        transport = CloudTransport(CookieSession(session), username="me", password="pw")

        await transport.async_login()

        assert transport.state is SessionState.DISCONNECTED

    async def test_keepalive_recovers(self) -> None:
        """Test ping failure, then login retry reconnecting."""
        transport, _ = make_transport(
            make_response(200),  # initial ping
            make_response(500),  # keep-alive ping
            make_response(200),  # ping after retried login
            ping_interval=0.01,
            retry_interval=0.01,
        )
        events: list[bool] = []
        transport.register_listener(events.append)

        await transport.async_start()
        for _ in range(50):
            if len(events) >= 3:
                break
            await asyncio.sleep(0.01)
        await transport.async_stop()

        assert events == [True, False, True]

    async def test_stop_cancels_keepalive(self) -> None:
        """Test stopping clears the keep-alive task and listeners."""
        transport, _ = make_transport(make_response(200))
        transport.register_listener(lambda connected: None)

        await transport.async_start()
        await transport.async_stop()

        assert transport._keepalive_task is None
        assert not transport._listeners


class TestCloudCalls:
    """Tests for status, long-poll, post and enumeration."""

    async def test_status(self, device: Device) -> None:
        """Test apppoll is decoded into a DeviceState."""
        transport, session = make_transport(make_response(200, POLL_BODY))

        state = await transport.async_status(device)

        assert state.power is True
        assert state.flame_height == 3
        assert session.request.call_args.args[1] == "https://iftapi.net/a/ABC123/apppoll"

    async def test_long_poll_without_etag(self, device: Device) -> None:
        """Test the first long-poll sends no validator and keeps the new one."""
        transport, session = make_transport(
            make_response(200, POLL_BODY, headers={"ETag": "1700000000:1"})
        )

        result = await transport.async_poll(device)

        assert session.request.call_args.kwargs["headers"] is None
        assert result.etag == "1700000000:1"
        assert result.transport is Transport.CLOUD
        assert result.state is not None
        assert result.state.fan_speed == 2

    async def test_long_poll_reuses_etag(self, device: Device) -> None:
        """Test the etag is echoed as If-None-Match."""
        transport, session = make_transport(
            make_response(200, POLL_BODY, headers={"ETag": "next"})
        )

        result = await transport.async_poll(device, "previous")

        assert session.request.call_args.kwargs["headers"] == {"If-None-Match": "previous"}
        assert session.request.call_args.args[1] == "https://iftapi.net/a/ABC123/applongpoll"
        assert result.etag == "next"

    async def test_long_poll_not_modified(self, device: Device) -> None:
        """Test 304 means no change and keeps the etag."""
        transport, _ = make_transport(make_response(304))

        result = await transport.async_poll(device, "same")

        assert result.state is None
        assert result.etag == "same"

    async def test_long_poll_error(self, device: Device) -> None:
        """Test a rejected long-poll raises ConnectivityError."""
        transport, _ = make_transport(make_response(403))
        with pytest.raises(ConnectivityError):
            await transport.async_poll(device, "etag")

    async def test_long_poll_malformed(self, device: Device) -> None:
        """Test a body that is not JSON raises ProtocolError."""
        response = make_response(200)
        response.json.side_effect = ValueError("Expecting value")
        transport, _ = make_transport(response)
        with pytest.raises(ProtocolError):
            await transport.async_poll(device)

    async def test_post(self, device: Device) -> None:
        """Test commands are posted as a form to apppost."""
        transport, session = make_transport(make_response(204))

        await transport.async_post(device, "height", "3")

        method, url = session.request.call_args.args
        assert method == "POST"
        assert url == "https://iftapi.net/a/ABC123/apppost"
        assert session.request.call_args.kwargs["data"] == {"height": "3"}

    async def test_post_rejected(self, device: Device) -> None:
        """Test a rejected post raises ConnectivityError."""
        transport, _ = make_transport(make_response(500))
        with pytest.raises(ConnectivityError):
            await transport.async_post(device, "power", "1")

    async def test_enumerate_devices(self) -> None:
        """Test locations and fireplaces are walked."""
        transport, session = make_transport(
            make_response(200, {"locations": [{"location_id": "L1"}, {"location_id": "L2"}]}),
            make_response(
                200,
                {"fireplaces": [{"name": "Den", "serial": "S1", "brand": "H&G", "apikey": "aa"}]},
            ),
            make_response(200, {"fireplaces": [{"name": "Patio", "serial": "S2"}]}),
        )

        devices = await transport.async_enumerate_devices()

        assert [device.serial for device in devices] == ["S1", "S2"]
        assert devices[0].api_key == "aa"
        fireplace_call = session.request.call_args_list[1]
        assert fireplace_call.args[1] == "https://iftapi.net/a/L1/enumfireplaces"
        assert fireplace_call.kwargs["params"] == {"location_id": "L1"}

    @pytest.mark.parametrize(
        "body",
        [None, [], "locations", {"locations": None}, {"locations": ["L1"]}],
    )
    async def test_enumerate_malformed_locations(self, body) -> None:
        """Test unexpected enumlocations bodies raise ProtocolError."""
        transport, _ = make_transport(make_response(200, body))
        with pytest.raises(ProtocolError):
            await transport.async_enumerate_devices()

    @pytest.mark.parametrize("body", [None, [{"serial": "S1"}], {"fireplaces": ["S1"]}])
    async def test_enumerate_malformed_fireplaces(self, body) -> None:
        """Test unexpected enumfireplaces bodies raise ProtocolError."""
        transport, _ = make_transport(
            make_response(200, {"locations": [{"location_id": "L1"}]}),
            make_response(200, body),
        )
        with pytest.raises(ProtocolError):
            await transport.async_enumerate_devices()
