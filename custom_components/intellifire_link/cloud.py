"""Cloud transport for the IntelliFire relay at iftapi.net."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Mapping
from typing import Any

import aiohttp
from yarl import URL

from .const import (
    CLOUD_BASE_URL,
    CLOUD_COOKIES,
    CLOUD_HOST,
    LOGIN_RETRY_INTERVAL,
    LONG_POLL_TIMEOUT,
    PING_INTERVAL,
    REQUEST_TIMEOUT,
)
from .errors import AuthError, ConnectivityError, ProtocolError
from .models import Device, DeviceState, PollResult, SessionState, Transport, parse_state

_LOGGER = logging.getLogger(__name__)

_COOKIE_URL = URL(f"https://{CLOUD_HOST}/")


async def read_json(response: aiohttp.ClientResponse) -> Any:
    """Return the decoded JSON body of an already read response."""
    try:
        # The relay and the fireplace do not always label JSON as such
        return await response.json(content_type=None)
    except ValueError as ex:
        raise ProtocolError(f"Malformed JSON from {response.url}: {ex}") from ex


def _json_list(data: Any, key: str) -> list[Any]:
    """Return data[key] from an enumeration body, which must be a list."""
    if not isinstance(data, Mapping):
        raise ProtocolError(f"Expected a JSON object with '{key}', got {data!r}")
    items = data.get(key, [])
    if not isinstance(items, list):
        raise ProtocolError(f"Expected '{key}' to be a list, got {items!r}")
    return items


class CookieSession:
    """aiohttp session carrying the IntelliFire cloud cookies.

    The relay authenticates every request with three cookies: user,
    auth_cookie and web_client_id. They are obtained either by posting
    credentials to the login endpoint or copied from configuration.
    """

    def __init__(self, session: aiohttp.ClientSession) -> None:
        """Initialize with a session that owns a private cookie jar."""
        self._session = session

    def load_cookies(self, cookies: Mapping[str, str]) -> None:
        """Seed the cookie jar from stored cookie values."""
        self._session.cookie_jar.update_cookies(
            {name: cookies[name] for name in CLOUD_COOKIES if cookies.get(name)},
            response_url=_COOKIE_URL,
        )

    def cookies(self) -> dict[str, str]:
        """Return the authentication cookies currently held."""
        jar = self._session.cookie_jar.filter_cookies(_COOKIE_URL)
        return {name: jar[name].value for name in CLOUD_COOKIES if name in jar}

    async def async_login(self, username: str, password: str) -> None:
        """Post credentials to the login endpoint, filling the cookie jar."""
        if not username or not password:
            raise AuthError("Username and password are required")

        _LOGGER.info("Logging into IntelliFire as %s", username)
        response = await self.async_request(
            None,
            "login",
            method="POST",
            data={"username": username, "password": password},
        )
        if response.status in (401, 403):
            raise AuthError(f"Login rejected for {username}: {response.status}")
        if not response.ok:
            raise ConnectivityError(f"Login failed: {response.status} {response.reason}")

        missing = [name for name in CLOUD_COOKIES if name not in self.cookies()]
        if missing:
            raise AuthError(f"Login did not return cookies: {', '.join(missing)}")

    async def async_request(
        self,
        serial: str | None,
        action: str,
        *,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> aiohttp.ClientResponse:
        """Perform an authenticated request and return the read response.

        The URL is https://iftapi.net/a/<serial>/<action>; account wide
        actions leave the serial empty (/a//enumlocations).
        """
        url = f"{CLOUD_BASE_URL}/{serial or ''}/{action}"
        _LOGGER.debug("Fetching %s %s", method, url)
        try:
            async with self._session.request(
                method,
                url,
                headers=headers,
                data=data,
                params=params,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                # Body is cached on the response so callers can read it later
                await response.read()
                return response
        except (aiohttp.ClientError, asyncio.TimeoutError) as ex:
            raise ConnectivityError(f"Cloud request {action} failed: {ex!r}") from ex


class CloudTransport:
    """Cloud session lifecycle plus the cloud side of status/poll/post.

    Session state machine:
        LOGGED_OUT -> CONNECTED | DISCONNECTED    via login
        CONNECTED -> DISCONNECTED                 via failed keep-alive ping
        DISCONNECTED -> CONNECTED | DISCONNECTED  via retried login

    The ping is GET /a//enumlocations. While connected it repeats every
    PING_INTERVAL; while disconnected the full login is retried every
    LOGIN_RETRY_INTERVAL. Listeners hear about transitions only.
    """

    def __init__(
        self,
        cookie_session: CookieSession,
        *,
        username: str | None = None,
        password: str | None = None,
        cookies: Mapping[str, str] | None = None,
        ping_interval: float = PING_INTERVAL,
        retry_interval: float = LOGIN_RETRY_INTERVAL,
        on_auth_failed: Callable[[AuthError], None] | None = None,
    ) -> None:
        """Initialize the transport."""
        self._cookie_session = cookie_session
        self._username = username
        self._password = password
        self._cookies = dict(cookies or {})
        self._ping_interval = ping_interval
        self._retry_interval = retry_interval
        self._on_auth_failed = on_auth_failed

        self._state = SessionState.LOGGED_OUT
        self._rejected: bool = False
        self._listeners: set[Callable[[bool], None]] = set()
        self._keepalive_task: asyncio.Task[None] | None = None
        self._last_ping: float | None = None
        self._last_error: str | None = None

    @property
    def state(self) -> SessionState:
        """Return the session state."""
        return self._state

    @property
    def connected(self) -> bool:
        """Return True if the last ping succeeded."""
        return self._state is SessionState.CONNECTED

    @property
    def last_ping(self) -> float | None:
        """Return the loop time of the last ping."""
        return self._last_ping

    @property
    def last_error(self) -> str | None:
        """Return the last cloud error message."""
        return self._last_error

    @property
    def cookie_session(self) -> CookieSession:
        """Return the underlying cookie session."""
        return self._cookie_session

    def register_listener(self, listener: Callable[[bool], None]) -> Callable[[], None]:
        """Subscribe to connectivity transitions; returns an unsubscribe callable."""
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def _set_state(self, state: SessionState) -> None:
        previous = self._state
        self._state = state
        if state is previous:
            return
        _LOGGER.info("Cloud session %s -> %s", previous.value, state.value)
        for listener in list(self._listeners):
            try:
                listener(state is SessionState.CONNECTED)
            except Exception:
                _LOGGER.exception("Exception in connectivity listener")

    async def async_login(self) -> None:
        """Log in and validate the session with a ping.

        Raises AuthError when no credentials are configured or the cloud
        rejects them, including stored cookies the ping answers with 401
        or 403. Network failures leave the session disconnected.
        """
        if self._cookies and all(self._cookies.get(name) for name in CLOUD_COOKIES):
            _LOGGER.info("Logging into IntelliFire with stored cookies")
            self._cookie_session.load_cookies(self._cookies)
        elif self._username and self._password:
            try:
                await self._cookie_session.async_login(self._username, self._password)
            except ConnectivityError as ex:
                _LOGGER.warning("IntelliFire login failed: %s", ex)
                self._last_error = str(ex)
                self._set_state(SessionState.DISCONNECTED)
                return
        else:
            raise AuthError("Please configure IntelliFire credentials before using")

        if not await self.async_ping() and self._rejected:
            raise AuthError(f"IntelliFire session rejected: {self._last_error}")

    async def async_ping(self) -> bool:
        """Ping the session; returns True if it is usable."""
        self._last_ping = asyncio.get_running_loop().time()
        self._rejected = False
        try:
            response = await self._cookie_session.async_request(None, "enumlocations")
        except ConnectivityError as ex:
            _LOGGER.warning("Cloud ping failed: %s", ex)
            self._last_error = str(ex)
            self._set_state(SessionState.DISCONNECTED)
            return False

        _LOGGER.debug("Cloud ping response: %s", response.status)
        if response.ok:
            self._last_error = None
            self._set_state(SessionState.CONNECTED)
            return True
        self._rejected = response.status in (401, 403)
        self._last_error = f"Ping returned {response.status}"
        self._set_state(SessionState.DISCONNECTED)
        return False

    async def async_start(self) -> None:
        """Log in, then keep the session alive in the background."""
        await self.async_login()
        self._keepalive_task = asyncio.create_task(self._keepalive_loop())

    async def async_stop(self) -> None:
        """Cancel the keep-alive timer."""
        if self._keepalive_task:
            self._keepalive_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._keepalive_task
            self._keepalive_task = None
        self._listeners.clear()

    async def _keepalive_loop(self) -> None:
        """Ping while connected, retry the login while disconnected.

        Rejected credentials end the loop; only new credentials can help.
        """
        while True:
            try:
                if self.connected:
                    await asyncio.sleep(self._ping_interval)
                    await self.async_ping()
                else:
                    _LOGGER.debug("Retrying cloud login in %ds", self._retry_interval)
                    await asyncio.sleep(self._retry_interval)
                    await self.async_login()
            except asyncio.CancelledError:
                raise
            except AuthError as ex:
                _LOGGER.error("IntelliFire credentials rejected: %s", ex)
                self._last_error = str(ex)
                self._set_state(SessionState.DISCONNECTED)
                if self._on_auth_failed:
                    self._on_auth_failed(ex)
                return
            except Exception as ex:
                _LOGGER.exception("Unexpected error in cloud keep-alive: %s", ex)
                self._last_error = str(ex)
                self._set_state(SessionState.DISCONNECTED)

    async def async_enumerate_devices(self) -> list[Device]:
        """Return every fireplace in every location of the account."""
        _LOGGER.info("Discovering locations...")
        response = await self._cookie_session.async_request(None, "enumlocations")
        if not response.ok:
            raise ConnectivityError(f"enumlocations returned {response.status}")
        locations = _json_list(await read_json(response), "locations")

        devices: list[Device] = []
        for location in locations:
            if not isinstance(location, Mapping):
                raise ProtocolError(f"Expected a location object, got {location!r}")
            location_id = location.get("location_id")
            if not location_id:
                continue
            _LOGGER.info("Discovering fireplaces in location %s...", location_id)
            response = await self._cookie_session.async_request(
                location_id,
                "enumfireplaces",
                params={"location_id": location_id},
            )
            if not response.ok:
                raise ConnectivityError(f"enumfireplaces returned {response.status}")
            fireplaces = _json_list(await read_json(response), "fireplaces")
            devices.extend(Device.from_cloud(fireplace) for fireplace in fireplaces)

        _LOGGER.info("Found %d fireplaces", len(devices))
        return devices

    async def async_status(self, device: Device) -> DeviceState:
        """Return the current state snapshot of a fireplace."""
        response = await self._cookie_session.async_request(device.serial, "apppoll")
        if not response.ok:
            raise ConnectivityError(f"apppoll for {device.name} returned {response.status}")
        return parse_state(await read_json(response))

    async def async_poll(self, device: Device, etag: str | None = None) -> PollResult:
        """Long-poll for a state change.

        The server holds the request until the state changes or its own
        timeout elapses. A 304 means nothing changed since etag.
        """
        headers = None
        if etag:
            headers = {"If-None-Match": etag}
            _LOGGER.debug("Long poll for %s with etag %s", device.name, etag)
        else:
            _LOGGER.debug("Long poll for %s", device.name)

        response = await self._cookie_session.async_request(
            device.serial,
            "applongpoll",
            headers=headers,
            timeout=LONG_POLL_TIMEOUT,
        )
        new_etag = response.headers.get("ETag") or etag
        if response.status == 304:
            return PollResult(state=None, etag=new_etag, transport=Transport.CLOUD)
        if not response.ok:
            raise ConnectivityError(
                f"applongpoll for {device.name} returned {response.status}"
            )
        state = parse_state(await read_json(response))
        return PollResult(state=state, etag=new_etag, transport=Transport.CLOUD)

    async def async_post(self, device: Device, command: str, value: str) -> None:
        """Apply one setting through the relay."""
        _LOGGER.info("Sending update to fireplace %s: %s=%s", device.name, command, value)
        response = await self._cookie_session.async_request(
            device.serial,
            "apppost",
            method="POST",
            data={command: value},
        )
        _LOGGER.info(
            "Fireplace %s update response: %s %s",
            device.name,
            response.status,
            response.reason,
        )
        if not response.ok:
            raise ConnectivityError(f"apppost for {device.name} returned {response.status}")
