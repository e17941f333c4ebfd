"""LAN transport talking directly to the fireplace."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from collections.abc import Mapping

import aiohttp

from .cloud import read_json
from .const import LOCAL_TIMEOUT
from .discovery import DiscoveryService
from .errors import LocalUnavailableError, ProtocolError
from .models import Device, DeviceState, PollResult, Transport, parse_state

_LOGGER = logging.getLogger(__name__)


def compute_response(api_key: str, challenge: str, command: str, value: str) -> str:
    """Sign a command for the fireplace's /post endpoint.

    sig      = SHA256(api_key || challenge || "post:command=<c>&value=<v>")
    response = hex(SHA256(api_key || sig))

    api_key and challenge are hex strings and are hashed as raw bytes. This
    is not HMAC; the firmware recomputes exactly this byte sequence.
    """
    api_key_bytes = bytes.fromhex(api_key)
    challenge_bytes = bytes.fromhex(challenge.strip())
    payload = f"post:command={command}&value={value}".encode()
    sig = hashlib.sha256(api_key_bytes + challenge_bytes + payload).digest()
    return hashlib.sha256(api_key_bytes + sig).hexdigest()


class LocalTransport:
    """Unauthenticated polls and challenge/response signed commands over HTTP.

    The fireplace IP comes from the discovery service. An unknown IP is not
    an error condition of the fireplace, it just makes the local transport
    unavailable until discovery catches up.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        discovery: DiscoveryService,
        user_id: str | None,
    ) -> None:
        """Initialize the transport."""
        self._session = session
        self._discovery = discovery
        self._user_id = user_id

    async def _async_fetch(
        self,
        device: Device,
        action: str,
        *,
        method: str = "GET",
        data: Mapping[str, str] | None = None,
    ) -> aiohttp.ClientResponse:
        ip = self._discovery.ip(device.serial)
        if ip is None:
            raise LocalUnavailableError(f"No local IP for {device.name}")

        url = f"http://{ip}/{action}"
        _LOGGER.debug("Local %s %s for %s", method, url, device.name)
        try:
            async with self._session.request(
                method,
                url,
                data=data,
                timeout=aiohttp.ClientTimeout(total=LOCAL_TIMEOUT),
            ) as response:
                await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as ex:
            raise LocalUnavailableError(
                f"Local {action} for {device.name} at {ip} failed: {ex!r}"
            ) from ex

        if not response.ok:
            raise LocalUnavailableError(
                f"Local {action} for {device.name} returned {response.status}"
            )
        return response

    async def async_status(self, device: Device) -> DeviceState:
        """Return the current state snapshot from the fireplace."""
        response = await self._async_fetch(device, "poll")
        return parse_state(await read_json(response))

    async def async_poll(self, device: Device, etag: str | None = None) -> PollResult:
        """Poll the fireplace; the local endpoint has no cache validator."""
        state = await self.async_status(device)
        return PollResult(state=state, etag=None, transport=Transport.LOCAL)

    async def async_post(self, device: Device, command: str, value: str) -> None:
        """Send one signed setting to the fireplace."""
        if not device.api_key:
            raise LocalUnavailableError(f"No API key known for {device.name}")
        if not self._user_id:
            raise LocalUnavailableError("No user id available for local commands")

        response = await self._async_fetch(device, "get_challenge")
        challenge = await response.text()
        try:
            signature = compute_response(device.api_key, challenge, command, value)
        except ValueError as ex:
            raise ProtocolError(f"Invalid challenge from {device.name}: {challenge!r}") from ex

        _LOGGER.info("Sending local update to fireplace %s: %s=%s", device.name, command, value)
        response = await self._async_fetch(
            device,
            "post",
            method="POST",
            data={
                "command": command,
                "value": value,
                "user": self._user_id,
                "response": signature,
            },
        )
        _LOGGER.info("Fireplace %s update response: %s", device.name, response.status)
