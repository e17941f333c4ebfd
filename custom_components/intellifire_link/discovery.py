"""UDP discovery of IntelliFire fireplaces on the LAN."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from collections.abc import Callable

import aiohttp

from .const import (
    DISCOVERY_BROADCAST_ADDRESS,
    DISCOVERY_BROADCAST_PORT,
    DISCOVERY_INTERVAL,
    DISCOVERY_LISTEN_PORT,
    DISCOVERY_MESSAGE,
    LOCAL_TIMEOUT,
)
from .models import DiscoveryEntry

_LOGGER = logging.getLogger(__name__)


class _DiscoveryProtocol(asyncio.DatagramProtocol):
    """Hands every received datagram to the discovery service."""

    def __init__(self, on_packet: Callable[[bytes, tuple[str, int]], None]) -> None:
        self._on_packet = on_packet

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self._on_packet(data, addr)

    def error_received(self, exc: Exception) -> None:
        _LOGGER.error("Discovery socket error: %s", exc)


class DiscoveryService:
    """Learns the LAN IP of each fireplace from its UDP announcements.

    Sends "IFT-search" to the broadcast address; fireplaces answer with
    {"ip": ..., "uuid": ...}. An announcement is only trusted after
    GET http://<ip>/poll answers with a body carrying the fireplace serial,
    so spoofed or stale packets cannot poison the table.

    Entries never expire; a newer verified announcement overwrites the IP.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        listen_port: int = DISCOVERY_LISTEN_PORT,
        broadcast_port: int = DISCOVERY_BROADCAST_PORT,
        interval: float = DISCOVERY_INTERVAL,
    ) -> None:
        """Initialize the discovery service."""
        self._session = session
        self._listen_port = listen_port
        self._broadcast_port = broadcast_port
        self._interval = interval

        self._entries: dict[str, DiscoveryEntry] = {}
        self._listeners: set[Callable[[str], None]] = set()
        self._transport: asyncio.DatagramTransport | None = None
        self._broadcast_task: asyncio.Task[None] | None = None
        self._verify_tasks: set[asyncio.Task[str | None]] = set()

    @property
    def entries(self) -> dict[str, DiscoveryEntry]:
        """Return a copy of the serial to IP table."""
        return dict(self._entries)

    def ip(self, serial: str) -> str | None:
        """Return the LAN IP of a fireplace, or None if not yet discovered."""
        entry = self._entries.get(serial)
        return entry.ip if entry else None

    def register_listener(self, listener: Callable[[str], None]) -> Callable[[], None]:
        """Subscribe to newly discovered (or moved) serials."""
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    async def async_start(self) -> None:
        """Bind the UDP socket and start broadcasting searches."""
        loop = asyncio.get_running_loop()
        try:
            self._transport, _ = await loop.create_datagram_endpoint(
                lambda: _DiscoveryProtocol(self._handle_packet),
                local_addr=("0.0.0.0", self._listen_port),
                allow_broadcast=True,
            )
        except OSError as ex:
            # Cloud keeps working; the local transport just never learns an IP
            _LOGGER.warning(
                "Unable to bind discovery socket on port %d: %s",
                self._listen_port,
                ex,
            )
            return
        self._broadcast_task = asyncio.create_task(self._broadcast_loop())

    async def async_stop(self) -> None:
        """Close the socket and cancel pending work."""
        _LOGGER.info("Shutting down discovery")
        tasks = [*self._verify_tasks]
        if self._broadcast_task:
            tasks.append(self._broadcast_task)
            self._broadcast_task = None
        for task in tasks:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._verify_tasks.clear()

        if self._transport:
            self._transport.close()
            self._transport = None
        self._listeners.clear()

    def send_search(self) -> None:
        """Broadcast one discovery datagram."""
        if self._transport is None:
            return
        _LOGGER.debug("Sending UDP discovery packet")
        self._transport.sendto(
            DISCOVERY_MESSAGE,
            (DISCOVERY_BROADCAST_ADDRESS, self._broadcast_port),
        )

    async def _broadcast_loop(self) -> None:
        while True:
            self.send_search()
            await asyncio.sleep(self._interval)

    def _handle_packet(self, data: bytes, addr: tuple[str, int]) -> None:
        _LOGGER.debug("Received UDP packet from %s: %s", addr[0], data)
        try:
            info = json.loads(data)
            ip = info["ip"]
        except (ValueError, KeyError, TypeError) as ex:
            _LOGGER.debug("Ignoring malformed discovery packet from %s: %s", addr[0], ex)
            return
        if not isinstance(ip, str) or not ip:
            _LOGGER.debug("Ignoring discovery packet without ip from %s", addr[0])
            return

        task = asyncio.create_task(self.async_verify(ip))
        self._verify_tasks.add(task)
        task.add_done_callback(self._verify_tasks.discard)

    async def async_verify(self, ip: str) -> str | None:
        """Confirm a fireplace lives at ip; returns its serial if so."""
        try:
            async with self._session.get(
                f"http://{ip}/poll",
                timeout=aiohttp.ClientTimeout(total=LOCAL_TIMEOUT),
            ) as response:
                if not response.ok:
                    _LOGGER.info(
                        "Failed to verify fireplace ip %s: %s", ip, response.status
                    )
                    return None
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as ex:
            _LOGGER.info("Failed to verify fireplace ip %s: %s", ip, ex)
            return None

        serial = data.get("serial") if isinstance(data, dict) else None
        if not serial:
            _LOGGER.info("Device at %s did not report a serial", ip)
            return None

        self._record(str(serial), ip)
        return str(serial)

    def _record(self, serial: str, ip: str) -> None:
        previous = self._entries.get(serial)
        self._entries[serial] = DiscoveryEntry(serial=serial, ip=ip, last_seen=time.monotonic())
        if previous is not None and previous.ip == ip:
            return

        _LOGGER.debug("Fireplace %s is at ip %s", serial, ip)
        for listener in list(self._listeners):
            try:
                listener(serial)
            except Exception:
                _LOGGER.exception("Exception in discovery listener")
