"""Transport selection between the cloud relay and the LAN endpoint."""

from __future__ import annotations

import logging
import time

from .cloud import CloudTransport
from .errors import IntellifireError
from .local import LocalTransport
from .models import Device, DeviceState, PollCursor, PollResult, Transport

_LOGGER = logging.getLogger(__name__)


class TransportRouter:
    """Routes status/poll/post to the cloud when connected, else to the LAN.

    The choice is made again on every call, so a cloud disconnect moves the
    very next request to the local transport and a reconnect moves it back.
    With min_dwell > 0 the router stays local for that many seconds after a
    disconnect before trusting the cloud again.
    """

    def __init__(
        self,
        cloud: CloudTransport,
        local: LocalTransport,
        *,
        min_dwell: float = 0.0,
    ) -> None:
        """Initialize the router."""
        self._cloud = cloud
        self._local = local
        self._min_dwell = min_dwell
        self._disconnected_at: float | None = None
        cloud.register_listener(self._handle_connectivity)

    def _handle_connectivity(self, connected: bool) -> None:
        if not connected:
            self._disconnected_at = time.monotonic()

    @property
    def active(self) -> Transport:
        """Return the transport the next call will use."""
        if not self._cloud.connected:
            return Transport.LOCAL
        if (
            self._min_dwell
            and self._disconnected_at is not None
            and time.monotonic() - self._disconnected_at < self._min_dwell
        ):
            return Transport.LOCAL
        return Transport.CLOUD

    def _select(self) -> tuple[Transport, CloudTransport | LocalTransport]:
        kind = self.active
        return kind, self._cloud if kind is Transport.CLOUD else self._local

    async def async_status(self, device: Device) -> DeviceState:
        """Return a state snapshot from the active transport."""
        _, transport = self._select()
        return await transport.async_status(device)

    async def async_poll(self, device: Device, cursor: PollCursor | None = None) -> PollResult:
        """Poll the active transport.

        The cursor's etag is only forwarded to the transport that issued it.
        """
        kind, transport = self._select()
        etag = None
        if cursor is not None and cursor.transport is kind:
            etag = cursor.etag
        return await transport.async_poll(device, etag)

    async def async_post(self, device: Device, command: str, value: str) -> bool:
        """Send one setting; failures are logged and reported as False."""
        kind, transport = self._select()
        try:
            await transport.async_post(device, command, value)
        except IntellifireError as ex:
            _LOGGER.warning(
                "Failed to send %s=%s to %s via %s: %s",
                command,
                value,
                device.name,
                kind.value,
                ex,
            )
            return False
        return True
