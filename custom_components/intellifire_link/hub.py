"""Owns the shared transports and one coordinator per fireplace."""

from __future__ import annotations

import logging
from collections.abc import Callable

import aiohttp

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_PASSWORD, CONF_USERNAME
from homeassistant.core import HomeAssistant
from homeassistant.helpers.aiohttp_client import (
    async_create_clientsession,
    async_get_clientsession,
)

from .cloud import CloudTransport, CookieSession
from .const import CONF_COOKIES, CONF_DEBOUNCE_DELAY, CONF_DEVICES, DEBOUNCE_DELAY
from .coordinator import IntellifireCoordinator
from .discovery import DiscoveryService
from .errors import AuthError, IntellifireError
from .local import LocalTransport
from .models import Device
from .router import TransportRouter

_LOGGER = logging.getLogger(__name__)


class IntellifireHub:
    """Wire one cloud session, one discovery service and the coordinators.

    Exactly one CloudTransport and one DiscoveryService exist per config
    entry; every coordinator shares them through the TransportRouter.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        entry: ConfigEntry,
        *,
        cloud_session: aiohttp.ClientSession | None = None,
        local_session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Build the transports from the config entry."""
        self._hass = hass
        self._entry = entry

        # A private cookie jar per entry, closed again in async_stop
        self._owned_session: aiohttp.ClientSession | None = None
        if cloud_session is None:
            cloud_session = async_create_clientsession(hass, cookie_jar=aiohttp.CookieJar())
            self._owned_session = cloud_session
        if local_session is None:
            local_session = async_get_clientsession(hass)

        cookies = entry.data.get(CONF_COOKIES, {})
        self.cloud = CloudTransport(
            CookieSession(cloud_session),
            username=entry.data.get(CONF_USERNAME),
            password=entry.data.get(CONF_PASSWORD),
            cookies=cookies,
            on_auth_failed=self._handle_auth_failed,
        )
        self.discovery = DiscoveryService(local_session)
        self.local = LocalTransport(local_session, self.discovery, cookies.get("user"))
        self.router = TransportRouter(self.cloud, self.local)
        self.coordinators: dict[str, IntellifireCoordinator] = {}
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def debounce_delay(self) -> float:
        """Return the configured debounce window."""
        return self._entry.options.get(CONF_DEBOUNCE_DELAY, DEBOUNCE_DELAY)

    async def async_setup(self) -> None:
        """Log in, start discovery and start polling every fireplace.

        Raises AuthError when credentials are missing or rejected. A cloud outage
        does not fail setup; cached devices are polled over the LAN instead.
        """
        await self.cloud.async_start()
        await self.discovery.async_start()

        for device in await self._async_load_devices():
            self.coordinators[device.serial] = IntellifireCoordinator(
                device,
                self.router,
                debounce_delay=self.debounce_delay,
            )
        for coordinator in self.coordinators.values():
            await coordinator.async_start()

        self._unsubscribe = self.cloud.register_listener(self._handle_connectivity)

    async def async_stop(self) -> None:
        """Stop every coordinator and both transports."""
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        for coordinator in self.coordinators.values():
            await coordinator.async_stop()
        await self.discovery.async_stop()
        await self.cloud.async_stop()
        if self._owned_session is not None:
            await self._owned_session.close()
            self._owned_session = None

    def update_debounce_delay(self, debounce_delay: float) -> None:
        """Apply a new debounce window to every fireplace."""
        for coordinator in self.coordinators.values():
            coordinator.update_debounce_delay(debounce_delay)

    async def async_submit_command(self, serial: str, parameter: str, value: int | bool) -> None:
        """Forward a setting change to the fireplace's coordinator."""
        coordinator = self.coordinators.get(serial)
        if coordinator is None:
            _LOGGER.warning("Ignoring %s for unknown fireplace %s", parameter, serial)
            return
        await coordinator.async_submit_command(parameter, value)

    def _cached_devices(self) -> list[Device]:
        return [Device.from_dict(data) for data in self._entry.data.get(CONF_DEVICES, [])]

    def _store_devices(self, devices: list[Device]) -> bool:
        """Cache devices in the config entry; returns True if they changed."""
        serialized = [device.as_dict() for device in devices]
        if serialized == self._entry.data.get(CONF_DEVICES):
            return False
        self._hass.config_entries.async_update_entry(
            self._entry, data={**self._entry.data, CONF_DEVICES: serialized}
        )
        return True

    async def _async_load_devices(self) -> list[Device]:
        if not self.cloud.connected:
            cached = self._cached_devices()
            _LOGGER.info("Cloud unavailable, using %d cached fireplaces", len(cached))
            return cached
        try:
            devices = await self.cloud.async_enumerate_devices()
        except IntellifireError as ex:
            _LOGGER.warning("Fireplace enumeration failed, using cache: %s", ex)
            return self._cached_devices()
        self._store_devices(devices)
        return devices

    def _handle_auth_failed(self, ex: AuthError) -> None:
        _LOGGER.warning("Asking to re-authenticate %s: %s", self._entry.title, ex)
        self._entry.async_start_reauth(self._hass)

    def _handle_connectivity(self, connected: bool) -> None:
        if connected:
            self._entry.async_create_background_task(
                self._hass, self._async_refresh_devices(), "intellifire_link refresh devices"
            )

    async def _async_refresh_devices(self) -> None:
        """Re-enumerate after a reconnect; reload when the account changed."""
        try:
            devices = await self.cloud.async_enumerate_devices()
        except IntellifireError as ex:
            _LOGGER.debug("Fireplace enumeration after reconnect failed: %s", ex)
            return
        if self._store_devices(devices):
            _LOGGER.info("Fireplaces on the account changed, reloading")
            self._hass.config_entries.async_schedule_reload(self._entry.entry_id)
