"""IntelliFire Link integration for Home Assistant."""

from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_USERNAME, Platform
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryAuthFailed

from .const import DOMAIN
from .errors import AuthError
from .hub import IntellifireHub

_LOGGER = logging.getLogger(__name__)

PLATFORMS: list[Platform] = [Platform.SWITCH, Platform.LIGHT, Platform.FAN, Platform.NUMBER]


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up IntelliFire Link from a config entry."""
    _LOGGER.debug("Setting up IntelliFire Link for %s", entry.data.get(CONF_USERNAME))

    hub = IntellifireHub(hass, entry)
    try:
        await hub.async_setup()
    except AuthError as ex:
        await hub.async_stop()
        raise ConfigEntryAuthFailed(str(ex)) from ex

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = hub

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

    # Register options update listener
    entry.async_on_unload(entry.add_update_listener(async_options_updated))

    _LOGGER.info(
        "IntelliFire Link setup complete with %d fireplaces (cloud %s)",
        len(hub.coordinators),
        hub.cloud.state.value,
    )
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    # Unload platforms FIRST (entities may still be using coordinators)
    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unload_ok:
        hub: IntellifireHub = hass.data[DOMAIN].pop(entry.entry_id)
        await hub.async_stop()
        _LOGGER.info("IntelliFire Link unloaded for %s", entry.data.get(CONF_USERNAME))
    else:
        _LOGGER.warning(
            "Failed to unload platforms for IntelliFire Link %s",
            entry.data.get(CONF_USERNAME),
        )
    return unload_ok


async def async_options_updated(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Handle options update (debounce delay change)."""
    hub: IntellifireHub = hass.data[DOMAIN][entry.entry_id]
    _LOGGER.info("IntelliFire Link options updated: debounce_delay=%ss", hub.debounce_delay)
    hub.update_debounce_delay(hub.debounce_delay)
