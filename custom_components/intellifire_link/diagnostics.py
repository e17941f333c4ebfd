"""Diagnostics support for IntelliFire Link integration."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from homeassistant.components.diagnostics import async_redact_data
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_PASSWORD, CONF_USERNAME
from homeassistant.core import HomeAssistant

from .const import CONF_COOKIES, CONF_DEBOUNCE_DELAY, DOMAIN
from .hub import IntellifireHub

TO_REDACT = {CONF_COOKIES, CONF_PASSWORD, CONF_USERNAME, "api_key"}


async def async_get_config_entry_diagnostics(
    hass: HomeAssistant, entry: ConfigEntry
) -> dict[str, Any]:
    """Return diagnostics for the config entry."""
    hub: IntellifireHub = hass.data[DOMAIN][entry.entry_id]

    return {
        "config": async_redact_data(
            {**entry.data, CONF_DEBOUNCE_DELAY: hub.debounce_delay}, TO_REDACT
        ),
        "cloud": {
            "state": hub.cloud.state.value,
            "last_ping": hub.cloud.last_ping,
            "last_error": hub.cloud.last_error,
            "active_transport": hub.router.active.value,
        },
        "discovery": {
            serial: {"ip": discovered.ip, "last_seen": discovered.last_seen}
            for serial, discovered in hub.discovery.entries.items()
        },
        "fireplaces": {
            serial: {
                "name": coordinator.device.name,
                "available": coordinator.available,
                "state": asdict(coordinator.state),
                "etag": coordinator.cursor.etag,
                "cursor_transport": (
                    coordinator.cursor.transport.value if coordinator.cursor.transport else None
                ),
                "pending_commands": coordinator.pending_commands,
                "poll_failures": coordinator.poll_failures,
                "last_error": coordinator.last_error,
            }
            for serial, coordinator in hub.coordinators.items()
        },
    }
