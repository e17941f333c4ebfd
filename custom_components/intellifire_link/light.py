"""Light platform for IntelliFire Link integration."""

from __future__ import annotations

import logging
from typing import Any

from homeassistant.components.light import ColorMode, LightEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN
from .coordinator import IntellifireCoordinator, IntellifireEntityMixin
from .hub import IntellifireHub

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up IntelliFire light entities."""
    hub: IntellifireHub = hass.data[DOMAIN][entry.entry_id]
    _LOGGER.debug("Setting up light entities for %s", entry.entry_id)
    async_add_entities(
        IntellifireLight(coordinator) for coordinator in hub.coordinators.values()
    )


class IntellifireLight(IntellifireEntityMixin, LightEntity):
    """On/off light entity for the fireplace accent lights."""

    _attr_name = "Lights"
    _attr_color_mode = ColorMode.ONOFF
    _attr_supported_color_modes = {ColorMode.ONOFF}

    def __init__(self, coordinator: IntellifireCoordinator) -> None:
        """Initialize the light."""
        self.coordinator = coordinator
        self._attr_unique_id = f"{coordinator.device.serial}_lights"

    @property
    def is_on(self) -> bool:
        """Return True if the lights are on."""
        return self.coordinator.state.lights

    async def async_turn_on(self, **kwargs: Any) -> None:
        """Turn on the lights."""
        _LOGGER.debug("Lights turn_on")
        await self.coordinator.async_set_lights(True)

    async def async_turn_off(self, **kwargs: Any) -> None:
        """Turn off the lights."""
        _LOGGER.debug("Lights turn_off")
        await self.coordinator.async_set_lights(False)
