"""Number platform for IntelliFire Link integration."""

from __future__ import annotations

import logging

from homeassistant.components.number import NumberEntity, NumberMode
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN, MAX_FLAME_HEIGHT
from .coordinator import IntellifireCoordinator, IntellifireEntityMixin
from .hub import IntellifireHub

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up IntelliFire flame height sliders."""
    hub: IntellifireHub = hass.data[DOMAIN][entry.entry_id]
    _LOGGER.debug("Setting up number entities for %s", entry.entry_id)
    async_add_entities(
        IntellifireFlameHeight(coordinator) for coordinator in hub.coordinators.values()
    )


class IntellifireFlameHeight(IntellifireEntityMixin, NumberEntity):
    """Flame height slider (0-4).

    Until the fireplace confirms it has lit, the coordinator caps the
    height at half range; the slider then shows the capped value.
    """

    _attr_name = "Flame Height"
    _attr_icon = "mdi:fire"
    _attr_mode = NumberMode.SLIDER
    _attr_native_min_value = 0
    _attr_native_max_value = MAX_FLAME_HEIGHT
    _attr_native_step = 1

    def __init__(self, coordinator: IntellifireCoordinator) -> None:
        """Initialize the slider."""
        self.coordinator = coordinator
        self._attr_unique_id = f"{coordinator.device.serial}_flame_height"

    @property
    def native_value(self) -> int:
        """Return the flame height."""
        return self.coordinator.state.flame_height

    async def async_set_native_value(self, value: float) -> None:
        """Set the flame height."""
        _LOGGER.debug("Flame height set to %s", value)
        await self.coordinator.async_set_flame_height(int(value))
