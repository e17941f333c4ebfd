"""Switch platform for IntelliFire Link integration."""

from __future__ import annotations

import logging
from typing import Any

from homeassistant.components.switch import SwitchDeviceClass, SwitchEntity
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
    """Set up IntelliFire power switches."""
    hub: IntellifireHub = hass.data[DOMAIN][entry.entry_id]
    _LOGGER.debug("Setting up switch entities for %s", entry.entry_id)
    async_add_entities(
        IntellifirePowerSwitch(coordinator) for coordinator in hub.coordinators.values()
    )


class IntellifirePowerSwitch(IntellifireEntityMixin, SwitchEntity):
    """Switch entity for fireplace power."""

    _attr_device_class = SwitchDeviceClass.SWITCH
    _attr_name = "Power"
    _attr_icon = "mdi:fireplace"

    def __init__(self, coordinator: IntellifireCoordinator) -> None:
        """Initialize the power switch."""
        self.coordinator = coordinator
        self._attr_unique_id = f"{coordinator.device.serial}_power"

    @property
    def is_on(self) -> bool:
        """Return True if the fireplace is on."""
        return self.coordinator.state.power

    async def async_turn_on(self, **kwargs: Any) -> None:
        """Turn on the fireplace."""
        _LOGGER.debug("Power turn_on")
        await self.coordinator.async_set_power(True)

    async def async_turn_off(self, **kwargs: Any) -> None:
        """Turn off the fireplace."""
        _LOGGER.debug("Power turn_off")
        await self.coordinator.async_set_power(False)
