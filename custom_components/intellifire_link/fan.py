"""Fan platform for IntelliFire Link integration."""

from __future__ import annotations

import logging
from typing import Any

from homeassistant.components.fan import FanEntity, FanEntityFeature
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN, MAX_FAN_SPEED
from .coordinator import IntellifireCoordinator, IntellifireEntityMixin
from .hub import IntellifireHub

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up IntelliFire fan entities."""
    hub: IntellifireHub = hass.data[DOMAIN][entry.entry_id]
    _LOGGER.debug("Setting up fan entities for %s", entry.entry_id)
    async_add_entities(
        IntellifireFan(coordinator) for coordinator in hub.coordinators.values()
    )


class IntellifireFan(IntellifireEntityMixin, FanEntity):
    """Fan entity for the fireplace heat fan.

    Speed Scale Conversion:
        - Home Assistant uses 0-100 (percentage)
        - Fireplace uses 0-4 for fanspeed, 0 meaning off

        HA -> Fireplace: round(percentage / 25)  (100 -> 4)
        Fireplace -> HA: speed * 25  (4 -> 100)

    Speed changes go through the coordinator's debounce, so dragging the
    slider sends a single command.
    """

    _attr_name = "Heat Fan"
    _attr_supported_features = (
        FanEntityFeature.SET_SPEED | FanEntityFeature.TURN_ON | FanEntityFeature.TURN_OFF
    )
    _attr_speed_count = MAX_FAN_SPEED

    def __init__(self, coordinator: IntellifireCoordinator) -> None:
        """Initialize the fan."""
        self.coordinator = coordinator
        self._attr_unique_id = f"{coordinator.device.serial}_fan"
        self._last_speed = 1

    @property
    def is_on(self) -> bool:
        """Return True if fan is on."""
        return self.coordinator.state.fan_speed > 0

    @property
    def percentage(self) -> int:
        """Return the current speed percentage."""
        return self.coordinator.state.fan_speed * 100 // MAX_FAN_SPEED

    async def async_turn_on(
        self,
        percentage: int | None = None,
        preset_mode: str | None = None,
        **kwargs: Any,
    ) -> None:
        """Turn on the fan."""
        if percentage is not None:
            _LOGGER.debug("Fan turn_on with percentage=%d", percentage)
            await self.async_set_percentage(percentage)
        else:
            # No percentage - resume the last speed used
            _LOGGER.debug("Fan turn_on (resuming speed %d)", self._last_speed)
            await self.coordinator.async_set_fan_speed(self._last_speed)

    async def async_turn_off(self, **kwargs: Any) -> None:
        """Turn off the fan."""
        _LOGGER.debug("Fan turn_off")
        if self.coordinator.state.fan_speed:
            self._last_speed = self.coordinator.state.fan_speed
        await self.coordinator.async_set_fan_speed(0)

    async def async_set_percentage(self, percentage: int) -> None:
        """Set the fan speed percentage."""
        speed = round(percentage * MAX_FAN_SPEED / 100)
        _LOGGER.debug("Fan set_percentage=%d (speed=%d)", percentage, speed)
        if speed:
            self._last_speed = speed
        await self.coordinator.async_set_fan_speed(speed)
