"""Per-fireplace coordinator for the IntelliFire Link integration."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING

from homeassistant.helpers.device_registry import DeviceInfo

from .const import (
    CMD_FAN_SPEED,
    CMD_HEIGHT,
    CMD_LIGHT,
    CMD_POWER,
    DEBOUNCE_DELAY,
    DEBOUNCED_COMMANDS,
    DOMAIN,
    IMMEDIATE_COMMANDS,
    LOCAL_POLL_INTERVAL,
    MAX_FAN_SPEED,
    MAX_FLAME_HEIGHT,
    RETRY_DELAY,
    UNACKED_MAX_FLAME_HEIGHT,
)
from .errors import IntellifireError
from .models import CommandRequest, Device, DeviceState, PollCursor, Transport

if TYPE_CHECKING:
    from .router import TransportRouter

_LOGGER = logging.getLogger(__name__)

# State field touched by each debounced command
_DEBOUNCED_FIELDS = {CMD_HEIGHT: "flame_height", CMD_FAN_SPEED: "fan_speed"}


class IntellifireEntityMixin:
    """Mixin providing common functionality for IntelliFire entities."""

    _attr_has_entity_name = True
    _attr_should_poll = False
    coordinator: "IntellifireCoordinator"  # Set by subclass __init__

    async def async_added_to_hass(self) -> None:
        """Register callback when entity is added."""
        self.coordinator.register_callback(self.async_write_ha_state)

    async def async_will_remove_from_hass(self) -> None:
        """Unregister callback when entity is removed."""
        self.coordinator.unregister_callback(self.async_write_ha_state)

    @property
    def device_info(self) -> DeviceInfo:
        """Return device info to link entity to device."""
        return self.coordinator.device_info

    @property
    def available(self) -> bool:
        """Return True if the last poll of the fireplace succeeded."""
        return self.coordinator.available


class IntellifireCoordinator:
    """Keeps one fireplace's state current and sends its commands.

    Architecture:
        A single asyncio task polls through the TransportRouter forever:
        one status snapshot, then long-polls. After a cloud long-poll the
        next one is issued at once (the server call itself blocks); after a
        local poll it waits LOCAL_POLL_INTERVAL; after any failure it waits
        RETRY_DELAY. Polls are strictly sequential, so the PollCursor is
        never used concurrently.

    Commands:
        power and light are sent immediately. height and fanspeed are
        debounced per parameter: every request restarts a DEBOUNCE_DELAY
        timer and only the last value is transmitted.

    Optimistic state:
        Commands update `state` right away so the UI follows the user.
        `state.ack_power` only changes when a poll reports it. Until the
        fireplace acknowledges power on, flame height is capped at half
        range.
    """

    def __init__(
        self,
        device: Device,
        router: TransportRouter,
        *,
        debounce_delay: float = DEBOUNCE_DELAY,
        local_poll_interval: float = LOCAL_POLL_INTERVAL,
        retry_delay: float = RETRY_DELAY,
    ) -> None:
        """Initialize the coordinator."""
        self._device = device
        self._router = router
        self._debounce_delay = debounce_delay
        self._local_poll_interval = local_poll_interval
        self._retry_delay = retry_delay

        self._running: bool = False
        self._callbacks: set[Callable[[], None]] = set()
        self._poll_task: asyncio.Task[None] | None = None
        self._send_tasks: set[asyncio.Task[None]] = set()
        self._debounce_handles: dict[str, asyncio.TimerHandle] = {}
        self._pending_values: dict[str, int] = {}
        self._cursor = PollCursor(serial=device.serial)
        self._available: bool = False
        self._poll_failures: int = 0
        self._last_error: str | None = None

        self.state = DeviceState()

        _LOGGER.debug(
            "Coordinator initialized for %s (%s)", device.name, device.serial
        )

    @property
    def device(self) -> Device:
        """Return the fireplace identity."""
        return self._device

    @property
    def device_info(self) -> DeviceInfo:
        """Return device info for entity registry."""
        return DeviceInfo(
            identifiers={(DOMAIN, self._device.serial)},
            name=self._device.name,
            manufacturer="Hearth & Home Technologies",
            model=self._device.brand or "IntelliFire",
            serial_number=self._device.serial,
        )

    @property
    def available(self) -> bool:
        """Return True if the last poll cycle succeeded."""
        return self._available

    @property
    def cursor(self) -> PollCursor:
        """Return the cache validator for the next poll."""
        return self._cursor

    @property
    def poll_failures(self) -> int:
        """Return consecutive failed polls."""
        return self._poll_failures

    @property
    def last_error(self) -> str | None:
        """Return last error message."""
        return self._last_error

    @property
    def pending_commands(self) -> dict[str, int]:
        """Return debounced values not yet transmitted."""
        return dict(self._pending_values)

    def register_callback(self, callback: Callable[[], None]) -> None:
        """Register callback to be called on state updates."""
        self._callbacks.add(callback)

    def unregister_callback(self, callback: Callable[[], None]) -> None:
        """Unregister a callback."""
        self._callbacks.discard(callback)

    def _notify_state_update(self) -> None:
        """Notify all registered callbacks of state change."""
        # Iterate over a copy in case a callback modifies the set
        for callback in list(self._callbacks):
            try:
                callback()
            except Exception:
                _LOGGER.exception("Exception in state update callback")

    def update_debounce_delay(self, debounce_delay: float) -> None:
        """Update the debounce window for analog settings."""
        self._debounce_delay = debounce_delay

    async def async_start(self) -> None:
        """Start polling the fireplace."""
        _LOGGER.debug("Starting poll loop for %s", self._device.name)
        self._running = True
        self._poll_task = asyncio.create_task(self._poll_loop())

    async def async_stop(self) -> None:
        """Stop polling and drop every pending timer."""
        self._running = False

        for handle in self._debounce_handles.values():
            handle.cancel()
        self._debounce_handles.clear()
        self._pending_values.clear()

        for task in (self._poll_task, *self._send_tasks):
            if task:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._poll_task = None
        self._send_tasks.clear()

        # Clear callbacks to prevent memory leaks
        self._callbacks.clear()

        _LOGGER.debug("Coordinator for %s stopped cleanly", self._device.name)

    async def _poll_loop(self) -> None:
        """Poll forever; only cancellation ends the loop."""
        have_snapshot = False
        while self._running:
            delay = self._retry_delay
            try:
                if not have_snapshot:
                    self._apply_state(await self._router.async_status(self._device))
                    have_snapshot = True
                    delay = 0
                else:
                    result = await self._router.async_poll(self._device, self._cursor)
                    self._cursor = PollCursor(
                        serial=self._device.serial,
                        etag=result.etag,
                        transport=result.transport,
                    )
                    if result.state is not None:
                        self._apply_state(result.state)
                    else:
                        _LOGGER.debug("No change for %s", self._device.name)
                    delay = 0 if result.transport is Transport.CLOUD else self._local_poll_interval
                self._poll_failures = 0
                self._set_available(True)
            except asyncio.CancelledError:
                raise
            except IntellifireError as ex:
                self._poll_failures += 1
                self._last_error = str(ex)
                log = _LOGGER.warning if self._poll_failures == 1 else _LOGGER.debug
                log(
                    "Poll for %s failed (attempt %d): %s. Retry in %ds",
                    self._device.name,
                    self._poll_failures,
                    ex,
                    self._retry_delay,
                )
                self._set_available(False)
            except Exception as ex:
                self._poll_failures += 1
                self._last_error = str(ex)
                _LOGGER.exception("Unexpected error polling %s: %s", self._device.name, ex)
                self._set_available(False)

            if delay:
                await asyncio.sleep(delay)

    def _set_available(self, available: bool) -> None:
        if self._available != available:
            self._available = available
            self._notify_state_update()

    def _apply_state(self, new_state: DeviceState) -> None:
        """Apply a polled state, keeping values the user is still adjusting."""
        for command in self._pending_values:
            field_name = _DEBOUNCED_FIELDS[command]
            new_state = replace(new_state, **{field_name: getattr(self.state, field_name)})

        if new_state == self.state:
            return
        _LOGGER.debug("State change for %s: %s -> %s", self._device.name, self.state, new_state)
        self.state = new_state
        self._notify_state_update()

    def _clamp_height(self, height: int) -> int:
        """Limit flame height, capping at half range until power is acknowledged."""
        height = max(0, min(MAX_FLAME_HEIGHT, height))
        if not self.state.ack_power and height > UNACKED_MAX_FLAME_HEIGHT:
            _LOGGER.debug(
                "Capping flame height %d to %d until %s confirms power on",
                height,
                UNACKED_MAX_FLAME_HEIGHT,
                self._device.name,
            )
            return UNACKED_MAX_FLAME_HEIGHT
        return height

    async def async_submit_command(self, parameter: str, value: int | bool) -> None:
        """Request a setting change.

        Args:
            parameter: power, light, height or fanspeed.
            value: bool for power/light, level for height (0-4) and
                fanspeed (0-4).
        """
        if parameter in IMMEDIATE_COMMANDS:
            flag = bool(value)
            field_name = "power" if parameter == CMD_POWER else "lights"
            if getattr(self.state, field_name) == flag:
                _LOGGER.debug(
                    "%s already %s on %s, not sending", parameter, flag, self._device.name
                )
                return
            self.state = replace(self.state, **{field_name: flag})
            self._notify_state_update()
            await self._async_send(parameter, int(flag))
        elif parameter in DEBOUNCED_COMMANDS:
            level = int(value)
            if parameter == CMD_HEIGHT:
                # The half range cap is checked again when the timer fires
                level = max(0, min(MAX_FLAME_HEIGHT, level))
                self.state = replace(self.state, flame_height=self._clamp_height(level))
            else:
                level = max(0, min(MAX_FAN_SPEED, level))
                self.state = replace(self.state, fan_speed=level)
            self._notify_state_update()
            self._schedule_debounced(parameter, level)
        else:
            raise ValueError(f"Unknown command: {parameter}")

    def _schedule_debounced(self, parameter: str, value: int) -> None:
        handle = self._debounce_handles.pop(parameter, None)
        if handle:
            handle.cancel()
        self._pending_values[parameter] = value
        self._debounce_handles[parameter] = asyncio.get_running_loop().call_later(
            self._debounce_delay, self._fire_debounced, parameter
        )

    def _fire_debounced(self, parameter: str) -> None:
        self._debounce_handles.pop(parameter, None)
        value = self._pending_values.pop(parameter, None)
        if value is None:
            return
        if parameter == CMD_HEIGHT:
            # ack_power may have arrived while the timer was running
            value = self._clamp_height(value)
        task = asyncio.create_task(self._async_send(parameter, value))
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)

    async def _async_send(self, parameter: str, value: int) -> None:
        request = CommandRequest(
            serial=self._device.serial,
            parameter=parameter,
            value=str(value),
            transport_hint=self._router.active,
        )
        _LOGGER.debug("Sending %s", request)
        if not await self._router.async_post(self._device, request.parameter, request.value):
            self._last_error = f"Command {parameter}={value} failed"

    async def async_set_power(self, on: bool) -> None:
        """Turn the fireplace on or off."""
        await self.async_submit_command(CMD_POWER, on)

    async def async_set_lights(self, on: bool) -> None:
        """Turn the fireplace lights on or off."""
        await self.async_submit_command(CMD_LIGHT, on)

    async def async_set_flame_height(self, height: int) -> None:
        """Set the flame height (0-4), debounced."""
        await self.async_submit_command(CMD_HEIGHT, height)

    async def async_set_fan_speed(self, speed: int) -> None:
        """Set the heat fan speed (0-4, 0 is off), debounced."""
        await self.async_submit_command(CMD_FAN_SPEED, speed)
