"""Data model for the IntelliFire Link integration."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from .const import MAX_FAN_SPEED, MAX_FLAME_HEIGHT
from .errors import ProtocolError


class SessionState(Enum):
    """Cloud session state."""

    LOGGED_OUT = "logged_out"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class Transport(Enum):
    """Transport a request went through."""

    CLOUD = "cloud"
    LOCAL = "local"


@dataclass(frozen=True)
class Device:
    """Identity of a fireplace as enumerated by the cloud.

    Replaced, never mutated, when the cloud enumerates devices again.
    """

    name: str
    serial: str
    brand: str = ""
    api_key: str | None = None

    @classmethod
    def from_cloud(cls, data: Mapping[str, Any]) -> Device:
        """Build a device from an enumfireplaces entry."""
        if not isinstance(data, Mapping):
            raise ProtocolError(f"Expected a fireplace object, got {data!r}")
        serial = data.get("serial")
        if not serial:
            raise ProtocolError(f"Fireplace entry without serial: {data!r}")
        return cls(
            name=str(data.get("name") or serial),
            serial=str(serial),
            brand=str(data.get("brand") or ""),
            api_key=data.get("apikey") or None,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Device:
        """Restore a device from the config entry cache."""
        return cls(
            name=data["name"],
            serial=data["serial"],
            brand=data.get("brand", ""),
            api_key=data.get("api_key"),
        )

    def as_dict(self) -> dict[str, Any]:
        """Serialize for the config entry cache."""
        return asdict(self)


@dataclass
class DeviceState:
    """Decoded state of a fireplace.

    Attributes:
        power: Power state shown to the user (set optimistically on commands).
        flame_height: Flame height 0-4.
        fan_speed: Heat fan speed 0-4 (0 is off).
        lights: Whether the fireplace lights are on.
        ack_power: Last power state confirmed by the fireplace itself.
        timestamp: Server timestamp of the snapshot, if any.
    """

    power: bool = False
    flame_height: int = 0
    fan_speed: int = 0
    lights: bool = False
    ack_power: bool = False
    timestamp: int | None = None


@dataclass
class DiscoveryEntry:
    """A verified serial to LAN IP binding."""

    serial: str
    ip: str
    last_seen: float


@dataclass(frozen=True)
class PollCursor:
    """Cache validator for the next long-poll of one device.

    The etag is only meaningful for the transport that produced it.
    """

    serial: str
    etag: str | None = None
    transport: Transport | None = None


@dataclass(frozen=True)
class PollResult:
    """Outcome of one poll; state is None when nothing changed."""

    state: DeviceState | None
    etag: str | None
    transport: Transport


@dataclass(frozen=True)
class CommandRequest:
    """A single setting sent to a fireplace."""

    serial: str
    parameter: str
    value: str
    transport_hint: Transport | None = None


def _to_int(data: Mapping[str, Any], key: str, default: int | None = None) -> int:
    value = data.get(key)
    if value is None or value == "":
        if default is None:
            raise ProtocolError(f"Missing field '{key}'")
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as ex:
        raise ProtocolError(f"Invalid value for '{key}': {value!r}") from ex


def parse_state(data: Any) -> DeviceState:
    """Decode a poll response body into a DeviceState.

    The cloud and the local endpoint both report numbers as strings
    ("power": "1", "height": "3"); plain integers are accepted as well.
    Out of range heights and speeds are clamped.
    """
    if not isinstance(data, Mapping):
        raise ProtocolError(f"Expected a JSON object, got {type(data).__name__}")

    power = _to_int(data, "power") == 1
    timestamp = data.get("timestamp")
    return DeviceState(
        power=power,
        flame_height=max(0, min(MAX_FLAME_HEIGHT, _to_int(data, "height", 0))),
        fan_speed=max(0, min(MAX_FAN_SPEED, _to_int(data, "fanspeed", 0))),
        lights=_to_int(data, "light", 0) > 0,
        ack_power=power,
        timestamp=_to_int(data, "timestamp") if timestamp not in (None, "") else None,
    )
