"""Exceptions raised by the IntelliFire Link transports."""

from __future__ import annotations

from homeassistant.exceptions import HomeAssistantError


class IntellifireError(HomeAssistantError):
    """Base class for IntelliFire errors."""


class AuthError(IntellifireError):
    """Credentials are missing or were rejected by the cloud."""


class ConnectivityError(IntellifireError):
    """The cloud relay is unreachable or refused the request."""


class LocalUnavailableError(IntellifireError):
    """The fireplace cannot be reached on the LAN (no IP yet, or call failed)."""


class ProtocolError(IntellifireError):
    """A response body could not be decoded."""
