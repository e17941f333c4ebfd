"""Constants for the IntelliFire Link integration.

Two transports reach the fireplace: the vendor cloud relay at iftapi.net and
the LAN endpoint on the fireplace's own IP (found by UDP discovery).
"""

from __future__ import annotations

DOMAIN = "intellifire_link"

# Cloud relay
CLOUD_HOST = "iftapi.net"
CLOUD_BASE_URL = f"https://{CLOUD_HOST}/a"
CLOUD_COOKIES = ("user", "auth_cookie", "web_client_id")

# Keep-alive ping while connected, full login retry while disconnected
PING_INTERVAL = 300  # seconds
LOGIN_RETRY_INTERVAL = 300  # seconds

# Client side timeouts (the server holds long-polls open on its own)
REQUEST_TIMEOUT = 10.0  # seconds
LONG_POLL_TIMEOUT = 120.0  # seconds
LOCAL_TIMEOUT = 5.0  # seconds

# UDP discovery
DISCOVERY_MESSAGE = b"IFT-search"
DISCOVERY_BROADCAST_ADDRESS = "255.255.255.255"
DISCOVERY_BROADCAST_PORT = 3785
DISCOVERY_LISTEN_PORT = 55555
DISCOVERY_INTERVAL = 300  # seconds between re-broadcasts

# Poll loop
LOCAL_POLL_INTERVAL = 5.0  # local poll is not a long-poll
RETRY_DELAY = 5.0  # after any failed poll

# Commands (names match the poll response fields)
CMD_POWER = "power"
CMD_LIGHT = "light"
CMD_HEIGHT = "height"
CMD_FAN_SPEED = "fanspeed"

# Sent immediately; idempotent and rare
IMMEDIATE_COMMANDS = frozenset({CMD_POWER, CMD_LIGHT})
# Coalesced while the user drags a slider
DEBOUNCED_COMMANDS = frozenset({CMD_HEIGHT, CMD_FAN_SPEED})
DEBOUNCE_DELAY = 2.0  # seconds

MAX_FLAME_HEIGHT = 4
MAX_FAN_SPEED = 4
# Flame height allowed before the fireplace confirms ignition (50% of range)
UNACKED_MAX_FLAME_HEIGHT = MAX_FLAME_HEIGHT // 2

# Configuration keys
CONF_COOKIES = "cookies"
CONF_DEVICES = "devices"
CONF_DEBOUNCE_DELAY = "debounce_delay"
