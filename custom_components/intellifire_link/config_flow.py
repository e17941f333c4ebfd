"""Config flow for IntelliFire Link integration."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import aiohttp
import voluptuous as vol

from homeassistant.config_entries import (
    ConfigEntry,
    ConfigFlow,
    ConfigFlowResult,
    OptionsFlow,
)
from homeassistant.const import CONF_PASSWORD, CONF_USERNAME
from homeassistant.core import callback
from homeassistant.helpers.aiohttp_client import async_create_clientsession

from .cloud import CloudTransport, CookieSession
from .const import CONF_COOKIES, CONF_DEBOUNCE_DELAY, CONF_DEVICES, DEBOUNCE_DELAY, DOMAIN
from .errors import AuthError, IntellifireError
from .models import Device

_LOGGER = logging.getLogger(__name__)

STEP_REAUTH_DATA_SCHEMA = vol.Schema({vol.Required(CONF_PASSWORD): str})


class IntellifireLinkConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle config flow for IntelliFire Link."""

    VERSION = 1

    def __init__(self) -> None:
        """Initialize the flow."""
        self._reauth_entry: ConfigEntry | None = None

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle user input."""
        errors: dict[str, str] = {}

        if user_input is not None:
            username = user_input[CONF_USERNAME]
            await self.async_set_unique_id(username.lower())
            self._abort_if_unique_id_configured()

            result = await self._async_try_login(username, user_input[CONF_PASSWORD], errors)
            if result is not None:
                cookies, devices = result
                return self.async_create_entry(
                    title=f"IntelliFire ({username})",
                    data={
                        CONF_USERNAME: username,
                        CONF_COOKIES: cookies,
                        CONF_DEVICES: [device.as_dict() for device in devices],
                    },
                )

        return self.async_show_form(
            step_id="user",
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_USERNAME): str,
                    vol.Required(CONF_PASSWORD): str,
                }
            ),
            errors=errors,
        )

    async def async_step_reauth(
        self, entry_data: Mapping[str, Any]
    ) -> ConfigFlowResult:
        """Handle stored cookies being rejected by the cloud."""
        entry_id = self.context.get("entry_id")
        self._reauth_entry = (
            self.hass.config_entries.async_get_entry(entry_id)
            if entry_id is not None
            else None
        )
        return await self.async_step_reauth_confirm()

    async def async_step_reauth_confirm(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Ask for the password again and refresh the cookies."""
        errors: dict[str, str] = {}
        entry = self._reauth_entry
        if entry is None:
            return self.async_abort(reason="missing_context")
        username = entry.data[CONF_USERNAME]

        if user_input is not None:
            result = await self._async_try_login(username, user_input[CONF_PASSWORD], errors)
            if result is not None:
                cookies, devices = result
                self.hass.config_entries.async_update_entry(
                    entry,
                    data={
                        **entry.data,
                        CONF_COOKIES: cookies,
                        CONF_DEVICES: [device.as_dict() for device in devices],
                    },
                )
                await self.hass.config_entries.async_reload(entry.entry_id)
                return self.async_abort(reason="reauth_successful")

        return self.async_show_form(
            step_id="reauth_confirm",
            data_schema=STEP_REAUTH_DATA_SCHEMA,
            description_placeholders={CONF_USERNAME: username},
            errors=errors,
        )

    async def _async_try_login(
        self, username: str, password: str, errors: dict[str, str]
    ) -> tuple[dict[str, str], list[Device]] | None:
        """Log in, filling errors and returning None on failure."""
        try:
            cookies, devices = await self._async_login(username, password)
        except AuthError as ex:
            _LOGGER.warning("Login failed for %s: %s", username, ex)
            errors["base"] = "invalid_auth"
        except IntellifireError as ex:
            _LOGGER.warning("Unable to reach IntelliFire cloud: %s", ex)
            errors["base"] = "cannot_connect"
        except Exception:
            _LOGGER.exception("Unexpected error logging in as %s", username)
            errors["base"] = "unknown"
        else:
            _LOGGER.info("Login successful for %s (%d fireplaces)", username, len(devices))
            return cookies, devices
        return None

    async def _async_login(
        self, username: str, password: str
    ) -> tuple[dict[str, str], list[Device]]:
        """Log in with a throwaway cookie jar; return its cookies and fireplaces."""
        session = async_create_clientsession(self.hass, cookie_jar=aiohttp.CookieJar())
        try:
            cookie_session = CookieSession(session)
            await cookie_session.async_login(username, password)
            cookies = cookie_session.cookies()
            devices = await CloudTransport(
                cookie_session, cookies=cookies
            ).async_enumerate_devices()
        finally:
            await session.close()
        return cookies, devices

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> OptionsFlow:
        """Get the options flow for this handler."""
        return IntellifireLinkOptionsFlow()


class IntellifireLinkOptionsFlow(OptionsFlow):
    """Handle options for IntelliFire Link."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Manage options."""
        if user_input is not None:
            _LOGGER.debug("Options flow saving: %s", user_input)
            return self.async_create_entry(title="", data=user_input)

        return self.async_show_form(
            step_id="init",
            data_schema=vol.Schema(
                {
                    vol.Optional(
                        CONF_DEBOUNCE_DELAY,
                        default=self.config_entry.options.get(
                            CONF_DEBOUNCE_DELAY, DEBOUNCE_DELAY
                        ),
                    ): vol.All(vol.Coerce(float), vol.Range(min=0.5, max=10.0)),
                }
            ),
        )
