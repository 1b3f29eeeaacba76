"""
Insteon hub HTTP switch client.

Sends direct Insteon commands through the hub's ``/3?<hex>=I=3`` endpoint
with basic auth.  Two device kinds are supported:

- On/off outlet modules: command ``0x32`` (on) / ``0x33`` (off) with the
  outlet number (1 top, 2 bottom) as the second command byte.
- Relay and dimmer modules: fast on ``0x12 0xFF`` / fast off ``0x14 0x00``.

The same class drives the charger outlet and the meter gateway's own power
switch.  ``set_switch`` reports success as a bool and never raises.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import logging

import httpx

from charger.src.models import SwitchTarget

logger = logging.getLogger(__name__)

_SEND_STANDARD = "0262"
"""Hub serial command prefix: send standard-length Insteon message."""

_FLAGS = "0F"
"""Direct message, max hops 3."""


def build_command(device_id: str, target: SwitchTarget, outlet: int = 0) -> str:
    """Return the hex command string for switching *device_id*.

    Args:
        device_id: Six-hex-digit Insteon id.
        target: Desired switch state.
        outlet: Outlet number for outlet modules; 0 for relays/dimmers.
    """
    if outlet:
        cmd1 = "32" if target is SwitchTarget.ON else "33"
        cmd2 = f"{outlet:02X}"
    elif target is SwitchTarget.ON:
        cmd1, cmd2 = "12", "FF"
    else:
        cmd1, cmd2 = "14", "00"
    return f"{_SEND_STANDARD}{device_id.upper()}{_FLAGS}{cmd1}{cmd2}"


class HubSwitch:
    """A single switchable device behind an Insteon hub.

    Args:
        hub_url: Hub base URL, e.g. ``http://192.168.1.35:25105``.
        device_id: Six-hex-digit Insteon id of the device.
        outlet: Outlet number for outlet modules; 0 for relays/dimmers.
        user: Hub basic-auth user.
        password: Hub basic-auth password.
        timeout_s: Timeout per request in seconds.
        name: Label used in log messages.
    """

    def __init__(
        self,
        *,
        hub_url: str,
        device_id: str,
        outlet: int = 0,
        user: str = "",
        password: str = "",
        timeout_s: float = 30.0,
        name: str = "switch",
    ) -> None:
        self._hub_url = hub_url.rstrip("/")
        self._device_id = device_id
        self._outlet = outlet
        self._auth = (user, password) if user else None
        self._timeout_s = timeout_s
        self.name = name

    def command_url(self, target: SwitchTarget) -> str:
        """Full hub URL that switches this device to *target*."""
        command = build_command(self._device_id, target, self._outlet)
        return f"{self._hub_url}/3?{command}=I=3"

    async def set_switch(self, target: SwitchTarget) -> bool:
        """Command the device to *target*.

        Returns:
            ``True`` if the hub accepted the command (HTTP 200), ``False``
            on any transport error or non-200 status.
        """
        url = self.command_url(target)
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                response = await client.get(url, auth=self._auth)
        except httpx.HTTPError as exc:
            logger.warning(
                "Failed to turn %s %s (network error): %s",
                self.name,
                target.value,
                exc,
            )
            return False

        if response.status_code != 200:
            logger.warning(
                "Failed to turn %s %s (HTTP %d)",
                self.name,
                target.value,
                response.status_code,
            )
            return False

        logger.info("Turned %s %s", self.name, target.value)
        return True
