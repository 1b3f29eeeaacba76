"""
EAGLE cloud REST client for reading the house meter.

Posts XML commands to the Rainforest cloud ``post_manager`` endpoint with the
Cloud-Id / User / Password headers and returns the raw response text.  The
caller (the gateway resilience policy) inspects the text; this module never
decides whether a response means the gateway needs a reboot.

Operations:
- fetch_telemetry(device_address): ``get_instantaneous_demand`` response text.
- discover_device_address(): MAC id of the first gateway from ``list_devices``.
- parse_sample(text): extract a TelemetrySample from a demand response.

Designed to be robust: transport errors are logged and reported as ``None``,
never propagated to the control loop.

CHANGELOG:
- 2026-10-18: Prefix HTTP error status line so distress signatures survive empty bodies
- 2026-10-18: Initial creation (STORY-003)

TODO:
- None
"""

from __future__ import annotations

import logging
import re

import httpx

from charger.src.decoder import parse_hex_field
from charger.src.models import TelemetrySample

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEMAND_TOKEN: str = "<Demand>"
"""Token whose presence marks a usable instantaneous-demand response."""

_DEMAND_COMMAND = (
    "\r\n<Command>\r\n"
    "<Name>get_instantaneous_demand</Name>\r\n"
    "<MacId>{mac}</MacId>\r\n"
    "</Command>\r\n"
)

_LIST_DEVICES_COMMAND = "\r\n<Command>\r\n<Name>list_devices</Name>\r\n</Command>\r\n"


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def _extract_tag(text: str, tag: str) -> str | None:
    """Return the text content of the first ``<tag>`` in *text*."""
    match = re.search(rf"<{tag}>\s*([^<]*?)\s*</{tag}>", text)
    if match is None:
        return None
    return match.group(1)


def parse_sample(text: str) -> TelemetrySample:
    """Parse an ``InstantaneousDemand`` response into a TelemetrySample.

    Args:
        text: Raw response body containing the demand token.

    Returns:
        The parsed sample.  A missing Multiplier or Divisor is read as 0,
        which the decoder treats as 1.

    Raises:
        ValueError: If the demand field is missing or not a number.
    """
    demand_text = _extract_tag(text, "Demand")
    if demand_text is None:
        raise ValueError("Response has no <Demand> value")

    demand_raw, demand_bits = parse_hex_field(demand_text)

    fields: dict[str, int] = {}
    for tag in ("Multiplier", "Divisor"):
        value_text = _extract_tag(text, tag)
        if value_text is None:
            logger.warning("Response has no <%s>; treating as 1", tag)
            fields[tag.lower()] = 0
            continue
        fields[tag.lower()], _ = parse_hex_field(value_text)

    return TelemetrySample(
        demand_raw=demand_raw,
        demand_bits=demand_bits,
        multiplier=fields["multiplier"],
        divisor=fields["divisor"],
        device_address=_extract_tag(text, "DeviceMacId") or "",
        meter_address=_extract_tag(text, "MeterMacId"),
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class MeterClient:
    """Client for the EAGLE cloud ``post_manager`` endpoint.

    A fresh :class:`httpx.AsyncClient` is created per request so that a hung
    connection never outlives a single control cycle.

    Args:
        url: Full ``post_manager`` URL (HTTPS).
        cloud_id: Value of the ``Cloud-Id`` header.
        user: Value of the ``User`` header.
        password: Value of the ``Password`` header.
        timeout_s: Timeout for each request in seconds.
    """

    def __init__(
        self,
        *,
        url: str,
        cloud_id: str,
        user: str,
        password: str,
        timeout_s: float = 30.0,
    ) -> None:
        self._url = url
        self._headers = {
            "Content-Type": "text/xml",
            "Cloud-Id": cloud_id,
            "User": user,
            "Password": password,
        }
        self._timeout_s = timeout_s

    async def _post(self, body: str) -> str | None:
        """POST *body* and return the response text, or ``None`` on transport error.

        Non-2xx responses are returned with their status line prepended, so
        a bare ``503`` still reads as ``Service Unavailable``.
        """
        try:
            async with httpx.AsyncClient(
                verify=True, timeout=self._timeout_s
            ) as client:
                response = await client.post(
                    self._url,
                    content=body,
                    headers=self._headers,
                )
        except httpx.HTTPError as exc:
            logger.warning("Meter request failed (network error): %s", exc)
            return None

        text = response.text
        if response.status_code >= 400:
            logger.warning("Meter request returned HTTP %d", response.status_code)
            return f"HTTP {response.status_code} {response.reason_phrase}\n{text}"
        return text

    async def fetch_telemetry(self, device_address: str) -> str | None:
        """Request the instantaneous demand for *device_address*.

        Returns:
            The raw response text (possibly an error page), or ``None`` when
            no response was received at all.
        """
        return await self._post(_DEMAND_COMMAND.format(mac=device_address))

    async def discover_device_address(self) -> str | None:
        """Return the MAC id of the first gateway listed by the cloud.

        Returns:
            The ``DeviceMacId`` text, or ``None`` if the request failed or
            the response listed no device.
        """
        text = await self._post(_LIST_DEVICES_COMMAND)
        if text is None:
            return None
        address = _extract_tag(text, "DeviceMacId")
        if address is None:
            logger.warning("list_devices response has no <DeviceMacId>")
        return address
