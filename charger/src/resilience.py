"""
Gateway resilience policy: classify meter responses and power-cycle the gateway.

The meter gateway is an embedded device that hangs from time to time; only a
hard power-cycle reliably brings it back.  A hung gateway does not fail at the
transport level -- the cloud answers with an error page -- so distress is
recognized textually in the response body.

Classification of one fetch:

- :class:`Ok` -- the body carries the ``<Demand>`` token and parses.
- :class:`RetryableEmpty` -- no response, or a body without the token and
  without a distress signature.  The caller waits for the next poll.
- :class:`NeedsReboot` -- a body without the token that contains
  ``Request Timeout`` or ``Service Unavailable``.

Recovery turns the gateway's power switch off, waits ``settle_s`` (5 s),
turns it back on, waits ``boot_s`` (60 s), then emits one notification.
Actuation failures during recovery are logged and not retried within the
same cycle.

CHANGELOG:
- 2026-10-18: Reboot at most once per cycle when both signatures appear
- 2026-10-18: Initial creation (STORY-007)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from charger.src.meter import DEMAND_TOKEN, parse_sample
from charger.src.models import EventKind, SwitchTarget, TelemetrySample

if TYPE_CHECKING:
    from charger.src.notifier import Notifier
    from charger.src.switch import HubSwitch

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

GATEWAY_SETTLE_S: float = 5.0
"""Seconds the gateway stays powered off during a reboot."""

GATEWAY_BOOT_S: float = 60.0
"""Seconds allowed for the gateway to boot before the next poll."""


class RebootReason(str, Enum):
    """Distress class recognized in a gateway response."""

    TIMEOUT = "request_timeout"
    UNAVAILABLE = "service_unavailable"


DISTRESS_SIGNATURES: tuple[tuple[str, RebootReason], ...] = (
    ("Request Timeout", RebootReason.TIMEOUT),
    ("Service Unavailable", RebootReason.UNAVAILABLE),
)
"""Ordered signatures; the first match wins."""

REBOOT_EVENTS: dict[RebootReason, EventKind] = {
    RebootReason.TIMEOUT: EventKind.GATEWAY_REBOOT_TIMEOUT,
    RebootReason.UNAVAILABLE: EventKind.GATEWAY_REBOOT_UNAVAILABLE,
}


# ---------------------------------------------------------------------------
# Fetch result variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Ok:
    sample: TelemetrySample


@dataclass(frozen=True, slots=True)
class RetryableEmpty:
    detail: str


@dataclass(frozen=True, slots=True)
class NeedsReboot:
    reason: RebootReason


FetchResult = Ok | RetryableEmpty | NeedsReboot


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify_fetch_result(raw_response: str | None) -> FetchResult:
    """Classify one raw meter response.

    Args:
        raw_response: Response text, or ``None`` when no response arrived.

    Returns:
        One of :class:`Ok`, :class:`RetryableEmpty`, :class:`NeedsReboot`.
    """
    if raw_response is None:
        return RetryableEmpty("no response")

    if DEMAND_TOKEN not in raw_response:
        for signature, reason in DISTRESS_SIGNATURES:
            if signature in raw_response:
                return NeedsReboot(reason)
        return RetryableEmpty(f"no {DEMAND_TOKEN} token in response")

    try:
        sample = parse_sample(raw_response)
    except ValueError as exc:
        return RetryableEmpty(f"unparseable demand response: {exc}")
    return Ok(sample)


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------


async def reboot_gateway(
    gateway: HubSwitch,
    *,
    settle_s: float = GATEWAY_SETTLE_S,
    boot_s: float = GATEWAY_BOOT_S,
) -> bool:
    """Power-cycle the gateway: off, wait *settle_s*, on, wait *boot_s*.

    Both waits always happen so the next poll never races a booting
    gateway, even when one of the switch commands failed.

    Returns:
        ``True`` if both switch commands succeeded.
    """
    off_ok = await gateway.set_switch(SwitchTarget.OFF)
    if not off_ok:
        logger.error("Could not turn the gateway switch off for reboot")
    logger.info("Waiting %.0fs before turning the gateway switch back on", settle_s)
    await asyncio.sleep(settle_s)

    on_ok = await gateway.set_switch(SwitchTarget.ON)
    if not on_ok:
        logger.error("Could not turn the gateway switch back on after reboot")
    logger.info("Waiting %.0fs for the gateway to boot", boot_s)
    await asyncio.sleep(boot_s)

    return off_ok and on_ok


async def recover_gateway(
    result: NeedsReboot,
    *,
    gateway: HubSwitch | None,
    notifier: Notifier,
    settle_s: float = GATEWAY_SETTLE_S,
    boot_s: float = GATEWAY_BOOT_S,
) -> bool:
    """Run the reboot procedure for a distress result and notify once.

    Args:
        result: The distress classification for this cycle.
        gateway: Switch controlling the gateway's power, or ``None`` when
            no such switch is configured.
        notifier: Notifier for the reboot event.
        settle_s: Seconds to keep the gateway off.
        boot_s: Seconds to allow for boot.

    Returns:
        ``True`` if the reboot was performed and both commands succeeded.
    """
    if gateway is None:
        logger.error(
            "Gateway reports %s but no gateway power switch is configured",
            result.reason.value,
        )
        return False

    logger.warning("Rebooting the gateway (%s)", result.reason.value)
    ok = await reboot_gateway(gateway, settle_s=settle_s, boot_s=boot_s)
    await notifier.notify(REBOOT_EVENTS[result.reason])
    return ok
