"""
Startup sequencer: bring the switches to a known state before the first poll.

Policy: the charger switch is forced OFF, so the first real cycle evaluates
from a clean baseline.  The steps are blocking preconditions, retried at a
fixed interval until they succeed; there is no safe state to fall back to, so
they never time out.

1. Turn the gateway power switch on (best-effort; it should always be on).
2. Turn the charger switch off, retrying every ``retry_s``.
3. Discover the gateway's MAC id when none is configured, retrying every
   ``retry_s``.
4. Send the ``startup`` notification.
5. Wait ``settle_s`` so the gateway sees the switch change before the first
   reading.

CHANGELOG:
- 2026-10-18: Report the STARTUP mode to the health file until confirmed OFF
- 2026-10-18: Retry the startup switch-off forever instead of exiting
- 2026-10-18: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from charger.src.models import (
    STARTUP_STATE,
    ControllerMode,
    ControllerState,
    EventKind,
    Stable,
    SwitchTarget,
)

if TYPE_CHECKING:
    from charger.src.health import HealthWriter
    from charger.src.meter import MeterClient
    from charger.src.notifier import Notifier
    from charger.src.switch import HubSwitch

logger = logging.getLogger(__name__)

STARTUP_RETRY_S: float = 60.0
STARTUP_SETTLE_S: float = 60.0


@dataclass(frozen=True, slots=True)
class StartupResult:
    """Initial controller state and the resolved gateway address."""

    state: Stable
    device_address: str


def _report_mode(health: HealthWriter | None, state: ControllerState) -> None:
    if health is None:
        return
    try:
        health.set_mode(state.outcome.value)
    except OSError:
        logger.warning("Failed to write health file", exc_info=True)


async def force_switch_off(load_switch: HubSwitch, *, retry_s: float) -> int:
    """Turn the charger switch off, retrying until the hub confirms.

    Returns:
        Number of attempts it took.
    """
    attempts = 0
    while True:
        attempts += 1
        if await load_switch.set_switch(SwitchTarget.OFF):
            logger.info("Turned the EV charger switch off at startup")
            return attempts
        logger.warning(
            "Could not turn the EV charger switch off at startup "
            "(attempt %d), retrying in %.0fs",
            attempts,
            retry_s,
        )
        await asyncio.sleep(retry_s)


async def discover_device_address(meter: MeterClient, *, retry_s: float) -> str:
    """Resolve the gateway MAC id, retrying until the cloud returns one."""
    attempts = 0
    while True:
        attempts += 1
        address = await meter.discover_device_address()
        if address:
            logger.info("Discovered gateway device address %s", address)
            return address
        logger.warning(
            "Gateway discovery failed (attempt %d), retrying in %.0fs",
            attempts,
            retry_s,
        )
        await asyncio.sleep(retry_s)


async def run_startup(
    *,
    load_switch: HubSwitch,
    gateway: HubSwitch | None,
    meter: MeterClient,
    notifier: Notifier,
    device_address: str = "",
    retry_s: float = STARTUP_RETRY_S,
    settle_s: float = STARTUP_SETTLE_S,
    health: HealthWriter | None = None,
) -> StartupResult:
    """Run the startup sequence.

    Args:
        load_switch: Charger switch.
        gateway: Gateway power switch, or ``None`` if not controllable.
        meter: Meter client used for discovery.
        notifier: Notifier for the startup event.
        device_address: Configured gateway MAC id; empty triggers discovery.
        retry_s: Seconds between precondition retries.
        settle_s: Seconds to wait before returning.
        health: Health file; shows ``startup`` until the switch is confirmed
            off.

    Returns:
        A :class:`StartupResult` with ``Stable(OFF)`` and the address.
    """
    _report_mode(health, STARTUP_STATE)

    if gateway is not None:
        if await gateway.set_switch(SwitchTarget.ON):
            logger.info("Turned the gateway switch on at startup")
        else:
            logger.warning("Could not turn the gateway switch on at startup")

    await force_switch_off(load_switch, retry_s=retry_s)
    state = Stable(ControllerMode.OFF)
    _report_mode(health, state)

    if not device_address:
        device_address = await discover_device_address(meter, retry_s=retry_s)

    await notifier.notify(EventKind.STARTUP)

    logger.info(
        "Waiting %.0fs before reading the meter to allow the gateway to settle",
        settle_s,
    )
    await asyncio.sleep(settle_s)

    return StartupResult(state=state, device_address=device_address)
