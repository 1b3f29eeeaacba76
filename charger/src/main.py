"""
Charger daemon main loop.

Runs the startup sequence, then a single sequential control loop:

1. Fetch the instantaneous demand from the meter gateway.
2. Classify the response (gateway resilience policy); reboot the gateway
   when it reports distress.
3. Decode the demand into kW.
4. Run the charge decision state machine (tariff window + demand rule),
   which commands the charger switch and sends notifications.
5. Update the health file, then sleep for the poll interval.

Each stage gates the next, so nothing runs concurrently.  The loop is
resilient: an exception in one cycle is logged and the previous controller
state is kept.  SIGTERM/SIGINT set a shared asyncio.Event that is checked
between cycles.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-18: LOG_LEVEL setting; JSON formatter moved to module level
- 2026-10-18: Carry controller state as a loop value instead of a global
- 2026-10-18: Initial creation (STORY-012)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import json
import logging
import signal
import sys
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from charger.src.decoder import decode_sample
from charger.src.resilience import (
    NeedsReboot,
    Ok,
    classify_fetch_result,
    recover_gateway,
)

if TYPE_CHECKING:
    from charger.src.controller import ChargeController
    from charger.src.health import HealthWriter
    from charger.src.meter import MeterClient
    from charger.src.models import ControllerState
    from charger.src.notifier import Notifier
    from charger.src.switch import HubSwitch

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


class _JsonFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, msg and any exception."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level: str = "INFO") -> None:
    """Send the charger daemon's logs to stderr as JSON lines.

    At INFO the daemon emits one line per meter reading, one per switch
    command with the resulting mode, and one per gateway reboot or
    notification.  DEBUG adds the raw meter responses.  httpx is held at
    WARNING so its per-request lines do not double every poll.

    Calling it again replaces the handler, so the level can be raised once
    settings are loaded.

    Args:
        level: Root log level name, e.g. ``"DEBUG"``.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _masked_secret(value: str | None) -> str:
    """Return a short non-reversible fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: object) -> None:
    """Log a config summary at startup, excluding secrets.

    Passwords are logged only as fingerprints.

    Args:
        settings: A ChargerSettings instance (or any object with the same attrs).
    """
    logger.info(
        "Charger daemon starting with config: "
        "meter_cloud_url=%s, meter_device_mac=%s, hub_url=%s, "
        "load_device_id=%s, load_outlet=%s, gateway_device_id=%s, "
        "poll_interval_s=%s, tariff_start_hour=%s, tariff_end_hour=%s, "
        "load_current_kw=%s, switching_threshold_kw=%s, "
        "notify_recipients=%s, meter_password_masked=%s, "
        "hub_password_masked=%s, smtp_password_masked=%s",
        settings.meter_cloud_url,  # type: ignore[union-attr]
        settings.meter_device_mac or "discover",  # type: ignore[union-attr]
        settings.hub_url,  # type: ignore[union-attr]
        settings.load_device_id,  # type: ignore[union-attr]
        settings.load_outlet,  # type: ignore[union-attr]
        settings.gateway_device_id or "none",  # type: ignore[union-attr]
        settings.poll_interval_s,  # type: ignore[union-attr]
        settings.tariff_start_hour,  # type: ignore[union-attr]
        settings.tariff_end_hour,  # type: ignore[union-attr]
        settings.load_current_kw,  # type: ignore[union-attr]
        settings.switching_threshold_kw,  # type: ignore[union-attr]
        settings.notify_recipients,  # type: ignore[union-attr]
        _masked_secret(settings.meter_password),  # type: ignore[union-attr]
        _masked_secret(settings.hub_password),  # type: ignore[union-attr]
        _masked_secret(settings.smtp_password),  # type: ignore[union-attr]
    )


# ---------------------------------------------------------------------------
# Single-iteration functions (easily testable)
# ---------------------------------------------------------------------------


async def _read_demand(
    *,
    meter: MeterClient,
    device_address: str,
    gateway: HubSwitch | None,
    notifier: Notifier,
    gateway_settle_s: float,
    gateway_boot_s: float,
) -> float | None:
    """Fetch, classify and decode one reading.

    Returns:
        Demand in kW, or ``None`` when this cycle has no usable reading
        (including cycles that rebooted the gateway).
    """
    raw = await meter.fetch_telemetry(device_address)
    result = classify_fetch_result(raw)

    if isinstance(result, Ok):
        demand_kw = decode_sample(result.sample)
        logger.info("Meter reading: %.3f kW", demand_kw)
        return demand_kw

    if isinstance(result, NeedsReboot):
        await recover_gateway(
            result,
            gateway=gateway,
            notifier=notifier,
            settle_s=gateway_settle_s,
            boot_s=gateway_boot_s,
        )
        return None

    logger.warning("No meter reading: %s", result.detail)
    if raw:
        logger.debug("Meter response: %s", raw)
    return None


async def _cycle_once(
    state: ControllerState,
    *,
    meter: MeterClient,
    device_address: str,
    controller: ChargeController,
    gateway: HubSwitch | None,
    notifier: Notifier,
    health: HealthWriter | None,
    gateway_settle_s: float,
    gateway_boot_s: float,
    clock: Callable[[], datetime] = datetime.now,
) -> ControllerState:
    """Execute a single fetch-decide-actuate cycle.

    Catches all exceptions so that the caller's loop is never broken; on
    error the previous state is returned unchanged.

    Args:
        state: Controller state from the previous cycle.
        clock: Returns the local wall-clock time for the tariff window.

    Returns:
        The controller state to carry into the next cycle.
    """
    demand_kw: float | None = None
    new_state = state
    actuated = False
    try:
        demand_kw = await _read_demand(
            meter=meter,
            device_address=device_address,
            gateway=gateway,
            notifier=notifier,
            gateway_settle_s=gateway_settle_s,
            gateway_boot_s=gateway_boot_s,
        )
        result = await controller.run_cycle(state, now=clock(), demand_kw=demand_kw)
        new_state = result.state
        actuated = bool(result.actuated)
    except Exception:
        logger.error("Control cycle error", exc_info=True)

    if health is not None:
        try:
            health.record_poll(demand_kw)
            health.set_mode(new_state.outcome.value)
            if actuated:
                health.record_actuation()
        except Exception:
            logger.warning("Failed to write health file", exc_info=True)

    return new_state


# ---------------------------------------------------------------------------
# Loop runner
# ---------------------------------------------------------------------------


async def run_control_loop(
    state: ControllerState,
    *,
    meter: MeterClient,
    device_address: str,
    controller: ChargeController,
    gateway: HubSwitch | None,
    notifier: Notifier,
    poll_interval_s: float,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None = None,
    gateway_settle_s: float = 5.0,
    gateway_boot_s: float = 60.0,
) -> ControllerState:
    """Run control cycles until shutdown_event is set.

    Executes _cycle_once, then sleeps for poll_interval_s, checking the
    shutdown event between iterations.

    Returns:
        The last controller state.
    """
    logger.info("Control loop started (interval=%ss)", poll_interval_s)
    while not shutdown_event.is_set():
        state = await _cycle_once(
            state,
            meter=meter,
            device_address=device_address,
            controller=controller,
            gateway=gateway,
            notifier=notifier,
            health=health,
            gateway_settle_s=gateway_settle_s,
            gateway_boot_s=gateway_boot_s,
        )
        # Use wait with timeout so we can check shutdown between sleeps
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(
                shutdown_event.wait(),
                timeout=poll_interval_s,
            )
    logger.info("Control loop stopped (mode=%s)", state.outcome.value)
    return state


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> None:
    """Async entrypoint: load config, build components, start up, run loop.

    Signal handlers are installed after startup; until then SIGTERM/SIGINT
    terminate the process directly, since startup only retries.
    """
    configure_logging()

    from charger.src.config import ChargerSettings
    from charger.src.controller import ChargeController
    from charger.src.health import HealthWriter
    from charger.src.meter import MeterClient
    from charger.src.notifier import Notifier
    from charger.src.startup import run_startup
    from charger.src.switch import HubSwitch

    settings = ChargerSettings()
    configure_logging(settings.log_level)
    log_config_summary(settings)

    meter = MeterClient(
        url=settings.meter_cloud_url,
        cloud_id=settings.meter_cloud_id,
        user=settings.meter_user,
        password=settings.meter_password,
        timeout_s=settings.http_timeout_s,
    )

    load_switch = HubSwitch(
        hub_url=settings.hub_url,
        device_id=settings.load_device_id,
        outlet=settings.load_outlet,
        user=settings.hub_user,
        password=settings.hub_password,
        timeout_s=settings.http_timeout_s,
        name="EV charger switch",
    )

    gateway: HubSwitch | None = None
    if settings.gateway_device_id:
        gateway = HubSwitch(
            hub_url=settings.hub_url,
            device_id=settings.gateway_device_id,
            user=settings.hub_user,
            password=settings.hub_password,
            timeout_s=settings.http_timeout_s,
            name="gateway switch",
        )

    notifier = Notifier(
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
        user=settings.smtp_user,
        password=settings.smtp_password,
        sender=settings.smtp_sender,
        recipients=settings.recipient_list,
        threshold_kw=settings.switching_threshold_kw,
        startup_settle_s=settings.startup_settle_s,
    )

    controller = ChargeController(
        load_switch=load_switch,
        notifier=notifier,
        profile=settings.load_profile,
        window=settings.tariff_window,
    )

    health = HealthWriter(settings.health_path)

    startup = await run_startup(
        load_switch=load_switch,
        gateway=gateway,
        meter=meter,
        notifier=notifier,
        device_address=settings.meter_device_mac,
        retry_s=settings.startup_retry_s,
        settle_s=settings.startup_settle_s,
        health=health,
    )

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    await run_control_loop(
        startup.state,
        meter=meter,
        device_address=startup.device_address,
        controller=controller,
        gateway=gateway,
        notifier=notifier,
        poll_interval_s=settings.poll_interval_s,
        shutdown_event=shutdown_event,
        health=health,
        gateway_settle_s=settings.gateway_settle_s,
        gateway_boot_s=settings.gateway_boot_s,
    )


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
    """
    logger.info("Received shutdown signal, stopping after the current cycle")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the charger daemon."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
