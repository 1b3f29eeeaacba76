"""
Data model for the charger daemon.

Defines the telemetry sample read from the meter gateway, the immutable load
profile and tariff window, the controller modes, and the controller state
carried between polling cycles.

The controller state is a tagged union:

- :class:`Stable` -- the switch is confirmed in ``OFF``, ``ON`` or
  ``ON_TARIFF`` (or ``STARTUP`` before the first confirmation).
- :class:`Attempting` -- the last actuation failed.  It carries the target
  that was attempted, the outcome tag (``ON_FAILED`` / ``OFF_FAILED``), and
  the *baseline*: the last stable mode, which is what the next cycle compares
  against.

CHANGELOG:
- 2026-10-18: Replace integer mode codes with Stable/Attempting state union
- 2026-10-18: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class SwitchTarget(str, Enum):
    """Commanded state of a remote power switch."""

    ON = "on"
    OFF = "off"


class ControllerMode(str, Enum):
    """Controller mode and outcome tags."""

    OFF = "off"
    ON = "on"
    ON_TARIFF = "on_tariff"
    ON_FAILED = "on_failed"
    OFF_FAILED = "off_failed"
    STARTUP = "startup"


STABLE_MODES: frozenset[ControllerMode] = frozenset(
    {
        ControllerMode.OFF,
        ControllerMode.ON,
        ControllerMode.ON_TARIFF,
        ControllerMode.STARTUP,
    }
)
"""Modes a :class:`Stable` state may hold."""

FAILED_MODES: frozenset[ControllerMode] = frozenset(
    {ControllerMode.ON_FAILED, ControllerMode.OFF_FAILED}
)
"""Outcome tags an :class:`Attempting` state may hold."""


class EventKind(str, Enum):
    """Closed set of notification events."""

    SWITCH_ON_SOLAR = "switch-on-solar"
    SWITCH_ON_TARIFF = "switch-on-tariff"
    SWITCH_OFF_CURRENT = "switch-off-current"
    SWITCH_OFF_TARIFF_END = "switch-off-tariff-end"
    SWITCH_ON_ERROR = "switch-on-error"
    SWITCH_OFF_ERROR = "switch-off-error"
    GATEWAY_REBOOT_TIMEOUT = "gateway-reboot-timeout"
    GATEWAY_REBOOT_UNAVAILABLE = "gateway-reboot-unavailable"
    STARTUP = "startup"


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------


class TelemetrySample(BaseModel):
    """A single instantaneous-demand reading as reported by the gateway.

    Values are the raw integers from the response; no scaling is applied
    here.  The decoder turns them into kilowatts.

    Attributes:
        demand_raw: Encoded demand as a fixed-width unsigned integer.
        multiplier: Scaling multiplier (0 means 1).
        divisor: Scaling divisor (0 means 1).
        device_address: Hardware address of the gateway that answered.
        demand_bits: Bit width of the encoded demand field.
        meter_address: Hardware address of the meter, when reported.
    """

    demand_raw: int = Field(ge=0)
    multiplier: int = Field(ge=0)
    divisor: int = Field(ge=0)
    device_address: str
    demand_bits: int = Field(default=32, gt=0)
    meter_address: str | None = None


# ---------------------------------------------------------------------------
# Immutable configuration values
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LoadProfile:
    """Electrical profile of the switched load.

    Attributes:
        load_current_kw: Power drawn by the load while energized.
        switching_threshold_kw: Net draw at or below which the load may run.
    """

    load_current_kw: float
    switching_threshold_kw: float = 0.0


@dataclass(frozen=True, slots=True)
class TariffWindow:
    """Daily low-cost period; wraps past midnight when start > end."""

    start_hour: int
    end_hour: int

    def __post_init__(self) -> None:  # noqa: D105
        for name in ("start_hour", "end_hour"):
            value = getattr(self, name)
            if not 0 <= value <= 23:
                msg = f"TariffWindow.{name} must be between 0 and 23 (got {value})"
                raise ValueError(msg)


# ---------------------------------------------------------------------------
# Controller state
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Stable:
    """Switch confirmed in ``mode``."""

    mode: ControllerMode

    def __post_init__(self) -> None:  # noqa: D105
        if self.mode not in STABLE_MODES:
            msg = f"Stable state cannot hold mode '{self.mode.value}'"
            raise ValueError(msg)

    @property
    def baseline(self) -> ControllerMode:
        return self.mode

    @property
    def outcome(self) -> ControllerMode:
        return self.mode


@dataclass(frozen=True, slots=True)
class Attempting:
    """Last actuation toward ``target`` failed.

    Attributes:
        target: Switch state that was commanded.
        baseline: Last stable mode; used for the next cycle's comparisons.
        outcome: ``ON_FAILED`` or ``OFF_FAILED``.
        error: Short description of the failure, when known.
    """

    target: SwitchTarget
    baseline: ControllerMode
    outcome: ControllerMode
    error: str | None = None

    def __post_init__(self) -> None:  # noqa: D105
        if self.outcome not in FAILED_MODES:
            msg = f"Attempting state cannot hold outcome '{self.outcome.value}'"
            raise ValueError(msg)
        if self.baseline not in STABLE_MODES:
            msg = f"Attempting baseline must be stable (got '{self.baseline.value}')"
            raise ValueError(msg)


ControllerState = Stable | Attempting

STARTUP_STATE = Stable(ControllerMode.STARTUP)


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    """A notification to render and deliver; never stored."""

    kind: EventKind
    demand_kw: float | None = None
    in_tariff_window: bool = False
