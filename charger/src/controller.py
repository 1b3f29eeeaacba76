"""
Charge decision state machine.

Decides once per poll whether the charger switch should be on, commands the
switch, and emits a notification only when the resulting mode changes.

Rules, evaluated in order:

1. Inside the low-cost tariff window the switch is commanded ON regardless of
   demand.  Success leads to ``ON_TARIFF``.
2. Outside the window a reading is required; without one the cycle is
   skipped (no actuation, state kept, no notification).  With a reading::

       effective_load = demand + (load_current if baseline is OFF else 0)

   The load's own draw is only added while it is off; while it runs the
   meter already includes it.  ``effective_load <= threshold`` commands ON,
   anything else commands OFF.

Failed actuations move to an :class:`~charger.src.models.Attempting` state
that keeps the last stable mode as the baseline for the next comparison.
Notifications are edge-triggered: reaffirming a mode, or failing again with
the same outcome tag, emits nothing.

``decide`` and ``transition`` are pure; :class:`ChargeController` sequences
them with the switch and the notifier.

CHANGELOG:
- 2026-10-18: Deduplicate repeated actuation-failure notifications
- 2026-10-18: Split pure decide/transition from the async controller
- 2026-10-18: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from charger.src.models import (
    Attempting,
    ControllerMode,
    ControllerState,
    EventKind,
    LoadProfile,
    Stable,
    SwitchTarget,
    TariffWindow,
)
from charger.src.tariff import in_low_cost_window

if TYPE_CHECKING:
    from datetime import datetime

    from charger.src.notifier import Notifier
    from charger.src.switch import HubSwitch

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Decision:
    """Outcome of evaluating the switching rules for one cycle.

    Attributes:
        target: Switch state to command, or ``None`` to skip actuation.
        in_window: Whether the cycle fell inside the tariff window.
        effective_load_kw: Load compared against the threshold, when the
            demand rule was applied.
    """

    target: SwitchTarget | None
    in_window: bool
    effective_load_kw: float | None = None


@dataclass(frozen=True, slots=True)
class CycleResult:
    """Everything one control cycle produced."""

    state: ControllerState
    decision: Decision
    event: EventKind | None = None
    actuated: bool | None = None


# ---------------------------------------------------------------------------
# Pure rules
# ---------------------------------------------------------------------------


def effective_load(
    demand_kw: float,
    baseline: ControllerMode,
    profile: LoadProfile,
) -> float:
    """Net draw the load would cause, adding its own draw only while off."""
    if baseline is ControllerMode.OFF:
        return demand_kw + profile.load_current_kw
    return demand_kw


def decide(
    *,
    baseline: ControllerMode,
    hour: int,
    demand_kw: float | None,
    profile: LoadProfile,
    window: TariffWindow,
) -> Decision:
    """Choose the switch target for this cycle.

    Args:
        baseline: Last stable mode.
        hour: Current local hour (0-23).
        demand_kw: Decoded demand, or ``None`` when the read failed.
        profile: Load profile.
        window: Tariff window.
    """
    if in_low_cost_window(hour, window.start_hour, window.end_hour):
        return Decision(target=SwitchTarget.ON, in_window=True)

    if demand_kw is None:
        return Decision(target=None, in_window=False)

    load = effective_load(demand_kw, baseline, profile)
    if load <= profile.switching_threshold_kw:
        target = SwitchTarget.ON
    else:
        target = SwitchTarget.OFF
    return Decision(target=target, in_window=False, effective_load_kw=load)


def transition(
    state: ControllerState,
    decision: Decision,
    success: bool,
    error: str | None = None,
) -> tuple[ControllerState, EventKind | None]:
    """Apply an actuation result to *state*.

    Returns:
        The new state and the notification to emit, if any.
    """
    if decision.target is None:
        return state, None

    baseline = state.baseline

    if not success:
        if decision.target is SwitchTarget.ON:
            outcome, kind = ControllerMode.ON_FAILED, EventKind.SWITCH_ON_ERROR
        else:
            outcome, kind = ControllerMode.OFF_FAILED, EventKind.SWITCH_OFF_ERROR
        new_state = Attempting(
            target=decision.target,
            baseline=baseline,
            outcome=outcome,
            error=error,
        )
        # Same failure as last cycle: already notified.
        if state.outcome is outcome:
            return new_state, None
        return new_state, kind

    if decision.target is SwitchTarget.ON:
        if decision.in_window:
            new_mode = ControllerMode.ON_TARIFF
            notify = baseline is not ControllerMode.ON_TARIFF
            event = EventKind.SWITCH_ON_TARIFF if notify else None
        else:
            new_mode = ControllerMode.ON
            notify = baseline is ControllerMode.OFF
            event = EventKind.SWITCH_ON_SOLAR if notify else None
        return Stable(new_mode), event

    if baseline is ControllerMode.ON_TARIFF:
        event = EventKind.SWITCH_OFF_TARIFF_END
    elif baseline is ControllerMode.ON:
        event = EventKind.SWITCH_OFF_CURRENT
    else:
        event = None
    return Stable(ControllerMode.OFF), event


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class ChargeController:
    """Runs one decision cycle: decide, actuate, transition, notify.

    The controller holds no mode of its own; the caller passes the current
    state in and keeps the state returned in :class:`CycleResult`.

    Args:
        load_switch: Switch energizing the charger.
        notifier: Notifier for state-change events.
        profile: Load profile.
        window: Tariff window.
    """

    def __init__(
        self,
        *,
        load_switch: HubSwitch,
        notifier: Notifier,
        profile: LoadProfile,
        window: TariffWindow,
    ) -> None:
        self._load_switch = load_switch
        self._notifier = notifier
        self._profile = profile
        self._window = window

    async def run_cycle(
        self,
        state: ControllerState,
        *,
        now: datetime,
        demand_kw: float | None,
    ) -> CycleResult:
        """Evaluate the rules for *now* and act on them.

        Args:
            state: State returned by the previous cycle.
            now: Local wall-clock time of this cycle.
            demand_kw: Decoded demand, or ``None`` when the read failed.
        """
        decision = decide(
            baseline=state.baseline,
            hour=now.hour,
            demand_kw=demand_kw,
            profile=self._profile,
            window=self._window,
        )

        if decision.target is None:
            logger.info(
                "No meter reading this cycle, keeping mode %s",
                state.outcome.value,
            )
            return CycleResult(state=state, decision=decision)

        success = await self._load_switch.set_switch(decision.target)
        error = None if success else f"switch {decision.target.value} failed"
        new_state, event = transition(state, decision, success, error)

        if success:
            logger.info(
                "EV charger switch is %s (mode=%s, demand=%s kW, effective_load=%s kW)",
                decision.target.value,
                new_state.outcome.value,
                _fmt_kw(demand_kw),
                _fmt_kw(decision.effective_load_kw),
            )
        else:
            logger.error(
                "Could not turn the EV charger switch %s (baseline=%s)",
                decision.target.value,
                new_state.baseline.value,
            )

        if event is not None:
            await self._notifier.notify(
                event,
                demand_kw=demand_kw,
                in_tariff_window=decision.in_window,
            )

        return CycleResult(
            state=new_state,
            decision=decision,
            event=event,
            actuated=success,
        )


def _fmt_kw(value: float | None) -> str:
    return "n/a" if value is None else f"{value:.3f}"
