"""
Tests for the startup sequencer.

Tests verify:
- The gateway switch is turned on before anything else (best-effort).
- The charger switch is forced off, retrying until the hub confirms.
- Gateway discovery runs only when no address is configured, and retries.
- Exactly one startup notification, then the settle wait.
- The returned state is Stable(OFF).
- The health file reports "startup" until the switch is confirmed off.

CHANGELOG:
- 2026-10-18: Initial creation -- TDD tests written first (STORY-010)

TODO:
- None
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, call, patch

import pytest
from charger.src.health import HealthWriter
from charger.src.models import ControllerMode, EventKind, Stable, SwitchTarget
from charger.src.startup import force_switch_off, run_startup


def _make_meter(*addresses: str | None) -> AsyncMock:
    meter = AsyncMock()
    meter.discover_device_address = AsyncMock(side_effect=list(addresses))
    return meter


class TestForceSwitchOff:
    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self, make_switch: type) -> None:
        switch = make_switch()
        mock_sleep = AsyncMock()

        with patch("charger.src.startup.asyncio.sleep", mock_sleep):
            attempts = await force_switch_off(switch, retry_s=60)

        assert attempts == 1
        assert switch.calls == [SwitchTarget.OFF]
        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_until_confirmed(self, make_switch: type) -> None:
        switch = make_switch([False, False, True])
        mock_sleep = AsyncMock()

        with patch("charger.src.startup.asyncio.sleep", mock_sleep):
            attempts = await force_switch_off(switch, retry_s=15)

        assert attempts == 3
        assert switch.calls == [SwitchTarget.OFF] * 3
        assert mock_sleep.await_args_list == [call(15), call(15)]


class TestRunStartup:
    @pytest.mark.asyncio
    async def test_full_sequence_with_configured_address(
        self, make_switch: type, notifier: AsyncMock
    ) -> None:
        load_switch = make_switch()
        gateway = make_switch()
        meter = _make_meter()
        mock_sleep = AsyncMock()

        with patch("charger.src.startup.asyncio.sleep", mock_sleep):
            result = await run_startup(
                load_switch=load_switch,
                gateway=gateway,
                meter=meter,
                notifier=notifier,
                device_address="0xd8d5b90000005a54",
                retry_s=60,
                settle_s=30,
            )

        assert gateway.calls == [SwitchTarget.ON]
        assert load_switch.calls == [SwitchTarget.OFF]
        meter.discover_device_address.assert_not_awaited()
        notifier.notify.assert_awaited_once_with(EventKind.STARTUP)
        mock_sleep.assert_awaited_once_with(30)
        assert result.state == Stable(ControllerMode.OFF)
        assert result.device_address == "0xd8d5b90000005a54"

    @pytest.mark.asyncio
    async def test_discovers_address_with_retry(
        self, make_switch: type, notifier: AsyncMock
    ) -> None:
        meter = _make_meter(None, "0x00158d0000000004")
        mock_sleep = AsyncMock()

        with patch("charger.src.startup.asyncio.sleep", mock_sleep):
            result = await run_startup(
                load_switch=make_switch(),
                gateway=None,
                meter=meter,
                notifier=notifier,
                retry_s=10,
                settle_s=60,
            )

        assert result.device_address == "0x00158d0000000004"
        assert meter.discover_device_address.await_count == 2
        # One discovery retry, then the settle wait.
        assert mock_sleep.await_args_list == [call(10), call(60)]

    @pytest.mark.asyncio
    async def test_gateway_failure_does_not_block(
        self, make_switch: type, notifier: AsyncMock
    ) -> None:
        gateway = make_switch([False])
        load_switch = make_switch()

        with patch("charger.src.startup.asyncio.sleep", AsyncMock()):
            result = await run_startup(
                load_switch=load_switch,
                gateway=gateway,
                meter=_make_meter(),
                notifier=notifier,
                device_address="0x1",
            )

        assert gateway.calls == [SwitchTarget.ON]
        assert load_switch.calls == [SwitchTarget.OFF]
        assert result.state.mode is ControllerMode.OFF

    @pytest.mark.asyncio
    async def test_notifies_only_after_switch_off(
        self, make_switch: type, notifier: AsyncMock
    ) -> None:
        load_switch = make_switch([False, True])
        order: list[str] = []

        async def _record_notify(kind: EventKind) -> bool:
            order.append(f"notify:{kind.value}:{len(load_switch.calls)}")
            return True

        notifier.notify = AsyncMock(side_effect=_record_notify)

        with patch("charger.src.startup.asyncio.sleep", AsyncMock()):
            await run_startup(
                load_switch=load_switch,
                gateway=None,
                meter=_make_meter(),
                notifier=notifier,
                device_address="0x1",
            )

        assert order == ["notify:startup:2"]

    @pytest.mark.asyncio
    async def test_health_shows_startup_until_switch_off(
        self, make_switch: type, notifier: AsyncMock, tmp_path: Path
    ) -> None:
        health = HealthWriter(tmp_path / "health.json")
        seen: list[str] = []

        async def _read_mode(_: float) -> None:
            seen.append(json.loads(health.path.read_text())["mode"])

        with patch("charger.src.startup.asyncio.sleep", side_effect=_read_mode):
            await run_startup(
                load_switch=make_switch([False, True]),
                gateway=None,
                meter=_make_meter(),
                notifier=notifier,
                device_address="0x1",
                retry_s=10,
                settle_s=30,
                health=health,
            )

        # First sleep is the switch-off retry, second the settle wait.
        assert seen == ["startup", "off"]
        assert json.loads(health.path.read_text())["mode"] == "off"
