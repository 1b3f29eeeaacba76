"""
Shared test fixtures for charger daemon tests.

Provides environment variable fixtures for ChargerSettings configuration
tests and small fakes for the switch and notifier collaborators.
All charger env vars are cleaned before each test to ensure isolation.

CHANGELOG:
- 2026-10-18: Add FakeSwitch / fake notifier fixtures
- 2026-10-18: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from charger.src.models import SwitchTarget

# All ChargerSettings environment variable names, used for cleanup.
_ALL_CHARGER_ENV_VARS = (
    "METER_CLOUD_URL",
    "METER_CLOUD_ID",
    "METER_USER",
    "METER_PASSWORD",
    "METER_DEVICE_MAC",
    "HUB_URL",
    "HUB_USER",
    "HUB_PASSWORD",
    "LOAD_DEVICE_ID",
    "LOAD_OUTLET",
    "GATEWAY_DEVICE_ID",
    "POLL_INTERVAL_S",
    "TARIFF_START_HOUR",
    "TARIFF_END_HOUR",
    "LOAD_CURRENT_KW",
    "SWITCHING_THRESHOLD_KW",
    "GATEWAY_SETTLE_S",
    "GATEWAY_BOOT_S",
    "STARTUP_SETTLE_S",
    "STARTUP_RETRY_S",
    "HTTP_TIMEOUT_S",
    "SMTP_HOST",
    "SMTP_PORT",
    "SMTP_USER",
    "SMTP_PASSWORD",
    "SMTP_SENDER",
    "NOTIFY_RECIPIENTS",
    "HEALTH_PATH",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_charger_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all charger env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_CHARGER_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set all required and optional environment variables for ChargerSettings.

    Returns the dict of env var names to values for assertion convenience.
    """
    env = {
        "METER_CLOUD_URL": "https://rainforestcloud.example.com:9445/cgi-bin/post_manager",
        "METER_CLOUD_ID": "12345",
        "METER_USER": "owner@example.com",
        "METER_PASSWORD": "meter-secret",
        "METER_DEVICE_MAC": "0xd8d5b90000005a54",
        "HUB_URL": "http://192.168.1.35:25105/",
        "HUB_USER": "hubuser",
        "HUB_PASSWORD": "hub-secret",
        "LOAD_DEVICE_ID": "418c4b",
        "LOAD_OUTLET": "1",
        "GATEWAY_DEVICE_ID": "376524",
        "POLL_INTERVAL_S": "60",
        "TARIFF_START_HOUR": "22",
        "TARIFF_END_HOUR": "6",
        "LOAD_CURRENT_KW": "7.2",
        "SWITCHING_THRESHOLD_KW": "0.5",
        "GATEWAY_SETTLE_S": "10",
        "GATEWAY_BOOT_S": "90",
        "STARTUP_SETTLE_S": "30",
        "STARTUP_RETRY_S": "15",
        "HTTP_TIMEOUT_S": "20",
        "SMTP_HOST": "smtp.example.com",
        "SMTP_PORT": "465",
        "SMTP_USER": "alerts@example.com",
        "SMTP_PASSWORD": "smtp-secret",
        "SMTP_SENDER": "charger@example.com",
        "NOTIFY_RECIPIENTS": "owner@example.com, 5551234567@sms.example.com",
        "HEALTH_PATH": "/tmp/charger-health.json",
        "LOG_LEVEL": "debug",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables (no optional ones).

    Optional variables should fall back to their defaults.
    """
    env = {
        "METER_CLOUD_ID": "12345",
        "METER_USER": "owner@example.com",
        "METER_PASSWORD": "meter-secret",
        "HUB_URL": "http://192.168.1.35:25105",
        "LOAD_DEVICE_ID": "418C4B",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


class FakeSwitch:
    """In-memory stand-in for HubSwitch that records every command.

    Args:
        results: Successive return values for ``set_switch``; the last one
            repeats once the list is exhausted.
    """

    def __init__(self, results: list[bool] | None = None, name: str = "fake") -> None:
        self._results = list(results or [True])
        self.calls: list[SwitchTarget] = []
        self.name = name

    async def set_switch(self, target: SwitchTarget) -> bool:
        self.calls.append(target)
        if len(self._results) > 1:
            return self._results.pop(0)
        return self._results[0]


@pytest.fixture()
def make_switch() -> type[FakeSwitch]:
    """Return the FakeSwitch class so tests can script results."""
    return FakeSwitch


@pytest.fixture()
def notifier() -> AsyncMock:
    """Notifier mock whose ``notify`` coroutine records calls."""
    mock = AsyncMock()
    mock.notify = AsyncMock(return_value=True)
    return mock
