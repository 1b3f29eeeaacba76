"""
Charger daemon configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded IPs, device ids, or credentials.

CHANGELOG:
- 2026-10-18: Add LOG_LEVEL
- 2026-10-18: Add SMTP notifier and health file settings
- 2026-10-18: Initial creation (STORY-001)

TODO:
- None
"""

import re

from pydantic import field_validator
from pydantic_settings import BaseSettings

from charger.src.models import LoadProfile, TariffWindow

_INSTEON_ID_RE = re.compile(r"^[0-9A-Fa-f]{6}$")
_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class ChargerSettings(BaseSettings):
    """Charger daemon configuration.

    All values are loaded from environment variables. Required variables
    must be set; optional variables have sensible defaults.

    Attributes:
        meter_cloud_url: EAGLE cloud REST endpoint (must be HTTPS).
        meter_cloud_id: Cloud-Id header value for the gateway.
        meter_user: EAGLE cloud account user.
        meter_password: EAGLE cloud account password.
        meter_device_mac: Gateway MAC id. Empty means discover at startup.
        hub_url: Insteon hub base URL on the local LAN.
        hub_user: Hub basic-auth user.
        hub_password: Hub basic-auth password.
        load_device_id: Insteon id (6 hex digits) of the charger outlet.
        load_outlet: Outlet number on an on/off outlet module (1 top,
            2 bottom); 0 for a plain relay or dimmer module.
        gateway_device_id: Insteon id of the gateway's own power switch.
            Empty disables hard reboots.
        poll_interval_s: Seconds between control cycles.
        tariff_start_hour: First hour of the low-cost window (0-23).
        tariff_end_hour: Hour the low-cost window ends (0-23, exclusive).
        load_current_kw: Power the load draws while energized.
        switching_threshold_kw: Net draw at or below which the load may run.
        gateway_settle_s: Seconds the gateway stays off during a reboot.
        gateway_boot_s: Seconds allowed for the gateway to boot.
        startup_settle_s: Seconds to wait after startup before the first poll.
        startup_retry_s: Seconds between startup precondition retries.
        http_timeout_s: Timeout for every HTTP request.
        smtp_host: SMTP server host. Empty means notifications are only logged.
        smtp_port: SMTP server port (implicit TLS).
        smtp_user: SMTP login user.
        smtp_password: SMTP login password.
        smtp_sender: From address. Defaults to smtp_user.
        notify_recipients: Comma-separated recipient addresses (email or
            email-to-SMS gateway).
        health_path: Path of the JSON health file.
        log_level: Root log level name (DEBUG, INFO, WARNING, ERROR).
    """

    meter_cloud_url: str = "https://rainforestcloud.com:9445/cgi-bin/post_manager"
    meter_cloud_id: str
    meter_user: str
    meter_password: str
    meter_device_mac: str = ""
    hub_url: str
    hub_user: str = ""
    hub_password: str = ""
    load_device_id: str
    load_outlet: int = 2
    gateway_device_id: str = ""
    poll_interval_s: int = 120
    tariff_start_hour: int = 23
    tariff_end_hour: int = 7
    load_current_kw: float = 1.4
    switching_threshold_kw: float = 0.0
    gateway_settle_s: float = 5.0
    gateway_boot_s: float = 60.0
    startup_settle_s: float = 60.0
    startup_retry_s: float = 60.0
    http_timeout_s: float = 30.0
    smtp_host: str = ""
    smtp_port: int = 465
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_sender: str = ""
    notify_recipients: str = ""
    health_path: str = "/data/health.json"
    log_level: str = "INFO"

    @field_validator("meter_cloud_url")
    @classmethod
    def meter_cloud_url_must_be_https(cls, v: str) -> str:
        """Validate that the meter cloud URL uses HTTPS.

        The request carries the account password in a header, so plain HTTP
        is rejected at startup.
        """
        if not v.lower().startswith("https://"):
            raise ValueError(
                f"METER_CLOUD_URL must use HTTPS (got: '{v[:20]}...')."
            )
        return v

    @field_validator("hub_url")
    @classmethod
    def hub_url_must_have_scheme(cls, v: str) -> str:
        """Validate that the hub URL is absolute and strip a trailing slash."""
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError("HUB_URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("load_device_id")
    @classmethod
    def load_device_id_must_be_insteon_id(cls, v: str) -> str:
        """Validate the Insteon device id (6 hex digits), normalized to upper case."""
        if not _INSTEON_ID_RE.match(v):
            raise ValueError("LOAD_DEVICE_ID must be 6 hex digits (e.g. 418C4B)")
        return v.upper()

    @field_validator("gateway_device_id")
    @classmethod
    def gateway_device_id_must_be_insteon_id(cls, v: str) -> str:
        """Validate the optional gateway switch id."""
        if v and not _INSTEON_ID_RE.match(v):
            raise ValueError("GATEWAY_DEVICE_ID must be empty or 6 hex digits")
        return v.upper()

    @field_validator("load_outlet")
    @classmethod
    def load_outlet_must_be_valid(cls, v: int) -> int:
        """Validate outlet number (0 relay, 1 top, 2 bottom)."""
        if v not in (0, 1, 2):
            raise ValueError("LOAD_OUTLET must be 0, 1 or 2")
        return v

    @field_validator("tariff_start_hour", "tariff_end_hour")
    @classmethod
    def tariff_hour_must_be_valid(cls, v: int) -> int:
        """Validate tariff window bounds are hours of the day."""
        if v < 0 or v > 23:
            raise ValueError("Tariff hours must be between 0 and 23")
        return v

    @field_validator("poll_interval_s")
    @classmethod
    def poll_interval_must_be_reasonable(cls, v: int) -> int:
        """Minimum 10 seconds between cycles to avoid hammering the cloud API."""
        if v < 10:
            raise ValueError("POLL_INTERVAL_S must be >= 10")
        return v

    @field_validator("load_current_kw")
    @classmethod
    def load_current_must_be_positive(cls, v: float) -> float:
        """Validate the load draws a positive amount of power."""
        if v <= 0:
            raise ValueError("LOAD_CURRENT_KW must be > 0")
        return v

    @field_validator(
        "gateway_settle_s",
        "gateway_boot_s",
        "startup_settle_s",
        "startup_retry_s",
    )
    @classmethod
    def delays_must_be_non_negative(cls, v: float) -> float:
        """Validate fixed delays are non-negative."""
        if v < 0:
            raise ValueError("Delays must be >= 0")
        return v

    @field_validator("http_timeout_s")
    @classmethod
    def http_timeout_must_be_positive(cls, v: float) -> float:
        """A zero timeout would fail every request."""
        if v <= 0:
            raise ValueError("HTTP_TIMEOUT_S must be > 0")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        """Normalize to upper case and reject unknown level names."""
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(
                f"LOG_LEVEL must be one of {sorted(_LOG_LEVELS)} (got: '{v}')"
            )
        return level

    @property
    def load_profile(self) -> LoadProfile:
        return LoadProfile(
            load_current_kw=self.load_current_kw,
            switching_threshold_kw=self.switching_threshold_kw,
        )

    @property
    def tariff_window(self) -> TariffWindow:
        return TariffWindow(
            start_hour=self.tariff_start_hour,
            end_hour=self.tariff_end_hour,
        )

    @property
    def recipient_list(self) -> list[str]:
        """Parsed ``notify_recipients``, blanks dropped."""
        return [r.strip() for r in self.notify_recipients.split(",") if r.strip()]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
