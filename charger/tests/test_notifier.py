"""
Unit tests for notification rendering and SMTP delivery.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

import smtplib
from unittest.mock import MagicMock, patch

import pytest
from charger.src.models import EventKind, NotificationEvent
from charger.src.notifier import Notifier, render_message


def _make_notifier(**overrides: object) -> Notifier:
    kwargs: dict[str, object] = {
        "smtp_host": "smtp.example.com",
        "smtp_port": 465,
        "user": "alerts@example.com",
        "password": "smtp-secret",
        "recipients": ["5551234567@sms.example.com"],
    }
    kwargs.update(overrides)
    return Notifier(**kwargs)  # type: ignore[arg-type]


class TestRenderMessage:
    @pytest.mark.parametrize("kind", list(EventKind))
    def test_every_kind_renders(self, kind: EventKind) -> None:
        subject, body = render_message(NotificationEvent(kind=kind))
        assert subject
        assert body
        assert "{" not in body

    def test_demand_appended(self) -> None:
        _, body = render_message(
            NotificationEvent(kind=EventKind.SWITCH_ON_SOLAR, demand_kw=-0.6)
        )
        assert body.endswith("Meter reading: -0.600 kW.")

    def test_no_demand_no_reading(self) -> None:
        event = NotificationEvent(kind=EventKind.GATEWAY_REBOOT_TIMEOUT)
        _, body = render_message(event)
        assert "Meter reading" not in body
        assert "Request Timeout" in body

    def test_threshold_quoted_in_switch_off(self) -> None:
        _, body = render_message(
            NotificationEvent(kind=EventKind.SWITCH_OFF_CURRENT),
            threshold_kw=0.5,
        )
        assert "more than 0.5 kW" in body

    def test_on_error_mentions_tariff_window(self) -> None:
        _, in_window = render_message(
            NotificationEvent(kind=EventKind.SWITCH_ON_ERROR, in_tariff_window=True)
        )
        _, outside = render_message(NotificationEvent(kind=EventKind.SWITCH_ON_ERROR))
        assert "lowest cost tariff period" in in_window
        assert "lowest cost tariff period" not in outside

    def test_startup_quotes_settle_delay(self) -> None:
        subject, body = render_message(
            NotificationEvent(kind=EventKind.STARTUP),
            startup_settle_s=45,
        )
        assert subject == "EV Charger Starting"
        assert "45 secs" in body


class TestBuildMessage:
    def test_headers(self) -> None:
        msg = _make_notifier(sender="charger@example.com").build_message(
            NotificationEvent(kind=EventKind.SWITCH_ON_TARIFF)
        )
        assert msg["Subject"] == "EV Charger Turned On"
        assert msg["From"] == "charger@example.com"
        assert msg["To"] == "5551234567@sms.example.com"

    def test_sender_defaults_to_user(self) -> None:
        msg = _make_notifier().build_message(
            NotificationEvent(kind=EventKind.SWITCH_ON_TARIFF)
        )
        assert msg["From"] == "alerts@example.com"


class TestNotify:
    @pytest.mark.asyncio
    async def test_disabled_without_host(self) -> None:
        notifier = _make_notifier(smtp_host="")

        with patch("charger.src.notifier.smtplib.SMTP_SSL") as mock_smtp:
            sent = await notifier.notify(EventKind.STARTUP)

        assert notifier.enabled is False
        assert sent is False
        mock_smtp.assert_not_called()

    @pytest.mark.asyncio
    async def test_disabled_without_recipients(self) -> None:
        notifier = _make_notifier(recipients=[])
        assert notifier.enabled is False
        assert await notifier.notify(EventKind.STARTUP) is False

    @pytest.mark.asyncio
    async def test_sends_over_smtp(self) -> None:
        notifier = _make_notifier()

        with patch("charger.src.notifier.smtplib.SMTP_SSL") as mock_smtp:
            sent = await notifier.notify(EventKind.SWITCH_ON_SOLAR, demand_kw=-1.2)

        assert sent is True
        mock_smtp.assert_called_once()
        assert mock_smtp.call_args.args == ("smtp.example.com", 465)
        smtp = mock_smtp.return_value.__enter__.return_value
        smtp.login.assert_called_once_with("alerts@example.com", "smtp-secret")
        smtp.send_message.assert_called_once()
        msg = smtp.send_message.call_args.args[0]
        assert "Meter reading: -1.200 kW." in msg.get_content()

    @pytest.mark.asyncio
    async def test_skips_login_without_user(self) -> None:
        notifier = _make_notifier(user="", sender="charger@example.com")

        with patch("charger.src.notifier.smtplib.SMTP_SSL") as mock_smtp:
            await notifier.notify(EventKind.STARTUP)

        smtp = mock_smtp.return_value.__enter__.return_value
        smtp.login.assert_not_called()
        smtp.send_message.assert_called_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "exc",
        [
            smtplib.SMTPAuthenticationError(535, b"bad credentials"),
            OSError("network unreachable"),
        ],
    )
    async def test_delivery_failure_returns_false(self, exc: Exception) -> None:
        notifier = _make_notifier()
        mock_smtp = MagicMock(side_effect=exc)

        with patch("charger.src.notifier.smtplib.SMTP_SSL", mock_smtp):
            sent = await notifier.notify(EventKind.SWITCH_OFF_ERROR)

        assert sent is False

    @pytest.mark.asyncio
    async def test_malformed_recipient_returns_false(self) -> None:
        """A line break in a recipient cannot become a header; notify stays quiet."""
        notifier = _make_notifier(
            recipients=["owner@example.com\nBcc: other@example.com"]
        )

        with patch("charger.src.notifier.smtplib.SMTP_SSL") as mock_smtp:
            sent = await notifier.notify(EventKind.SWITCH_ON_SOLAR, demand_kw=-1.0)

        assert sent is False
        mock_smtp.assert_not_called()
