"""
Notification rendering and email delivery.

Each :class:`~charger.src.models.EventKind` has a subject and body template.
The body optionally ends with the meter reading in kW.  Delivery goes through
SMTP over implicit TLS, typically to an email-to-SMS gateway address, and is
fire-and-forget: failures are logged and never reach the control loop.

When no SMTP host is configured the notifier only logs the rendered message.

CHANGELOG:
- 2026-10-18: Build the message inside notify's error handling so it never raises
- 2026-10-18: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage

from charger.src.models import EventKind, NotificationEvent

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_S: float = 30.0

# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

_TEMPLATES: dict[EventKind, tuple[str, str]] = {
    EventKind.SWITCH_ON_SOLAR: (
        "EV Charger Switch Turned On",
        "Turned the EV charger switch on as the solar panels are generating "
        "more than the house usage plus the EV charger usage.",
    ),
    EventKind.SWITCH_ON_TARIFF: (
        "EV Charger Turned On",
        "Turned the EV charger switch on as it is now in the lowest cost "
        "tariff period.",
    ),
    EventKind.SWITCH_OFF_CURRENT: (
        "EV Charger Switch Turned Off",
        "Turned the EV charger switch off as the combined current usage plus "
        "the EV charger usage is more than {threshold_kw:g} kW.",
    ),
    EventKind.SWITCH_OFF_TARIFF_END: (
        "EV Charger Switch Turned Off",
        "Turned the EV charger switch off as it is no longer in the lowest "
        "cost tariff period.",
    ),
    EventKind.SWITCH_ON_ERROR: (
        "EV Charger Error Turning On",
        "Could not turn the EV charger switch on{window_suffix}.",
    ),
    EventKind.SWITCH_OFF_ERROR: (
        "EV Charger Error Turning Off",
        "Could not turn the EV charger switch off.",
    ),
    EventKind.GATEWAY_REBOOT_TIMEOUT: (
        "EV Charger Rebooted Gateway - Request Timeout",
        "Rebooted the gateway since a Request Timeout response was received.",
    ),
    EventKind.GATEWAY_REBOOT_UNAVAILABLE: (
        "EV Charger Rebooted Gateway - Service Unavailable",
        "Rebooted the gateway since a Service Unavailable response was received.",
    ),
    EventKind.STARTUP: (
        "EV Charger Starting",
        "Turned the gateway switch on and the EV charger switch off at startup. "
        "Waiting {startup_settle_s:g} secs. before the first meter reading to "
        "allow the gateway to boot up.",
    ),
}


def render_message(
    event: NotificationEvent,
    *,
    threshold_kw: float = 0.0,
    startup_settle_s: float = 60.0,
) -> tuple[str, str]:
    """Render ``(subject, body)`` for *event*.

    Args:
        event: The event to render.
        threshold_kw: Switching threshold quoted in switch-off messages.
        startup_settle_s: Settle delay quoted in the startup message.
    """
    subject, template = _TEMPLATES[event.kind]
    body = template.format(
        threshold_kw=threshold_kw,
        startup_settle_s=startup_settle_s,
        window_suffix=(
            " during the lowest cost tariff period" if event.in_tariff_window else ""
        ),
    )
    if event.demand_kw is not None:
        body += f" Meter reading: {event.demand_kw:.3f} kW."
    return subject, body


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class Notifier:
    """Renders events and sends them by email.

    Args:
        smtp_host: SMTP server host. Empty disables delivery.
        smtp_port: SMTP port (implicit TLS).
        user: SMTP login user. Empty skips login.
        password: SMTP login password.
        sender: From address. Defaults to *user*.
        recipients: Recipient addresses.
        threshold_kw: Switching threshold quoted in messages.
        startup_settle_s: Startup settle delay quoted in messages.
    """

    def __init__(
        self,
        *,
        smtp_host: str = "",
        smtp_port: int = 465,
        user: str = "",
        password: str = "",
        sender: str = "",
        recipients: list[str] | None = None,
        threshold_kw: float = 0.0,
        startup_settle_s: float = 60.0,
    ) -> None:
        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._user = user
        self._password = password
        self._sender = sender or user
        self._recipients = list(recipients or [])
        self._threshold_kw = threshold_kw
        self._startup_settle_s = startup_settle_s

    @property
    def enabled(self) -> bool:
        """True when an SMTP host and at least one recipient are configured."""
        return bool(self._smtp_host and self._recipients)

    def build_message(self, event: NotificationEvent) -> EmailMessage:
        subject, body = render_message(
            event,
            threshold_kw=self._threshold_kw,
            startup_settle_s=self._startup_settle_s,
        )
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._sender
        msg["To"] = ", ".join(self._recipients)
        msg.set_content(body)
        return msg

    async def notify(
        self,
        kind: EventKind,
        *,
        demand_kw: float | None = None,
        in_tariff_window: bool = False,
    ) -> bool:
        """Render and deliver a notification.

        Returns:
            ``True`` if the message was handed to the SMTP server, ``False``
            if delivery is disabled or failed.  Never raises.
        """
        event = NotificationEvent(
            kind=kind,
            demand_kw=demand_kw,
            in_tariff_window=in_tariff_window,
        )
        try:
            msg = self.build_message(event)
        except ValueError as exc:
            logger.warning("Could not build %s notification: %s", kind.value, exc)
            return False
        logger.info("Notification %s: %s", kind.value, msg["Subject"])

        if not self.enabled:
            logger.debug("SMTP not configured, notification only logged")
            return False

        try:
            await asyncio.to_thread(self._send, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Failed to send %s notification: %s", kind.value, exc)
            return False
        return True

    def _send(self, msg: EmailMessage) -> None:
        """Blocking SMTP delivery; runs in a worker thread."""
        with smtplib.SMTP_SSL(
            self._smtp_host,
            self._smtp_port,
            timeout=SMTP_TIMEOUT_S,
        ) as smtp:
            if self._user:
                smtp.login(self._user, self._password)
            smtp.send_message(msg)
