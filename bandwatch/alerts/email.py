"""E-mail alert sink."""

import logging
import smtplib
import ssl
from datetime import datetime
from email.message import EmailMessage
from html import escape
from typing import Callable, Optional

from bandwatch.alerts.console import format_timestamp
from bandwatch.config import EmailSettings
from bandwatch.errors import AlertDeliveryError, ConfigurationError
from bandwatch.models import Signal
from bandwatch.sources.base import AlertSink

logger = logging.getLogger(__name__)

SENDER_NAME = "bandwatch"
SSL_PORTS = (465, 994)


def build_alert_body(signals: list[Signal]) -> str:
    """HTML table of passing signals."""
    rows = []
    for signal in sorted(signals, key=lambda s: s.instrument):
        price = f"{signal.price:.4f}" if signal.price is not None else "N/A"
        conditions = "<br>".join(
            escape(r.condition_id) + (f": {escape(r.measurement)}" if r.measurement else "")
            for r in signal.results
        )
        rows.append(
            f"<tr><td>{escape(signal.instrument)}</td>"
            f"<td style=\"color: green;\">{price}</td>"
            f"<td>{format_timestamp(signal.timestamp)}</td>"
            f"<td>{conditions}</td></tr>"
        )
    return (
        "<html><body>"
        "<h2>Instruments meeting all conditions</h2>"
        "<table border=\"1\" cellpadding=\"4\">"
        "<tr><th>Instrument</th><th>Price</th><th>Time (UTC)</th><th>Conditions</th></tr>"
        f"{''.join(rows)}"
        "</table>"
        f"<p>Generated at: {datetime.now():%Y-%m-%d %H:%M:%S}</p>"
        "</body></html>"
    )


class EmailAlertSink(AlertSink):
    """Sends one digest e-mail per cycle with every passing signal."""

    def __init__(
        self,
        settings: EmailSettings,
        smtp_factory: Optional[Callable[..., smtplib.SMTP]] = None,
    ):
        """Initialize the sink.

        Args:
            settings: SMTP settings; all credentials must be present.
            smtp_factory: Override for creating the SMTP connection (tests).

        Raises:
            ConfigurationError: If credentials are missing.
        """
        if not settings.enabled:
            raise ConfigurationError(
                "E-mail alerts need EMAIL_USERNAME, EMAIL_PASSWORD, EMAIL_FROM and EMAIL_TO"
            )
        self.settings = settings
        self._smtp_factory = smtp_factory
        self._pending: list[Signal] = []

    def _connect(self) -> smtplib.SMTP:
        if self._smtp_factory is not None:
            return self._smtp_factory(self.settings.smtp_server, self.settings.smtp_port)
        if self.settings.smtp_port in SSL_PORTS:
            return smtplib.SMTP_SSL(
                self.settings.smtp_server,
                self.settings.smtp_port,
                context=ssl.create_default_context(),
                timeout=30,
            )
        smtp = smtplib.SMTP(self.settings.smtp_server, self.settings.smtp_port, timeout=30)
        smtp.starttls(context=ssl.create_default_context())
        return smtp

    def _send(self, subject: str, html: str) -> None:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = f"{SENDER_NAME} <{self.settings.from_addr}>"
        message["To"] = self.settings.to_addr
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html, subtype="html")

        try:
            with self._connect() as smtp:
                smtp.login(self.settings.username, self.settings.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise AlertDeliveryError(f"Send failed: {e}") from e

    def emit(self, signal: Signal) -> None:
        self._pending.append(signal)

    def flush(self) -> None:
        if not self._pending:
            return
        signals, self._pending = self._pending, []
        subject = f"bandwatch: {len(signals)} instruments meet all conditions - {datetime.now():%Y-%m-%d %H:%M}"
        self._send(subject, build_alert_body(signals))
        logger.info("Alert e-mail sent for %d instruments", len(signals))

    def heartbeat(self, cycles: int) -> None:
        subject = f"bandwatch heartbeat - system running - {datetime.now():%Y-%m-%d %H:%M}"
        html = (
            "<html><body><h2>bandwatch heartbeat</h2>"
            "<p style=\"color: green;\">System is running normally.</p>"
            f"<p>No instrument met all conditions in the last {cycles} cycles.</p>"
            f"<p>Generated at: {datetime.now():%Y-%m-%d %H:%M:%S}</p>"
            "</body></html>"
        )
        self._send(subject, html)
