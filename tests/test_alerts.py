"""Tests for the alert sinks."""

import smtplib
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from bandwatch.alerts import ConsoleAlertSink, EmailAlertSink, MultiSink
from bandwatch.alerts.email import build_alert_body
from bandwatch.config import EmailSettings
from bandwatch.errors import AlertDeliveryError, ConfigurationError
from bandwatch.models import ConditionResult, Signal
from bandwatch.sources import AlertSink


def make_signal(instrument: str, price: float = 1.5) -> Signal:
    return Signal.from_results(
        instrument=instrument,
        timestamp=1_700_000_000_000,
        results=[ConditionResult(
            condition_id="volume_4h_surge", passed=True, value=24.0, threshold=7.5,
        )],
        price=price,
    )


@pytest.fixture
def email_settings():
    return EmailSettings(
        smtp_server="smtp.example.com",
        smtp_port=465,
        username="bot",
        password="secret",
        from_addr="bot@example.com",
        to_addr="me@example.com",
    )


@pytest.fixture
def smtp():
    connection = MagicMock()
    connection.__enter__.return_value = connection
    return connection


class TestConsoleAlertSink:
    """Signals are buffered and printed once per flush."""

    def test_flush_prints_table(self):
        console = Console(record=True, width=160)
        sink = ConsoleAlertSink(console)

        sink.emit(make_signal("ETHUSDT"))
        sink.emit(make_signal("BTCUSDT"))
        assert console.export_text(clear=False) == ""

        sink.flush()
        output = console.export_text()

        assert "BTCUSDT" in output and "ETHUSDT" in output
        assert output.index("BTCUSDT") < output.index("ETHUSDT")
        assert "2023-11-14 22:13:20" in output
        assert "24 vs 7.5" in output

    def test_flush_without_signals_prints_nothing(self):
        console = Console(record=True)
        ConsoleAlertSink(console).flush()
        assert console.export_text() == ""

    def test_heartbeat(self):
        console = Console(record=True, width=120)
        ConsoleAlertSink(console).heartbeat(100)
        assert "last 100 cycles" in console.export_text()


class TestEmailAlertSink:
    """One digest message per flush."""

    def test_requires_credentials(self):
        with pytest.raises(ConfigurationError):
            EmailAlertSink(EmailSettings())

    def test_flush_sends_one_digest(self, email_settings, smtp):
        factory = MagicMock(return_value=smtp)
        sink = EmailAlertSink(email_settings, smtp_factory=factory)

        sink.emit(make_signal("BTCUSDT"))
        sink.emit(make_signal("ETHUSDT"))
        factory.assert_not_called()

        sink.flush()
        sink.flush()

        factory.assert_called_once_with("smtp.example.com", 465)
        smtp.login.assert_called_once_with("bot", "secret")
        message = smtp.send_message.call_args.args[0]
        assert "2 instruments" in message["Subject"]
        assert message["To"] == "me@example.com"

    def test_delivery_failure(self, email_settings, smtp):
        smtp.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        sink = EmailAlertSink(email_settings, smtp_factory=MagicMock(return_value=smtp))

        sink.emit(make_signal("BTCUSDT"))
        with pytest.raises(AlertDeliveryError):
            sink.flush()

    def test_heartbeat(self, email_settings, smtp):
        sink = EmailAlertSink(email_settings, smtp_factory=MagicMock(return_value=smtp))
        sink.heartbeat(100)
        assert "heartbeat" in smtp.send_message.call_args.args[0]["Subject"]

    def test_body_escapes_html(self):
        body = build_alert_body([make_signal("<b>X</b>")])
        assert "&lt;b&gt;X&lt;/b&gt;" in body
        assert "1.5000" in body
        assert "volume_4h_surge: 24 vs 7.5" in body


class FailingSink(AlertSink):
    def emit(self, signal):
        raise AlertDeliveryError("down")

    def flush(self):
        raise AlertDeliveryError("down")


class TestMultiSink:
    """A failing sink does not keep the others from delivering."""

    def test_one_failure_is_isolated(self):
        good = MagicMock(spec=AlertSink)
        sink = MultiSink([FailingSink(), good])

        sink.emit(make_signal("BTCUSDT"))
        sink.flush()

        good.emit.assert_called_once()
        good.flush.assert_called_once()

    def test_all_failing_raises(self):
        sink = MultiSink([FailingSink(), FailingSink()])
        with pytest.raises(AlertDeliveryError):
            sink.emit(make_signal("BTCUSDT"))
