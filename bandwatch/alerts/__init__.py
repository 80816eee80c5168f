"""Alert sinks."""

import logging

from bandwatch.alerts.console import ConsoleAlertSink
from bandwatch.alerts.email import EmailAlertSink
from bandwatch.errors import AlertDeliveryError
from bandwatch.models import Signal
from bandwatch.sources.base import AlertSink

logger = logging.getLogger(__name__)


class MultiSink(AlertSink):
    """Forwards to several sinks; one failing sink does not block the rest."""

    def __init__(self, sinks: list[AlertSink]):
        self.sinks = list(sinks)

    def _each(self, action: str, *args) -> None:
        errors = []
        for sink in self.sinks:
            try:
                getattr(sink, action)(*args)
            except AlertDeliveryError as e:
                logger.error("%s.%s failed: %s", type(sink).__name__, action, e)
                errors.append(e)
        if errors and len(errors) == len(self.sinks):
            raise AlertDeliveryError(f"All sinks failed to {action}")

    def emit(self, signal: Signal) -> None:
        self._each("emit", signal)

    def flush(self) -> None:
        self._each("flush")

    def heartbeat(self, cycles: int) -> None:
        self._each("heartbeat", cycles)


__all__ = [
    "ConsoleAlertSink",
    "EmailAlertSink",
    "MultiSink",
]
