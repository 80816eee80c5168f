"""Scan orchestration.

One cycle refreshes every instrument in the universe and evaluates the rule
set against it, fanning out over a thread pool. Each instrument's series are
written only by that instrument's task; the shared rate limiter inside the
data source is the only cross-task synchronisation on the data path.
"""

import logging
import math
import time
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Optional

from bandwatch.conditions.definitions import OpenInterestTrendCondition
from bandwatch.conditions.evaluator import ConditionSetEvaluator
from bandwatch.config import ScanSettings, Settings
from bandwatch.db.store import InstrumentState, SeriesStore
from bandwatch.errors import AlertDeliveryError, DataSourceError
from bandwatch.models import Signal
from bandwatch.sources.base import (
    AlertSink,
    MarketDataSource,
    OpenInterestSource,
    UniverseProvider,
)

logger = logging.getLogger(__name__)

DEFAULT_OI_RETENTION_MS = 72 * 60 * 60 * 1000


@dataclass
class InstrumentOutcome:
    """Result of one instrument's refresh-then-evaluate task."""

    instrument: str
    signal: Signal
    skipped: Optional[str] = None


@dataclass
class CycleReport:
    """Summary of one scan cycle."""

    cycle: int
    timestamp: int
    universe_size: int = 0
    signals: dict[str, Signal] = field(default_factory=dict)
    skipped: dict[str, str] = field(default_factory=dict)
    emitted: list[str] = field(default_factory=list)
    duration: float = 0.0

    @property
    def scanned(self) -> int:
        return len(self.signals) - len(self.skipped)

    @property
    def fired(self) -> list[Signal]:
        return [s for s in self.signals.values() if s.overall]

    def summary(self) -> str:
        reasons = Counter(self.skipped.values())
        reason_text = ", ".join(f"{reason}: {count}" for reason, count in sorted(reasons.items()))
        return (
            f"Cycle {self.cycle}: {self.scanned} scanned, {len(self.fired)} signals, "
            f"{len(self.skipped)} skipped" + (f" ({reason_text})" if reason_text else "")
            + f" in {self.duration:.1f}s"
        )


class ScanOrchestrator:
    """Runs scan cycles over the instrument universe."""

    def __init__(
        self,
        evaluator: ConditionSetEvaluator,
        market_data: MarketDataSource,
        open_interest: OpenInterestSource,
        universe: UniverseProvider,
        sink: AlertSink,
        scan: Optional[ScanSettings] = None,
        oi_retention_ms: int = DEFAULT_OI_RETENTION_MS,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the orchestrator.

        Args:
            evaluator: Rule set evaluator.
            market_data: Candle source.
            open_interest: Open interest source.
            universe: Instrument universe provider.
            sink: Alert sink for passing signals.
            scan: Cycle cadence, pool size and deadline settings.
            oi_retention_ms: How long open interest samples are kept.
            clock: Wall clock in seconds, injectable for tests.
            sleep: Sleep function, injectable for tests.
        """
        self.evaluator = evaluator
        self.market_data = market_data
        self.open_interest = open_interest
        self.universe = universe
        self.sink = sink
        self.scan = scan or ScanSettings()
        self.store = SeriesStore(evaluator.required_bars(), oi_retention_ms)
        self._clock = clock
        self._sleep = sleep
        self._executor = ThreadPoolExecutor(
            max_workers=self.scan.workers, thread_name_prefix="bandwatch-scan"
        )
        self._in_flight: dict[str, Future] = {}
        self._instruments: set[str] = set()
        self._cycle = 0
        self._quiet_cycles = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        market_data: MarketDataSource,
        open_interest: OpenInterestSource,
        universe: UniverseProvider,
        sink: AlertSink,
        **kwargs,
    ) -> "ScanOrchestrator":
        evaluator = ConditionSetEvaluator(settings.conditions, version=settings.rule_set_version)
        return cls(
            evaluator,
            market_data,
            open_interest,
            universe,
            sink,
            scan=settings.scan,
            oi_retention_ms=settings.oi_retention_ms,
            **kwargs,
        )

    def __enter__(self) -> "ScanOrchestrator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Stop the worker pool without waiting for stragglers."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    @property
    def needs_open_interest(self) -> bool:
        return any(isinstance(c, OpenInterestTrendCondition) for c in self.evaluator.active)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def refresh(self, state: InstrumentState, now: int) -> None:
        """Bring every series the active rules read up to ``now``.

        Raises:
            DataSourceError: If any fetch fails. Series refreshed before the
                failure keep their new bars.
        """
        for timeframe in self.evaluator.timeframes:
            series = state.series(timeframe)
            bars = self.market_data.fetch_candles(
                state.instrument, timeframe, series.refresh_since(now)
            )
            series.merge(bars)

        if self.needs_open_interest:
            oi = state.open_interest
            oi.merge(self.open_interest.fetch_open_interest(state.instrument, oi.refresh_since(now)))

    def _process(self, state: InstrumentState, now: int) -> InstrumentOutcome:
        try:
            self.refresh(state, now)
        except DataSourceError as e:
            logger.warning("%s: refresh failed (%s): %s", state.instrument, e.reason, e)
            return InstrumentOutcome(
                state.instrument,
                self.evaluator.degraded(state.instrument, now, f"{e.reason}: {e}"),
                skipped=e.reason,
            )
        return InstrumentOutcome(state.instrument, self.evaluator.evaluate(state, as_of=now))

    def check_instrument(self, instrument: str) -> Signal:
        """Refresh and evaluate a single instrument immediately.

        Raises:
            DataSourceError: If the instrument's data cannot be fetched.
        """
        now = self._now_ms()
        state = self.store.get(instrument)
        self.refresh(state, now)
        return self.evaluator.evaluate(state, as_of=now)

    def _refresh_universe(self) -> set[str]:
        due = (self._cycle - 1) % self.scan.universe_refresh_cycles == 0
        if due or not self._instruments:
            try:
                self._instruments = set(self.universe.current_universe())
            except DataSourceError as e:
                logger.error("Universe refresh failed, keeping %d instruments: %s", len(self._instruments), e)
            except Exception:
                logger.exception("Unexpected universe refresh error, keeping %d instruments", len(self._instruments))
        return self._instruments

    def run_cycle(self) -> CycleReport:
        """Run one scan cycle and emit passing signals.

        Returns:
            CycleReport with every instrument's signal and skip reasons.
        """
        self._cycle += 1
        started = self._clock()
        now = int(started * 1000)
        report = CycleReport(cycle=self._cycle, timestamp=now)

        universe = self._refresh_universe()
        added, removed = self.store.reconcile(universe)
        if added or removed:
            logger.info("Universe changed: +%d -%d instruments", len(added), len(removed))
        report.universe_size = len(universe)

        self._in_flight = {k: f for k, f in self._in_flight.items() if not f.done()}

        pending: dict[Future, str] = {}
        for instrument in sorted(universe):
            if instrument in self._in_flight:
                report.signals[instrument] = self.evaluator.degraded(
                    instrument, now, "busy: previous refresh still running"
                )
                report.skipped[instrument] = "busy"
                continue
            future = self._executor.submit(self._process, self.store.get(instrument), now)
            self._in_flight[instrument] = future
            pending[future] = instrument

        done, not_done = wait(pending, timeout=self.scan.cycle_deadline_seconds)

        for future in done:
            instrument = pending[future]
            try:
                outcome = future.result()
            except Exception:
                logger.exception("%s: unexpected error during scan", instrument)
                outcome = InstrumentOutcome(
                    instrument,
                    self.evaluator.degraded(instrument, now, "error: unexpected failure"),
                    skipped="error",
                )
            report.signals[instrument] = outcome.signal
            if outcome.skipped:
                report.skipped[instrument] = outcome.skipped

        for future in not_done:
            instrument = pending[future]
            future.cancel()
            logger.warning("%s: not finished before the cycle deadline", instrument)
            report.signals[instrument] = self.evaluator.degraded(instrument, now, "timeout")
            report.skipped[instrument] = "timeout"

        self._emit(report)
        report.duration = self._clock() - started
        logger.info(report.summary())
        return report

    def _emit(self, report: CycleReport) -> None:
        for signal in sorted(report.fired, key=lambda s: s.instrument):
            logger.info("MATCH: %s meets all %d active conditions", signal.instrument, len(signal.results))
            try:
                self.sink.emit(signal)
                report.emitted.append(signal.instrument)
            except AlertDeliveryError as e:
                logger.error("%s: alert delivery failed: %s", signal.instrument, e)

        try:
            self.sink.flush()
        except AlertDeliveryError as e:
            logger.error("Alert delivery failed: %s", e)

        if report.fired:
            self._quiet_cycles = 0
            return

        self._quiet_cycles += 1
        threshold = self.scan.heartbeat_cycles
        if threshold and self._quiet_cycles >= threshold:
            try:
                self.sink.heartbeat(self._quiet_cycles)
                logger.info("Heartbeat sent after %d quiet cycles", self._quiet_cycles)
                self._quiet_cycles = 0
            except AlertDeliveryError as e:
                logger.error("Heartbeat failed: %s", e)

    def seconds_until_next_cycle(self) -> float:
        """Time left until the next interval boundary."""
        interval = self.scan.interval_minutes * 60
        now = self._clock()
        return math.floor(now / interval) * interval + interval - now

    def run_forever(self, max_cycles: Optional[int] = None) -> None:
        """Run cycles at the configured cadence.

        Args:
            max_cycles: Stop after this many cycles (None runs until
                interrupted).
        """
        logger.info(
            "Starting scan loop: rule set %s, %d active conditions, every %d minutes",
            self.evaluator.version or "-",
            len(self.evaluator.active),
            self.scan.interval_minutes,
        )
        completed = 0
        while max_cycles is None or completed < max_cycles:
            self.run_cycle()
            completed += 1
            if max_cycles is not None and completed >= max_cycles:
                break
            delay = self.seconds_until_next_cycle()
            logger.info("Sleeping %.0fs until the next cycle", delay)
            self._sleep(delay)
