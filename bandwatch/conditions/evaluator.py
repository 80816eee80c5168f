"""Condition set evaluation."""

import logging
from typing import Optional, Sequence

from bandwatch.conditions.definitions import ConditionDefinition
from bandwatch.db.store import InstrumentState
from bandwatch.errors import BandwatchError, InsufficientDataError
from bandwatch.models import ConditionResult, Signal, Timeframe

logger = logging.getLogger(__name__)

PRICE_TIMEFRAME = Timeframe.M15


class ConditionSetEvaluator:
    """Evaluates an ordered rule set against one instrument's series.

    Checker failures are captured as failed results and never abort the
    remaining conditions. A signal with no active conditions never passes.
    """

    def __init__(self, conditions: Sequence[ConditionDefinition], version: str = ""):
        """Initialize the evaluator.

        Args:
            conditions: Ordered condition definitions, enabled or not.
            version: Rule set version label, for logging and display.
        """
        ids = [c.id for c in conditions]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate condition ids: {', '.join(duplicates)}")
        self.conditions = tuple(conditions)
        self.version = version

    @property
    def active(self) -> tuple[ConditionDefinition, ...]:
        return tuple(c for c in self.conditions if c.enabled)

    def required_bars(self) -> dict[Timeframe, int]:
        """Bars to retain per timeframe.

        Disabled conditions count too, so re-enabling one never finds the
        series too short to have ever filled.
        """
        needed: dict[Timeframe, int] = {PRICE_TIMEFRAME: 1}
        for condition in self.conditions:
            for timeframe, bars in condition.required_bars().items():
                needed[timeframe] = max(needed.get(timeframe, 0), bars)
        return needed

    @property
    def timeframes(self) -> list[Timeframe]:
        """Timeframes the active conditions read, shortest first."""
        needed: set[Timeframe] = {PRICE_TIMEFRAME}
        for condition in self.active:
            needed.update(condition.required_bars())
        return sorted(needed, key=lambda t: t.milliseconds)

    def evaluate(self, state: InstrumentState, as_of: Optional[int] = None) -> Signal:
        """Evaluate every active condition.

        Args:
            state: The instrument's series.
            as_of: Evaluation instant in epoch milliseconds. Defaults to the
                newest timestamp in ``state`` so an unchanged snapshot always
                produces the same signal.

        Returns:
            Signal with one result per active condition.
        """
        if as_of is None:
            as_of = state.newest_timestamp() or 0

        results = []
        for condition in self.active:
            try:
                outcome = condition.check(state, as_of)
                results.append(ConditionResult(
                    condition_id=condition.id,
                    passed=outcome.passed,
                    value=outcome.value,
                    threshold=outcome.threshold,
                ))
            except InsufficientDataError as e:
                results.append(
                    ConditionResult(condition_id=condition.id, passed=False, detail=str(e))
                )
            except BandwatchError as e:
                logger.warning("%s: condition %s failed: %s", state.instrument, condition.id, e)
                results.append(
                    ConditionResult(condition_id=condition.id, passed=False, detail=str(e))
                )

        return Signal.from_results(
            instrument=state.instrument,
            timestamp=as_of,
            results=results,
            price=self._price(state),
        )

    def degraded(self, instrument: str, as_of: int, reason: str) -> Signal:
        """Signal with every active condition failed for ``reason``."""
        results = [
            ConditionResult(condition_id=c.id, passed=False, detail=reason) for c in self.active
        ]
        return Signal.from_results(instrument=instrument, timestamp=as_of, results=results)

    @staticmethod
    def _price(state: InstrumentState) -> Optional[float]:
        series = state.candles.get(PRICE_TIMEFRAME)
        if series is None or series.latest is None:
            return None
        return series.latest.close
