"""Band snapshot, condition result and signal data models."""

from typing import Optional

from pydantic import BaseModel, Field


class BandSnapshot(BaseModel):
    """Bollinger Band values at one position of a series."""

    middle: float = Field(..., description="Simple moving average of closes")
    upper: float = Field(..., description="Middle plus K standard deviations")
    lower: float = Field(..., description="Middle minus K standard deviations")

    model_config = {"frozen": True}

    def band(self, name: str) -> float:
        """Return the named band ("upper", "middle" or "lower")."""
        return getattr(self, name)


class CheckOutcome(BaseModel):
    """What a checker measured and what it compared the measurement against."""

    passed: bool = Field(..., description="Whether the check held")
    value: float = Field(..., description="Measured value (price, count, scaled volume or OI)")
    threshold: float = Field(..., description="Value the measurement was compared with")

    model_config = {"frozen": True}


class ConditionResult(BaseModel):
    """Outcome of one condition for one instrument."""

    condition_id: str = Field(..., min_length=1, description="Condition identifier")
    passed: bool = Field(..., description="Whether the condition held")
    detail: str = Field(default="", description="Reason when the check could not run")
    value: Optional[float] = Field(default=None, description="Measured value")
    threshold: Optional[float] = Field(default=None, description="Compared threshold")

    model_config = {"frozen": True}

    @property
    def measurement(self) -> str:
        """Measured value against its threshold, or "" when nothing was measured."""
        if self.value is None or self.threshold is None:
            return ""
        return f"{self.value:.6g} vs {self.threshold:.6g}"


class Signal(BaseModel):
    """Aggregated outcome of all active conditions for one instrument."""

    instrument: str = Field(..., min_length=1, description="Instrument identifier")
    timestamp: int = Field(..., ge=0, description="Evaluation instant, epoch milliseconds")
    results: tuple[ConditionResult, ...] = Field(default=(), description="Per-condition results")
    overall: bool = Field(..., description="True iff every active condition passed")
    price: Optional[float] = Field(default=None, description="Latest close used for display")

    model_config = {"frozen": True}

    @classmethod
    def from_results(
        cls,
        instrument: str,
        timestamp: int,
        results: list[ConditionResult],
        price: Optional[float] = None,
    ) -> "Signal":
        """Build a signal, deriving ``overall`` from the results.

        An empty result list never produces a passing signal.
        """
        overall = bool(results) and all(r.passed for r in results)
        return cls(
            instrument=instrument,
            timestamp=timestamp,
            results=tuple(results),
            overall=overall,
            price=price,
        )

    @property
    def failed(self) -> list[str]:
        """Ids of the conditions that did not pass."""
        return [r.condition_id for r in self.results if not r.passed]
