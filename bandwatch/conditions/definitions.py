"""Declarative condition definitions.

A rule set is an ordered list of these models, discriminated by ``kind``.
Turning a condition off is a matter of ``enabled = false`` in the config.
"""

import math
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

from bandwatch.conditions.checkers import (
    band_line,
    check_history_majority,
    check_oi_trend,
    check_price_vs_band,
    check_volume_surge,
    cross_band_line,
)
from bandwatch.db.store import InstrumentState
from bandwatch.models import CheckOutcome, Timeframe

BandName = Literal["upper", "middle", "lower"]

HOUR_MS = 60 * 60 * 1000


class _Condition(BaseModel):
    """Fields shared by every condition kind."""

    id: str = Field(..., min_length=1, description="Unique condition identifier")
    enabled: bool = Field(default=True, description="Whether the condition is active")
    description: str = Field(default="", description="Human readable summary")

    model_config = {"frozen": True, "extra": "forbid"}

    def required_bars(self) -> dict[Timeframe, int]:
        """Bars needed per timeframe for this condition to evaluate."""
        return {}

    def check(self, state: InstrumentState, as_of: int) -> CheckOutcome:
        raise NotImplementedError


class PriceVsBandCondition(_Condition):
    """Latest price strictly above a Bollinger band of some timeframe."""

    kind: Literal["price_vs_band"] = "price_vs_band"
    timeframe: Timeframe = Field(..., description="Timeframe the band is computed on")
    price_timeframe: Timeframe = Field(
        default=Timeframe.M15, description="Timeframe whose latest close is the price"
    )
    band: BandName = Field(..., description="Band to compare against")
    period: int = Field(default=400, ge=1, description="Bollinger period")
    std_dev: float = Field(default=2.0, gt=0, description="Standard deviation multiplier")

    def required_bars(self) -> dict[Timeframe, int]:
        needed = {self.price_timeframe: 1}
        needed[self.timeframe] = max(needed.get(self.timeframe, 0), self.period)
        return needed

    def check(self, state: InstrumentState, as_of: int) -> CheckOutcome:
        return check_price_vs_band(
            state.series(self.price_timeframe),
            state.series(self.timeframe),
            self.period,
            self.std_dev,
            self.band,
        )


class HistoryMajorityCondition(_Condition):
    """At least ``required`` of the last ``lookback`` closes below a band."""

    kind: Literal["history_majority"] = "history_majority"
    timeframe: Timeframe = Field(..., description="Timeframe whose closes are compared")
    band_timeframe: Optional[Timeframe] = Field(
        default=None, description="Timeframe of the band; defaults to ``timeframe``"
    )
    band: BandName = Field(..., description="Band to compare against")
    period: int = Field(default=400, ge=1, description="Bollinger period")
    std_dev: float = Field(default=2.0, gt=0, description="Standard deviation multiplier")
    lookback: int = Field(default=50, ge=1, description="Bars compared (N)")
    required: int = Field(default=25, ge=1, description="Bars that must be below (M)")

    @model_validator(mode="after")
    def _required_within_lookback(self) -> "HistoryMajorityCondition":
        if self.required > self.lookback:
            raise ValueError(
                f"required ({self.required}) cannot exceed lookback ({self.lookback})"
            )
        return self

    @property
    def reference_timeframe(self) -> Timeframe:
        return self.band_timeframe or self.timeframe

    def required_bars(self) -> dict[Timeframe, int]:
        if self.reference_timeframe == self.timeframe:
            return {self.timeframe: self.lookback + self.period - 1}
        span = self.lookback * self.timeframe.milliseconds
        extra = math.ceil(span / self.reference_timeframe.milliseconds)
        return {
            self.timeframe: self.lookback,
            self.reference_timeframe: self.period + extra,
        }

    def check(self, state: InstrumentState, as_of: int) -> CheckOutcome:
        series = state.series(self.timeframe)
        if self.reference_timeframe == self.timeframe:
            reference = band_line(self.period, self.std_dev, self.band)
        else:
            reference = cross_band_line(
                state.series(self.reference_timeframe), self.period, self.std_dev, self.band
            )
        return check_history_majority(series, reference, self.lookback, self.required)


class VolumeSurgeCondition(_Condition):
    """Latest volume times ``multiplier`` above the sum of the preceding bars."""

    kind: Literal["volume_surge"] = "volume_surge"
    timeframe: Timeframe = Field(default=Timeframe.H4, description="Timeframe checked")
    lookback: int = Field(default=6, ge=1, description="Preceding bars summed (R)")
    multiplier: float = Field(default=2.0, gt=0, description="Multiplier on latest volume (X)")

    def required_bars(self) -> dict[Timeframe, int]:
        return {self.timeframe: self.lookback + 1}

    def check(self, state: InstrumentState, as_of: int) -> CheckOutcome:
        return check_volume_surge(state.series(self.timeframe), self.lookback, self.multiplier)


class OpenInterestTrendCondition(_Condition):
    """Scaled current open interest above its trailing minimum."""

    kind: Literal["oi_trend"] = "oi_trend"
    scale: float = Field(default=0.91, gt=0, le=10, description="Scale on current OI (S)")
    window_hours: float = Field(default=72.0, gt=0, description="Trailing window (D)")

    @property
    def window_ms(self) -> int:
        return int(self.window_hours * HOUR_MS)

    def check(self, state: InstrumentState, as_of: int) -> CheckOutcome:
        return check_oi_trend(state.open_interest, self.scale, self.window_ms, now=as_of)


ConditionDefinition = Annotated[
    Union[
        PriceVsBandCondition,
        HistoryMajorityCondition,
        VolumeSurgeCondition,
        OpenInterestTrendCondition,
    ],
    Field(discriminator="kind"),
]
