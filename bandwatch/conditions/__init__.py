"""Screening conditions: checkers, definitions and the rule set evaluator."""

from bandwatch.conditions.checkers import (
    band_line,
    check_history_majority,
    check_oi_trend,
    check_price_vs_band,
    check_volume_surge,
    cross_band_line,
)
from bandwatch.conditions.definitions import (
    ConditionDefinition,
    HistoryMajorityCondition,
    OpenInterestTrendCondition,
    PriceVsBandCondition,
    VolumeSurgeCondition,
)
from bandwatch.conditions.evaluator import ConditionSetEvaluator

__all__ = [
    "band_line",
    "check_history_majority",
    "check_oi_trend",
    "check_price_vs_band",
    "check_volume_surge",
    "cross_band_line",
    "ConditionDefinition",
    "HistoryMajorityCondition",
    "OpenInterestTrendCondition",
    "PriceVsBandCondition",
    "VolumeSurgeCondition",
    "ConditionSetEvaluator",
]
