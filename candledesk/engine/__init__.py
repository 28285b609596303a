"""Engine layer: rolling window and indicator calculation."""

from candledesk.engine.indicators import (
    DEFAULT_PERIODS,
    EMA,
    EMAPeriods,
    IndicatorCalculator,
    apply_emas,
    carry_emas,
    smoothing,
)
from candledesk.engine.window import CandleWindow

__all__ = [
    "DEFAULT_PERIODS",
    "EMA",
    "CandleWindow",
    "EMAPeriods",
    "IndicatorCalculator",
    "apply_emas",
    "carry_emas",
    "smoothing",
]
