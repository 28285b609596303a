"""Exponential moving averages over a candle sequence.

EMA is a standalone accumulator with O(1) per update.
apply_emas() is the pure batch form: it recomputes all three periods over
a whole window and returns new candles. carry_emas() updates a single
appended candle from its predecessor's EMA fields, and IndicatorCalculator
does the same for a stream. All three use the same recurrence, so they
agree to the bit on an append-only tape.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from candledesk.market.types import Candle


def smoothing(period: int) -> float:
    """Smoothing constant k = 2 / (period + 1)."""
    return 2.0 / (period + 1)


class EMA:
    """Exponential Moving Average, seeded with the first raw value.

    Seeding with the first close rather than an SMA of the first
    ``period`` values trades a short warm-up bias for determinism over a
    bounded window.
    """

    __slots__ = ("_count", "_k", "_period", "_value")

    def __init__(self, period: int) -> None:
        if period < 1:
            raise ValueError(f"EMA period must be >= 1, got {period}")
        self._period = period
        self._k = smoothing(period)
        self._value: float | None = None
        self._count = 0

    @staticmethod
    def step(previous: float, value: float, k: float) -> float:
        """One application of the recurrence ema = value*k + previous*(1-k)."""
        return value * k + previous * (1 - k)

    def update(self, value: float) -> float:
        """Fold a value in and return the new EMA."""
        if self._value is None:
            self._value = value
        else:
            self._value = self.step(self._value, value, self._k)
        self._count += 1
        return self._value

    @property
    def value(self) -> float | None:
        """Current EMA, or None before the first update."""
        return self._value

    @property
    def period(self) -> int:
        return self._period

    @property
    def k(self) -> float:
        return self._k

    @property
    def count(self) -> int:
        """Number of values folded in so far."""
        return self._count


@dataclass(frozen=True)
class EMAPeriods:
    """Fast/medium/slow EMA periods."""

    fast: int = 9
    medium: int = 21
    slow: int = 50

    def __post_init__(self) -> None:
        for name in ("fast", "medium", "slow"):
            period = getattr(self, name)
            if period < 1:
                raise ValueError(f"{name} period must be >= 1, got {period}")


DEFAULT_PERIODS = EMAPeriods()


def apply_emas(
    candles: Sequence[Candle],
    periods: EMAPeriods = DEFAULT_PERIODS,
) -> list[Candle]:
    """Return new candles with all three EMAs recomputed over the sequence.

    Seeds each EMA with the first candle's close. Pure: the input is not
    touched and an empty input yields an empty list.
    """
    calc = IndicatorCalculator(periods)
    return [calc.process_candle(c) for c in candles]


def carry_emas(
    previous: Candle | None,
    candle: Candle,
    periods: EMAPeriods = DEFAULT_PERIODS,
) -> Candle:
    """Attach EMAs to ``candle`` by carrying forward ``previous``'s values.

    Equivalent to the last element of a full recomputation over the
    sequence ending in ``previous`` plus ``candle``. Without a previous
    candle (or one lacking EMAs) the EMAs are seeded from ``candle.close``.
    """
    close = candle.close
    if (
        previous is None
        or previous.ema_fast is None
        or previous.ema_medium is None
        or previous.ema_slow is None
    ):
        return candle.with_emas(close, close, close)
    return candle.with_emas(
        EMA.step(previous.ema_fast, close, smoothing(periods.fast)),
        EMA.step(previous.ema_medium, close, smoothing(periods.medium)),
        EMA.step(previous.ema_slow, close, smoothing(periods.slow)),
    )


class IndicatorCalculator:
    """Streaming EMA computation over a candle stream.

    Composes three EMA instances (fast, medium, slow).
    """

    def __init__(self, periods: EMAPeriods = DEFAULT_PERIODS) -> None:
        self.periods = periods
        self._fast = EMA(periods.fast)
        self._medium = EMA(periods.medium)
        self._slow = EMA(periods.slow)

    def process_candle(self, candle: Candle) -> Candle:
        """Fold the candle's close in and return it with EMAs attached."""
        close = candle.close
        return candle.with_emas(
            self._fast.update(close),
            self._medium.update(close),
            self._slow.update(close),
        )

    @property
    def bar_count(self) -> int:
        """Number of candles processed."""
        return self._slow.count
