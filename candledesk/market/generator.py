"""Synthetic OHLCV candle generation.

CandleGenerator produces a bootstrap history and one-step continuations.
Every candle opens at the previous close, so the tape is gap-free. All
randomness comes from an injected random.Random, which makes a seeded
generator fully reproducible.
"""

from __future__ import annotations

import math
import random
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from candledesk.errors import InvalidInputError
from candledesk.market.types import Candle
from candledesk.utils.time import history_timestamps, utc_now

log = structlog.get_logger()

DEFAULT_BAR_INTERVAL = timedelta(minutes=15)
DEFAULT_BASE_PRICE = 1.0

DEFAULT_BASE_PRICES: dict[str, float] = {
    "EUR/USD": 1.0850,
    "GBP/USD": 1.2640,
    "USD/JPY": 149.30,
    "XAU/USD": 2024.50,
}


def base_price_for(
    symbol: str,
    table: Mapping[str, float] | None = None,
    default: float = DEFAULT_BASE_PRICE,
) -> float:
    """Look up the starting price for a symbol, falling back to ``default``."""
    prices = DEFAULT_BASE_PRICES if table is None else table
    return prices.get(symbol, default)


@dataclass(frozen=True)
class NoiseModel:
    """Random-walk parameters for synthetic bars.

    Volatility is a fraction of the reference price (base price for
    history, previous close for ticks). ``tick_bias`` shifts the centre of
    the tick close distribution: 0.02 means closes are drawn from
    ``(u - 0.48) * volatility``, a slight upward skew.
    """

    history_volatility: float = 0.002
    tick_volatility: float = 0.0005
    history_wick_ratio: float = 0.5
    tick_wick_ratio: float = 0.3
    tick_bias: float = 0.02
    volume_min: int = 500
    volume_max: int = 1499

    def __post_init__(self) -> None:
        if self.history_volatility < 0 or self.tick_volatility < 0:
            raise ValueError("volatility fractions must be >= 0")
        if self.history_wick_ratio < 0 or self.tick_wick_ratio < 0:
            raise ValueError("wick ratios must be >= 0")
        if not -0.5 <= self.tick_bias <= 0.5:
            raise ValueError(f"tick_bias must be within [-0.5, 0.5], got {self.tick_bias}")
        if self.volume_min < 0 or self.volume_max < self.volume_min:
            raise ValueError(
                f"volume range invalid: [{self.volume_min}, {self.volume_max}]"
            )


class CandleGenerator:
    """Produces synthetic but internally consistent OHLCV candles.

    Stateless apart from the random source: both operations are functions
    of their arguments and the RNG stream.
    """

    def __init__(
        self,
        noise: NoiseModel | None = None,
        interval: timedelta = DEFAULT_BAR_INTERVAL,
        rng: random.Random | None = None,
    ) -> None:
        if interval <= timedelta(0):
            raise ValueError(f"interval must be positive, got {interval}")
        self.noise = noise if noise is not None else NoiseModel()
        self.interval = interval
        self._rng = rng if rng is not None else random.Random()

    @classmethod
    def seeded(
        cls,
        seed: int,
        noise: NoiseModel | None = None,
        interval: timedelta = DEFAULT_BAR_INTERVAL,
    ) -> CandleGenerator:
        """Build a generator whose tape is reproducible from ``seed``."""
        return cls(noise=noise, interval=interval, rng=random.Random(seed))

    def generate_history(
        self,
        count: int,
        base_price: float,
        now: datetime | None = None,
    ) -> list[Candle]:
        """Generate ``count`` candles ending at ``now``, opening at ``base_price``.

        Raises:
            InvalidInputError: If count <= 0 or base_price is not a positive
                finite number.
        """
        if count <= 0:
            raise InvalidInputError("count", count)
        if not math.isfinite(base_price) or base_price <= 0:
            raise InvalidInputError("base_price", base_price)

        volatility = base_price * self.noise.history_volatility
        candles: list[Candle] = []
        price = base_price
        for ts in history_timestamps(count, self.interval, now or utc_now()):
            candle = self._make_candle(
                timestamp=ts,
                open_=price,
                volatility=volatility,
                bias=0.0,
                wick_ratio=self.noise.history_wick_ratio,
            )
            candles.append(candle)
            price = candle.close

        log.debug(
            "history_generated",
            count=count,
            base_price=base_price,
            last_close=price,
        )
        return candles

    def next_candle(self, previous: Candle) -> Candle:
        """Continue the tape by one bar after ``previous``.

        Assumes ``previous`` is well-formed; the generator is its only
        legitimate producer.
        """
        return self._make_candle(
            timestamp=previous.timestamp + self.interval,
            open_=previous.close,
            volatility=previous.close * self.noise.tick_volatility,
            bias=self.noise.tick_bias,
            wick_ratio=self.noise.tick_wick_ratio,
        )

    def _make_candle(
        self,
        *,
        timestamp: datetime,
        open_: float,
        volatility: float,
        bias: float,
        wick_ratio: float,
    ) -> Candle:
        rng = self._rng
        close = open_ + (rng.random() - 0.5 + bias) * volatility
        high = max(open_, close) + rng.random() * volatility * wick_ratio
        low = min(open_, close) - rng.random() * volatility * wick_ratio
        volume = rng.randint(self.noise.volume_min, self.noise.volume_max)
        return Candle(
            timestamp=timestamp,
            open=open_,
            high=high,
            low=low,
            close=close,
            volume=volume,
        )
