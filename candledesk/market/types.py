"""Market domain types.

Frozen dataclasses for value objects. Prices are floats: the feed is
synthetic and every consumer (indicators, prompts, display) works in float.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from candledesk.utils.time import format_timestamp


class PriceDirection(str, Enum):
    """Direction of the latest close versus the previous one."""

    UP = "up"
    DOWN = "down"
    FLAT = "flat"


@dataclass(frozen=True)
class Candle:
    """OHLCV bar with optional EMA fields attached by the indicator engine."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: int
    ema_fast: float | None = None
    ema_medium: float | None = None
    ema_slow: float | None = None

    def with_emas(self, fast: float, medium: float, slow: float) -> Candle:
        """Return a copy with the three EMA fields set."""
        return replace(self, ema_fast=fast, ema_medium=medium, ema_slow=slow)

    @property
    def has_emas(self) -> bool:
        return (
            self.ema_fast is not None
            and self.ema_medium is not None
            and self.ema_slow is not None
        )

    @property
    def is_green(self) -> bool:
        return self.close >= self.open

    def is_well_formed(self) -> bool:
        """True if the OHLC relationships hold and volume is non-negative."""
        return (
            self.low <= min(self.open, self.close)
            and self.high >= max(self.open, self.close)
            and self.high >= self.low
            and self.low > 0
            and self.volume >= 0
        )

    def to_dict(self) -> dict[str, Any]:
        """Plain dict with an ISO 8601 timestamp, for display and JSON."""
        return {
            "time": format_timestamp(self.timestamp),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "ema_fast": self.ema_fast,
            "ema_medium": self.ema_medium,
            "ema_slow": self.ema_slow,
        }


@dataclass(frozen=True)
class MarketState:
    """Snapshot of a session handed to presentation code after each tick."""

    symbol: str
    current_price: float
    candles: tuple[Candle, ...]
    direction: PriceDirection = PriceDirection.FLAT
    tick_count: int = 0

    @property
    def latest(self) -> Candle:
        return self.candles[-1]
