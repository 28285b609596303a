"""Market layer: candle types and the synthetic feed.

Re-exports the public types for convenient imports:
    from candledesk.market import Candle, CandleGenerator
"""

from candledesk.market.generator import (
    DEFAULT_BAR_INTERVAL,
    DEFAULT_BASE_PRICE,
    DEFAULT_BASE_PRICES,
    CandleGenerator,
    NoiseModel,
    base_price_for,
)
from candledesk.market.types import Candle, MarketState, PriceDirection

__all__ = [
    "DEFAULT_BAR_INTERVAL",
    "DEFAULT_BASE_PRICE",
    "DEFAULT_BASE_PRICES",
    "Candle",
    "CandleGenerator",
    "MarketState",
    "NoiseModel",
    "PriceDirection",
    "base_price_for",
]
