"""Pydantic Settings configuration models.

3-tier config hierarchy (lowest to highest priority):
1. Pydantic defaults (in code below)
2. .env file (loaded by Pydantic Settings)
3. Environment variables (e.g., CANDLEDESK_FEED__TICK_SECONDS=2.5)
"""

from __future__ import annotations

import re
from datetime import timedelta

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from candledesk.engine.indicators import EMAPeriods
from candledesk.market.generator import (
    DEFAULT_BASE_PRICES,
    NoiseModel,
    base_price_for,
)

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
VALID_LOG_FORMATS = frozenset({"console", "json"})
VALID_ANALYSIS_PROVIDERS = frozenset({"fake", "gemini"})

_SYMBOL_RE = re.compile(r"^[A-Z0-9]{2,10}(/[A-Z0-9]{2,10})?$")


class FeedConfig(BaseModel):
    """Synthetic feed parameters: window, cadence, and noise model."""

    history_size: int = Field(default=100, ge=1, le=5000)
    bar_interval_minutes: int = Field(default=15, ge=1, le=1440)
    tick_seconds: float = Field(default=10.0, gt=0.0, le=3600.0)
    seed: int | None = None
    default_base_price: float = Field(default=1.0, gt=0.0)
    base_prices: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_BASE_PRICES),
    )
    history_volatility: float = Field(default=0.002, ge=0.0, le=0.1)
    tick_volatility: float = Field(default=0.0005, ge=0.0, le=0.1)
    history_wick_ratio: float = Field(default=0.5, ge=0.0, le=5.0)
    tick_wick_ratio: float = Field(default=0.3, ge=0.0, le=5.0)
    tick_bias: float = Field(default=0.02, ge=-0.5, le=0.5)
    volume_min: int = Field(default=500, ge=0)
    volume_max: int = Field(default=1499, ge=0)

    @field_validator("base_prices")
    @classmethod
    def validate_base_prices(cls, v: dict[str, float]) -> dict[str, float]:
        for symbol, price in v.items():
            if price <= 0:
                raise ValueError(f"Base price for {symbol} must be > 0, got {price}")
        return v

    @model_validator(mode="after")
    def validate_volume_range(self) -> FeedConfig:
        if self.volume_max < self.volume_min:
            raise ValueError(
                f"volume_max ({self.volume_max}) must be >= "
                f"volume_min ({self.volume_min})"
            )
        return self

    @property
    def bar_interval(self) -> timedelta:
        return timedelta(minutes=self.bar_interval_minutes)

    def noise_model(self) -> NoiseModel:
        return NoiseModel(
            history_volatility=self.history_volatility,
            tick_volatility=self.tick_volatility,
            history_wick_ratio=self.history_wick_ratio,
            tick_wick_ratio=self.tick_wick_ratio,
            tick_bias=self.tick_bias,
            volume_min=self.volume_min,
            volume_max=self.volume_max,
        )


class IndicatorConfig(BaseModel):
    """EMA periods."""

    fast: int = Field(default=9, ge=2, le=500)
    medium: int = Field(default=21, ge=2, le=500)
    slow: int = Field(default=50, ge=2, le=500)

    @model_validator(mode="after")
    def validate_order(self) -> IndicatorConfig:
        if not self.fast < self.medium < self.slow:
            raise ValueError(
                f"EMA periods must satisfy fast < medium < slow, got "
                f"{self.fast}/{self.medium}/{self.slow}"
            )
        return self

    def periods(self) -> EMAPeriods:
        return EMAPeriods(fast=self.fast, medium=self.medium, slow=self.slow)


class AnalysisConfig(BaseModel):
    """Analyzer selection and scheduling."""

    provider: str = "fake"
    api_key: str = ""
    model: str = "gemini-3-pro-preview"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout_seconds: float = Field(default=60.0, gt=0.0)
    thinking_budget: int = Field(default=2000, ge=0)
    candle_limit: int = Field(default=40, ge=1, le=500)
    every_ticks: int = Field(default=0, ge=0)
    on_start: bool = True

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        v = v.lower()
        if v not in VALID_ANALYSIS_PROVIDERS:
            raise ValueError(
                f"provider must be one of {sorted(VALID_ANALYSIS_PROVIDERS)}, got {v}"
            )
        return v


class AppConfig(BaseSettings):
    """Top-level dashboard configuration.

    Env var examples:
        CANDLEDESK_LOG_LEVEL=DEBUG
        CANDLEDESK_SYMBOL=GBP/USD
        CANDLEDESK_FEED__SEED=42
        CANDLEDESK_ANALYSIS__PROVIDER=gemini
        CANDLEDESK_ANALYSIS__API_KEY=your-key
    """

    model_config = SettingsConfigDict(
        env_prefix="CANDLEDESK_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_format: str = "console"
    symbol: str = "EUR/USD"
    feed: FeedConfig = FeedConfig()
    indicators: IndicatorConfig = IndicatorConfig()
    analysis: AnalysisConfig = AnalysisConfig()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, got {v}"
            )
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in VALID_LOG_FORMATS:
            raise ValueError(
                f"log_format must be one of {sorted(VALID_LOG_FORMATS)}, got {v}"
            )
        return v

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        v = v.upper()
        if not _SYMBOL_RE.match(v):
            raise ValueError(f"Invalid symbol: {v}")
        return v

    def base_price(self, symbol: str | None = None) -> float:
        """Base price for ``symbol`` (default: the configured symbol)."""
        return base_price_for(
            symbol or self.symbol,
            self.feed.base_prices,
            self.feed.default_base_price,
        )
