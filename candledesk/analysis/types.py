"""Analysis result models.

The session treats AnalysisResult as opaque: it is produced by an external
analyzer and passed through to presentation code. Pydantic validates it
once, at the analyzer boundary, and maps the camelCase JSON keys the model
returns (stopLoss, sentimentScore) onto snake_case attributes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from candledesk.utils.time import utc_now

NEUTRAL_SENTIMENT_SCORE = 50.0


class WyckoffPhase(BaseModel):
    """Market-structure classification."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(description="Accumulation|Distribution|Re-Accumulation|...")
    phase: str = Field(description="A|B|C|D|E|Unknown")
    event: str
    confidence: float = Field(ge=0.0, le=1.0)


class Projections(BaseModel):
    """Target and invalidation levels."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    target: float
    stop_loss: float = Field(alias="stopLoss")
    logic: str


class AnalysisResult(BaseModel):
    """Structured market opinion returned by an analyzer."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    wyckoff: WyckoffPhase
    projections: Projections
    sentiment: str = Field(description="Bullish|Bearish|Neutral")
    sentiment_score: float = Field(alias="sentimentScore", ge=0.0, le=100.0)
    last_updated: datetime = Field(default_factory=utc_now, alias="lastUpdated")


def neutral_fallback(latest_close: float) -> AnalysisResult:
    """Result substituted when the analyzer fails.

    Target and stop both sit on the latest close so nothing downstream
    reads it as a trade idea.
    """
    return AnalysisResult(
        wyckoff=WyckoffPhase(
            type="Neutral",
            phase="Unknown",
            event="Scanning Market...",
            confidence=0.5,
        ),
        projections=Projections(
            target=latest_close,
            stop_loss=latest_close,
            logic="Data sync in progress",
        ),
        sentiment="Neutral",
        sentiment_score=NEUTRAL_SENTIMENT_SCORE,
    )


@dataclass(frozen=True)
class AnalysisSnapshot:
    """An applied analysis result tagged with the window it was computed on.

    ``as_of`` is the timestamp of the newest candle in the snapshot handed
    to the analyzer. ``fallback`` is True when the neutral result was
    substituted for a failed call.
    """

    result: AnalysisResult
    as_of: datetime
    symbol: str
    fallback: bool = False

    def is_stale(self, latest: datetime) -> bool:
        """True if the window has moved past the candles this was computed on."""
        return latest > self.as_of
