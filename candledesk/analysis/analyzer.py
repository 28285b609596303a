"""MarketAnalyzer protocol: the external market-structure collaborator.

All analyzer implementations (Gemini, fake) must satisfy this protocol.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from candledesk.analysis.types import AnalysisResult
from candledesk.market.types import Candle


@runtime_checkable
class MarketAnalyzer(Protocol):
    """Async interface for producing an AnalysisResult from candles."""

    async def analyze(
        self,
        candles: Sequence[Candle],
        symbol: str,
    ) -> AnalysisResult:
        """Analyze a window of candles for ``symbol``.

        Args:
            candles: Time-ascending candles. Callers pass an immutable
                snapshot; implementations must not rely on it changing.
            symbol: Instrument name (e.g. "EUR/USD").

        Raises:
            AnalysisUnavailableError: If no result could be produced.
        """
        ...
