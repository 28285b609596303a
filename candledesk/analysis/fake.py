"""FakeAnalyzer: in-memory MarketAnalyzer for tests and offline runs.

Returns a canned result (or a neutral one built from the latest close),
records every call, and can be told to fail or to wait on an event so
tests can hold a request in flight.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from candledesk.analysis.types import AnalysisResult, neutral_fallback
from candledesk.errors import AnalysisUnavailableError
from candledesk.market.types import Candle


class FakeAnalyzer:
    """In-memory MarketAnalyzer.

    Supply a canned result at construction, or set ``error`` to make every
    call raise it. When ``gate`` is set, analyze() blocks until the event
    is set.
    """

    def __init__(
        self,
        result: AnalysisResult | None = None,
        error: BaseException | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.result = result
        self.error = error
        self.gate = gate
        self.calls: list[tuple[tuple[Candle, ...], str]] = []

    async def analyze(
        self,
        candles: Sequence[Candle],
        symbol: str,
    ) -> AnalysisResult:
        self.calls.append((tuple(candles), symbol))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        if not candles:
            raise AnalysisUnavailableError("No candles to analyze")
        return neutral_fallback(candles[-1].close)

    @property
    def call_count(self) -> int:
        return len(self.calls)
