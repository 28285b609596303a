"""TradingSession: owns the rolling window and drives the dashboard.

One session per symbol. The session is the only code that mutates the
window: each tick appends one generated candle (evicting the oldest) and
recomputes the EMAs over the new sequence. Analysis requests receive an
immutable snapshot of the window and run in the background; at most one
is in flight at a time and extra requests are ignored, not queued.

A result that arrives after newer ticks is still applied, but it carries
the timestamp of the last candle it saw so callers can check staleness.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator
from datetime import datetime

import structlog

from candledesk.analysis.analyzer import MarketAnalyzer
from candledesk.analysis.fake import FakeAnalyzer
from candledesk.analysis.gemini import GeminiAnalyzer
from candledesk.analysis.types import AnalysisSnapshot, neutral_fallback
from candledesk.config import AnalysisConfig, AppConfig
from candledesk.engine.indicators import DEFAULT_PERIODS, EMAPeriods, apply_emas
from candledesk.engine.window import CandleWindow
from candledesk.errors import AnalysisUnavailableError, SessionNotStartedError
from candledesk.market.generator import CandleGenerator
from candledesk.market.types import MarketState, PriceDirection
from candledesk.utils.logging import set_session_id

log = structlog.get_logger()


def build_analyzer(config: AnalysisConfig) -> MarketAnalyzer:
    """Create the analyzer named by ``config.provider``."""
    if config.provider == "gemini":
        return GeminiAnalyzer(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            timeout_seconds=config.timeout_seconds,
            candle_limit=config.candle_limit,
            thinking_budget=config.thinking_budget,
        )
    return FakeAnalyzer()


class TradingSession:
    """Rolling candle window plus a tick loop and an analysis slot."""

    def __init__(
        self,
        symbol: str,
        generator: CandleGenerator,
        analyzer: MarketAnalyzer,
        *,
        base_price: float,
        history_size: int = 100,
        periods: EMAPeriods = DEFAULT_PERIODS,
        tick_seconds: float = 10.0,
        analysis_every_ticks: int = 0,
        analyze_on_start: bool = True,
    ) -> None:
        if tick_seconds <= 0:
            raise ValueError(f"tick_seconds must be > 0, got {tick_seconds}")
        if analysis_every_ticks < 0:
            raise ValueError(
                f"analysis_every_ticks must be >= 0, got {analysis_every_ticks}"
            )
        self.symbol = symbol
        self.generator = generator
        self.analyzer = analyzer
        self.base_price = base_price
        self.history_size = history_size
        self.periods = periods
        self.tick_seconds = tick_seconds
        self.analysis_every_ticks = analysis_every_ticks
        self.analyze_on_start = analyze_on_start
        self.session_id = uuid.uuid4().hex[:12]

        self._window: CandleWindow | None = None
        self._tick_count = 0
        self._direction = PriceDirection.FLAT
        self._analysis: AnalysisSnapshot | None = None
        self._analysis_in_flight = False
        self._analysis_tasks: set[asyncio.Task[AnalysisSnapshot | None]] = set()
        self._stop_requested = False

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        analyzer: MarketAnalyzer | None = None,
        generator: CandleGenerator | None = None,
    ) -> TradingSession:
        """Wire a session from AppConfig, building defaults where not given."""
        feed = config.feed
        if generator is None:
            if feed.seed is not None:
                generator = CandleGenerator.seeded(
                    feed.seed,
                    noise=feed.noise_model(),
                    interval=feed.bar_interval,
                )
            else:
                generator = CandleGenerator(
                    noise=feed.noise_model(),
                    interval=feed.bar_interval,
                )
        return cls(
            symbol=config.symbol,
            generator=generator,
            analyzer=analyzer if analyzer is not None else build_analyzer(config.analysis),
            base_price=config.base_price(),
            history_size=feed.history_size,
            periods=config.indicators.periods(),
            tick_seconds=feed.tick_seconds,
            analysis_every_ticks=config.analysis.every_ticks,
            analyze_on_start=config.analysis.on_start,
        )

    # --- Window ---

    def start(self, now: datetime | None = None) -> MarketState:
        """Generate the bootstrap history and fill the window."""
        set_session_id(self.session_id)
        history = self.generator.generate_history(
            self.history_size,
            self.base_price,
            now=now,
        )
        self._window = CandleWindow(self.history_size, apply_emas(history, self.periods))
        self._tick_count = 0
        self._direction = PriceDirection.FLAT
        self._analysis = None
        self._stop_requested = False
        latest = history[-1]
        log.info(
            "session_started",
            symbol=self.symbol,
            history_size=len(history),
            base_price=self.base_price,
            last_close=latest.close,
            last_time=latest.timestamp.isoformat(),
        )
        return self.state

    def tick(self) -> MarketState:
        """Append one generated candle, evict the oldest, recompute EMAs."""
        window = self._require_window()
        previous = window.latest
        assert previous is not None  # window is never empty once started
        candle = self.generator.next_candle(previous)
        window.append(candle)
        window.replace(apply_emas(window.snapshot(), self.periods))

        if candle.close > previous.close:
            self._direction = PriceDirection.UP
        elif candle.close < previous.close:
            self._direction = PriceDirection.DOWN
        else:
            self._direction = PriceDirection.FLAT
        self._tick_count += 1

        log.debug(
            "candle_generated",
            symbol=self.symbol,
            tick=self._tick_count,
            time=candle.timestamp.isoformat(),
            close=candle.close,
            direction=self._direction.value,
        )
        return self.state

    @property
    def is_started(self) -> bool:
        return self._window is not None

    @property
    def state(self) -> MarketState:
        window = self._require_window()
        candles = window.snapshot()
        return MarketState(
            symbol=self.symbol,
            current_price=candles[-1].close,
            candles=candles,
            direction=self._direction,
            tick_count=self._tick_count,
        )

    def _require_window(self) -> CandleWindow:
        if self._window is None:
            raise SessionNotStartedError(
                f"Session for {self.symbol} has not been started"
            )
        return self._window

    # --- Analysis ---

    @property
    def analysis(self) -> AnalysisSnapshot | None:
        """Most recently applied analysis, or None."""
        return self._analysis

    @property
    def analysis_in_flight(self) -> bool:
        return self._analysis_in_flight

    @property
    def analysis_is_stale(self) -> bool:
        """True if the window has ticked past the applied analysis."""
        if self._analysis is None or self._window is None:
            return False
        latest = self._window.latest
        return latest is not None and self._analysis.is_stale(latest.timestamp)

    async def request_analysis(self) -> AnalysisSnapshot | None:
        """Analyze the current window, or return None if a request is in flight.

        Analyzer failures never propagate: the neutral fallback is applied
        instead.
        """
        window = self._require_window()
        if self._analysis_in_flight:
            log.info("analysis_skipped_busy", symbol=self.symbol)
            return None

        self._analysis_in_flight = True
        candles = window.snapshot()
        as_of = candles[-1].timestamp
        fallback = False
        try:
            log.info("analysis_requested", symbol=self.symbol, candle_count=len(candles))
            try:
                result = await self.analyzer.analyze(candles, self.symbol)
            except AnalysisUnavailableError as e:
                log.warning("analysis_failed", symbol=self.symbol, error=str(e))
                result = neutral_fallback(candles[-1].close)
                fallback = True
            except Exception:
                log.exception("analysis_failed_unexpected", symbol=self.symbol)
                result = neutral_fallback(candles[-1].close)
                fallback = True
        finally:
            self._analysis_in_flight = False

        snapshot = AnalysisSnapshot(
            result=result,
            as_of=as_of,
            symbol=self.symbol,
            fallback=fallback,
        )
        self._analysis = snapshot
        log.info(
            "analysis_completed",
            symbol=self.symbol,
            fallback=fallback,
            stale=self.analysis_is_stale,
            sentiment=result.sentiment,
            sentiment_score=result.sentiment_score,
        )
        return snapshot

    def trigger_analysis(self) -> asyncio.Task[AnalysisSnapshot | None] | None:
        """Start a background analysis unless one is already pending or in flight."""
        if self._analysis_in_flight or self._analysis_tasks:
            log.info("analysis_skipped_busy", symbol=self.symbol)
            return None
        task = asyncio.create_task(self.request_analysis())
        self._analysis_tasks.add(task)
        task.add_done_callback(self._analysis_tasks.discard)
        return task

    async def wait_for_analysis(self) -> None:
        """Wait for any background analysis to finish."""
        if self._analysis_tasks:
            await asyncio.gather(*self._analysis_tasks)

    # --- Loop ---

    async def stream(self, ticks: int | None = None) -> AsyncIterator[MarketState]:
        """Yield the state after each tick, sleeping tick_seconds in between.

        Starts the session if needed. ``ticks=None`` runs until stop().
        """
        if not self.is_started:
            self.start()
            if self.analyze_on_start:
                self.trigger_analysis()

        emitted = 0
        while not self._stop_requested and (ticks is None or emitted < ticks):
            await asyncio.sleep(self.tick_seconds)
            if self._stop_requested:
                break
            state = self.tick()
            emitted += 1
            if (
                self.analysis_every_ticks
                and self._tick_count % self.analysis_every_ticks == 0
            ):
                self.trigger_analysis()
            yield state

    async def run(self, ticks: int | None = None) -> MarketState:
        """Drive the tick loop to completion and return the final state."""
        async for _ in self.stream(ticks):
            pass
        await self.wait_for_analysis()
        log.info("session_stopped", symbol=self.symbol, ticks=self._tick_count)
        return self.state

    def stop(self) -> None:
        """Ask the tick loop to exit after the current sleep."""
        self._stop_requested = True
