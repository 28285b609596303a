"""Tests for TradingSession: window ownership, ticks, and the analysis slot."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from candledesk.analysis.fake import FakeAnalyzer
from candledesk.analysis.gemini import GeminiAnalyzer
from candledesk.config import AnalysisConfig, AppConfig
from candledesk.engine.indicators import apply_emas
from candledesk.errors import AnalysisUnavailableError, SessionNotStartedError
from candledesk.market.generator import CandleGenerator, NoiseModel
from candledesk.market.types import PriceDirection
from candledesk.session import TradingSession, build_analyzer
from candledesk.utils.logging import get_session_id
from tests.factories import make_result

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def _session(
    analyzer: FakeAnalyzer | None = None,
    *,
    history_size: int = 20,
    seed: int = 7,
    noise: NoiseModel | None = None,
    tick_seconds: float = 0.001,
    analysis_every_ticks: int = 0,
    analyze_on_start: bool = False,
) -> TradingSession:
    return TradingSession(
        symbol="EUR/USD",
        generator=CandleGenerator.seeded(seed, noise=noise),
        analyzer=analyzer if analyzer is not None else FakeAnalyzer(),
        base_price=1.0850,
        history_size=history_size,
        tick_seconds=tick_seconds,
        analysis_every_ticks=analysis_every_ticks,
        analyze_on_start=analyze_on_start,
    )


class TestStart:
    """Bootstrap history fills the window."""

    def test_window_filled_with_emas(self) -> None:
        session = _session(history_size=30)
        state = session.start(now=NOW)
        assert len(state.candles) == 30
        assert all(c.has_emas for c in state.candles)
        assert state.candles[0].open == 1.0850
        assert state.current_price == state.candles[-1].close
        assert state.tick_count == 0
        assert state.direction == PriceDirection.FLAT

    def test_is_started(self) -> None:
        session = _session()
        assert session.is_started is False
        session.start(now=NOW)
        assert session.is_started is True

    def test_sets_session_id_context(self) -> None:
        session = _session()
        session.start(now=NOW)
        assert get_session_id() == session.session_id

    def test_invalid_tick_seconds(self) -> None:
        with pytest.raises(ValueError, match="tick_seconds"):
            _session(tick_seconds=0)

    def test_invalid_analysis_cadence(self) -> None:
        with pytest.raises(ValueError, match="analysis_every_ticks"):
            _session(analysis_every_ticks=-1)


class TestTick:
    """One generated candle per tick, oldest evicted, EMAs recomputed."""

    def test_tick_before_start_raises(self) -> None:
        with pytest.raises(SessionNotStartedError):
            _session().tick()

    def test_state_before_start_raises(self) -> None:
        with pytest.raises(SessionNotStartedError):
            _ = _session().state

    def test_window_size_constant(self) -> None:
        session = _session(history_size=10)
        session.start(now=NOW)
        for _ in range(25):
            state = session.tick()
            assert len(state.candles) == 10

    def test_new_candle_continues_tape(self) -> None:
        session = _session()
        before = session.start(now=NOW)
        after = session.tick()
        assert after.latest.open == before.latest.close
        assert after.latest.timestamp == before.latest.timestamp + timedelta(minutes=15)

    def test_oldest_evicted(self) -> None:
        session = _session(history_size=5)
        before = session.start(now=NOW)
        after = session.tick()
        assert after.candles[0].timestamp == before.candles[1].timestamp

    def test_emas_recomputed_over_new_window(self) -> None:
        session = _session(history_size=15)
        session.start(now=NOW)
        state = session.tick()
        assert list(state.candles) == apply_emas(state.candles)

    def test_tick_count_and_price(self) -> None:
        session = _session()
        session.start(now=NOW)
        session.tick()
        state = session.tick()
        assert state.tick_count == 2
        assert state.current_price == state.latest.close

    def test_direction_up(self) -> None:
        session = _session(noise=NoiseModel(tick_bias=0.5))
        session.start(now=NOW)
        assert session.tick().direction == PriceDirection.UP

    def test_direction_down(self) -> None:
        session = _session(noise=NoiseModel(tick_bias=-0.5))
        session.start(now=NOW)
        assert session.tick().direction == PriceDirection.DOWN

    def test_direction_flat(self) -> None:
        session = _session(noise=NoiseModel(tick_volatility=0.0))
        session.start(now=NOW)
        assert session.tick().direction == PriceDirection.FLAT

    def test_state_snapshot_unaffected_by_later_ticks(self) -> None:
        session = _session()
        session.start(now=NOW)
        state = session.tick()
        candles = state.candles
        session.tick()
        assert state.candles is candles
        assert state.latest != session.state.latest


class TestRequestAnalysis:
    """Single-slot analysis requests with fallback."""

    async def test_before_start_raises(self) -> None:
        with pytest.raises(SessionNotStartedError):
            await _session().request_analysis()

    async def test_applies_result(self) -> None:
        result = make_result()
        analyzer = FakeAnalyzer(result=result)
        session = _session(analyzer)
        state = session.start(now=NOW)

        snapshot = await session.request_analysis()

        assert snapshot is not None
        assert snapshot.result == result
        assert snapshot.fallback is False
        assert snapshot.as_of == state.latest.timestamp
        assert snapshot.symbol == "EUR/USD"
        assert session.analysis is snapshot
        assert session.analysis_is_stale is False

    async def test_passes_immutable_snapshot(self) -> None:
        analyzer = FakeAnalyzer(result=make_result())
        session = _session(analyzer)
        state = session.start(now=NOW)

        await session.request_analysis()

        candles, symbol = analyzer.calls[0]
        assert isinstance(candles, tuple)
        assert candles == state.candles
        assert symbol == "EUR/USD"

    async def test_unavailable_substitutes_fallback(self) -> None:
        analyzer = FakeAnalyzer(error=AnalysisUnavailableError("quota exceeded"))
        session = _session(analyzer)
        state = session.start(now=NOW)

        snapshot = await session.request_analysis()

        assert snapshot is not None
        assert snapshot.fallback is True
        r = snapshot.result
        assert r.sentiment == "Neutral"
        assert r.sentiment_score == 50
        assert r.wyckoff.phase == "Unknown"
        assert r.projections.target == state.latest.close
        assert r.projections.stop_loss == state.latest.close

    async def test_unexpected_error_substitutes_fallback(self) -> None:
        analyzer = FakeAnalyzer(error=RuntimeError("boom"))
        session = _session(analyzer)
        session.start(now=NOW)

        snapshot = await session.request_analysis()

        assert snapshot is not None
        assert snapshot.fallback is True
        assert session.analysis_in_flight is False

    async def test_second_request_ignored_while_in_flight(self) -> None:
        gate = asyncio.Event()
        analyzer = FakeAnalyzer(result=make_result(), gate=gate)
        session = _session(analyzer)
        session.start(now=NOW)

        first = asyncio.create_task(session.request_analysis())
        await asyncio.sleep(0)
        assert session.analysis_in_flight is True

        assert await session.request_analysis() is None
        assert analyzer.call_count == 1

        gate.set()
        snapshot = await first
        assert snapshot is not None
        assert session.analysis_in_flight is False

    async def test_slot_frees_after_completion(self) -> None:
        analyzer = FakeAnalyzer(result=make_result())
        session = _session(analyzer)
        session.start(now=NOW)
        await session.request_analysis()
        await session.request_analysis()
        assert analyzer.call_count == 2

    async def test_late_result_applied_and_tagged_stale(self) -> None:
        gate = asyncio.Event()
        analyzer = FakeAnalyzer(result=make_result(), gate=gate)
        session = _session(analyzer, history_size=10)
        start_state = session.start(now=NOW)

        pending = asyncio.create_task(session.request_analysis())
        await asyncio.sleep(0)
        session.tick()
        session.tick()
        gate.set()
        snapshot = await pending

        assert snapshot is not None
        assert snapshot.as_of == start_state.latest.timestamp
        assert session.analysis is snapshot
        assert session.analysis_is_stale is True
        # The analyzer saw the window as it was at request time.
        seen, _ = analyzer.calls[0]
        assert seen == start_state.candles
        assert seen != session.state.candles

    async def test_trigger_analysis_runs_in_background(self) -> None:
        analyzer = FakeAnalyzer(result=make_result())
        session = _session(analyzer)
        session.start(now=NOW)

        task = session.trigger_analysis()
        assert task is not None
        assert session.trigger_analysis() is None

        await session.wait_for_analysis()
        assert analyzer.call_count == 1
        assert session.analysis is not None


class TestRunLoop:
    """Timer-driven tick loop."""

    async def test_run_fixed_ticks(self) -> None:
        session = _session(history_size=12)
        state = await session.run(ticks=3)
        assert state.tick_count == 3
        assert len(state.candles) == 12

    async def test_stream_yields_each_tick(self) -> None:
        session = _session()
        counts = [state.tick_count async for state in session.stream(ticks=4)]
        assert counts == [1, 2, 3, 4]

    async def test_analysis_on_start(self) -> None:
        analyzer = FakeAnalyzer(result=make_result())
        session = _session(analyzer, analyze_on_start=True)
        await session.run(ticks=1)
        assert analyzer.call_count == 1
        assert session.analysis is not None

    async def test_periodic_analysis(self) -> None:
        analyzer = FakeAnalyzer(result=make_result())
        session = _session(analyzer, analysis_every_ticks=2, analyze_on_start=True)
        await session.run(ticks=4)
        # Start, tick 2, tick 4.
        assert analyzer.call_count == 3

    async def test_no_analysis_when_disabled(self) -> None:
        analyzer = FakeAnalyzer(result=make_result())
        session = _session(analyzer)
        await session.run(ticks=3)
        assert analyzer.call_count == 0
        assert session.analysis is None

    async def test_stop_ends_open_ended_stream(self) -> None:
        session = _session()
        seen = 0
        async for _ in session.stream():
            seen += 1
            if seen == 3:
                session.stop()
        assert seen == 3
        assert session.state.tick_count == 3

    async def test_sleeps_tick_seconds_between_ticks(self) -> None:
        session = _session(tick_seconds=0.05)
        loop = asyncio.get_running_loop()
        t0 = loop.time()
        await session.run(ticks=2)
        assert loop.time() - t0 >= 0.09


@pytest.mark.usefixtures("clean_env")
class TestFromConfig:
    """Wiring a session from AppConfig."""

    def test_defaults(self) -> None:
        session = TradingSession.from_config(AppConfig())
        assert session.symbol == "EUR/USD"
        assert session.base_price == pytest.approx(1.0850)
        assert session.history_size == 100
        assert session.tick_seconds == pytest.approx(10.0)
        assert (session.periods.fast, session.periods.medium, session.periods.slow) == (
            9,
            21,
            50,
        )
        assert isinstance(session.analyzer, FakeAnalyzer)

    def test_seed_makes_history_reproducible(self) -> None:
        config = AppConfig(feed={"seed": 42, "history_size": 25})
        a = TradingSession.from_config(config).start(now=NOW)
        b = TradingSession.from_config(config).start(now=NOW)
        assert a.candles == b.candles

    def test_unknown_symbol_uses_default_base_price(self) -> None:
        session = TradingSession.from_config(AppConfig(symbol="BTC/USD"))
        assert session.base_price == pytest.approx(1.0)

    def test_bar_interval_from_config(self) -> None:
        config = AppConfig(feed={"seed": 1, "bar_interval_minutes": 5, "history_size": 3})
        state = TradingSession.from_config(config).start(now=NOW)
        assert state.candles[1].timestamp - state.candles[0].timestamp == timedelta(minutes=5)

    def test_injected_analyzer_wins(self) -> None:
        analyzer = FakeAnalyzer(result=make_result())
        session = TradingSession.from_config(AppConfig(), analyzer=analyzer)
        assert session.analyzer is analyzer


class TestBuildAnalyzer:
    """Analyzer selection by provider."""

    def test_fake(self) -> None:
        assert isinstance(build_analyzer(AnalysisConfig(provider="fake")), FakeAnalyzer)

    def test_gemini(self) -> None:
        analyzer = build_analyzer(
            AnalysisConfig(provider="gemini", api_key="k", model="gemini-2.5-flash"),
        )
        assert isinstance(analyzer, GeminiAnalyzer)
        assert analyzer.model == "gemini-2.5-flash"
