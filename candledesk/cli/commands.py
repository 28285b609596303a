"""Click CLI commands for candledesk."""

from __future__ import annotations

import asyncio
import json

import click

from candledesk.analysis.types import AnalysisSnapshot
from candledesk.config import AppConfig
from candledesk.errors import CandleDeskError
from candledesk.market.types import Candle, MarketState
from candledesk.session import TradingSession
from candledesk.utils.logging import setup_logging
from candledesk.utils.time import format_timestamp

_DIRECTION_MARK = {"up": "+", "down": "-", "flat": "="}


def _load_config(
    symbol: str | None = None,
    analyze_every: int | None = None,
    **feed_overrides: object,
) -> AppConfig:
    """AppConfig from env and .env, with CLI flags layered on top.

    Flag values go through the same validation as env vars.
    """
    try:
        data = AppConfig().model_dump()
        if symbol is not None:
            data["symbol"] = symbol
        if analyze_every is not None:
            data["analysis"]["every_ticks"] = analyze_every
        data["feed"].update({k: v for k, v in feed_overrides.items() if v is not None})
        return AppConfig(**data)
    except ValueError as e:
        raise click.ClickException(str(e)) from e


def _format_candle(candle: Candle) -> str:
    line = (
        f"{format_timestamp(candle.timestamp)}  "
        f"O {candle.open:.5f}  H {candle.high:.5f}  "
        f"L {candle.low:.5f}  C {candle.close:.5f}  V {candle.volume:>5}"
    )
    if candle.has_emas:
        line += (
            f"  EMA {candle.ema_fast:.5f} / {candle.ema_medium:.5f} / "
            f"{candle.ema_slow:.5f}"
        )
    return line


def _format_analysis(snapshot: AnalysisSnapshot) -> list[str]:
    r = snapshot.result
    tag = " (fallback)" if snapshot.fallback else ""
    return [
        f"Analysis{tag} as of {format_timestamp(snapshot.as_of)}:",
        f"  Wyckoff:     {r.wyckoff.type} phase {r.wyckoff.phase} "
        f"({r.wyckoff.confidence:.0%}) - {r.wyckoff.event}",
        f"  Target:      {r.projections.target:.5f}",
        f"  Stop Loss:   {r.projections.stop_loss:.5f}",
        f"  Logic:       {r.projections.logic}",
        f"  Sentiment:   {r.sentiment} ({r.sentiment_score:.0f}/100)",
    ]


@click.group()
def cli() -> None:
    """Candledesk: synthetic single-symbol trading dashboard."""


@cli.command()
@click.option("--symbol", default=None, help="Symbol (default: from config).")
@click.option("--count", default=None, type=int, help="Number of candles.")
@click.option("--seed", default=None, type=int, help="RNG seed for a reproducible tape.")
@click.option("--json", "as_json", is_flag=True, help="Emit JSON lines.")
def history(
    symbol: str | None,
    count: int | None,
    seed: int | None,
    as_json: bool,
) -> None:
    """Print a generated candle history with EMAs attached."""
    cfg = _load_config(symbol, seed=seed, history_size=count)
    setup_logging(level=cfg.log_level, log_format=cfg.log_format)
    session = TradingSession.from_config(cfg)

    try:
        state = session.start()
    except CandleDeskError as e:
        raise click.ClickException(str(e)) from e

    for candle in state.candles:
        if as_json:
            click.echo(json.dumps(candle.to_dict()))
        else:
            click.echo(_format_candle(candle))


@cli.command()
@click.option("--symbol", default=None, help="Symbol (default: from config).")
@click.option("--ticks", default=5, type=int, help="Ticks to run (default: 5).")
@click.option("--tick-seconds", default=None, type=float, help="Wall-clock seconds per tick.")
@click.option("--seed", default=None, type=int, help="RNG seed for a reproducible tape.")
@click.option(
    "--analyze-every",
    default=None,
    type=int,
    help="Request analysis every N ticks (0 disables).",
)
def run(
    symbol: str | None,
    ticks: int,
    tick_seconds: float | None,
    seed: int | None,
    analyze_every: int | None,
) -> None:
    """Stream live candles and print analysis results."""
    if ticks <= 0:
        raise click.ClickException(f"--ticks must be positive, got {ticks}")
    cfg = _load_config(
        symbol,
        analyze_every,
        seed=seed,
        tick_seconds=tick_seconds,
    )
    setup_logging(level=cfg.log_level, log_format=cfg.log_format)
    session = TradingSession.from_config(cfg)

    try:
        final = asyncio.run(_run_session(session, ticks))
    except CandleDeskError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"\n{final.symbol} last {final.current_price:.5f} after {final.tick_count} ticks")
    if session.analysis is not None:
        for line in _format_analysis(session.analysis):
            click.echo(line)
        if session.analysis_is_stale:
            click.echo("  (computed on an older window)")


async def _run_session(session: TradingSession, ticks: int) -> MarketState:
    state = session.start()
    click.echo(f"{state.symbol}  {_format_candle(state.latest)}")
    if session.analyze_on_start:
        session.trigger_analysis()
    async for state in session.stream(ticks):
        mark = _DIRECTION_MARK[state.direction.value]
        click.echo(f"{mark} {state.symbol}  {_format_candle(state.latest)}")
    await session.wait_for_analysis()
    return session.state


@cli.command()
def config() -> None:
    """Show current configuration."""
    cfg = _load_config()

    click.echo("=== Candledesk Configuration ===\n")

    click.echo(f"Log Level:    {cfg.log_level}")
    click.echo(f"Log Format:   {cfg.log_format}")
    click.echo(f"Symbol:       {cfg.symbol}")
    click.echo(f"Base Price:   {cfg.base_price()}")
    click.echo("")

    click.echo("[Feed]")
    click.echo(f"  History Size:   {cfg.feed.history_size}")
    click.echo(f"  Bar Interval:   {cfg.feed.bar_interval_minutes} min")
    click.echo(f"  Tick Seconds:   {cfg.feed.tick_seconds}")
    click.echo(f"  Tick Bias:      {cfg.feed.tick_bias}")
    click.echo(f"  Seed:           {cfg.feed.seed}")
    click.echo("")

    click.echo("[Indicators]")
    click.echo(
        f"  EMA Periods:    {cfg.indicators.fast}/{cfg.indicators.medium}/"
        f"{cfg.indicators.slow}"
    )
    click.echo("")

    click.echo("[Analysis]")
    click.echo(f"  Provider:       {cfg.analysis.provider}")
    click.echo(f"  Model:          {cfg.analysis.model}")
    click.echo(f"  Every Ticks:    {cfg.analysis.every_ticks}")
    click.echo(f"  API Key Set:    {bool(cfg.analysis.api_key)}")
