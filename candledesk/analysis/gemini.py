"""GeminiAnalyzer: market-structure opinion from the Gemini REST API.

Sends the most recent candles as compact JSON inside a Wyckoff / Smart
Money Concepts prompt and asks for a JSON reply constrained by a response
schema. Any transport, HTTP, or parsing failure surfaces as
AnalysisUnavailableError; the session decides what to do about it.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from candledesk.analysis.types import AnalysisResult
from candledesk.errors import AnalysisUnavailableError
from candledesk.market.types import Candle
from candledesk.utils.time import format_clock

log = structlog.get_logger()

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-3-pro-preview"
DEFAULT_CANDLE_LIMIT = 40
DEFAULT_THINKING_BUDGET = 2000

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "wyckoff": {
            "type": "OBJECT",
            "properties": {
                "type": {"type": "STRING"},
                "phase": {"type": "STRING"},
                "event": {"type": "STRING"},
                "confidence": {"type": "NUMBER"},
            },
            "required": ["type", "phase", "event", "confidence"],
        },
        "projections": {
            "type": "OBJECT",
            "properties": {
                "target": {"type": "NUMBER"},
                "stopLoss": {"type": "NUMBER"},
                "logic": {"type": "STRING"},
            },
            "required": ["target", "stopLoss", "logic"],
        },
        "sentiment": {"type": "STRING"},
        "sentimentScore": {"type": "NUMBER"},
    },
    "required": ["wyckoff", "projections", "sentiment", "sentimentScore"],
}

_PROMPT_TEMPLATE = """\
Analyze {symbol} {timeframe} timeframe using Wyckoff Theory and Smart Money Concepts.

Context:
- Focus on liquidity sweeps and structure breaks.
- Evaluate EMA 9, 21, 50 alignment.
- Determine if we are in an Accumulation or Distribution phase.

Data: {data}

Return JSON:
{{
  "wyckoff": {{ "type": "Accumulation|Distribution|...", "phase": "A|B|C|D|E", "event": "text", "confidence": 0.0-1.0 }},
  "projections": {{ "target": 0.0, "stopLoss": 0.0, "logic": "text" }},
  "sentiment": "Bullish|Bearish|Neutral",
  "sentimentScore": 0-100 (percentage of bullish pressure)
}}
"""


def compact_candles(
    candles: Sequence[Candle],
    limit: int = DEFAULT_CANDLE_LIMIT,
) -> list[dict[str, Any]]:
    """Trim to the last ``limit`` candles and shorten keys for the prompt."""
    rows: list[dict[str, Any]] = []
    for c in candles[-limit:]:
        row: dict[str, Any] = {
            "t": format_clock(c.timestamp),
            "o": f"{c.open:.5f}",
            "h": f"{c.high:.5f}",
            "l": f"{c.low:.5f}",
            "c": f"{c.close:.5f}",
            "v": c.volume,
        }
        if c.has_emas:
            row["e9"] = f"{c.ema_fast:.5f}"
            row["e21"] = f"{c.ema_medium:.5f}"
            row["e50"] = f"{c.ema_slow:.5f}"
        rows.append(row)
    return rows


def build_prompt(
    candles: Sequence[Candle],
    symbol: str,
    timeframe: str = "15m",
    limit: int = DEFAULT_CANDLE_LIMIT,
) -> str:
    data = json.dumps(compact_candles(candles, limit), separators=(",", ":"))
    return _PROMPT_TEMPLATE.format(symbol=symbol, timeframe=timeframe, data=data)


def parse_response(payload: dict[str, Any]) -> AnalysisResult:
    """Extract and validate the JSON reply from a generateContent envelope.

    Raises:
        AnalysisUnavailableError: If the envelope has no text part or the
            text does not validate as an AnalysisResult.
    """
    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise AnalysisUnavailableError(f"Unexpected response envelope: {e!r}") from e
    try:
        return AnalysisResult.model_validate_json(text)
    except ValidationError as e:
        raise AnalysisUnavailableError(
            f"Analysis reply failed validation ({e.error_count()} errors)"
        ) from e


class GeminiAnalyzer:
    """MarketAnalyzer backed by Gemini generateContent over HTTP.

    Pass ``client`` to reuse a connection pool (or a mock transport in
    tests); otherwise a short-lived AsyncClient is opened per call.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 60.0,
        candle_limit: int = DEFAULT_CANDLE_LIMIT,
        timeframe: str = "15m",
        thinking_budget: int = DEFAULT_THINKING_BUDGET,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self.candle_limit = candle_limit
        self.timeframe = timeframe
        self._thinking_budget = thinking_budget
        self._client = client

    @property
    def url(self) -> str:
        return f"{self._base_url}/models/{self.model}:generateContent"

    def build_request_body(
        self,
        candles: Sequence[Candle],
        symbol: str,
    ) -> dict[str, Any]:
        prompt = build_prompt(candles, symbol, self.timeframe, self.candle_limit)
        generation_config: dict[str, Any] = {
            "responseMimeType": "application/json",
            "responseSchema": RESPONSE_SCHEMA,
        }
        if self._thinking_budget > 0:
            generation_config["thinkingConfig"] = {
                "thinkingBudget": self._thinking_budget,
            }
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }

    async def analyze(
        self,
        candles: Sequence[Candle],
        symbol: str,
    ) -> AnalysisResult:
        if not self._api_key:
            raise AnalysisUnavailableError("Gemini API key not configured")
        if not candles:
            raise AnalysisUnavailableError("No candles to analyze")

        body = self.build_request_body(candles, symbol)
        headers = {
            "x-goog-api-key": self._api_key,
            "Content-Type": "application/json",
        }
        try:
            if self._client is not None:
                resp = await self._client.post(self.url, headers=headers, json=body)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(self.url, headers=headers, json=body)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as e:
            raise AnalysisUnavailableError(
                f"Gemini API error {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise AnalysisUnavailableError(f"Gemini request failed: {e!r}") from e
        except ValueError as e:
            raise AnalysisUnavailableError("Gemini returned non-JSON body") from e

        result = parse_response(payload)
        log.info(
            "gemini_analysis_received",
            symbol=symbol,
            model=self.model,
            sentiment=result.sentiment,
            phase=result.wyckoff.phase,
        )
        return result
