"""Error hierarchy for the dashboard core.

All candledesk exceptions inherit from CandleDeskError so callers can
catch the whole family at the CLI boundary.
"""

from __future__ import annotations


class CandleDeskError(Exception):
    """Base exception for all candledesk errors."""


class InvalidInputError(CandleDeskError, ValueError):
    """Malformed generator arguments (non-positive count or base price).

    Stores the offending argument name and value.
    """

    def __init__(self, name: str, value: object) -> None:
        self.name = name
        self.value = value
        super().__init__(f"Invalid {name}: {value!r}")


class AnalysisUnavailableError(CandleDeskError):
    """The external analysis collaborator failed or returned garbage.

    Recovered locally by the session with a neutral fallback result.
    """


class SessionNotStartedError(CandleDeskError):
    """Tick or analysis requested before TradingSession.start()."""
