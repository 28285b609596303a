"""Analysis layer: the external market-structure collaborator.

Re-exports the protocol, result models, and implementations:
    from candledesk.analysis import AnalysisResult, MarketAnalyzer
"""

from candledesk.analysis.analyzer import MarketAnalyzer
from candledesk.analysis.fake import FakeAnalyzer
from candledesk.analysis.gemini import GeminiAnalyzer
from candledesk.analysis.types import (
    AnalysisResult,
    AnalysisSnapshot,
    Projections,
    WyckoffPhase,
    neutral_fallback,
)

__all__ = [
    "AnalysisResult",
    "AnalysisSnapshot",
    "FakeAnalyzer",
    "GeminiAnalyzer",
    "MarketAnalyzer",
    "Projections",
    "WyckoffPhase",
    "neutral_fallback",
]
