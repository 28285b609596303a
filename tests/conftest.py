"""Shared test fixtures for candledesk."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from candledesk.market.generator import CandleGenerator


@pytest.fixture
def generator() -> CandleGenerator:
    """Seeded generator so failures are reproducible."""
    return CandleGenerator.seeded(1234)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep CANDLEDESK_* env vars and a stray .env out of the tests."""
    for key in list(os.environ):
        if key.startswith("CANDLEDESK_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
