"""Bounded rolling window of candles.

The session owns exactly one CandleWindow. Generator and indicator code
never see it directly: they receive snapshot() tuples, so a window that
keeps moving on later ticks cannot change data already handed out.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator

from candledesk.market.types import Candle


class CandleWindow:
    """Ring buffer of the most recent candles, oldest first."""

    __slots__ = ("_buf", "_max_size")

    def __init__(self, max_size: int, candles: Iterable[Candle] = ()) -> None:
        if max_size < 1:
            raise ValueError(f"Window size must be >= 1, got {max_size}")
        self._max_size = max_size
        self._buf: deque[Candle] = deque(candles, maxlen=max_size)

    def append(self, candle: Candle) -> Candle | None:
        """Append the newest candle. Returns the evicted candle, if any."""
        latest = self.latest
        if latest is not None and candle.timestamp <= latest.timestamp:
            raise ValueError(
                f"Candle at {candle.timestamp.isoformat()} is not newer than "
                f"{latest.timestamp.isoformat()}"
            )
        evicted = self._buf[0] if len(self._buf) == self._max_size else None
        self._buf.append(candle)
        return evicted

    def replace(self, candles: Iterable[Candle]) -> None:
        """Swap in a freshly computed sequence, keeping the newest max_size."""
        self._buf = deque(candles, maxlen=self._max_size)

    def snapshot(self) -> tuple[Candle, ...]:
        """Immutable copy of the current contents."""
        return tuple(self._buf)

    @property
    def latest(self) -> Candle | None:
        return self._buf[-1] if self._buf else None

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def is_full(self) -> bool:
        return len(self._buf) == self._max_size

    def __len__(self) -> int:
        return len(self._buf)

    def __iter__(self) -> Iterator[Candle]:
        return iter(self.snapshot())
