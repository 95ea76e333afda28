"""Rolling candle history — bounded FIFO used for extreme and pattern queries."""

from collections import deque
from itertools import islice

from vegas.strategy.models import Candle


class RollingHistory:
    """Keeps the most recent *maxlen* candles, oldest first.

    Args:
        maxlen: Capacity.  Older candles are discarded on append.
    """

    def __init__(self, maxlen: int) -> None:
        if maxlen <= 0:
            raise ValueError(f"maxlen must be positive, got {maxlen}")
        self._candles: deque[Candle] = deque(maxlen=maxlen)

    def append(self, candle: Candle) -> None:
        self._candles.append(candle)

    def clear(self) -> None:
        self._candles.clear()

    def __len__(self) -> int:
        return len(self._candles)

    @property
    def maxlen(self) -> int:
        return self._candles.maxlen

    # ── Queries ──────────────────────────────────────────────────────────

    def recent(self, n: int) -> list[Candle]:
        """The last *n* candles (fewer if the history is shorter)."""
        size = len(self._candles)
        if n <= 0 or size == 0:
            return []
        return list(islice(self._candles, max(0, size - n), size))

    def lowest_low(self, lookback: int) -> float:
        """Lowest low of the last *lookback* candles (clamped to what exists)."""
        window = self.recent(lookback)
        if not window:
            return 0.0
        return min(c.low for c in window)

    def highest_high(self, lookback: int) -> float:
        """Highest high of the last *lookback* candles (clamped to what exists)."""
        window = self.recent(lookback)
        if not window:
            return 0.0
        return max(c.high for c in window)

    def average_volume(self, periods: int) -> float:
        """Mean volume of the last *periods* candles; 0.0 when empty."""
        window = self.recent(periods)
        if not window:
            return 0.0
        return sum(c.volume for c in window) / len(window)

    def atr(self, periods: int) -> float:
        """Simple average true range over the last *periods* candles.

        Needs ``periods + 1`` candles (a previous close for each TR);
        returns 0.0 otherwise.
        """
        if periods <= 0 or len(self._candles) < periods + 1:
            return 0.0
        window = self.recent(periods + 1)
        total = 0.0
        for prev, curr in zip(window, window[1:]):
            total += max(
                curr.high - curr.low,
                abs(curr.high - prev.close),
                abs(curr.low - prev.close),
            )
        return total / periods
