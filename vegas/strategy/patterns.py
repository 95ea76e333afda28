"""Candle structure patterns — pure functions, no I/O.

Each long-side detector has a mirrored short-side twin.  Windows are
oldest-first and end with the current candle.
"""

from vegas.strategy.models import Candle


PULLBACK_BARS = 5
DOUBLE_TOLERANCE = 0.02  # swing extremes within 2 % count as "equal"


# ── 2B (failed breakout) ─────────────────────────────────────────────────


def detect_2b_bullish(window: list[Candle], lookback: int) -> bool:
    """Current candle undercuts the window's prior lowest low, then closes above it.

    Requires a full *lookback* window of at least 3 candles.
    """
    if len(window) < lookback or len(window) < 3:
        return False
    recent = window[-lookback:]
    current = recent[-1]
    lowest_low = min(c.low for c in recent[:-1])
    return current.low < lowest_low and current.close > lowest_low


def detect_2b_bearish(window: list[Candle], lookback: int) -> bool:
    """Current candle overshoots the window's prior highest high, then closes below it."""
    if len(window) < lookback or len(window) < 3:
        return False
    recent = window[-lookback:]
    current = recent[-1]
    highest_high = max(c.high for c in recent[:-1])
    return current.high > highest_high and current.close < highest_high


# ── Double bottom / top ──────────────────────────────────────────────────


def detect_double_bottom(window: list[Candle], lookback: int) -> bool:
    """Two or more swing lows within 2 % of the preceding swing low.

    A swing low is a candle whose low is strictly below both neighbours.
    Requires a full *lookback* window of at least 5 candles.
    """
    if len(window) < lookback or len(window) < 5:
        return False
    recent = window[-lookback:]

    matches = 0
    prev_swing: float | None = None
    for i in range(1, len(recent) - 1):
        low = recent[i].low
        if low < recent[i - 1].low and low < recent[i + 1].low:
            if prev_swing is not None and prev_swing != 0:
                if abs(low - prev_swing) / prev_swing < DOUBLE_TOLERANCE:
                    matches += 1
            prev_swing = low
    return matches >= 2


def detect_double_top(window: list[Candle], lookback: int) -> bool:
    """Two or more swing highs within 2 % of the preceding swing high."""
    if len(window) < lookback or len(window) < 5:
        return False
    recent = window[-lookback:]

    matches = 0
    prev_swing: float | None = None
    for i in range(1, len(recent) - 1):
        high = recent[i].high
        if high > recent[i - 1].high and high > recent[i + 1].high:
            if prev_swing is not None and prev_swing != 0:
                if abs(high - prev_swing) / prev_swing < DOUBLE_TOLERANCE:
                    matches += 1
            prev_swing = high
    return matches >= 2


# ── Pullbacks ────────────────────────────────────────────────────────────


def detect_pullback_down(window: list[Candle], ema12: float) -> bool:
    """Any of the last 5 candles traded below EMA12."""
    if len(window) < PULLBACK_BARS:
        return False
    return any(c.low < ema12 for c in window[-PULLBACK_BARS:])


def detect_pullback_up(window: list[Candle], ema12: float) -> bool:
    """Any of the last 5 candles traded above EMA12."""
    if len(window) < PULLBACK_BARS:
        return False
    return any(c.high > ema12 for c in window[-PULLBACK_BARS:])
