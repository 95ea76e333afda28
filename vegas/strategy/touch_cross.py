"""Touch / cross tracking for the four Vegas EMA bands.

A *touch* happens when a candle reaches a band (low ≤ lower band, or
high ≥ upper band); it records the bar timestamp and resets that band's
cross counter.  A *cross* is the close moving from one side of EMA12 to
the other; each bullish cross increments the counter of every lower band
touched at least once, each bearish cross every upper band.  The slow
and the mid band on one side can therefore count the same cross.

The state is an immutable value and ``update_touch_cross`` is a pure
function of (previous state, previous candle, current candle, indicators).
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from vegas.strategy.indicator_bank import IndicatorSnapshot
from vegas.strategy.models import Candle, Direction


class Band(str, Enum):
    """The four tracked EMA bands."""

    LONG_ZONE = "long_zone"            # min(EMA576, EMA676), touched from above
    SHORT_ZONE = "short_zone"          # max(EMA576, EMA676), touched from below
    MID_LONG_ZONE = "mid_long_zone"    # min(EMA144, EMA169), touched from above
    MID_SHORT_ZONE = "mid_short_zone"  # max(EMA144, EMA169), touched from below

    @property
    def side(self) -> Direction:
        if self in (Band.LONG_ZONE, Band.MID_LONG_ZONE):
            return Direction.LONG
        return Direction.SHORT

    def level(self, snapshot: IndicatorSnapshot) -> float:
        return getattr(snapshot, self.value)

    def is_touched(self, candle: Candle, snapshot: IndicatorSnapshot) -> bool:
        if self.side is Direction.LONG:
            return candle.low <= self.level(snapshot)
        return candle.high >= self.level(snapshot)


@dataclass(frozen=True)
class BandTouch:
    """Timestamp of the last touch (0 = never) and crosses counted since."""

    last_touch: int = 0
    cross_count: int = 0

    @property
    def touched(self) -> bool:
        return self.last_touch > 0


@dataclass(frozen=True)
class TouchCrossState:
    """Touch/cross bookkeeping for all four bands plus EMA12 side memory.

    ``close_above_ema12`` is whether the previous close sat above the
    current EMA12 on the latest update.  ``was_above_ema12`` /
    ``was_below_ema12`` carry that reading from the update before, so a
    rule can ask "was price above EMA12 before this pullback".
    """

    long_zone: BandTouch = BandTouch()
    short_zone: BandTouch = BandTouch()
    mid_long_zone: BandTouch = BandTouch()
    mid_short_zone: BandTouch = BandTouch()
    close_above_ema12: Optional[bool] = None
    was_above_ema12: bool = False
    was_below_ema12: bool = False

    def band(self, band: Band) -> BandTouch:
        return getattr(self, band.value)


def is_bullish_cross(previous: Optional[Candle], candle: Candle, ema12: float) -> bool:
    """Previous close at or below EMA12, current close above it."""
    if previous is None:
        return False
    return previous.close <= ema12 < candle.close


def is_bearish_cross(previous: Optional[Candle], candle: Candle, ema12: float) -> bool:
    """Previous close at or above EMA12, current close below it."""
    if previous is None:
        return False
    return previous.close >= ema12 > candle.close


def update_touch_cross(
    state: TouchCrossState,
    previous: Optional[Candle],
    candle: Candle,
    snapshot: IndicatorSnapshot,
) -> TouchCrossState:
    """Return the state after processing *candle*.

    Touches are applied first, so a bar that both touches a band and
    crosses EMA12 leaves that band's counter at 1.
    """
    bands: dict[Band, BandTouch] = {b: state.band(b) for b in Band}

    for band in Band:
        if band.is_touched(candle, snapshot):
            bands[band] = BandTouch(last_touch=candle.timestamp, cross_count=0)

    if previous is None:
        return replace(state, **{b.value: t for b, t in bands.items()})

    ema12 = snapshot.ema12
    prev_above = previous.close > ema12
    curr_above = candle.close > ema12

    crossed_side: Optional[Direction] = None
    if not prev_above and curr_above:
        crossed_side = Direction.LONG
    elif prev_above and not curr_above:
        crossed_side = Direction.SHORT

    if crossed_side is not None:
        for band, touch in bands.items():
            if band.side is crossed_side and touch.touched:
                bands[band] = replace(touch, cross_count=touch.cross_count + 1)

    was_above = state.close_above_ema12
    return TouchCrossState(
        long_zone=bands[Band.LONG_ZONE],
        short_zone=bands[Band.SHORT_ZONE],
        mid_long_zone=bands[Band.MID_LONG_ZONE],
        mid_short_zone=bands[Band.MID_SHORT_ZONE],
        close_above_ema12=prev_above,
        was_above_ema12=was_above is True,
        was_below_ema12=was_above is False,
    )


class TouchCrossTracker:
    """Holds the running ``TouchCrossState`` for one backtest run."""

    def __init__(self) -> None:
        self._state = TouchCrossState()

    @property
    def state(self) -> TouchCrossState:
        return self._state

    def update(
        self,
        previous: Optional[Candle],
        candle: Candle,
        snapshot: IndicatorSnapshot,
    ) -> TouchCrossState:
        self._state = update_touch_cross(self._state, previous, candle, snapshot)
        return self._state

    def reset(self) -> None:
        self._state = TouchCrossState()
