"""Technical indicators — incremental EMA, ADX, and market regime.

Each indicator is updated once per candle in O(1) and exposes a ``ready``
flag.  Value queries before warm-up return ``0.0`` rather than failing.
"""

import math
from collections import deque
from enum import Enum

from vegas.config import ConfigError
from vegas.strategy.models import Candle


def _true_range(candle: Candle, prev_close: float) -> float:
    """TR = max(high - low, |high - prev_close|, |low - prev_close|)."""
    return max(
        candle.high - candle.low,
        abs(candle.high - prev_close),
        abs(candle.low - prev_close),
    )


# ── EMA ──────────────────────────────────────────────────────────────────


class EMA:
    """Exponential Moving Average seeded with the SMA of the first *period* prices.

    After the seed: ``value += (price - value) × 2 / (period + 1)``.
    """

    def __init__(self, period: int) -> None:
        if period <= 0:
            raise ConfigError(f"EMA period must be positive, got {period}")
        self._period = period
        self._multiplier = 2.0 / (period + 1)
        self.reset()

    def update(self, price: float) -> None:
        if not self._ready:
            self._sum += price
            self._count += 1
            if self._count >= self._period:
                self._value = self._sum / self._period
                self._ready = True
        else:
            self._value = (price - self._value) * self._multiplier + self._value

    def reset(self) -> None:
        self._value = 0.0
        self._sum = 0.0
        self._count = 0
        self._ready = False

    @property
    def value(self) -> float:
        return self._value if self._ready else 0.0

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def period(self) -> int:
        return self._period


# ── ADX ──────────────────────────────────────────────────────────────────

SLOPE_LOOKBACK = 5


class ADX:
    """Average Directional Index, updated incrementally.

    Algorithm:
        1. The first candle only records previous high / low / close.
        2. While fewer than *period* bars have been seen, TR, +DM and −DM
           are running simple averages.
        3. Afterwards they are Wilder-smoothed with α = 1 / period, and
           +DI / −DI = 100 × DM / TR, DX = 100 × |+DI − −DI| / (+DI + −DI).
        4. ADX is seeded with the first DX and α-smoothed from then on.

    A zero TR or zero DI sum leaves ADX and DI at their previous values
    for that bar.  The last ``SLOPE_LOOKBACK + 1`` ADX values give the slope.
    """

    def __init__(self, period: int = 14) -> None:
        if period <= 0:
            raise ConfigError(f"ADX period must be positive, got {period}")
        self._period = period
        self._alpha = 1.0 / period
        self._history: deque[float] = deque(maxlen=SLOPE_LOOKBACK + 1)
        self.reset()

    # ── Mutation ─────────────────────────────────────────────────────────

    def update(self, candle: Candle) -> None:
        if self._count == 0:
            self._remember(candle)
            self._count += 1
            return

        tr = _true_range(candle, self._prev_close)
        up_move = candle.high - self._prev_high
        down_move = self._prev_low - candle.low
        plus_dm = up_move if (up_move > down_move and up_move > 0) else 0.0
        minus_dm = down_move if (down_move > up_move and down_move > 0) else 0.0

        if self._count < self._period:
            n = self._count
            self._tr = (self._tr * (n - 1) + tr) / n
            self._plus_dm = (self._plus_dm * (n - 1) + plus_dm) / n
            self._minus_dm = (self._minus_dm * (n - 1) + minus_dm) / n
        else:
            a = self._alpha
            self._tr = self._tr - self._tr * a + tr * a
            self._plus_dm = self._plus_dm - self._plus_dm * a + plus_dm * a
            self._minus_dm = self._minus_dm - self._minus_dm * a + minus_dm * a
            self._update_adx()

        self._remember(candle)
        self._count += 1

    def reset(self) -> None:
        self._history.clear()
        self._count = 0
        self._prev_high = 0.0
        self._prev_low = 0.0
        self._prev_close = 0.0
        self._tr = 0.0
        self._plus_dm = 0.0
        self._minus_dm = 0.0
        self._plus_di = 0.0
        self._minus_di = 0.0
        self._dx = 0.0
        self._adx = 0.0
        self._ready = False

    def _remember(self, candle: Candle) -> None:
        self._prev_high = candle.high
        self._prev_low = candle.low
        self._prev_close = candle.close

    def _update_adx(self) -> None:
        if self._tr <= 0:
            return
        plus_di = 100.0 * self._plus_dm / self._tr
        minus_di = 100.0 * self._minus_dm / self._tr
        di_sum = plus_di + minus_di
        if di_sum <= 0:
            return

        self._plus_di = plus_di
        self._minus_di = minus_di
        self._dx = 100.0 * abs(plus_di - minus_di) / di_sum
        if not self._ready:
            self._adx = self._dx
            self._ready = True
        else:
            self._adx = self._adx - self._adx * self._alpha + self._dx * self._alpha
        self._history.append(self._adx)

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def value(self) -> float:
        return self._adx if self._ready else 0.0

    @property
    def plus_di(self) -> float:
        return self._plus_di if self._ready else 0.0

    @property
    def minus_di(self) -> float:
        return self._minus_di if self._ready else 0.0

    @property
    def slope(self) -> float:
        """ADX change per bar across the stored history (0 with < 2 values)."""
        n = len(self._history)
        if n < 2:
            return 0.0
        return (self._history[-1] - self._history[0]) / (n - 1)

    @property
    def is_slope_up(self) -> bool:
        return self.slope > 0

    @property
    def is_slope_down(self) -> bool:
        return self.slope < 0

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def period(self) -> int:
        return self._period


# ── Market regime ────────────────────────────────────────────────────────


class Regime(str, Enum):
    STRONG_TREND = "STRONG_TREND"
    MODERATE_TREND = "MODERATE_TREND"
    LOW_VOLATILITY_RANGE = "LOW_VOLATILITY_RANGE"
    HIGH_VOLATILITY_RANGE = "HIGH_VOLATILITY_RANGE"


RECOMMENDED_REWARD_RATIOS: dict[Regime, float] = {
    Regime.STRONG_TREND: 3.7,
    Regime.MODERATE_TREND: 2.5,
    Regime.LOW_VOLATILITY_RANGE: 1.8,
    Regime.HIGH_VOLATILITY_RANGE: 1.5,
}

ATR_PERIOD = 14
BB_PERIOD = 20
BB_MULTIPLIER = 2.0
ATR_HISTORY_PERIOD = 50
HIGH_VOL_ATR_RATIO = 1.3
HIGH_VOL_BB_WIDTH = 6.0


class MarketRegime:
    """Classifies the market into one of four regimes.

    Uses the caller's ADX for trend strength, a 14-bar ATR against its
    50-sample average, and the 20-bar Bollinger width (percent of SMA).
    Not ready until both the ATR and Bollinger windows are full.
    """

    def __init__(
        self,
        strong_threshold: float = 40.0,
        moderate_threshold: float = 25.0,
    ) -> None:
        if moderate_threshold > strong_threshold:
            raise ConfigError(
                f"moderate_threshold ({moderate_threshold}) exceeds "
                f"strong_threshold ({strong_threshold})"
            )
        self._strong = strong_threshold
        self._moderate = moderate_threshold
        self._tr_values: deque[float] = deque(maxlen=ATR_PERIOD)
        self._closes: deque[float] = deque(maxlen=BB_PERIOD)
        self._atr_history: deque[float] = deque(maxlen=ATR_HISTORY_PERIOD)
        self.reset()

    def update(self, candle: Candle, adx_value: float) -> None:
        self._count += 1
        if self._count == 1:
            tr = candle.high - candle.low
        else:
            tr = _true_range(candle, self._prev_close)
        self._prev_close = candle.close

        self._tr_values.append(tr)
        if len(self._tr_values) >= ATR_PERIOD:
            self._atr = sum(self._tr_values) / len(self._tr_values)
            self._atr_history.append(self._atr)

        self._closes.append(candle.close)
        if len(self._closes) >= BB_PERIOD:
            sma = sum(self._closes) / len(self._closes)
            if sma != 0:
                variance = sum((p - sma) ** 2 for p in self._closes) / len(self._closes)
                std = math.sqrt(variance)
                upper = sma + BB_MULTIPLIER * std
                lower = sma - BB_MULTIPLIER * std
                self._bb_width = (upper - lower) / sma * 100.0

        if self._count >= max(ATR_PERIOD, BB_PERIOD):
            self._ready = True
            self._regime = self._classify(adx_value)

    def reset(self) -> None:
        self._tr_values.clear()
        self._closes.clear()
        self._atr_history.clear()
        self._atr = 0.0
        self._bb_width = 0.0
        self._prev_close = 0.0
        self._count = 0
        self._ready = False
        self._regime = Regime.LOW_VOLATILITY_RANGE

    def _classify(self, adx_value: float) -> Regime:
        if adx_value >= self._strong:
            return Regime.STRONG_TREND
        if adx_value >= self._moderate:
            return Regime.MODERATE_TREND
        if self.atr_ratio > HIGH_VOL_ATR_RATIO or self._bb_width > HIGH_VOL_BB_WIDTH:
            return Regime.HIGH_VOLATILITY_RANGE
        return Regime.LOW_VOLATILITY_RANGE

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def regime(self) -> Regime:
        return self._regime

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def atr(self) -> float:
        return self._atr

    @property
    def bb_width(self) -> float:
        """Bollinger band width as a percentage of the middle band."""
        return self._bb_width

    @property
    def atr_ratio(self) -> float:
        """Current ATR over its 50-sample average (1.0 when undefined)."""
        if self._atr_history:
            avg = sum(self._atr_history) / len(self._atr_history)
        else:
            avg = self._atr
        return self._atr / avg if avg > 0 else 1.0

    @property
    def should_pause_trading(self) -> bool:
        return self._regime is Regime.HIGH_VOLATILITY_RANGE

    @property
    def recommended_reward_ratio(self) -> float:
        return RECOMMENDED_REWARD_RATIOS[self._regime]

    def __repr__(self) -> str:
        return (
            f"MarketRegime({self._regime.value}, ATR={self._atr:.2f}, "
            f"ATRRatio={self.atr_ratio:.2f}, BBWidth={self._bb_width:.2f}%)"
        )
