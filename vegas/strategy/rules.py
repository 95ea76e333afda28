"""Entry rules — the 16-rule Vegas table and the engine that evaluates it.

Every rule is a ``RuleDescriptor``: the side it trades, the band whose
touch it needs (if any), a check on that band's cross counter, and a
bespoke predicate for structure / momentum / pattern conditions.  All
rules additionally require an EMA12 cross in their own direction on the
current bar.

Rules are evaluated in ascending id order and the first match wins, so
precedence is a property of the table, not of code order.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from vegas.config import BacktestConfig
from vegas.strategy.history import RollingHistory
from vegas.strategy.indicator_bank import IndicatorSnapshot
from vegas.strategy.indicators import Regime
from vegas.strategy.models import Candle, Direction
from vegas.strategy.patterns import (
    detect_2b_bearish,
    detect_2b_bullish,
    detect_double_bottom,
    detect_double_top,
    detect_pullback_down,
    detect_pullback_up,
    PULLBACK_BARS,
)
from vegas.strategy.session_filter import is_active_trading_hour
from vegas.strategy.touch_cross import (
    Band,
    TouchCrossState,
    is_bearish_cross,
    is_bullish_cross,
)
from vegas.strategy.volume_filter import is_volume_spike


@dataclass(frozen=True)
class RuleContext:
    """Everything a rule may look at on the current bar."""

    candle: Candle
    previous: Optional[Candle]
    indicators: IndicatorSnapshot
    touches: TouchCrossState
    history: RollingHistory
    config: BacktestConfig
    ready: bool = True

    @property
    def close(self) -> float:
        return self.candle.close

    @property
    def bullish_cross(self) -> bool:
        return is_bullish_cross(self.previous, self.candle, self.indicators.ema12)

    @property
    def bearish_cross(self) -> bool:
        return is_bearish_cross(self.previous, self.candle, self.indicators.ema12)


# ── Common filters ───────────────────────────────────────────────────────


def passes_common_filters(ctx: RuleContext) -> bool:
    """Filters shared by every rule on both sides.

    ADX band, optional non-falling ADX requirement, regime pause, volume
    spike, and the trading-hour / weekday blocklist.
    """
    cfg = ctx.config
    ind = ctx.indicators

    if ind.adx < cfg.adx_threshold or ind.adx > cfg.adx_max_threshold:
        return False

    if cfg.adx_require_slope_up and ind.adx_slope < 0:
        return False

    if (
        cfg.enable_market_regime_filter
        and cfg.pause_on_high_volatility_range
        and ind.regime is Regime.HIGH_VOLATILITY_RANGE
    ):
        return False

    avg_volume = ctx.history.average_volume(cfg.volume_avg_period)
    if is_volume_spike(ctx.candle.volume, avg_volume, cfg.volume_spike_ratio):
        return False

    return is_active_trading_hour(
        ctx.candle.timestamp,
        cfg.blocked_hours,
        cfg.blocked_days,
        cfg.session_start_utc,
        cfg.session_end_utc,
    )


# ── Predicate building blocks ────────────────────────────────────────────

Predicate = Callable[[RuleContext], bool]


def bullish_structure(ctx: RuleContext) -> bool:
    return ctx.indicators.ema12 > ctx.indicators.ema144 or ctx.close > ctx.indicators.ema144


def bearish_structure(ctx: RuleContext) -> bool:
    return ctx.indicators.ema12 < ctx.indicators.ema144 or ctx.close < ctx.indicators.ema144


def bullish_momentum(ctx: RuleContext) -> bool:
    """Bullish candle or close above the prior high."""
    if ctx.previous is None:
        return True
    return ctx.candle.is_bullish or ctx.close > ctx.previous.high


def bearish_momentum(ctx: RuleContext) -> bool:
    """Bearish candle or close below the prior low."""
    if ctx.previous is None:
        return True
    return ctx.candle.is_bearish or ctx.close < ctx.previous.low


def bull_trend(ctx: RuleContext) -> bool:
    """close > EMA144 > EMA169."""
    return ctx.close > ctx.indicators.ema144 > ctx.indicators.ema169


def bear_trend(ctx: RuleContext) -> bool:
    """close < EMA144 < EMA169."""
    return ctx.close < ctx.indicators.ema144 < ctx.indicators.ema169


def golden_cross(ctx: RuleContext) -> bool:
    return ctx.indicators.ema144 > ctx.indicators.ema169


def death_cross(ctx: RuleContext) -> bool:
    return ctx.indicators.ema144 < ctx.indicators.ema169


def close_above_ema144(ctx: RuleContext) -> bool:
    return ctx.close > ctx.indicators.ema144


def close_below_ema144(ctx: RuleContext) -> bool:
    return ctx.close < ctx.indicators.ema144


def ema12_in_middle_zone(ctx: RuleContext) -> bool:
    """EMA12 strictly between EMA144 and EMA576, in either order."""
    e12 = ctx.indicators.ema12
    e144 = ctx.indicators.ema144
    e576 = ctx.indicators.ema576
    return e144 < e12 < e576 or e576 < e12 < e144


def was_above_ema12(ctx: RuleContext) -> bool:
    return ctx.touches.was_above_ema12


def was_below_ema12(ctx: RuleContext) -> bool:
    return ctx.touches.was_below_ema12


def pattern_2b_bullish(ctx: RuleContext) -> bool:
    lookback = ctx.config.pattern_2b_lookback
    return detect_2b_bullish(ctx.history.recent(lookback), lookback)


def pattern_2b_bearish(ctx: RuleContext) -> bool:
    lookback = ctx.config.pattern_2b_lookback
    return detect_2b_bearish(ctx.history.recent(lookback), lookback)


def double_bottom(ctx: RuleContext) -> bool:
    lookback = ctx.config.pattern_double_lookback
    return detect_double_bottom(ctx.history.recent(lookback), lookback)


def double_top(ctx: RuleContext) -> bool:
    lookback = ctx.config.pattern_double_lookback
    return detect_double_top(ctx.history.recent(lookback), lookback)


def pullback_down(ctx: RuleContext) -> bool:
    return detect_pullback_down(ctx.history.recent(PULLBACK_BARS), ctx.indicators.ema12)


def pullback_up(ctx: RuleContext) -> bool:
    return detect_pullback_up(ctx.history.recent(PULLBACK_BARS), ctx.indicators.ema12)


def all_of(*predicates: Predicate) -> Predicate:
    """Conjunction of *predicates*, short-circuiting left to right."""

    def _check(ctx: RuleContext) -> bool:
        return all(p(ctx) for p in predicates)

    return _check


# ── Descriptors ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CounterCheck:
    """Cross-counter requirement: ``== value`` or, with *at_least*, ``>= value``."""

    value: int
    at_least: bool = False

    def __call__(self, count: int) -> bool:
        if self.at_least:
            return count >= self.value
        return count == self.value


@dataclass(frozen=True)
class RuleDescriptor:
    rule_id: int
    side: Direction
    band: Optional[Band]
    counter: Optional[CounterCheck]
    predicate: Predicate
    description: str = ""

    def matches(self, ctx: RuleContext) -> bool:
        cross = ctx.bullish_cross if self.side is Direction.LONG else ctx.bearish_cross
        if not cross:
            return False
        if self.band is not None:
            touch = ctx.touches.band(self.band)
            if not touch.touched:
                return False
            if self.counter is not None and not self.counter(touch.cross_count):
                return False
        return self.predicate(ctx)


LONG_RULES: tuple[RuleDescriptor, ...] = (
    RuleDescriptor(
        1, Direction.LONG, Band.LONG_ZONE, CounterCheck(1),
        all_of(bullish_structure, bullish_momentum),
        "1st cross up after touching min(EMA576, EMA676)",
    ),
    RuleDescriptor(
        2, Direction.LONG, Band.LONG_ZONE, CounterCheck(2),
        close_above_ema144,
        "2nd cross up after touching min(EMA576, EMA676)",
    ),
    RuleDescriptor(
        3, Direction.LONG, Band.MID_LONG_ZONE, CounterCheck(1),
        all_of(pattern_2b_bullish, bullish_structure),
        "1st cross up + 2B after touching min(EMA144, EMA169)",
    ),
    RuleDescriptor(
        4, Direction.LONG, Band.MID_LONG_ZONE, CounterCheck(2),
        bullish_structure,
        "2nd cross up after touching min(EMA144, EMA169)",
    ),
    RuleDescriptor(
        5, Direction.LONG, None, None,
        all_of(was_above_ema12, pullback_down, bull_trend),
        "trend continuation: above EMA12, pullback, cross back up",
    ),
    RuleDescriptor(
        6, Direction.LONG, None, None,
        all_of(bear_trend, double_bottom, pattern_2b_bullish),
        "bear-trend double bottom + 2B + cross up",
    ),
    RuleDescriptor(
        7, Direction.LONG, None, None,
        all_of(golden_cross, pullback_down, close_above_ema144),
        "EMA144/169 golden cross, pullback, cross up",
    ),
    RuleDescriptor(
        8, Direction.LONG, Band.MID_LONG_ZONE, CounterCheck(2, at_least=True),
        all_of(bear_trend, ema12_in_middle_zone),
        "bear trend, EMA12 in middle zone, 2+ crosses after mid touch",
    ),
)

SHORT_RULES: tuple[RuleDescriptor, ...] = (
    RuleDescriptor(
        1, Direction.SHORT, Band.SHORT_ZONE, CounterCheck(1),
        all_of(bearish_structure, bearish_momentum),
        "1st cross down after touching max(EMA576, EMA676)",
    ),
    RuleDescriptor(
        2, Direction.SHORT, Band.SHORT_ZONE, CounterCheck(2),
        close_below_ema144,
        "2nd cross down after touching max(EMA576, EMA676)",
    ),
    RuleDescriptor(
        3, Direction.SHORT, Band.MID_SHORT_ZONE, CounterCheck(1),
        all_of(pattern_2b_bearish, bearish_structure),
        "1st cross down + 2B after touching max(EMA144, EMA169)",
    ),
    RuleDescriptor(
        4, Direction.SHORT, Band.MID_SHORT_ZONE, CounterCheck(2),
        bearish_structure,
        "2nd cross down after touching max(EMA144, EMA169)",
    ),
    RuleDescriptor(
        5, Direction.SHORT, None, None,
        all_of(was_below_ema12, pullback_up, bear_trend),
        "trend continuation: below EMA12, pullback, cross back down",
    ),
    RuleDescriptor(
        6, Direction.SHORT, None, None,
        all_of(bull_trend, double_top, pattern_2b_bearish),
        "bull-trend double top + 2B + cross down",
    ),
    RuleDescriptor(
        7, Direction.SHORT, None, None,
        all_of(death_cross, pullback_up, close_below_ema144),
        "EMA144/169 death cross, pullback, cross down",
    ),
    RuleDescriptor(
        8, Direction.SHORT, Band.MID_SHORT_ZONE, CounterCheck(2, at_least=True),
        all_of(bull_trend, ema12_in_middle_zone),
        "bull trend, EMA12 in middle zone, 2+ crosses after mid touch",
    ),
)


# ── Engine ───────────────────────────────────────────────────────────────


class RuleEngine:
    """Evaluates the long and short rule tables against a ``RuleContext``.

    Args:
        config: Supplies the per-rule enable flags.
        long_rules: Long table (defaults to ``LONG_RULES``).
        short_rules: Short table (defaults to ``SHORT_RULES``).

    Raises:
        ValueError: If a table is not strictly ordered by rule id or
            holds a rule for the wrong side.
    """

    def __init__(
        self,
        config: BacktestConfig,
        long_rules: tuple[RuleDescriptor, ...] = LONG_RULES,
        short_rules: tuple[RuleDescriptor, ...] = SHORT_RULES,
    ) -> None:
        for side, table in ((Direction.LONG, long_rules), (Direction.SHORT, short_rules)):
            ids = [r.rule_id for r in table]
            if ids != sorted(set(ids)):
                raise ValueError(f"{side.value} rule ids must be unique and ascending: {ids}")
            if any(r.side is not side for r in table):
                raise ValueError(f"{side.value} table contains a rule for the other side")
        self._config = config
        self._tables = {Direction.LONG: long_rules, Direction.SHORT: short_rules}

    def is_enabled(self, direction: Direction, rule_id: int) -> bool:
        if direction is Direction.LONG:
            return self._config.is_long_rule_enabled(rule_id)
        return self._config.is_short_rule_enabled(rule_id)

    def evaluate(self, ctx: RuleContext, direction: Direction) -> int:
        """Return the id of the first enabled matching rule, or 0."""
        if not ctx.ready or not passes_common_filters(ctx):
            return 0
        for rule in self._tables[direction]:
            if self.is_enabled(direction, rule.rule_id) and rule.matches(ctx):
                return rule.rule_id
        return 0

    def evaluate_both(self, ctx: RuleContext) -> tuple[int, int]:
        """``(long_rule, short_rule)`` for the bar; each side is independent."""
        return (
            self.evaluate(ctx, Direction.LONG),
            self.evaluate(ctx, Direction.SHORT),
        )
