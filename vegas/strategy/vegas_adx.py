"""Vegas ADX strategy — indicator bank, rolling history, touch/cross state, rules.

Feed candles with ``update()``; ask ``check_long_entry()`` /
``check_short_entry()`` for a rule id (0 = no signal).
"""

import logging
from typing import Optional

from vegas.config import BacktestConfig
from vegas.strategy.history import RollingHistory
from vegas.strategy.indicator_bank import IndicatorBank, IndicatorSnapshot
from vegas.strategy.indicators import Regime
from vegas.strategy.models import Candle, Direction
from vegas.strategy.rules import RuleContext, RuleEngine
from vegas.strategy.touch_cross import TouchCrossState, TouchCrossTracker


logger = logging.getLogger("vegas.strategy")


class VegasADXStrategy:
    """Stateful strategy for one backtest run.

    Args:
        config: Backtest configuration shared with the engine.
    """

    def __init__(self, config: BacktestConfig) -> None:
        self._config = config
        self.indicators = IndicatorBank(config)
        self.history = RollingHistory(config.history_size)
        self.tracker = TouchCrossTracker()
        self.rules = RuleEngine(config)
        self._previous: Optional[Candle] = None
        self._current: Optional[Candle] = None

    # ── Mutation ─────────────────────────────────────────────────────────

    def update(self, candle: Candle) -> None:
        """Advance every piece of state by one candle."""
        self._previous = self._current
        self._current = candle

        self.indicators.update(candle)
        self.history.append(candle)

        if self.indicators.is_ready:
            self.tracker.update(self._previous, candle, self.indicators.snapshot())

    def reset(self) -> None:
        """Return to the freshly constructed state."""
        self.indicators.reset()
        self.history.clear()
        self.tracker.reset()
        self._previous = None
        self._current = None

    # ── Signals ──────────────────────────────────────────────────────────

    def context(self) -> Optional[RuleContext]:
        """The ``RuleContext`` for the latest candle, or ``None`` before any."""
        if self._current is None:
            return None
        return RuleContext(
            candle=self._current,
            previous=self._previous,
            indicators=self.indicators.snapshot(),
            touches=self.tracker.state,
            history=self.history,
            config=self._config,
            ready=self.indicators.is_ready,
        )

    def check_entry(self, direction: Direction) -> int:
        ctx = self.context()
        if ctx is None:
            return 0
        rule = self.rules.evaluate(ctx, direction)
        if rule:
            logger.debug(
                "%s rule %d fired at %d (close=%.5f, ADX=%.1f)",
                direction.value, rule, ctx.candle.timestamp,
                ctx.close, ctx.indicators.adx,
            )
        return rule

    def check_long_entry(self) -> int:
        return self.check_entry(Direction.LONG)

    def check_short_entry(self) -> int:
        return self.check_entry(Direction.SHORT)

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def is_ready(self) -> bool:
        return self.indicators.is_ready

    @property
    def current_candle(self) -> Optional[Candle]:
        return self._current

    @property
    def previous_candle(self) -> Optional[Candle]:
        return self._previous

    @property
    def touch_state(self) -> TouchCrossState:
        return self.tracker.state

    @property
    def regime(self) -> Optional[Regime]:
        return self.indicators.regime

    def snapshot(self) -> IndicatorSnapshot:
        return self.indicators.snapshot()
