"""Tests for the backtest engine — trade lifecycle, equity curve, replay."""

import math

import pytest

from vegas.backtest.engine import BacktestEngine, calculate_monthly_returns
from vegas.backtest.models import ExitReason, Position, Trade
from vegas.config import BacktestConfig
from vegas.strategy.history import RollingHistory
from vegas.strategy.indicator_bank import IndicatorSnapshot
from vegas.strategy.models import Candle, Direction
from vegas.strategy.vegas_adx import VegasADXStrategy


# ── Helpers ──────────────────────────────────────────────────────────────

T0 = 1_704_103_200_000  # 2024-01-01 10:00 UTC
HOUR = 3_600_000


def _make_candle(i, o, h, l, c, vol=1000.0):
    return Candle(timestamp=T0 + i * HOUR, open=o, high=h, low=l, close=c, volume=vol)


class _ScriptedStrategy:
    """Strategy stand-in that emits pre-set rule ids on given bar indexes.

    ``signals`` maps bar index -> ``(long_rule, short_rule)``.
    """

    def __init__(self, signals, adx=35.0):
        self.history = RollingHistory(200)
        self._signals = signals
        self._adx = adx
        self._bar = -1
        self.resets = 0

    def update(self, candle):
        self._bar += 1
        self.history.append(candle)

    def reset(self):
        self.history.clear()
        self._bar = -1
        self.resets += 1

    @property
    def is_ready(self):
        return True

    @property
    def regime(self):
        return None

    def check_long_entry(self):
        return self._signals.get(self._bar, (0, 0))[0]

    def check_short_entry(self):
        return self._signals.get(self._bar, (0, 0))[1]

    def snapshot(self):
        return IndicatorSnapshot(
            ema12=100.0, ema144=95.0, ema169=94.0, ema576=90.0, ema676=89.0,
            adx=self._adx, adx_slope=0.0, plus_di=25.0, minus_di=10.0,
        )


def _run(candles, signals, config=None, initial_balance=10_000.0):
    engine = BacktestEngine(config or BacktestConfig(), strategy=_ScriptedStrategy(signals))
    return engine, engine.run(candles, symbol="BTCUSDT", initial_balance=initial_balance)


def _wave(n, period=40, amplitude=8.0, base=100.0):
    """Sine-wave candles, enough movement to trip the rule table now and then."""
    candles = []
    prev = base
    for i in range(n):
        c = base + amplitude * math.sin(2 * math.pi * i / period) + 0.01 * i
        o = prev
        candles.append(
            _make_candle(i, o, max(o, c) + 0.4, min(o, c) - 0.4, c, vol=1000.0 + (i % 7) * 10)
        )
        prev = c
    return candles


def _small_config(**overrides):
    params = dict(
        ema12_len=3,
        ema144_len=8,
        ema169_len=9,
        ema576_len=15,
        ema676_len=16,
        adx_period=5,
        adx_threshold=0.0,
        stop_lookback=10,
        session_start_utc=0,
        session_end_utc=23,
    )
    params.update(overrides)
    return BacktestConfig(**params)


def _tight_stops():
    """Stops from the last 5 bars so the wave actually reaches them."""
    return BacktestConfig(stop_lookback=5)


TOUCH_BAR = 40
CROSS_BAR = 41


def _touch_then_cross():
    """Steady uptrend, one dip through min(EMA15, EMA16), one close back above EMA3.

    With ``_small_config`` periods the linear run-up leaves every EMA a fixed
    lag behind the close (EMA3 138, EMA15 132, EMA16 131.5 at close 139),
    so the closes never cross EMA3 except on the dip and the recovery bar.
    """
    candles = []
    for i in range(TOUCH_BAR):
        c = 100.0 + i
        candles.append(_make_candle(i, c - 0.5, c + 0.5, c - 1.0, c))
    # low 130 reaches the long zone (~131.8); close 134 drops under EMA3 (136)
    candles.append(_make_candle(TOUCH_BAR, 139.0, 139.5, 130.0, 134.0))
    # close 139.5 back above EMA3 (~137.75), low 133.5 clear of the long zone
    candles.append(_make_candle(CROSS_BAR, 134.0, 140.0, 133.5, 139.5))
    for i in range(CROSS_BAR + 1, 60):
        c = 139.5 + (i - CROSS_BAR)
        candles.append(_make_candle(i, c - 0.5, c + 0.5, c - 1.0, c))
    return candles


# ── Trade lifecycle ──────────────────────────────────────────────────────


class TestTradeLifecycle:

    def test_take_profit_with_maker_fee(self):
        """Entry 100, stop 95, reward 3.7: TP at 118.5 closes with maker exit fee."""
        candles = [
            _make_candle(0, 98.0, 101.0, 95.0, 100.0),
            _make_candle(1, 100.0, 119.0, 99.0, 117.0),
        ]
        _, result = _run(candles, {0: (1, 0)})

        assert len(result.trades) == 1
        trade = result.trades[0]
        assert trade.direction is Direction.LONG
        assert trade.rule_number == 1
        assert trade.entry_price == 100.0
        assert trade.stop_loss == 95.0
        assert trade.take_profit == pytest.approx(118.5)
        assert trade.exit_reason is ExitReason.TAKE_PROFIT
        assert trade.exit_price == pytest.approx(118.5)
        assert trade.quantity == pytest.approx(50.0)
        assert trade.notional_value == pytest.approx(5000.0)
        assert trade.pnl == pytest.approx(925.0)
        # taker 0.075 % on entry + maker 0.02 % on exit
        assert trade.fees == pytest.approx(3.75 + 1.0)
        assert trade.net_pnl == pytest.approx(920.25)
        assert trade.pnl_percent == pytest.approx(18.5)
        assert result.final_balance == pytest.approx(10_920.25)

    def test_take_profit_wins_when_both_brackets_hit(self):
        candles = [
            _make_candle(0, 98.0, 101.0, 95.0, 100.0),
            _make_candle(1, 100.0, 119.0, 94.0, 100.0),
        ]
        _, result = _run(candles, {0: (1, 0)})
        assert result.trades[0].exit_reason is ExitReason.TAKE_PROFIT

    def test_stop_loss_with_taker_fee(self):
        candles = [
            _make_candle(0, 98.0, 101.0, 95.0, 100.0),
            _make_candle(1, 100.0, 101.0, 94.5, 96.0),
        ]
        _, result = _run(candles, {0: (2, 0)})
        trade = result.trades[0]
        assert trade.exit_reason is ExitReason.STOP_LOSS
        assert trade.exit_price == 95.0
        assert trade.pnl == pytest.approx(-250.0)
        assert trade.fees == pytest.approx(7.5)
        assert trade.net_pnl == pytest.approx(-257.5)
        assert not trade.is_winner
        assert trade.r_multiple == pytest.approx(-1.0)

    def test_short_position(self):
        candles = [
            _make_candle(0, 102.0, 105.0, 99.5, 100.0),
            _make_candle(1, 100.0, 100.5, 81.0, 82.0),
        ]
        _, result = _run(candles, {0: (0, 4)})
        trade = result.trades[0]
        assert trade.direction is Direction.SHORT
        assert trade.stop_loss == 105.0
        assert trade.take_profit == pytest.approx(81.5)
        assert trade.exit_reason is ExitReason.TAKE_PROFIT
        assert trade.pnl == pytest.approx(18.5 * 50.0)

    def test_max_holding_time_exit_at_close(self):
        cfg = BacktestConfig(enable_max_holding_time=True, max_holding_time_hours=1)
        candles = [
            _make_candle(0, 98.0, 101.0, 95.0, 100.0),
            _make_candle(1, 100.0, 103.0, 99.0, 101.0),  # held exactly 1 h
            _make_candle(2, 101.0, 103.0, 100.0, 102.0),  # held 2 h
        ]
        _, result = _run(candles, {0: (1, 0)}, config=cfg)
        assert len(result.trades) == 1
        trade = result.trades[0]
        assert trade.exit_reason is ExitReason.MAX_HOLDING_TIME
        assert trade.exit_time == candles[2].timestamp
        assert trade.exit_price == 102.0
        assert trade.fees == pytest.approx(7.5)
        assert trade.hold_time_hours == pytest.approx(2.0)

    def test_max_holding_time_disabled_keeps_position(self):
        candles = [
            _make_candle(0, 98.0, 101.0, 95.0, 100.0),
            _make_candle(1000, 100.0, 103.0, 99.0, 101.0),
        ]
        _, result = _run(candles, {0: (1, 0)})
        assert result.trades == []
        assert result.open_position is not None

    def test_fixed_notional_quantity(self):
        candles = [_make_candle(0, 121.0, 124.0, 120.0, 123.4)]
        engine, result = _run(candles, {0: (1, 0)})
        pos = result.open_position
        assert pos is engine.position
        assert pos.rule_number == 1
        assert pos.quantity == pytest.approx(100.0 * 50 / 123.4)
        assert pos.entry_fee == pytest.approx(5000.0 * 0.075 / 100)

    def test_long_checked_before_short(self):
        candles = [_make_candle(0, 98.0, 105.0, 95.0, 100.0)]
        _, result = _run(candles, {0: (3, 2)})
        assert result.open_position.direction is Direction.LONG
        assert result.open_position.rule_number == 3

    def test_zero_risk_signal_is_skipped(self):
        candles = [_make_candle(0, 101.0, 102.0, 100.0, 100.0)]
        _, result = _run(candles, {0: (1, 0)})
        assert result.open_position is None
        assert result.trades == []

    def test_open_position_at_end_is_not_closed(self):
        candles = [
            _make_candle(0, 98.0, 101.0, 95.0, 100.0),
            _make_candle(1, 100.0, 103.0, 99.0, 101.0),
        ]
        _, result = _run(candles, {0: (1, 0)})
        assert result.trades == []
        assert result.open_position is not None
        assert result.final_balance == 10_000.0

    def test_entry_allowed_on_exit_bar(self):
        candles = [
            _make_candle(0, 98.0, 101.0, 95.0, 100.0),
            _make_candle(1, 100.0, 119.0, 99.0, 117.0),
        ]
        _, result = _run(candles, {0: (1, 0), 1: (1, 0)})
        assert len(result.trades) == 1
        assert result.open_position is not None
        assert result.open_position.entry_time == candles[1].timestamp

    def test_signals_ignored_while_in_position(self):
        candles = [
            _make_candle(0, 98.0, 101.0, 95.0, 100.0),
            _make_candle(1, 100.0, 103.0, 99.0, 101.0),
            _make_candle(2, 101.0, 103.0, 99.0, 102.0),
        ]
        _, result = _run(candles, {0: (1, 0), 1: (0, 1), 2: (2, 0)})
        assert result.open_position.rule_number == 1
        assert result.open_position.entry_time == candles[0].timestamp


# ── Trade context and streaks ────────────────────────────────────────────


class TestTradeContext:

    def test_context_captured_at_entry(self):
        candles = [
            _make_candle(0, 98.0, 101.0, 95.0, 100.0),
            _make_candle(1, 100.0, 119.0, 99.0, 117.0),
        ]
        _, result = _run(candles, {0: (1, 0)})
        ctx = result.trades[0].context
        assert ctx.entry_hour == 10
        assert ctx.entry_day_of_week == 1
        assert ctx.entry_month == 1
        assert ctx.adx == 35.0
        assert ctx.golden_cross
        assert ctx.bullish_candle
        assert ctx.stop_loss_distance_percent == pytest.approx(5.0)
        assert ctx.take_profit_distance_percent == pytest.approx(18.5)
        assert ctx.hours_since_last_trade == -1.0
        assert ctx.consecutive_wins == 0

    def test_streaks_carry_into_next_context(self):
        candles = [
            _make_candle(0, 98.0, 101.0, 95.0, 100.0),
            _make_candle(1, 100.0, 119.0, 99.0, 117.0),  # TP, re-enter long
            _make_candle(2, 117.0, 118.0, 94.0, 95.0),  # SL
        ]
        engine, result = _run(candles, {0: (1, 0), 1: (1, 0)})
        assert len(result.trades) == 2
        second = result.trades[1]
        assert second.context.consecutive_wins == 1
        assert second.context.hours_since_last_trade == pytest.approx(0.0)
        assert second.exit_reason is ExitReason.STOP_LOSS
        assert engine.consecutive_losses == 1
        assert engine.consecutive_wins == 0


# ── Run-level invariants ─────────────────────────────────────────────────


class TestRunInvariants:

    def test_empty_input(self):
        engine = BacktestEngine(BacktestConfig())
        result = engine.run([], initial_balance=5_000.0)
        assert result.trades == []
        assert result.equity_curve == []
        assert result.final_balance == 5_000.0
        assert result.net_profit == 0.0

    def test_balance_equals_initial_plus_net_pnl(self):
        candles = _wave(400)
        signals = {i: (1, 0) if i % 3 == 0 else (0, 1) for i in range(400)}
        _, result = _run(candles, signals, config=_tight_stops())
        assert result.trades
        expected = 10_000.0 + sum(t.net_pnl for t in result.trades)
        assert result.final_balance == pytest.approx(expected)

    def test_one_position_at_a_time(self):
        candles = _wave(400)
        signals = {i: (1, 0) for i in range(400)}
        _, result = _run(candles, signals, config=_tight_stops())
        for earlier, later in zip(result.trades, result.trades[1:]):
            assert later.entry_time >= earlier.exit_time

    def test_trade_ids_sequential(self):
        candles = _wave(400)
        signals = {i: (1, 0) for i in range(400)}
        _, result = _run(candles, signals, config=_tight_stops())
        assert [t.id for t in result.trades] == list(range(1, len(result.trades) + 1))
        assert all(t.symbol == "BTCUSDT" for t in result.trades)

    def test_equity_sampling_stride(self):
        candles = _wave(25)
        _, result = _run(candles, {}, config=BacktestConfig(equity_sample_stride=10))
        stamps = [p.timestamp for p in result.equity_curve]
        assert stamps == [
            candles[0].timestamp,
            candles[10].timestamp,
            candles[20].timestamp,
            candles[24].timestamp,
        ]

    def test_default_stride_samples_first_and_last(self):
        candles = _wave(30)
        _, result = _run(candles, {})
        assert [p.timestamp for p in result.equity_curve] == [
            candles[0].timestamp, candles[-1].timestamp,
        ]
        assert all(p.balance == 10_000.0 for p in result.equity_curve)

    def test_run_resets_strategy(self):
        strategy = _ScriptedStrategy({})
        engine = BacktestEngine(BacktestConfig(), strategy=strategy)
        engine.run(_wave(10))
        engine.run(_wave(10))
        assert strategy.resets >= 2
        assert len(strategy.history) == 10


class TestReplay:

    def test_replay_is_identical(self):
        cfg = _small_config()
        candles = _wave(600)
        engine = BacktestEngine(cfg)
        first = engine.run(candles, symbol="ETHUSDT")

        engine.reset()
        second = engine.run(candles, symbol="ETHUSDT")

        assert second.trades == first.trades
        assert second.final_balance == first.final_balance
        assert second.equity_curve == first.equity_curve

    def test_fresh_engine_matches(self):
        cfg = _small_config()
        candles = _wave(600)
        a = BacktestEngine(cfg).run(candles)
        b = BacktestEngine(cfg).run(candles)
        assert a.trades == b.trades
        assert a.final_balance == pytest.approx(10_000.0 + sum(t.net_pnl for t in a.trades))

    def test_real_strategy_respects_invariants(self):
        cfg = _small_config()
        result = BacktestEngine(cfg).run(_wave(600))
        assert result.trades
        for trade in result.trades:
            assert 1 <= trade.rule_number <= 8
            if trade.direction is Direction.LONG:
                assert trade.stop_loss < trade.entry_price < trade.take_profit
            else:
                assert trade.stop_loss > trade.entry_price > trade.take_profit


# ── Strategy ─────────────────────────────────────────────────────────────


class TestVegasADXStrategy:

    def test_rising_series_ready_with_bullish_structure(self):
        strategy = VegasADXStrategy(BacktestConfig())
        for i in range(700):
            c = 100.0 + i
            strategy.update(_make_candle(i, c - 0.5, c + 1.0, c - 1.0, c))
        assert strategy.is_ready
        snap = strategy.snapshot()
        assert snap.ema12 > snap.ema144

    def test_no_signal_before_ready(self):
        strategy = VegasADXStrategy(BacktestConfig())
        for candle in _wave(50):
            strategy.update(candle)
            assert strategy.check_long_entry() == 0
            assert strategy.check_short_entry() == 0

    def test_long_rule1_fires_only_on_cross_after_slow_band_touch(self):
        cfg = _small_config(adx_threshold=30.0)
        strategy = VegasADXStrategy(cfg)
        fired = []
        for i, candle in enumerate(_touch_then_cross()):
            strategy.update(candle)
            rule = strategy.check_long_entry()
            if rule:
                fired.append((i, rule))
            if i == TOUCH_BAR:
                assert strategy.touch_state.long_zone.last_touch == candle.timestamp
                assert strategy.touch_state.long_zone.cross_count == 0
            if i == CROSS_BAR:
                assert strategy.touch_state.long_zone.cross_count == 1
                assert strategy.snapshot().adx > cfg.adx_threshold
        assert fired == [(CROSS_BAR, 1)]

    def test_engine_opens_fixed_notional_long_on_rule1(self):
        cfg = _small_config(adx_threshold=30.0, short_rules_enabled=(False,) * 8)
        candles = _touch_then_cross()
        result = BacktestEngine(cfg).run(candles, symbol="BTCUSDT")

        assert result.trades == []
        pos = result.open_position
        assert pos.direction is Direction.LONG
        assert pos.rule_number == 1
        assert pos.entry_time == candles[CROSS_BAR].timestamp
        assert pos.entry_price == 139.5
        assert pos.quantity == pytest.approx(100.0 * 50 / 139.5)
        assert pos.notional_value == pytest.approx(5000.0)
        # lowest low of the last 10 bars is the dip bar
        assert pos.stop_loss == 130.0
        assert pos.take_profit == pytest.approx(139.5 + 9.5 * 3.7)

    def test_reset(self):
        strategy = VegasADXStrategy(_small_config())
        for candle in _wave(100):
            strategy.update(candle)
        strategy.reset()
        assert not strategy.is_ready
        assert len(strategy.history) == 0
        assert strategy.current_candle is None
        assert strategy.context() is None


# ── Models ───────────────────────────────────────────────────────────────


class TestPosition:

    def test_invalid_brackets_rejected(self):
        with pytest.raises(ValueError, match="brackets"):
            Position(
                direction=Direction.LONG, entry_time=T0, entry_price=100.0,
                quantity=1.0, stop_loss=101.0, take_profit=110.0, rule_number=1,
                entry_fee=0.0, leverage=50, notional_value=100.0,
            )

    def test_short_hits(self):
        pos = Position(
            direction=Direction.SHORT, entry_time=T0, entry_price=100.0,
            quantity=2.0, stop_loss=105.0, take_profit=90.0, rule_number=1,
            entry_fee=0.0, leverage=50, notional_value=200.0,
        )
        assert pos.is_stop_loss_hit(low=99.0, high=105.0)
        assert pos.is_take_profit_hit(low=90.0, high=101.0)
        assert pos.unrealized_pnl(95.0) == pytest.approx(10.0)


def _trade(entry_time, net_pnl):
    return Trade(
        id=1, symbol="X", direction=Direction.LONG, entry_time=entry_time,
        entry_price=100.0, quantity=1.0, stop_loss=95.0, take_profit=110.0,
        exit_time=entry_time + HOUR, exit_price=100.0 + net_pnl,
        exit_reason=ExitReason.TAKE_PROFIT, pnl=net_pnl, pnl_percent=0.0,
        fees=0.0, net_pnl=net_pnl, rule_number=1, leverage=1, notional_value=100.0,
    )


class TestMonthlyReturns:

    def test_grouped_by_entry_month(self):
        jan = 1_704_067_200_000  # 2024-01-01
        feb = 1_706_745_600_000  # 2024-02-01
        trades = [_trade(jan, 100.0), _trade(jan + HOUR, 100.0), _trade(feb, -102.0)]
        months = calculate_monthly_returns(trades, 10_000.0)
        assert [m.month for m in months] == ["2024-01", "2024-02"]
        assert months[0].return_percent == pytest.approx(2.0)
        assert months[1].return_percent == pytest.approx(-1.0)

    def test_no_trades(self):
        assert calculate_monthly_returns([], 10_000.0) == []
