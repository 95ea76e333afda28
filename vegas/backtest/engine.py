"""Backtest engine — replays historical candles through the Vegas strategy.

Iterates candles chronologically.  On every bar the strategy is updated,
an open position is checked for exit, and — when flat — the rule engine
is asked for an entry.  No real orders are placed.

Exit precedence within one bar: take-profit, then stop-loss, then the
optional max-holding-time limit (filled at the bar's close).  When long
and short rules fire on the same bar, the long signal wins.
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional, Sequence

from vegas.backtest.context import build_trade_context
from vegas.backtest.models import (
    MS_PER_HOUR,
    BacktestResult,
    EquityPoint,
    ExitReason,
    MonthlyReturn,
    Position,
    Trade,
    TradeContext,
)
from vegas.config import BacktestConfig
from vegas.risk.position_sizer import calculate_leverage, calculate_quantity
from vegas.risk.sl_tp import calculate_brackets
from vegas.strategy.models import Candle, Direction
from vegas.strategy.vegas_adx import VegasADXStrategy


logger = logging.getLogger("vegas.backtest")


class BacktestEngine:
    """Simulates the trade lifecycle on historical candle data.

    One engine instance owns all mutable state of a run: the strategy,
    the single open position, balance, trades and equity samples.  Run
    independent backtests on independent instances.

    Args:
        config: Backtest configuration.
        strategy: Strategy instance; defaults to a new ``VegasADXStrategy``.
    """

    def __init__(
        self,
        config: BacktestConfig,
        strategy: Optional[VegasADXStrategy] = None,
    ) -> None:
        self._config = config
        self._strategy = strategy if strategy is not None else VegasADXStrategy(config)
        self.reset()

    # ── Public API ───────────────────────────────────────────────────────

    def reset(self, initial_balance: float = 0.0) -> None:
        """Clear all run state, including the strategy's indicators."""
        self._strategy.reset()
        self._balance = initial_balance
        self._position: Optional[Position] = None
        self._position_context: Optional[TradeContext] = None
        self._trades: list[Trade] = []
        self._equity_curve: list[EquityPoint] = []
        self._next_trade_id = 1
        self._consecutive_wins = 0
        self._consecutive_losses = 0
        self._last_trade_time = 0
        self._symbol = ""

    def run(
        self,
        candles: Sequence[Candle],
        symbol: str = "",
        initial_balance: float = 10_000.0,
    ) -> BacktestResult:
        """Execute a full backtest from a fresh state.

        Args:
            candles: Candles in ascending timestamp order.
            symbol: Instrument label copied onto every trade.
            initial_balance: Starting balance (USDT).

        Returns:
            ``BacktestResult`` with trades, equity curve and final balance.
            An empty *candles* yields no equity samples and an unchanged
            balance.
        """
        self.reset(initial_balance)
        self._symbol = symbol
        logger.info(
            "Starting backtest for %s: %d candles, initial balance %.2f USDT",
            symbol or "<unnamed>", len(candles), initial_balance,
        )

        stride = self._config.equity_sample_stride
        for i, candle in enumerate(candles):
            self._strategy.update(candle)

            # 1. Exit check for the open position
            if self._position is not None:
                self._check_exit(candle)

            # 2. Entry check when flat
            if self._position is None and self._strategy.is_ready:
                self._check_entry(candle)

            # 3. Equity sampling
            if i % stride == 0:
                self._equity_curve.append(EquityPoint(candle.timestamp, self._balance))

        if candles:
            self._equity_curve.append(EquityPoint(candles[-1].timestamp, self._balance))

        if self._position is not None:
            logger.info(
                "%s position from rule %d still open at end of data (entry %.5f)",
                self._position.direction.value,
                self._position.rule_number,
                self._position.entry_price,
            )

        result = BacktestResult(
            symbol=symbol,
            start_time=candles[0].timestamp if candles else 0,
            end_time=candles[-1].timestamp if candles else 0,
            initial_balance=initial_balance,
            final_balance=self._balance,
            trades=list(self._trades),
            equity_curve=list(self._equity_curve),
            monthly_returns=calculate_monthly_returns(self._trades, initial_balance),
            open_position=self._position,
        )
        logger.info(
            "Backtest completed: %d trades, net profit %.2f USDT (%.2f%%)",
            result.total_trades, result.net_profit, result.net_profit_percent,
        )
        return result

    @property
    def balance(self) -> float:
        return self._balance

    @property
    def position(self) -> Optional[Position]:
        return self._position

    @property
    def trades(self) -> list[Trade]:
        return list(self._trades)

    @property
    def consecutive_wins(self) -> int:
        return self._consecutive_wins

    @property
    def consecutive_losses(self) -> int:
        return self._consecutive_losses

    # ── Entry ────────────────────────────────────────────────────────────

    def _check_entry(self, candle: Candle) -> None:
        long_rule = self._strategy.check_long_entry()
        short_rule = self._strategy.check_short_entry()

        if long_rule > 0:
            self._open_position(Direction.LONG, candle, long_rule)
        elif short_rule > 0:
            self._open_position(Direction.SHORT, candle, short_rule)

    def _open_position(self, direction: Direction, candle: Candle, rule_number: int) -> None:
        cfg = self._config
        entry_price = candle.close
        regime = self._strategy.regime
        indicators = self._strategy.snapshot()

        levels = calculate_brackets(entry_price, direction, self._strategy.history, cfg, regime)
        if levels is None:
            logger.debug(
                "Skipped %s rule %d at %d: stop-loss not beyond entry %.5f",
                direction.value, rule_number, candle.timestamp, entry_price,
            )
            return

        leverage = calculate_leverage(cfg, regime, indicators.adx)
        quantity, notional = calculate_quantity(cfg, entry_price, levels.risk, leverage)
        entry_fee = notional * (cfg.taker_fee_percent / 100.0)

        self._position_context = build_trade_context(
            candle,
            indicators,
            self._strategy.history,
            levels.stop_loss,
            levels.take_profit,
            self._consecutive_wins,
            self._consecutive_losses,
            self._last_trade_time,
        )
        self._position = Position(
            direction=direction,
            entry_time=candle.timestamp,
            entry_price=entry_price,
            quantity=quantity,
            stop_loss=levels.stop_loss,
            take_profit=levels.take_profit,
            rule_number=rule_number,
            entry_fee=entry_fee,
            leverage=leverage,
            notional_value=notional,
        )
        logger.debug(
            "Opened %s at %.5f | SL %.5f | TP %.5f | rule %d | %dx",
            direction.value, entry_price, levels.stop_loss,
            levels.take_profit, rule_number, leverage,
        )

    # ── Exit ─────────────────────────────────────────────────────────────

    def _check_exit(self, candle: Candle) -> None:
        pos = self._position
        if pos is None:
            return

        if pos.is_take_profit_hit(candle.low, candle.high):
            self._close_position(pos.take_profit, ExitReason.TAKE_PROFIT, candle.timestamp)
        elif pos.is_stop_loss_hit(candle.low, candle.high):
            self._close_position(pos.stop_loss, ExitReason.STOP_LOSS, candle.timestamp)
        elif self._holding_time_exceeded(pos, candle):
            self._close_position(candle.close, ExitReason.MAX_HOLDING_TIME, candle.timestamp)

    def _holding_time_exceeded(self, pos: Position, candle: Candle) -> bool:
        if not self._config.enable_max_holding_time:
            return False
        held_ms = candle.timestamp - pos.entry_time
        return held_ms > self._config.max_holding_time_hours * MS_PER_HOUR

    def _close_position(self, exit_price: float, reason: ExitReason, exit_time: int) -> None:
        pos = self._position
        if pos is None:
            return
        cfg = self._config

        pnl = pos.unrealized_pnl(exit_price)
        notional = pos.notional_value
        pnl_percent = pnl / notional * 100.0 if notional > 0 else 0.0

        fee_percent = (
            cfg.maker_fee_percent if reason is ExitReason.TAKE_PROFIT else cfg.taker_fee_percent
        )
        exit_fee = notional * (fee_percent / 100.0)
        fees = pos.entry_fee + exit_fee
        net_pnl = pnl - fees

        trade = Trade(
            id=self._next_trade_id,
            symbol=self._symbol,
            direction=pos.direction,
            entry_time=pos.entry_time,
            entry_price=pos.entry_price,
            quantity=pos.quantity,
            stop_loss=pos.stop_loss,
            take_profit=pos.take_profit,
            exit_time=exit_time,
            exit_price=exit_price,
            exit_reason=reason,
            pnl=pnl,
            pnl_percent=pnl_percent,
            fees=fees,
            net_pnl=net_pnl,
            rule_number=pos.rule_number,
            leverage=pos.leverage,
            notional_value=notional,
            context=self._position_context,
        )
        self._next_trade_id += 1
        self._trades.append(trade)
        self._balance += net_pnl

        if net_pnl > 0:
            self._consecutive_wins += 1
            self._consecutive_losses = 0
        else:
            self._consecutive_losses += 1
            self._consecutive_wins = 0
        self._last_trade_time = exit_time

        logger.debug(
            "Closed %s at %.5f (%s) | net %.2f USDT | balance %.2f USDT",
            trade.direction.value, exit_price, reason.value, net_pnl, self._balance,
        )
        self._position = None
        self._position_context = None


# ── Helpers ──────────────────────────────────────────────────────────────


def calculate_monthly_returns(
    trades: Sequence[Trade],
    initial_balance: float,
) -> list[MonthlyReturn]:
    """Net return per entry month (UTC), compounding on the running balance."""
    by_month: dict[str, float] = defaultdict(float)
    for trade in trades:
        month = datetime.fromtimestamp(
            trade.entry_time / 1000.0, tz=timezone.utc,
        ).strftime("%Y-%m")
        by_month[month] += trade.net_pnl

    returns: list[MonthlyReturn] = []
    running = initial_balance
    for month in sorted(by_month):
        pnl = by_month[month]
        pct = pnl / running * 100.0 if running else 0.0
        running += pnl
        returns.append(MonthlyReturn(month=month, return_percent=pct))
    return returns
