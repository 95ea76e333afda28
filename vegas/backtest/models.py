"""Backtest data models — open position, closed trade, entry context, results."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from vegas.strategy.models import Direction


MS_PER_HOUR = 3_600_000


class ExitReason(str, Enum):
    TAKE_PROFIT = "TAKE_PROFIT"
    STOP_LOSS = "STOP_LOSS"
    MAX_HOLDING_TIME = "MAX_HOLDING_TIME"


# ── Entry context ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TradeContext:
    """Market state captured on the entry bar, for post-hoc analysis."""

    # Time
    entry_hour: int
    entry_day_of_week: int  # ISO, 1=Mon … 7=Sun
    entry_month: int

    # Trend
    adx: float
    ema12: float
    ema144: float
    ema169: float
    ema576: float
    ema676: float

    # Price / volume
    entry_price: float
    entry_volume: float
    avg_volume: float
    volume_ratio: float
    stop_loss_distance_percent: float
    take_profit_distance_percent: float

    # Volatility
    atr: float
    atr_percent: float
    recent_range: float

    # EMA structure
    distance_from_ema12_percent: float
    distance_from_ema144_percent: float
    ema144_to_169_distance_percent: float
    golden_cross: bool
    death_cross: bool

    # Candle shape
    bullish_candle: bool
    candle_body_percent: float
    upper_wick_percent: float
    lower_wick_percent: float

    # Streaks
    consecutive_wins: int
    consecutive_losses: int
    hours_since_last_trade: float  # -1 when there is no previous trade

    @property
    def is_asian_session(self) -> bool:
        return 0 <= self.entry_hour < 8

    @property
    def is_european_us_session(self) -> bool:
        return 8 <= self.entry_hour <= 20

    @property
    def is_high_volume(self) -> bool:
        return self.volume_ratio > 1.5

    @property
    def is_low_volume(self) -> bool:
        return self.volume_ratio < 0.5

    @property
    def is_overextended(self) -> bool:
        return abs(self.distance_from_ema12_percent) > 2.0


# ── Position / trade ─────────────────────────────────────────────────────


@dataclass
class Position:
    """The single open position of a run.

    Raises ``ValueError`` on construction if the brackets are not on
    opposite sides of the entry price.
    """

    direction: Direction
    entry_time: int
    entry_price: float
    quantity: float
    stop_loss: float
    take_profit: float
    rule_number: int
    entry_fee: float
    leverage: int
    notional_value: float

    def __post_init__(self) -> None:
        if self.direction is Direction.LONG:
            valid = self.stop_loss < self.entry_price < self.take_profit
        else:
            valid = self.stop_loss > self.entry_price > self.take_profit
        if not valid:
            raise ValueError(
                f"Invalid {self.direction.value} brackets: SL={self.stop_loss}, "
                f"entry={self.entry_price}, TP={self.take_profit}"
            )

    def is_stop_loss_hit(self, low: float, high: float) -> bool:
        if self.direction is Direction.LONG:
            return low <= self.stop_loss
        return high >= self.stop_loss

    def is_take_profit_hit(self, low: float, high: float) -> bool:
        if self.direction is Direction.LONG:
            return high >= self.take_profit
        return low <= self.take_profit

    def unrealized_pnl(self, price: float) -> float:
        if self.direction is Direction.LONG:
            return (price - self.entry_price) * self.quantity
        return (self.entry_price - price) * self.quantity


@dataclass(frozen=True)
class Trade:
    """A closed trade.  Append-only once recorded."""

    id: int
    symbol: str
    direction: Direction
    entry_time: int
    entry_price: float
    quantity: float
    stop_loss: float
    take_profit: float
    exit_time: int
    exit_price: float
    exit_reason: ExitReason
    pnl: float
    pnl_percent: float
    fees: float
    net_pnl: float
    rule_number: int
    leverage: int
    notional_value: float
    context: Optional[TradeContext] = None

    @property
    def is_winner(self) -> bool:
        return self.net_pnl > 0

    @property
    def r_multiple(self) -> float:
        """Signed exit distance in units of initial risk."""
        risk = abs(self.entry_price - self.stop_loss)
        if risk == 0:
            return 0.0
        if self.direction is Direction.LONG:
            return (self.exit_price - self.entry_price) / risk
        return (self.entry_price - self.exit_price) / risk

    @property
    def hold_time_hours(self) -> float:
        return (self.exit_time - self.entry_time) / MS_PER_HOUR


# ── Results ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class EquityPoint:
    timestamp: int
    balance: float


@dataclass(frozen=True)
class MonthlyReturn:
    month: str  # "YYYY-MM"
    return_percent: float


@dataclass
class BacktestResult:
    """Everything one run produces."""

    symbol: str
    start_time: int
    end_time: int
    initial_balance: float
    final_balance: float
    trades: list[Trade] = field(default_factory=list)
    equity_curve: list[EquityPoint] = field(default_factory=list)
    monthly_returns: list[MonthlyReturn] = field(default_factory=list)
    open_position: Optional[Position] = None

    @property
    def net_profit(self) -> float:
        return self.final_balance - self.initial_balance

    @property
    def net_profit_percent(self) -> float:
        if self.initial_balance == 0:
            return 0.0
        return self.net_profit / self.initial_balance * 100.0

    @property
    def total_trades(self) -> int:
        return len(self.trades)

    @property
    def total_fees(self) -> float:
        return sum(t.fees for t in self.trades)
