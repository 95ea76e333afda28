"""Stop-loss and take-profit calculation — pure math, no I/O.

Stop-loss is the swing extreme over a lookback window: the lowest low for
longs and the highest high for shorts.  There is no minimum distance.
Take-profit sits ``risk × reward ratio`` beyond the entry.
"""

from dataclasses import dataclass
from typing import Optional

from vegas.config import BacktestConfig
from vegas.strategy.history import RollingHistory
from vegas.strategy.indicators import Regime
from vegas.strategy.models import Direction


@dataclass(frozen=True)
class RiskLevels:
    """Computed brackets for a trade."""

    stop_loss: float
    take_profit: float
    risk: float
    reward_ratio: float


def calculate_stop_loss(
    history: RollingHistory,
    direction: Direction,
    lookback: int,
) -> float:
    """Lowest low (LONG) or highest high (SHORT) of the last *lookback* bars."""
    if direction is Direction.LONG:
        return history.lowest_low(lookback)
    return history.highest_high(lookback)


def _dynamic_reward_ratios(config: BacktestConfig) -> dict[Regime, float]:
    return {
        Regime.STRONG_TREND: config.strong_trend_reward_ratio,
        Regime.MODERATE_TREND: config.moderate_trend_reward_ratio,
        Regime.LOW_VOLATILITY_RANGE: config.ranging_reward_ratio,
        Regime.HIGH_VOLATILITY_RANGE: config.ranging_reward_ratio,
    }


def static_reward_ratio(config: BacktestConfig) -> float:
    return max(config.reward_ratio, config.min_reward_ratio)


def effective_reward_ratio(
    config: BacktestConfig,
    regime: Optional[Regime],
) -> float:
    """Reward multiple applied to risk when placing take-profit.

    With dynamic reward disabled (or no ready regime) this is
    ``max(reward_ratio, min_reward_ratio)``; otherwise the configured
    ratio for *regime*.
    """
    if not config.enable_dynamic_reward_ratio or regime is None:
        return static_reward_ratio(config)
    return _dynamic_reward_ratios(config)[regime]


def calculate_take_profit(
    entry_price: float,
    stop_loss: float,
    direction: Direction,
    reward_ratio: float,
) -> float:
    """TP = entry ± |entry − SL| × reward_ratio."""
    reward = abs(entry_price - stop_loss) * reward_ratio
    if direction is Direction.LONG:
        return entry_price + reward
    return entry_price - reward


def calculate_brackets(
    entry_price: float,
    direction: Direction,
    history: RollingHistory,
    config: BacktestConfig,
    regime: Optional[Regime] = None,
) -> Optional[RiskLevels]:
    """Stop-loss, take-profit and risk for a new position.

    Returns ``None`` when the stop would not sit strictly on the losing
    side of *entry_price* (zero risk), since no valid bracket exists.
    """
    stop_loss = calculate_stop_loss(history, direction, config.stop_lookback)
    if direction is Direction.LONG and not stop_loss < entry_price:
        return None
    if direction is Direction.SHORT and not stop_loss > entry_price:
        return None

    ratio = effective_reward_ratio(config, regime)
    return RiskLevels(
        stop_loss=stop_loss,
        take_profit=calculate_take_profit(entry_price, stop_loss, direction, ratio),
        risk=abs(entry_price - stop_loss),
        reward_ratio=ratio,
    )
