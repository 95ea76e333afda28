"""Position sizing and leverage — pure math, no I/O.

Two sizing modes:

    fixed notional:  quantity = notional × leverage / entry_price
    fixed risk:      quantity = (risk_usdt × leverage / base_leverage) / risk

Leverage is either the static configured value or, when dynamic leverage
is enabled::

    leverage = clamp(round(base × regime_multiplier × adx_factor), min, max)
    adx_factor = 0.5 + 0.5 × min(1, ADX / strong_threshold)
"""

import math
from typing import Optional

from vegas.config import BacktestConfig
from vegas.strategy.indicators import Regime


def regime_leverage_multiplier(
    config: BacktestConfig,
    regime: Optional[Regime],
) -> float:
    """Leverage multiplier for *regime*; moderate-trend when unknown."""
    if regime is None:
        return config.moderate_trend_leverage_multiplier
    multipliers = {
        Regime.STRONG_TREND: config.strong_trend_leverage_multiplier,
        Regime.MODERATE_TREND: config.moderate_trend_leverage_multiplier,
        Regime.LOW_VOLATILITY_RANGE: config.low_vol_range_leverage_multiplier,
        Regime.HIGH_VOLATILITY_RANGE: config.high_vol_range_leverage_multiplier,
    }
    return multipliers[regime]


def calculate_leverage(
    config: BacktestConfig,
    regime: Optional[Regime],
    adx: float,
) -> int:
    """Effective leverage for a new position.

    Args:
        config: Leverage settings.
        regime: Current market regime, ``None`` if unavailable.
        adx: Current ADX value.

    Returns:
        Integer leverage within ``[min_leverage, max_leverage]`` when
        dynamic, else ``config.leverage``.
    """
    if not config.enable_dynamic_leverage:
        return config.leverage

    multiplier = regime_leverage_multiplier(config, regime)
    adx_factor = 0.5 + 0.5 * min(1.0, adx / config.adx_strong_trend_threshold)
    # Half-up rounding, not Python's round-half-to-even.
    leverage = int(math.floor(config.base_leverage * multiplier * adx_factor + 0.5))
    return max(config.min_leverage, min(config.max_leverage, leverage))


def calculate_quantity(
    config: BacktestConfig,
    entry_price: float,
    risk: float,
    leverage: int,
) -> tuple[float, float]:
    """Position size for a new trade.

    Args:
        config: Sizing mode and amounts.
        entry_price: Fill price.
        risk: Absolute distance from entry to stop-loss.
        leverage: Effective leverage from ``calculate_leverage``.

    Returns:
        ``(quantity, notional_value)`` with ``notional_value = quantity × entry_price``.

    Raises:
        ValueError: If *entry_price*, *risk* or *leverage* is non-positive.
    """
    if entry_price <= 0:
        raise ValueError(f"entry_price must be positive, got {entry_price}")
    if risk <= 0:
        raise ValueError(f"risk must be positive, got {risk}")
    if leverage <= 0:
        raise ValueError(f"leverage must be positive, got {leverage}")

    if config.enable_fixed_risk_sizing:
        adjusted_risk = config.fixed_risk_per_trade_usdt * leverage / config.base_leverage
        quantity = adjusted_risk / risk
    else:
        quantity = config.fixed_notional_usdt * leverage / entry_price
    return quantity, quantity * entry_price
