"""Backtest statistics — pure functions over a finished run."""

import math
from typing import Optional

from vegas.backtest.models import BacktestResult, EquityPoint


def calculate_stats(result: BacktestResult) -> dict:
    """Compute summary statistics for a backtest run.

    Returns:
        Dict matching the ``backtest_runs`` table columns:
        ``total_trades``, ``winning_trades``, ``losing_trades``,
        ``win_rate`` (fraction), ``avg_win``, ``avg_loss``,
        ``profit_factor``, ``sharpe_ratio``, ``max_drawdown`` (percent),
        ``net_pnl``, ``net_pnl_percent``, ``total_fees``.
    """
    if not result.trades:
        return {
            "total_trades": 0,
            "winning_trades": 0,
            "losing_trades": 0,
            "win_rate": 0.0,
            "avg_win": 0.0,
            "avg_loss": 0.0,
            "profit_factor": None,
            "sharpe_ratio": 0.0,
            "max_drawdown": 0.0,
            "net_pnl": 0.0,
            "net_pnl_percent": 0.0,
            "total_fees": 0.0,
        }

    pnls = [t.net_pnl for t in result.trades]
    total = len(pnls)
    winners = [p for p in pnls if p > 0]
    losers = [p for p in pnls if p <= 0]

    winning = len(winners)
    losing = len(losers)
    win_rate = winning / total

    gross_profit = sum(winners)
    gross_loss = abs(sum(losers))
    profit_factor: Optional[float] = (
        gross_profit / gross_loss if gross_loss > 0 else None
    )

    avg_win = gross_profit / winning if winning else 0.0
    avg_loss = sum(losers) / losing if losing else 0.0

    # Per-trade returns relative to the starting balance
    returns = (
        [p / result.initial_balance for p in pnls] if result.initial_balance > 0 else []
    )

    return {
        "total_trades": total,
        "winning_trades": winning,
        "losing_trades": losing,
        "win_rate": round(win_rate, 4),
        "avg_win": round(avg_win, 4),
        "avg_loss": round(avg_loss, 4),
        "profit_factor": round(profit_factor, 4) if profit_factor is not None else None,
        "sharpe_ratio": round(_sharpe(returns), 4),
        "max_drawdown": round(_max_drawdown(result.equity_curve), 4),
        "net_pnl": round(result.net_profit, 2),
        "net_pnl_percent": round(result.net_profit_percent, 4),
        "total_fees": round(result.total_fees, 4),
    }


# ── Helpers ──────────────────────────────────────────────────────────────


def _sharpe(returns: list[float]) -> float:
    """Annualised Sharpe ratio from per-trade returns.

    Uses population standard deviation (n).  Returns 0.0 for an empty
    series or zero variance.
    """
    n = len(returns)
    if n == 0:
        return 0.0
    mean = sum(returns) / n
    variance = sum((r - mean) ** 2 for r in returns) / n
    std = math.sqrt(variance)
    if std == 0:
        return 0.0
    return (mean / std) * math.sqrt(252)


def _max_drawdown(curve: list[EquityPoint]) -> float:
    """Largest peak-to-trough decline of the equity curve, in percent of peak."""
    peak = 0.0
    max_dd = 0.0
    for point in curve:
        if point.balance > peak:
            peak = point.balance
        if peak > 0:
            dd = (peak - point.balance) / peak * 100.0
            if dd > max_dd:
                max_dd = dd
    return max_dd
