"""Vegas backtester — command-line entry point.

Usage:
    python -m vegas.main --csv data/BTCUSDT_15m.csv --symbol BTCUSDT
"""

import argparse
import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from vegas.backtest.engine import BacktestEngine
from vegas.backtest.models import BacktestResult
from vegas.backtest.stats import calculate_stats
from vegas.config import BacktestConfig, load_config
from vegas.data.csv_loader import load_candles
from vegas.repos.backtest_repo import BacktestRepo
from vegas.repos.db import init_db
from vegas.repos.trade_repo import TradeRepo

logger = logging.getLogger("vegas")


def _format_ms(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp / 1000.0, tz=timezone.utc).isoformat()


def _persist(config: BacktestConfig, result: BacktestResult, stats: dict) -> int:
    """Store the run summary and its trades.  Returns the run id."""
    init_db(config.db_path)
    run_id = BacktestRepo(config.db_path).insert_run(
        symbol=result.symbol,
        start_date=_format_ms(result.start_time),
        end_date=_format_ms(result.end_time),
        initial_balance=result.initial_balance,
        final_balance=result.final_balance,
        stats=stats,
    )
    TradeRepo(config.db_path).insert_trades(run_id, result.trades)
    logger.info("Saved backtest run %d to %s", run_id, config.db_path)
    return run_id


def _log_summary(result: BacktestResult, stats: dict) -> None:
    pf = stats["profit_factor"]
    logger.info(
        "Backtest complete: %d trades, PnL: %.2f USDT (%.2f%%), Win rate: %.1f%%",
        stats["total_trades"],
        stats["net_pnl"],
        stats["net_pnl_percent"],
        stats["win_rate"] * 100,
    )
    logger.info(
        "Profit factor: %s | Sharpe: %.2f | Max drawdown: %.2f%% | Fees: %.2f USDT",
        f"{pf:.2f}" if pf is not None else "n/a",
        stats["sharpe_ratio"],
        stats["max_drawdown"],
        stats["total_fees"],
    )
    for month in result.monthly_returns:
        logger.info("  %s: %+.2f%%", month.month, month.return_percent)


def _run_cli(argv: Optional[Sequence[str]] = None) -> int:
    """Parse CLI arguments, run one backtest and report it."""
    parser = argparse.ArgumentParser(description="Vegas ADX candle backtester")
    parser.add_argument("--csv", required=True, help="Path to the candle CSV file")
    parser.add_argument("--symbol", default="", help="Instrument label for the run")
    parser.add_argument(
        "--initial-balance",
        type=float,
        default=10_000.0,
        help="Starting balance in USDT (default: 10000)",
    )
    parser.add_argument("--env", default=None, help="Optional .env file to load")
    parser.add_argument(
        "--no-db",
        action="store_true",
        help="Skip persisting the run to SQLite",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config = load_config(args.env)
    logging.getLogger().setLevel(config.log_level.upper())

    candles = load_candles(args.csv)
    engine = BacktestEngine(config)
    result = engine.run(candles, symbol=args.symbol, initial_balance=args.initial_balance)
    stats = calculate_stats(result)
    _log_summary(result, stats)

    if not args.no_db:
        _persist(config, result, stats)
    return 0


if __name__ == "__main__":
    raise SystemExit(_run_cli())
