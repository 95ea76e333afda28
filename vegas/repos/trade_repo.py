"""Trade repository — SQLite storage for the closed trades of a backtest run."""

from typing import Sequence

from vegas.backtest.models import Trade
from vegas.repos.db import get_connection


class TradeRepo:
    """Data access layer for the ``backtest_trades`` table.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    # ── Write ────────────────────────────────────────────────────────────

    def insert_trades(self, run_id: int, trades: Sequence[Trade]) -> int:
        """Insert all *trades* of run *run_id*.  Returns the number written."""
        rows = [
            (
                run_id, t.id, t.symbol, t.direction.value, t.rule_number,
                t.entry_time, t.entry_price, t.quantity, t.stop_loss,
                t.take_profit, t.exit_time, t.exit_price, t.exit_reason.value,
                t.pnl, t.pnl_percent, t.fees, t.net_pnl, t.leverage,
                t.notional_value,
            )
            for t in trades
        ]
        conn = get_connection(self._db_path)
        try:
            conn.executemany(
                """
                INSERT INTO backtest_trades
                    (run_id, trade_no, symbol, direction, rule_number,
                     entry_time, entry_price, quantity, stop_loss,
                     take_profit, exit_time, exit_price, exit_reason,
                     pnl, pnl_percent, fees, net_pnl, leverage,
                     notional_value)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            conn.commit()
            return len(rows)
        finally:
            conn.close()

    # ── Read ─────────────────────────────────────────────────────────────

    def get_trades(self, run_id: int) -> list[dict]:
        """Return the trades of *run_id* in the order they were closed."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM backtest_trades WHERE run_id = ? ORDER BY trade_no",
                (run_id,),
            ).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()
