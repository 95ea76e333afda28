"""Tests for the vegas.main CLI entry point."""

import logging
import math
import os

import pytest

from vegas.main import _run_cli
from vegas.repos.backtest_repo import BacktestRepo


T0 = 1_704_067_200_000
HOUR = 3_600_000


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.setattr(os, "environ", dict(os.environ))
    for var in ("DB_PATH", "LOG_LEVEL", "EMA12_LEN"):
        monkeypatch.delenv(var, raising=False)
    root = logging.getLogger()
    level = root.level
    yield
    root.setLevel(level)


def _write_csv(tmp_path, n=120):
    lines = ["timestamp,open,high,low,close,volume"]
    prev = 100.0
    for i in range(n):
        c = 100.0 + 5.0 * math.sin(i / 6.0)
        lines.append(
            f"{T0 + i * HOUR},{prev:.4f},{max(prev, c) + 0.3:.4f},"
            f"{min(prev, c) - 0.3:.4f},{c:.4f},1000"
        )
        prev = c
    path = tmp_path / "candles.csv"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def _env_file(tmp_path, **values):
    path = tmp_path / "test.env"
    path.write_text("".join(f"{k}={v}\n" for k, v in values.items()), encoding="utf-8")
    return str(path)


class TestCli:

    def test_run_without_db(self, tmp_path):
        csv_path = _write_csv(tmp_path)
        db_path = tmp_path / "vegas.db"
        env = _env_file(tmp_path, DB_PATH=db_path, LOG_LEVEL="WARNING")
        code = _run_cli(["--csv", str(csv_path), "--env", env, "--no-db"])
        assert code == 0
        assert not db_path.exists()

    def test_run_persists_summary(self, tmp_path):
        csv_path = _write_csv(tmp_path)
        db_path = tmp_path / "out" / "vegas.db"
        env = _env_file(tmp_path, DB_PATH=db_path, LOG_LEVEL="WARNING")
        code = _run_cli(
            ["--csv", str(csv_path), "--symbol", "BTCUSDT",
             "--initial-balance", "2500", "--env", env]
        )
        assert code == 0
        runs = BacktestRepo(str(db_path)).get_runs()
        assert len(runs) == 1
        assert runs[0]["symbol"] == "BTCUSDT"
        assert runs[0]["initial_balance"] == 2500.0

    def test_missing_csv(self, tmp_path):
        env = _env_file(tmp_path, LOG_LEVEL="WARNING")
        with pytest.raises(FileNotFoundError):
            _run_cli(["--csv", str(tmp_path / "nope.csv"), "--env", env, "--no-db"])

    def test_csv_required(self):
        with pytest.raises(SystemExit):
            _run_cli([])
