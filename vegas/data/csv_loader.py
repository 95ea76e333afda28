"""Candle CSV loader.

Expected columns (case-insensitive): ``timestamp, open, high, low, close,
volume``.  ``timestamp`` may be epoch milliseconds or an ISO-8601 string
(naive strings are taken as UTC).  Extra columns such as ``datetime_utc``
are ignored.

Usage (CLI):
    python -m vegas.main --csv data/BTCUSDT_15m.csv
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

import numpy as np
import pandas as pd

from vegas.strategy.models import Candle

logger = logging.getLogger("vegas.data")

# ── Constants ────────────────────────────────────────────────────────────

PRICE_COLUMNS = ("open", "high", "low", "close", "volume")
REQUIRED_COLUMNS = ("timestamp",) + PRICE_COLUMNS

_EPOCH = pd.Timestamp(0, tz="UTC")


# ── Public API ───────────────────────────────────────────────────────────


def load_candles(path: Union[str, Path]) -> list[Candle]:
    """Load candles from *path*, sorted by timestamp with duplicates removed.

    Rows with an unparsable timestamp or price, or with ``high < low``,
    are dropped with a warning.  On duplicate timestamps the last row wins.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If a required column is missing.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Candle file not found: {path}")

    df = pd.read_csv(path)
    df.columns = [str(c).strip().lower() for c in df.columns]

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"{path}: missing required column(s) {', '.join(missing)}")

    frame = df[list(PRICE_COLUMNS)].apply(pd.to_numeric, errors="coerce")
    frame["timestamp"] = _parse_timestamps(df["timestamp"])

    valid = frame.notna().all(axis=1) & (frame["high"] >= frame["low"])
    dropped = int((~valid).sum())
    if dropped:
        logger.warning("%s: dropped %d malformed row(s)", path, dropped)
    frame = frame[valid]

    before = len(frame)
    frame = (
        frame.sort_values("timestamp", kind="mergesort")
        .drop_duplicates(subset="timestamp", keep="last")
    )
    if len(frame) < before:
        logger.warning("%s: removed %d duplicate timestamp(s)", path, before - len(frame))

    candles = [
        Candle(
            timestamp=int(row.timestamp),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in frame.itertuples(index=False)
    ]
    logger.info("Loaded %d candles from %s", len(candles), path)
    return candles


# ── Helpers ──────────────────────────────────────────────────────────────


def _parse_timestamps(raw: pd.Series) -> pd.Series:
    """Epoch-ms floats for *raw*; NaN where a value cannot be parsed."""
    ms = pd.to_numeric(raw, errors="coerce").astype(np.float64)

    text_mask = ms.isna() & raw.notna()
    if text_mask.any():
        parsed = pd.to_datetime(
            raw[text_mask].astype(str).str.strip(),
            utc=True,
            errors="coerce",
            format="ISO8601",
        ).dropna()
        ms.loc[parsed.index] = (
            (parsed - _EPOCH) // pd.Timedelta(milliseconds=1)
        ).astype(np.float64)
    return ms
