"""Entry-bar context snapshot attached to every trade."""

from vegas.backtest.models import MS_PER_HOUR, TradeContext
from vegas.strategy.history import RollingHistory
from vegas.strategy.indicator_bank import IndicatorSnapshot
from vegas.strategy.models import Candle


CONTEXT_VOLUME_PERIOD = 20
CONTEXT_ATR_PERIOD = 14


def _pct(numerator: float, denominator: float) -> float:
    return numerator / denominator * 100.0 if denominator else 0.0


def build_trade_context(
    candle: Candle,
    indicators: IndicatorSnapshot,
    history: RollingHistory,
    stop_loss: float,
    take_profit: float,
    consecutive_wins: int,
    consecutive_losses: int,
    last_trade_time: int,
) -> TradeContext:
    """Capture the market state at entry.

    Any percentage whose denominator is zero is reported as 0.0; the
    volume ratio falls back to 1.0 when there is no average volume.
    """
    dt = candle.utc_datetime
    entry = candle.close
    avg_volume = history.average_volume(CONTEXT_VOLUME_PERIOD)
    atr = history.atr(CONTEXT_ATR_PERIOD)

    candle_range = candle.high - candle.low
    body = abs(candle.close - candle.open)
    upper_wick = candle.high - max(candle.close, candle.open)
    lower_wick = min(candle.close, candle.open) - candle.low

    hours_since_last = (
        (candle.timestamp - last_trade_time) / MS_PER_HOUR if last_trade_time > 0 else -1.0
    )

    return TradeContext(
        entry_hour=dt.hour,
        entry_day_of_week=dt.isoweekday(),
        entry_month=dt.month,
        adx=indicators.adx,
        ema12=indicators.ema12,
        ema144=indicators.ema144,
        ema169=indicators.ema169,
        ema576=indicators.ema576,
        ema676=indicators.ema676,
        entry_price=entry,
        entry_volume=candle.volume,
        avg_volume=avg_volume,
        volume_ratio=candle.volume / avg_volume if avg_volume > 0 else 1.0,
        stop_loss_distance_percent=_pct(abs(entry - stop_loss), entry),
        take_profit_distance_percent=_pct(abs(take_profit - entry), entry),
        atr=atr,
        atr_percent=_pct(atr, entry),
        recent_range=candle_range,
        distance_from_ema12_percent=_pct(entry - indicators.ema12, entry),
        distance_from_ema144_percent=_pct(entry - indicators.ema144, entry),
        ema144_to_169_distance_percent=_pct(
            indicators.ema144 - indicators.ema169, indicators.ema169,
        ),
        golden_cross=indicators.ema144 > indicators.ema169,
        death_cross=indicators.ema144 < indicators.ema169,
        bullish_candle=candle.is_bullish,
        candle_body_percent=_pct(body, candle_range),
        upper_wick_percent=_pct(upper_wick, candle_range),
        lower_wick_percent=_pct(lower_wick, candle_range),
        consecutive_wins=consecutive_wins,
        consecutive_losses=consecutive_losses,
        hours_since_last_trade=hours_since_last,
    )
