"""Indicator bank — the five Vegas EMAs, ADX, and the optional regime detector."""

from dataclasses import dataclass
from typing import Optional

from vegas.config import BacktestConfig
from vegas.strategy.indicators import ADX, EMA, MarketRegime, Regime
from vegas.strategy.models import Candle


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator values after the most recent update."""

    ema12: float
    ema144: float
    ema169: float
    ema576: float
    ema676: float
    adx: float
    adx_slope: float
    plus_di: float
    minus_di: float
    regime: Optional[Regime] = None  # None when disabled or not yet ready

    @property
    def long_zone(self) -> float:
        """min(EMA576, EMA676) — lower slow band."""
        return min(self.ema576, self.ema676)

    @property
    def short_zone(self) -> float:
        """max(EMA576, EMA676) — upper slow band."""
        return max(self.ema576, self.ema676)

    @property
    def mid_long_zone(self) -> float:
        """min(EMA144, EMA169) — lower mid band."""
        return min(self.ema144, self.ema169)

    @property
    def mid_short_zone(self) -> float:
        """max(EMA144, EMA169) — upper mid band."""
        return max(self.ema144, self.ema169)


class IndicatorBank:
    """Owns every indicator the strategy reads and updates them together.

    Args:
        config: Backtest configuration (EMA lengths, ADX period, regime
            thresholds).  The regime detector only exists when
            ``enable_market_regime_filter`` is set.
    """

    def __init__(self, config: BacktestConfig) -> None:
        self.ema12 = EMA(config.ema12_len)
        self.ema144 = EMA(config.ema144_len)
        self.ema169 = EMA(config.ema169_len)
        self.ema576 = EMA(config.ema576_len)
        self.ema676 = EMA(config.ema676_len)
        self.adx = ADX(config.adx_period)
        self.market_regime: Optional[MarketRegime] = None
        if config.enable_market_regime_filter:
            self.market_regime = MarketRegime(
                config.adx_strong_trend_threshold,
                config.adx_moderate_trend_threshold,
            )

    @property
    def _emas(self) -> tuple[EMA, ...]:
        return (self.ema12, self.ema144, self.ema169, self.ema576, self.ema676)

    def update(self, candle: Candle) -> None:
        for ema in self._emas:
            ema.update(candle.close)
        self.adx.update(candle)
        if self.market_regime is not None:
            self.market_regime.update(candle, self.adx.value)

    def reset(self) -> None:
        for ema in self._emas:
            ema.reset()
        self.adx.reset()
        if self.market_regime is not None:
            self.market_regime.reset()

    @property
    def is_ready(self) -> bool:
        """All five EMAs and the ADX have completed warm-up."""
        return all(ema.is_ready for ema in self._emas) and self.adx.is_ready

    @property
    def regime(self) -> Optional[Regime]:
        """Current regime, or ``None`` if the detector is off or warming up."""
        if self.market_regime is not None and self.market_regime.is_ready:
            return self.market_regime.regime
        return None

    def snapshot(self) -> IndicatorSnapshot:
        return IndicatorSnapshot(
            ema12=self.ema12.value,
            ema144=self.ema144.value,
            ema169=self.ema169.value,
            ema576=self.ema576.value,
            ema676=self.ema676.value,
            adx=self.adx.value,
            adx_slope=self.adx.slope,
            plus_di=self.adx.plus_di,
            minus_di=self.adx.minus_di,
            regime=self.regime,
        )
