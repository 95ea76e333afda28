"""Vegas backtester — strategy and simulation configuration.

Loads .env variables into a typed, immutable config object.
Validates parameter ranges on construction.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


logger = logging.getLogger("vegas.config")

RULE_COUNT = 8

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    """Raised when a configuration value violates a precondition."""


def _all_rules_on() -> tuple[bool, ...]:
    return (True,) * RULE_COUNT


@dataclass(frozen=True)
class BacktestConfig:
    """Typed configuration for one backtest run.

    Every component receives the same instance; nothing reads global state.
    """

    # Indicators
    ema12_len: int = 12
    ema144_len: int = 144
    ema169_len: int = 169
    ema576_len: int = 576
    ema676_len: int = 676
    adx_period: int = 14
    adx_threshold: float = 30.0
    adx_max_threshold: float = 100.0
    adx_require_slope_up: bool = False

    # Risk and sizing
    stop_lookback: int = 136
    leverage: int = 50
    fixed_notional_usdt: float = 100.0
    reward_ratio: float = 3.7
    min_reward_ratio: float = 2.0
    maker_fee_percent: float = 0.02
    taker_fee_percent: float = 0.075

    # Rules (index 0 is rule 1)
    long_rules_enabled: tuple[bool, ...] = field(default_factory=_all_rules_on)
    short_rules_enabled: tuple[bool, ...] = field(default_factory=_all_rules_on)

    # Patterns
    pattern_2b_lookback: int = 10
    pattern_double_lookback: int = 20

    # Volume filter
    volume_avg_period: int = 20
    volume_spike_ratio: float = 3.0

    # Time filter (UTC hours 0-23, ISO weekdays 1=Mon..7=Sun)
    blocked_hours: frozenset[int] = frozenset()
    blocked_days: frozenset[int] = frozenset()
    session_start_utc: int = 6
    session_end_utc: int = 22

    # Market regime
    enable_market_regime_filter: bool = False
    pause_on_high_volatility_range: bool = True
    adx_strong_trend_threshold: float = 40.0
    adx_moderate_trend_threshold: float = 25.0

    # Dynamic reward ratio
    enable_dynamic_reward_ratio: bool = False
    strong_trend_reward_ratio: float = 3.7
    moderate_trend_reward_ratio: float = 2.5
    ranging_reward_ratio: float = 1.8

    # Fixed-risk sizing
    enable_fixed_risk_sizing: bool = False
    fixed_risk_per_trade_usdt: float = 100.0

    # Max holding time
    enable_max_holding_time: bool = False
    max_holding_time_hours: int = 336

    # Dynamic leverage
    enable_dynamic_leverage: bool = False
    base_leverage: int = 50
    strong_trend_leverage_multiplier: float = 1.0
    moderate_trend_leverage_multiplier: float = 0.7
    low_vol_range_leverage_multiplier: float = 0.4
    high_vol_range_leverage_multiplier: float = 0.2
    min_leverage: int = 5
    max_leverage: int = 100

    # Simulation / ambient
    equity_sample_stride: int = 1000
    db_path: str = "data/vegas.db"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        positive_ints = {
            "ema12_len": self.ema12_len,
            "ema144_len": self.ema144_len,
            "ema169_len": self.ema169_len,
            "ema576_len": self.ema576_len,
            "ema676_len": self.ema676_len,
            "adx_period": self.adx_period,
            "stop_lookback": self.stop_lookback,
            "leverage": self.leverage,
            "pattern_2b_lookback": self.pattern_2b_lookback,
            "pattern_double_lookback": self.pattern_double_lookback,
            "volume_avg_period": self.volume_avg_period,
            "max_holding_time_hours": self.max_holding_time_hours,
            "base_leverage": self.base_leverage,
            "min_leverage": self.min_leverage,
            "max_leverage": self.max_leverage,
            "equity_sample_stride": self.equity_sample_stride,
        }
        for name, value in positive_ints.items():
            if value <= 0:
                raise ConfigError(f"{name} must be positive, got {value}")

        positive_floats = {
            "fixed_notional_usdt": self.fixed_notional_usdt,
            "reward_ratio": self.reward_ratio,
            "min_reward_ratio": self.min_reward_ratio,
            "volume_spike_ratio": self.volume_spike_ratio,
            "adx_strong_trend_threshold": self.adx_strong_trend_threshold,
            "strong_trend_reward_ratio": self.strong_trend_reward_ratio,
            "moderate_trend_reward_ratio": self.moderate_trend_reward_ratio,
            "ranging_reward_ratio": self.ranging_reward_ratio,
            "fixed_risk_per_trade_usdt": self.fixed_risk_per_trade_usdt,
        }
        for name, value in positive_floats.items():
            if value <= 0:
                raise ConfigError(f"{name} must be positive, got {value}")

        if self.maker_fee_percent < 0 or self.taker_fee_percent < 0:
            raise ConfigError("fee percentages must not be negative")
        if self.adx_threshold < 0:
            raise ConfigError(
                f"adx_threshold must not be negative, got {self.adx_threshold}"
            )
        if self.adx_threshold > self.adx_max_threshold:
            raise ConfigError(
                f"adx_threshold ({self.adx_threshold}) exceeds "
                f"adx_max_threshold ({self.adx_max_threshold})"
            )
        if self.adx_moderate_trend_threshold > self.adx_strong_trend_threshold:
            raise ConfigError(
                "adx_moderate_trend_threshold must not exceed "
                "adx_strong_trend_threshold"
            )
        if self.min_leverage > self.max_leverage:
            raise ConfigError(
                f"min_leverage ({self.min_leverage}) exceeds "
                f"max_leverage ({self.max_leverage})"
            )
        if not 0 <= self.session_start_utc <= self.session_end_utc <= 23:
            raise ConfigError(
                "session hours must satisfy 0 <= start <= end <= 23, got "
                f"{self.session_start_utc}-{self.session_end_utc}"
            )
        for flags_name in ("long_rules_enabled", "short_rules_enabled"):
            flags = getattr(self, flags_name)
            if len(flags) != RULE_COUNT:
                raise ConfigError(
                    f"{flags_name} needs {RULE_COUNT} flags, got {len(flags)}"
                )
        if any(not 0 <= h <= 23 for h in self.blocked_hours):
            raise ConfigError(f"blocked_hours out of range: {sorted(self.blocked_hours)}")
        if any(not 1 <= d <= 7 for d in self.blocked_days):
            raise ConfigError(f"blocked_days out of range: {sorted(self.blocked_days)}")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ConfigError(f"Unknown log_level: {self.log_level}")

    # ── Queries ──────────────────────────────────────────────────────────

    def is_long_rule_enabled(self, rule_number: int) -> bool:
        """Return ``True`` if long rule *rule_number* (1–8) is switched on."""
        if not 1 <= rule_number <= RULE_COUNT:
            return False
        return self.long_rules_enabled[rule_number - 1]

    def is_short_rule_enabled(self, rule_number: int) -> bool:
        """Return ``True`` if short rule *rule_number* (1–8) is switched on."""
        if not 1 <= rule_number <= RULE_COUNT:
            return False
        return self.short_rules_enabled[rule_number - 1]

    def is_hour_blocked(self, hour: int) -> bool:
        return hour in self.blocked_hours

    def is_day_blocked(self, day_of_week: int) -> bool:
        return day_of_week in self.blocked_days

    @property
    def history_size(self) -> int:
        """Number of candles the rolling history must retain."""
        return max(
            self.stop_lookback,
            self.pattern_2b_lookback,
            self.pattern_double_lookback,
        ) + 50


# ── Environment parsing ──────────────────────────────────────────────────


def _env_int(key: str, default: int) -> int:
    value = os.environ.get(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Invalid integer for %s: %s, using default: %s", key, value, default)
        return default


def _env_float(key: str, default: float) -> float:
    value = os.environ.get(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Invalid number for %s: %s, using default: %s", key, value, default)
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.environ.get(key)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int_set(key: str) -> frozenset[int]:
    """Parse a comma-separated list such as ``"0,1,23"``."""
    raw = os.environ.get(key, "")
    result: set[int] = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            result.add(int(part))
        except ValueError:
            logger.warning("Invalid integer in %s: %s", key, part)
    return frozenset(result)


def load_config(env_path: str | None = None) -> BacktestConfig:
    """Load configuration from environment variables (and an optional .env).

    Missing variables fall back to the defaults on ``BacktestConfig``.
    Unparsable numbers are logged and replaced by their default.
    Raises ``ConfigError`` when the resulting values are inconsistent.
    """
    load_dotenv(dotenv_path=env_path)
    fields = BacktestConfig.__dataclass_fields__

    def default(name: str):
        return fields[name].default

    config = BacktestConfig(
        ema12_len=_env_int("EMA12_LEN", default("ema12_len")),
        ema144_len=_env_int("EMA144_LEN", default("ema144_len")),
        ema169_len=_env_int("EMA169_LEN", default("ema169_len")),
        ema576_len=_env_int("EMA576_LEN", default("ema576_len")),
        ema676_len=_env_int("EMA676_LEN", default("ema676_len")),
        adx_period=_env_int("ADX_PERIOD", default("adx_period")),
        adx_threshold=_env_float("ADX_THRESHOLD", default("adx_threshold")),
        adx_max_threshold=_env_float("ADX_MAX_THRESHOLD", default("adx_max_threshold")),
        adx_require_slope_up=_env_bool("ADX_REQUIRE_SLOPE_UP", default("adx_require_slope_up")),
        stop_lookback=_env_int("STOP_LOOKBACK", default("stop_lookback")),
        leverage=_env_int("LEVERAGE", default("leverage")),
        fixed_notional_usdt=_env_float("FIXED_NOTIONAL_USDT", default("fixed_notional_usdt")),
        reward_ratio=_env_float("REWARD_RATIO", default("reward_ratio")),
        min_reward_ratio=_env_float("MIN_REWARD_RATIO", default("min_reward_ratio")),
        maker_fee_percent=_env_float("MAKER_FEE_PERCENT", default("maker_fee_percent")),
        taker_fee_percent=_env_float("TAKER_FEE_PERCENT", default("taker_fee_percent")),
        long_rules_enabled=tuple(
            _env_bool(f"LONG_RULE_{i}_ENABLE", True) for i in range(1, RULE_COUNT + 1)
        ),
        short_rules_enabled=tuple(
            _env_bool(f"SHORT_RULE_{i}_ENABLE", True) for i in range(1, RULE_COUNT + 1)
        ),
        pattern_2b_lookback=_env_int("PATTERN_2B_LOOKBACK", default("pattern_2b_lookback")),
        pattern_double_lookback=_env_int(
            "PATTERN_DOUBLE_LOOKBACK", default("pattern_double_lookback"),
        ),
        volume_avg_period=_env_int("VOLUME_AVG_PERIOD", default("volume_avg_period")),
        volume_spike_ratio=_env_float("VOLUME_SPIKE_RATIO", default("volume_spike_ratio")),
        blocked_hours=_env_int_set("BLOCKED_HOURS"),
        blocked_days=_env_int_set("BLOCKED_DAYS"),
        session_start_utc=_env_int("SESSION_START_UTC", default("session_start_utc")),
        session_end_utc=_env_int("SESSION_END_UTC", default("session_end_utc")),
        enable_market_regime_filter=_env_bool(
            "ENABLE_MARKET_REGIME_FILTER", default("enable_market_regime_filter"),
        ),
        pause_on_high_volatility_range=_env_bool(
            "PAUSE_ON_HIGH_VOLATILITY_RANGE", default("pause_on_high_volatility_range"),
        ),
        adx_strong_trend_threshold=_env_float(
            "ADX_STRONG_TREND_THRESHOLD", default("adx_strong_trend_threshold"),
        ),
        adx_moderate_trend_threshold=_env_float(
            "ADX_MODERATE_TREND_THRESHOLD", default("adx_moderate_trend_threshold"),
        ),
        enable_dynamic_reward_ratio=_env_bool(
            "ENABLE_DYNAMIC_REWARD_RATIO", default("enable_dynamic_reward_ratio"),
        ),
        strong_trend_reward_ratio=_env_float(
            "STRONG_TREND_REWARD_RATIO", default("strong_trend_reward_ratio"),
        ),
        moderate_trend_reward_ratio=_env_float(
            "MODERATE_TREND_REWARD_RATIO", default("moderate_trend_reward_ratio"),
        ),
        ranging_reward_ratio=_env_float("RANGING_REWARD_RATIO", default("ranging_reward_ratio")),
        enable_fixed_risk_sizing=_env_bool(
            "ENABLE_FIXED_RISK_SIZING", default("enable_fixed_risk_sizing"),
        ),
        fixed_risk_per_trade_usdt=_env_float(
            "FIXED_RISK_PER_TRADE_USDT", default("fixed_risk_per_trade_usdt"),
        ),
        enable_max_holding_time=_env_bool(
            "ENABLE_MAX_HOLDING_TIME", default("enable_max_holding_time"),
        ),
        max_holding_time_hours=_env_int(
            "MAX_HOLDING_TIME_HOURS", default("max_holding_time_hours"),
        ),
        enable_dynamic_leverage=_env_bool(
            "ENABLE_DYNAMIC_LEVERAGE", default("enable_dynamic_leverage"),
        ),
        base_leverage=_env_int("BASE_LEVERAGE", default("base_leverage")),
        strong_trend_leverage_multiplier=_env_float(
            "STRONG_TREND_LEVERAGE_MULTIPLIER", default("strong_trend_leverage_multiplier"),
        ),
        moderate_trend_leverage_multiplier=_env_float(
            "MODERATE_TREND_LEVERAGE_MULTIPLIER", default("moderate_trend_leverage_multiplier"),
        ),
        low_vol_range_leverage_multiplier=_env_float(
            "LOW_VOL_RANGE_LEVERAGE_MULTIPLIER", default("low_vol_range_leverage_multiplier"),
        ),
        high_vol_range_leverage_multiplier=_env_float(
            "HIGH_VOL_RANGE_LEVERAGE_MULTIPLIER", default("high_vol_range_leverage_multiplier"),
        ),
        min_leverage=_env_int("MIN_LEVERAGE", default("min_leverage")),
        max_leverage=_env_int("MAX_LEVERAGE", default("max_leverage")),
        equity_sample_stride=_env_int("EQUITY_SAMPLE_STRIDE", default("equity_sample_stride")),
        db_path=os.environ.get("DB_PATH", default("db_path")),
        log_level=os.environ.get("LOG_LEVEL", default("log_level")),
    )
    logger.info(
        "Configuration loaded: EMA %d/%d/%d/%d/%d, ADX(%d) %.1f-%.1f, "
        "notional=%.2f, leverage=%dx, reward=%.2f (min %.2f)",
        config.ema12_len, config.ema144_len, config.ema169_len,
        config.ema576_len, config.ema676_len, config.adx_period,
        config.adx_threshold, config.adx_max_threshold,
        config.fixed_notional_usdt, config.leverage,
        config.reward_ratio, config.min_reward_ratio,
    )
    return config
