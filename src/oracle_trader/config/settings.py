"""
Configuration models using Pydantic for type-safe validation.

This module defines all configuration models for the oracle trader:
- SystemConfig: Environment, log level, log format
- AnalyzerConfig: Indicator periods, thresholds and risk-level knobs
- TokenPairConfig: Stable/volatile token addresses and symbols
- ValidatorConfig: Decision guardrail tolerances and sizing tiers
- EngineConfig: Spike decision cycle settings
- AppConfig: Complete application configuration

Every model rejects unknown keys, so a typo in config.yaml fails loudly
instead of silently running with a default.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from web3 import Web3


# ============================================================================
# Enums for Configuration
# ============================================================================

class Environment(str, Enum):
    """Deployment environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging level."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ============================================================================
# System Configuration
# ============================================================================

class SystemConfig(BaseModel):
    """System-wide settings."""

    model_config = ConfigDict(extra="forbid", frozen=True, use_enum_values=True)

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment"
    )

    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level"
    )

    json_logs: bool = Field(
        default=False,
        description="Emit structured JSON log lines"
    )

    log_file: Optional[str] = Field(
        default=None,
        description="Optional log file path"
    )


# ============================================================================
# Analyzer Configuration
# ============================================================================

class AnalyzerConfig(BaseModel):
    """BayesianPriceAnalyzer parameters. Candle counts assume 15m candles."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    min_data_points: int = Field(
        default=96,
        ge=2,
        description="Minimum candles required (24h of 15m candles)"
    )

    risk_reward_ratio: float = Field(
        default=3.0,
        gt=0.0,
        description="Take-profit distance as a multiple of stop distance"
    )

    support_resistance_lookback: int = Field(
        default=672,
        gt=0,
        description="Candles in the volume profile (7 days)"
    )

    volume_confirmation_threshold: float = Field(
        default=1.8,
        gt=0.0,
        description="Volume multiple over average/previous volume that confirms a move"
    )

    volume_weighted_lookback: int = Field(
        default=96,
        gt=0,
        description="VWMA window"
    )

    obv_lookback: int = Field(
        default=288,
        gt=0,
        description="OBV/price trend window (3 days)"
    )

    volume_profile_threshold: float = Field(
        default=0.85,
        gt=0.0,
        le=1.0,
        description="Fraction of peak volume a level needs to be significant"
    )

    rsi_period: int = Field(default=21, gt=0, description="Price RSI period")

    volume_rsi_period: int = Field(default=14, gt=0, description="Volume RSI period")

    vwap_confirmation_threshold: float = Field(
        default=0.005,
        ge=0.0,
        description="Relative close/VWAP deviation that confirms VWAP"
    )

    volume_divergence_threshold: float = Field(
        default=0.4,
        ge=0.0,
        description="OBV divergence magnitude that counts as significant"
    )

    recent_candles_for_average: int = Field(
        default=32,
        gt=0,
        description="Candles used for the rolling average volume (8h)"
    )

    min_atr_period: int = Field(default=14, gt=0, description="Daily ATR period")

    daily_atr_multiplier: float = Field(
        default=2.5,
        gt=0.0,
        description="Base ATR multiple for stop distance"
    )

    min_stop_distance_percent: float = Field(
        default=0.015,
        gt=0.0,
        lt=1.0,
        description="Minimum stop distance as a fraction of price"
    )

    max_stop_distance_percent: float = Field(
        default=0.05,
        gt=0.0,
        lt=1.0,
        description="Maximum stop distance as a fraction of price"
    )

    regime_trend_threshold: float = Field(
        default=0.015,
        gt=0.0,
        description="Relative VWMA gap that marks a trend"
    )

    rsi_overbought: float = Field(default=70.0, ge=0.0, le=100.0)
    rsi_oversold: float = Field(default=30.0, ge=0.0, le=100.0)

    arima_min_candles: int = Field(default=10, ge=3, description="Minimum candles for AR(1)")

    arima_weight_cap: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        description="Maximum weight of the AR(1) forecast in the blend"
    )

    arima_confidence_coefficient: float = Field(default=0.6, ge=0.0)
    trend_strength_coefficient: float = Field(default=0.3, ge=0.0)
    volatility_factor_coefficient: float = Field(default=0.1, ge=0.0)

    arima_blend_threshold: float = Field(
        default=0.3,
        ge=0.0,
        description="Blend weight below which the AR(1) forecast is ignored"
    )

    @field_validator('max_stop_distance_percent')
    @classmethod
    def max_stop_greater_than_min(cls, v, info):
        """Validate that max_stop_distance_percent >= min_stop_distance_percent."""
        minimum = info.data.get('min_stop_distance_percent')
        if minimum is not None and v < minimum:
            raise ValueError('max_stop_distance_percent must be >= min_stop_distance_percent')
        return v

    @field_validator('rsi_overbought')
    @classmethod
    def overbought_above_midline(cls, v):
        if v <= 50:
            raise ValueError('rsi_overbought must be above 50')
        return v

    @field_validator('rsi_oversold')
    @classmethod
    def oversold_below_midline(cls, v):
        if v >= 50:
            raise ValueError('rsi_oversold must be below 50')
        return v

    def with_overrides(self, **overrides: Any) -> "AnalyzerConfig":
        """Return a new validated config with the given fields replaced."""
        return type(self).model_validate({**self.model_dump(), **overrides})


# ============================================================================
# Token Pair Configuration
# ============================================================================

class TokenPairConfig(BaseModel):
    """Stable/volatile token pair traded by the bot."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    stable_address: str = Field(
        default="0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512",
        description="Stablecoin contract address"
    )

    volatile_address: str = Field(
        default="0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0",
        description="Volatile token contract address"
    )

    stable_symbol: str = Field(default="USDC", description="Stablecoin symbol")

    volatile_symbol: str = Field(default="WETH", description="Volatile token symbol")

    @field_validator('stable_address', 'volatile_address')
    @classmethod
    def checksum_address(cls, v):
        """Store addresses in EIP-55 checksum form."""
        if not Web3.is_address(v):
            raise ValueError(f'invalid token address: {v}')
        return Web3.to_checksum_address(v)

    @property
    def symbol(self) -> str:
        return f"{self.volatile_symbol}/{self.stable_symbol}"


# ============================================================================
# Validator Configuration
# ============================================================================

class ValidatorConfig(BaseModel):
    """Decision guardrails applied before a trade may reach execution."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    lenient: bool = Field(
        default=False,
        description="Repair recoverable issues (reversed pair, slippage, tight target) instead of failing"
    )

    risk_level_tolerance_pct: float = Field(
        default=0.01,
        gt=0.0,
        description="Allowed stop/take divergence from the analysis, as a fraction of price"
    )

    min_risk_reward_distance_pct: float = Field(
        default=0.01,
        ge=0.0,
        description="Minimum |take profit - stop loss| as a fraction of price"
    )

    min_take_profit_distance_pct: float = Field(
        default=0.005,
        gt=0.0,
        description="Take-profit distance lenient mode widens to"
    )

    min_slippage: float = Field(default=0.5, ge=0.0, description="Minimum slippage (%)")

    max_slippage: float = Field(default=1.5, gt=0.0, description="Maximum slippage in normal volatility (%)")

    high_volatility_max_slippage: float = Field(
        default=3.0,
        gt=0.0,
        description="Maximum slippage when volatility/price exceeds the threshold (%)"
    )

    high_volatility_threshold: float = Field(
        default=0.03,
        gt=0.0,
        description="Volatility/price ratio that widens the slippage ceiling"
    )

    position_size_tolerance: float = Field(
        default=0.10,
        ge=0.0,
        description="Allowed relative difference from the expected amount"
    )

    base_position_size: float = Field(default=0.02, gt=0.0, description="Size at deviation <= 1 sigma")
    medium_position_size: float = Field(default=0.03, gt=0.0, description="Size at deviation > 1 sigma")
    high_position_size: float = Field(default=0.04, gt=0.0, description="Size at deviation > 2 sigma")

    max_deviation_sigma: float = Field(default=3.0, gt=0.0, description="Deviation cap in sigmas")

    @field_validator('max_slippage')
    @classmethod
    def max_slippage_above_min(cls, v, info):
        minimum = info.data.get('min_slippage')
        if minimum is not None and v < minimum:
            raise ValueError('max_slippage must be >= min_slippage')
        return v

    @field_validator('high_volatility_max_slippage')
    @classmethod
    def high_volatility_slippage_above_normal(cls, v, info):
        normal = info.data.get('max_slippage')
        if normal is not None and v < normal:
            raise ValueError('high_volatility_max_slippage must be >= max_slippage')
        return v


# ============================================================================
# Engine Configuration
# ============================================================================

class EngineConfig(BaseModel):
    """Spike decision cycle settings."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    cooldown_seconds: float = Field(
        default=30.0,
        ge=0.0,
        description="Minimum seconds between decision cycles for one symbol"
    )


# ============================================================================
# Complete Application Configuration
# ============================================================================

class AppConfig(BaseModel):
    """Complete application configuration."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    system: SystemConfig = Field(
        default_factory=SystemConfig,
        description="System configuration"
    )

    analyzer: AnalyzerConfig = Field(
        default_factory=AnalyzerConfig,
        description="Price analyzer configuration"
    )

    tokens: TokenPairConfig = Field(
        default_factory=TokenPairConfig,
        description="Traded token pair"
    )

    validation: ValidatorConfig = Field(
        default_factory=ValidatorConfig,
        description="Decision validator configuration"
    )

    engine: EngineConfig = Field(
        default_factory=EngineConfig,
        description="Decision engine configuration"
    )
