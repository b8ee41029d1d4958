"""
Bayesian Price Analyzer - forecast aggregation.

Runs the full analysis pipeline for one market snapshot:
1. Indicators (volume S/R, VWMA, OBV, RSI, volume RSI, VWAP, order flow)
2. Regime classification and the price-action signal cascade
3. AR(1) forecast and confidence-weighted blend with the signal target
4. Risk levels (stop loss / take profit)
5. BayesianRegressionResult assembly

analyze() is pure and idempotent. It never raises: missing data or an
unexpected numeric failure yields the neutral fallback result.
"""

import logging
import math
from typing import Any, Optional, Sequence

import numpy as np

from oracle_trader.analytics.indicators import (
    analyze_obv,
    analyze_order_flow,
    analyze_vwap,
    calculate_rsi,
    calculate_volume_rsi,
    calculate_volume_support_resistance,
    calculate_vwma,
    detect_order_flow_signals,
    forecast_ar1,
)
from oracle_trader.analytics.models import (
    BayesianRegressionResult,
    Candle,
    IndicatorSnapshot,
    MarketDataState,
    MarketRegime,
    TrendDirection,
)
from oracle_trader.analytics.regime import determine_market_regime, detect_price_action_signals
from oracle_trader.analytics.risk_levels import calculate_risk_levels
from oracle_trader.config.settings import AnalyzerConfig
from oracle_trader.decision.errors import InsufficientDataError
from oracle_trader.utils.math_utils import StatisticalUtils, sanitize

logger = logging.getLogger(__name__)

FALLBACK_BAND_PCT = 0.02
FALLBACK_VOLATILITY = 0.02
STATS_WINDOW = 20


def build_fallback_result(current_price: float, config: AnalyzerConfig) -> BayesianRegressionResult:
    """
    Neutral result used when analysis cannot run.

    Interval and stop at ±2% of price, take profit at 2% x risk/reward above.
    """
    price = sanitize(current_price)
    support = price * (1 - FALLBACK_BAND_PCT)
    resistance = price * (1 + FALLBACK_BAND_PCT)

    return BayesianRegressionResult(
        current_price=price,
        predicted_price=price,
        confidence_interval=(support, resistance),
        stop_loss=support,
        take_profit=price + price * FALLBACK_BAND_PCT * config.risk_reward_ratio,
        trend_direction=TrendDirection.NEUTRAL,
        volatility=FALLBACK_VOLATILITY,
        std_dev=0.0,
        variance=0.0,
        z_score=0.0,
        probability=0.5,
        regime=MarketRegime.CONSOLIDATING,
        indicators=IndicatorSnapshot(
            support=support,
            resistance=resistance,
            vwma=price,
            obv=0.0,
            rsi=50.0,
            volume_rsi=50.0,
            vwap=price,
        ),
        is_fallback=True,
    )


def calculate_trend_strength(candles: Sequence[Candle]) -> float:
    """min(1, |SMA5 - SMA20| / (close range or 1) x 2); 0 below 10 candles."""
    if len(candles) < 10:
        return 0.0

    closes = np.array([c.close for c in candles], dtype=float)
    sma_short = closes[-5:].mean()
    sma_long = closes[-20:].mean()
    price_range = float(closes.max() - closes.min())

    return min(1.0, abs(sma_short - sma_long) / (price_range or 1.0) * 2)


def calculate_arima_weight(
    candles: Sequence[Candle],
    arima_confidence: float,
    config: AnalyzerConfig
) -> float:
    """
    Weight of the AR(1) forecast in the blended prediction.

    weight = min(cap, 0.6 x AR confidence + 0.3 x trend strength + 0.1 x volatility factor)
    volatility factor = 1 - min(1, std(last 20 closes) / 0.05), std in price units

    Returns 0 with fewer than 20 candles.
    """
    if len(candles) < STATS_WINDOW:
        return 0.0

    recent_closes = [c.close for c in candles[-STATS_WINDOW:]]
    recent_std = StatisticalUtils.population_std(recent_closes)
    volatility_factor = 1 - min(1.0, recent_std / 0.05)
    trend_strength = calculate_trend_strength(candles)

    weight = (
        arima_confidence * config.arima_confidence_coefficient
        + trend_strength * config.trend_strength_coefficient
        + volatility_factor * config.volatility_factor_coefficient
    )
    return sanitize(min(config.arima_weight_cap, weight))


def _run_analysis(
    state: MarketDataState,
    current_price: float,
    config: AnalyzerConfig
) -> BayesianRegressionResult:
    candles = state.candles

    if len(candles) < config.min_data_points:
        raise InsufficientDataError(
            f"{len(candles)} candles available, {config.min_data_points} required",
            field="candles",
        )
    if not (math.isfinite(current_price) and current_price > 0):
        raise InsufficientDataError(f"No usable price ({current_price})", field="current_price")

    levels = calculate_volume_support_resistance(
        candles, config.support_resistance_lookback, config.volume_profile_threshold
    )
    vwma = calculate_vwma(candles, config.volume_weighted_lookback)
    obv = analyze_obv(candles, config.obv_lookback)
    rsi_values = calculate_rsi(candles, config.rsi_period)
    volume_rsi_values = calculate_volume_rsi(candles, config.volume_rsi_period)
    vwap = analyze_vwap(candles, config.vwap_confirmation_threshold)
    order_flow = analyze_order_flow(candles, state.order_book)
    flow_signals = detect_order_flow_signals(
        current_price, state.order_book, candles[-2:], order_flow.volume_delta
    )

    last_rsi = rsi_values[-1] if rsi_values else 50.0
    last_volume_rsi = volume_rsi_values[-1] if volume_rsi_values else 50.0

    regime = determine_market_regime(
        vwma,
        rsi_values,
        config.regime_trend_threshold,
        config.rsi_overbought,
        config.rsi_oversold,
    )

    signal = detect_price_action_signals(
        candles,
        current_price,
        levels.support,
        levels.resistance,
        last_rsi,
        last_volume_rsi,
        obv,
        flow_signals,
        order_flow.volume_delta,
        config,
    )

    arima = forecast_ar1(candles, config.arima_min_candles)
    weight = calculate_arima_weight(candles, arima.confidence, config)

    predicted = signal.prediction
    if weight > config.arima_blend_threshold and arima.forecast > 0:
        predicted = predicted * (1 - weight) + arima.forecast * weight
    predicted = sanitize(predicted, current_price)

    risk = calculate_risk_levels(
        candles,
        current_price,
        levels.support,
        levels.resistance,
        signal.trend_direction,
        config,
        order_flow.liquidity_clusters,
    )

    std_dev = StatisticalUtils.population_std([c.close for c in candles[-STATS_WINDOW:]])
    z_score = abs(current_price - predicted) / std_dev if std_dev > 0 else 0.0

    return BayesianRegressionResult(
        current_price=current_price,
        predicted_price=predicted,
        confidence_interval=(levels.support, levels.resistance),
        stop_loss=risk.stop_loss,
        take_profit=risk.take_profit,
        trend_direction=signal.trend_direction,
        volatility=vwap.volatility,
        std_dev=std_dev,
        variance=std_dev ** 2,
        z_score=sanitize(z_score),
        probability=signal.confidence,
        regime=regime,
        indicators=IndicatorSnapshot(
            support=levels.support,
            resistance=levels.resistance,
            vwma=vwma[-1] if vwma else current_price,
            obv=obv.current_obv,
            rsi=last_rsi,
            volume_rsi=last_volume_rsi,
            vwap=vwap.current_vwap,
            volume_delta=order_flow.volume_delta,
            bid_ask_imbalance=order_flow.bid_ask_imbalance,
            liquidity_clusters=order_flow.liquidity_clusters,
            arima_forecast=arima.forecast,
            arima_confidence=arima.confidence,
        ),
        order_flow_signals=flow_signals,
    )


def analyze(state: MarketDataState, config: Optional[AnalyzerConfig] = None) -> BayesianRegressionResult:
    """
    Analyze a market snapshot.

    Args:
        state: Market data snapshot (not mutated)
        config: Analyzer configuration (defaults when None)

    Returns:
        BayesianRegressionResult; the neutral fallback when data is
        insufficient or the computation fails
    """
    config = config or AnalyzerConfig()
    current_price = sanitize(state.effective_price)

    try:
        result = _run_analysis(state, current_price, config)
    except InsufficientDataError as e:
        logger.warning(f"⚠️ {state.symbol}: {e.message}, using neutral fallback")
        return build_fallback_result(current_price, config)
    except Exception as e:
        logger.exception(f"Analysis failed for {state.symbol}: {e}")
        return build_fallback_result(current_price, config)

    logger.debug(
        f"{state.symbol}: {result.trend_direction.value} ({result.probability:.2f}) "
        f"regime={result.regime.value} predicted={result.predicted_price:.4f} "
        f"stop={result.stop_loss:.4f} take={result.take_profit:.4f}"
    )
    return result


class BayesianPriceAnalyzer:
    """
    Value object carrying an analyzer configuration.

    Holds no market state: every call to analyze() works only on the
    snapshot it is given.
    """

    def __init__(self, config: Optional[AnalyzerConfig] = None):
        """
        Initialize the analyzer.

        Args:
            config: Analyzer configuration (defaults when None)
        """
        self.config = config or AnalyzerConfig()
        logger.info(
            f"BayesianPriceAnalyzer initialized (min_data_points={self.config.min_data_points}, "
            f"risk_reward={self.config.risk_reward_ratio})"
        )

    def analyze(self, state: MarketDataState, **overrides: Any) -> BayesianRegressionResult:
        """
        Analyze a snapshot, optionally with per-call config overrides.

        Overrides build a new validated config; the analyzer's own config is
        left untouched.
        """
        config = self.config.with_overrides(**overrides) if overrides else self.config
        return analyze(state, config)
