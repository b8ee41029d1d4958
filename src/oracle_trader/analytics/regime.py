"""
Market Regime & Price-Action Signal Detection

Implements:
1. Regime classification - uptrend / downtrend / consolidating / exhaustion
   from the VWMA gap and the latest RSI
2. Support/resistance confidence scoring - additive evidence bonuses over a
   base score
3. Price-action signal cascade - ordered rules, first match wins:
   absorption -> stop run -> support test -> resistance test ->
   volume-confirmed candle -> OBV divergence -> neutral

Nothing here keeps state between calls.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from oracle_trader.analytics.indicators import OBVAnalysis
from oracle_trader.analytics.models import (
    Candle,
    MarketRegime,
    OrderFlowSignals,
    TrendDirection,
)
from oracle_trader.config.settings import AnalyzerConfig

logger = logging.getLogger(__name__)

BASE_LEVEL_CONFIDENCE = 0.6
MAX_LEVEL_CONFIDENCE = 0.95

ABSORPTION_CONFIDENCE = 0.85
STOP_RUN_CONFIDENCE = 0.80
DIVERGENCE_CONFIDENCE = 0.75
VOLUME_CANDLE_CONFIDENCE = 0.70
NEUTRAL_CONFIDENCE = 0.5

# Price must trade this far through a level to count as a test
SUPPORT_TEST_FACTOR = 0.995
RESISTANCE_TEST_FACTOR = 1.005


@dataclass(frozen=True)
class PriceActionSignal:
    """Directional signal with its price target."""
    trend_direction: TrendDirection
    prediction: float
    confidence: float


def determine_market_regime(
    vwma: Sequence[float],
    rsi: Sequence[float],
    trend_threshold: float = 0.015,
    overbought: float = 70.0,
    oversold: float = 30.0
) -> MarketRegime:
    """
    Classify the market regime.

    Gap = VWMA[-1] - VWMA[len/2]. A relative gap beyond trend_threshold is a
    trend in the direction of the gap; otherwise an extreme last RSI is
    exhaustion and anything else is consolidation.

    Args:
        vwma: VWMA series
        rsi: RSI series (50 assumed when empty)
        trend_threshold: Relative VWMA gap that marks a trend

    Returns:
        MarketRegime
    """
    if len(vwma) < 2:
        return MarketRegime.CONSOLIDATING

    midpoint = vwma[len(vwma) // 2]
    gap = vwma[-1] - midpoint
    last_rsi = rsi[-1] if len(rsi) > 0 else 50.0

    if midpoint > 0 and abs(gap) / midpoint > trend_threshold:
        return MarketRegime.UPTREND if gap > 0 else MarketRegime.DOWNTREND

    if last_rsi > overbought or last_rsi < oversold:
        return MarketRegime.EXHAUSTION

    return MarketRegime.CONSOLIDATING


def _average_volume(candle: Candle, recent: Sequence[Candle]) -> float:
    """Candle's own rolling average, else the mean of recent candles, else its volume."""
    if candle.average_volume:
        return float(candle.average_volume)
    if len(recent) > 0:
        return float(np.mean([c.volume for c in recent]))
    return candle.volume


def calculate_support_confidence(
    candle: Candle,
    recent: Sequence[Candle],
    rsi: float,
    volume_rsi: float,
    obv: OBVAnalysis,
    config: AnalyzerConfig
) -> float:
    """
    Confidence that a support test will hold.

    Base 0.6, plus:
        +0.15 bullish reversal candle closing in its upper half
        +0.15 volume above threshold x average volume
        +0.10 OBV divergence beyond threshold while price falls
        +0.05 RSI below 35
        +0.05 volume RSI above 60
    Capped at 0.95.
    """
    score = BASE_LEVEL_CONFIDENCE
    midpoint = (candle.high + candle.low) / 2

    if candle.close > candle.open and candle.close > midpoint:
        score += 0.15

    if candle.volume > _average_volume(candle, recent) * config.volume_confirmation_threshold:
        score += 0.15

    if obv.divergence > config.volume_divergence_threshold and obv.price_trend < 0:
        score += 0.10

    if rsi < 35:
        score += 0.05

    if volume_rsi > 60:
        score += 0.05

    return min(score, MAX_LEVEL_CONFIDENCE)


def calculate_resistance_confidence(
    candle: Candle,
    recent: Sequence[Candle],
    rsi: float,
    volume_rsi: float,
    obv: OBVAnalysis,
    config: AnalyzerConfig
) -> float:
    """Mirror of calculate_support_confidence for a resistance test."""
    score = BASE_LEVEL_CONFIDENCE
    midpoint = (candle.high + candle.low) / 2

    if candle.close < candle.open and candle.close < midpoint:
        score += 0.15

    if candle.volume > _average_volume(candle, recent) * config.volume_confirmation_threshold:
        score += 0.15

    if obv.divergence > config.volume_divergence_threshold and obv.price_trend > 0:
        score += 0.10

    if rsi > 65:
        score += 0.05

    if volume_rsi < 40:
        score += 0.05

    return min(score, MAX_LEVEL_CONFIDENCE)


def detect_price_action_signals(
    candles: Sequence[Candle],
    current_price: float,
    support: float,
    resistance: float,
    rsi: float,
    volume_rsi: float,
    obv: OBVAnalysis,
    order_flow: Optional[OrderFlowSignals],
    volume_delta: float,
    config: AnalyzerConfig
) -> PriceActionSignal:
    """
    Run the price-action rule cascade. The first matching rule wins.

    Args:
        candles: Candles, most recent last
        current_price: Price being evaluated
        support: Volume-profile support
        resistance: Volume-profile resistance
        rsi: Latest price RSI
        volume_rsi: Latest volume RSI
        obv: OBV analysis (divergence and trends)
        order_flow: Absorption / stop-run flags
        volume_delta: Net aggressor volume
        config: Analyzer configuration

    Returns:
        PriceActionSignal
    """
    neutral = PriceActionSignal(TrendDirection.NEUTRAL, current_price, NEUTRAL_CONFIDENCE)

    if len(candles) < 2:
        return neutral

    last = candles[-1]
    previous = candles[-2]
    recent = candles[-config.recent_candles_for_average:]
    order_flow = order_flow or OrderFlowSignals()

    at_support = current_price <= support * SUPPORT_TEST_FACTOR
    at_resistance = current_price >= resistance * RESISTANCE_TEST_FACTOR

    # 1. Absorption at a level
    if order_flow.absorption:
        if at_support:
            logger.debug(f"Absorption at support {support:.2f}")
            return PriceActionSignal(TrendDirection.BULLISH, resistance, ABSORPTION_CONFIDENCE)
        if at_resistance:
            logger.debug(f"Absorption at resistance {resistance:.2f}")
            return PriceActionSignal(TrendDirection.BEARISH, support, ABSORPTION_CONFIDENCE)

    # 2. Stop run against the delta
    if order_flow.stop_run:
        logger.debug(f"Stop run detected (volume delta {volume_delta:.2f})")
        if volume_delta > 0:
            return PriceActionSignal(TrendDirection.BULLISH, resistance * 1.03, STOP_RUN_CONFIDENCE)
        return PriceActionSignal(TrendDirection.BEARISH, support * 0.97, STOP_RUN_CONFIDENCE)

    # 3. Support test
    if at_support:
        score = calculate_support_confidence(last, recent, rsi, volume_rsi, obv, config)
        if score > BASE_LEVEL_CONFIDENCE:
            return PriceActionSignal(TrendDirection.BULLISH, resistance, score)

    # 4. Resistance test
    if at_resistance:
        score = calculate_resistance_confidence(last, recent, rsi, volume_rsi, obv, config)
        if score > BASE_LEVEL_CONFIDENCE:
            return PriceActionSignal(TrendDirection.BEARISH, support, score)

    # 5. Volume-confirmed candle
    volume_spike = last.volume > previous.volume * config.volume_confirmation_threshold
    if volume_spike and last.close > last.open and volume_rsi > 60:
        return PriceActionSignal(TrendDirection.BULLISH, resistance, VOLUME_CANDLE_CONFIDENCE)
    if volume_spike and last.close < last.open and volume_rsi < 40:
        return PriceActionSignal(TrendDirection.BEARISH, support, VOLUME_CANDLE_CONFIDENCE)

    # 6. OBV divergence with extreme momentum
    if obv.divergence > config.volume_divergence_threshold:
        if rsi > config.rsi_overbought and volume_rsi < config.rsi_oversold:
            return PriceActionSignal(TrendDirection.BEARISH, support * 0.98, DIVERGENCE_CONFIDENCE)
        if rsi < config.rsi_oversold and volume_rsi > config.rsi_overbought:
            return PriceActionSignal(TrendDirection.BULLISH, resistance * 1.02, DIVERGENCE_CONFIDENCE)

    return neutral
