"""
Analytics module for price analysis.

Contains:
- models: Candles, order book, market state and the analysis result
- indicators: ATR, RSI, VWMA, VWAP, OBV, volume profile, order flow, AR(1)
- regime: Regime classification and the price-action signal cascade
- risk_levels: Stop-loss / take-profit calculation
- analyzer: BayesianPriceAnalyzer (forecast aggregation)
"""

from .models import (
    BayesianRegressionResult,
    Candle,
    IndicatorSnapshot,
    LiquidityCluster,
    MarketDataState,
    MarketRegime,
    OrderBookSnapshot,
    OrderFlowSignals,
    TrendDirection,
    candles_from_dicts,
)
from .analyzer import BayesianPriceAnalyzer, analyze, build_fallback_result

__all__ = [
    'BayesianRegressionResult',
    'Candle',
    'IndicatorSnapshot',
    'LiquidityCluster',
    'MarketDataState',
    'MarketRegime',
    'OrderBookSnapshot',
    'OrderFlowSignals',
    'TrendDirection',
    'candles_from_dicts',
    'BayesianPriceAnalyzer',
    'analyze',
    'build_fallback_result',
]
