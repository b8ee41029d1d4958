"""
Unit tests for regime classification and the price-action signal cascade.
"""

import pytest

from oracle_trader.analytics.indicators import OBVAnalysis
from oracle_trader.analytics.models import MarketRegime, OrderFlowSignals, TrendDirection
from oracle_trader.analytics.regime import (
    calculate_resistance_confidence,
    calculate_support_confidence,
    detect_price_action_signals,
    determine_market_regime,
)
from oracle_trader.config.settings import AnalyzerConfig

from tests.factories import make_candle, make_flat_candles

NO_OBV = OBVAnalysis(current_obv=0.0, trend=0.0, price_trend=0.0, divergence=0.0, is_divergent=False)


@pytest.fixture
def config():
    return AnalyzerConfig()


def _signal(candles, price, config, support=95.0, resistance=105.0, rsi=50.0, volume_rsi=50.0,
            obv=NO_OBV, order_flow=None, volume_delta=0.0):
    return detect_price_action_signals(
        candles, price, support, resistance, rsi, volume_rsi, obv, order_flow, volume_delta, config
    )


# ============================================================================
# Regime
# ============================================================================

def test_regime_needs_two_vwma_points():
    assert determine_market_regime([100.0], [80.0]) == MarketRegime.CONSOLIDATING
    assert determine_market_regime([], []) == MarketRegime.CONSOLIDATING


def test_regime_uptrend_and_downtrend():
    assert determine_market_regime([100.0, 100.0, 102.0], [50.0]) == MarketRegime.UPTREND
    assert determine_market_regime([100.0, 100.0, 98.0], [50.0]) == MarketRegime.DOWNTREND


def test_regime_small_gap_is_not_a_trend():
    assert determine_market_regime([100.0, 100.0, 101.0], [50.0]) == MarketRegime.CONSOLIDATING


def test_regime_exhaustion_on_extreme_rsi():
    assert determine_market_regime([100.0, 100.0], [75.0]) == MarketRegime.EXHAUSTION
    assert determine_market_regime([100.0, 100.0], [25.0]) == MarketRegime.EXHAUSTION


def test_regime_defaults_rsi_to_fifty():
    assert determine_market_regime([100.0, 100.0], []) == MarketRegime.CONSOLIDATING


# ============================================================================
# Level confidence
# ============================================================================

def test_support_confidence_accumulates_bonuses(config):
    candle = make_candle(94.2, open_=93.0, high=94.5, low=92.5, volume=5000.0)
    recent = make_flat_candles(count=10, price=94.0)
    obv = OBVAnalysis(current_obv=0.0, trend=1.0, price_trend=-0.5, divergence=0.5, is_divergent=True)

    score = calculate_support_confidence(candle, recent, rsi=30.0, volume_rsi=65.0, obv=obv, config=config)

    # 0.6 + 0.15 + 0.15 + 0.10 + 0.05 + 0.05 capped
    assert score == pytest.approx(0.95)


def test_support_confidence_base_only(config):
    candle = make_candle(94.0, open_=95.0, high=95.5, low=93.5)

    score = calculate_support_confidence(candle, [candle], rsi=50.0, volume_rsi=50.0, obv=NO_OBV, config=config)

    assert score == pytest.approx(0.6)


def test_resistance_divergence_bonus_needs_rising_price(config):
    candle = make_candle(106.0, open_=106.0)
    falling = OBVAnalysis(current_obv=0.0, trend=1.0, price_trend=-0.5, divergence=0.5, is_divergent=True)
    rising = OBVAnalysis(current_obv=0.0, trend=-1.0, price_trend=0.5, divergence=0.5, is_divergent=True)

    base = calculate_resistance_confidence(candle, [candle], 50.0, 50.0, falling, config)
    boosted = calculate_resistance_confidence(candle, [candle], 50.0, 50.0, rising, config)

    assert base == pytest.approx(0.6)
    assert boosted == pytest.approx(0.7)


def test_level_confidence_uses_candle_average_volume(config):
    candle = make_candle(94.2, open_=94.2, volume=2000.0, average_volume=1000.0)
    recent = make_flat_candles(count=5, volume=5000.0)

    score = calculate_support_confidence(candle, recent, 50.0, 50.0, NO_OBV, config)

    # 2000 > 1000 x 1.8 even though the recent mean is higher
    assert score == pytest.approx(0.75)


# ============================================================================
# Signal cascade
# ============================================================================

def test_signal_neutral_with_fewer_than_two_candles(config):
    signal = _signal([make_candle(100.0)], 100.0, config)

    assert signal.trend_direction == TrendDirection.NEUTRAL
    assert signal.prediction == 100.0
    assert signal.confidence == 0.5


def test_signal_absorption_at_support(config):
    candles = make_flat_candles(count=5, price=94.0)
    flow = OrderFlowSignals(absorption=True)

    signal = _signal(candles, 94.0, config, order_flow=flow)

    assert signal.trend_direction == TrendDirection.BULLISH
    assert signal.prediction == 105.0
    assert signal.confidence == 0.85


def test_signal_absorption_at_resistance(config):
    candles = make_flat_candles(count=5, price=106.0)
    flow = OrderFlowSignals(absorption=True)

    signal = _signal(candles, 106.0, config, order_flow=flow)

    assert signal.trend_direction == TrendDirection.BEARISH
    assert signal.prediction == 95.0


def test_signal_absorption_mid_range_falls_through(config):
    candles = make_flat_candles(count=5, price=100.0)

    signal = _signal(candles, 100.0, config, order_flow=OrderFlowSignals(absorption=True))

    assert signal.trend_direction == TrendDirection.NEUTRAL


def test_signal_stop_run_follows_delta(config):
    candles = make_flat_candles(count=5, price=100.0)
    flow = OrderFlowSignals(stop_run=True)

    bullish = _signal(candles, 100.0, config, order_flow=flow, volume_delta=10.0)
    bearish = _signal(candles, 100.0, config, order_flow=flow, volume_delta=-10.0)

    assert bullish.trend_direction == TrendDirection.BULLISH
    assert bullish.prediction == pytest.approx(105.0 * 1.03)
    assert bullish.confidence == 0.80
    assert bearish.trend_direction == TrendDirection.BEARISH
    assert bearish.prediction == pytest.approx(95.0 * 0.97)


def test_signal_support_test_with_reversal_candle(config):
    candles = make_flat_candles(count=5, price=93.0)
    candles.append(make_candle(94.2, open_=93.0, high=94.5, low=92.5, index=5))

    signal = _signal(candles, 94.2, config)

    assert signal.trend_direction == TrendDirection.BULLISH
    assert signal.prediction == 105.0
    assert signal.confidence == pytest.approx(0.75)


def test_signal_support_test_needs_evidence(config):
    candles = make_flat_candles(count=5, price=94.0)

    signal = _signal(candles, 94.0, config)

    assert signal.trend_direction == TrendDirection.NEUTRAL


def test_signal_resistance_test_with_overbought_rsi(config):
    candles = make_flat_candles(count=5, price=106.0)

    signal = _signal(candles, 106.0, config, rsi=70.0)

    assert signal.trend_direction == TrendDirection.BEARISH
    assert signal.prediction == 95.0
    assert signal.confidence == pytest.approx(0.65)


def test_signal_volume_confirmed_candles(config):
    base = make_flat_candles(count=5, price=100.0)
    bullish_candle = make_candle(101.0, open_=100.0, volume=2000.0, index=5)
    bearish_candle = make_candle(99.0, open_=100.0, volume=2000.0, index=5)

    bullish = _signal(base + [bullish_candle], 101.0, config, volume_rsi=65.0)
    bearish = _signal(base + [bearish_candle], 99.0, config, volume_rsi=35.0)

    assert (bullish.trend_direction, bullish.prediction, bullish.confidence) == (
        TrendDirection.BULLISH, 105.0, 0.70)
    assert (bearish.trend_direction, bearish.prediction, bearish.confidence) == (
        TrendDirection.BEARISH, 95.0, 0.70)


def test_signal_volume_candle_needs_volume_spike(config):
    base = make_flat_candles(count=5, price=100.0)
    candle = make_candle(101.0, open_=100.0, volume=1500.0, index=5)

    signal = _signal(base + [candle], 101.0, config, volume_rsi=65.0)

    assert signal.trend_direction == TrendDirection.NEUTRAL


def test_signal_obv_divergence_with_extreme_rsi(config):
    candles = make_flat_candles(count=5, price=100.0)
    obv = OBVAnalysis(current_obv=0.0, trend=-1.0, price_trend=0.5, divergence=0.5, is_divergent=True)

    bearish = _signal(candles, 100.0, config, rsi=75.0, volume_rsi=25.0, obv=obv)
    bullish = _signal(candles, 100.0, config, rsi=25.0, volume_rsi=75.0, obv=obv)

    assert bearish.trend_direction == TrendDirection.BEARISH
    assert bearish.prediction == pytest.approx(95.0 * 0.98)
    assert bearish.confidence == 0.75
    assert bullish.trend_direction == TrendDirection.BULLISH
    assert bullish.prediction == pytest.approx(105.0 * 1.02)


def test_signal_absorption_outranks_stop_run(config):
    candles = make_flat_candles(count=5, price=94.0)
    flow = OrderFlowSignals(absorption=True, stop_run=True, liquidity_grab=True)

    signal = _signal(candles, 94.0, config, order_flow=flow, volume_delta=-10.0)

    assert signal.confidence == 0.85
    assert signal.trend_direction == TrendDirection.BULLISH
