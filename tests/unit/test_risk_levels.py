"""
Unit tests for stop-loss / take-profit calculation.

With fewer than 15 daily bars the ATR falls back to 2% of price, which keeps
the expected levels below easy to derive by hand:
    atr = 2, multiplier = 2.5, buffer = 4%, min_profit = 1, max_profit = 8
"""

import pytest

from oracle_trader.analytics.models import LiquidityCluster, TrendDirection
from oracle_trader.analytics.risk_levels import (
    atr_multiplier,
    calculate_daily_atr,
    calculate_risk_levels,
)
from oracle_trader.config.settings import AnalyzerConfig

from tests.factories import make_candle, make_flat_candles


def _cluster(price):
    return LiquidityCluster(price=price, bid_liquidity=10.0, ask_liquidity=10.0)


@pytest.fixture
def config():
    return AnalyzerConfig()


@pytest.fixture
def candles():
    return make_flat_candles(count=100, price=100.0)


# ============================================================================
# Daily ATR
# ============================================================================

def test_daily_atr_falls_back_to_two_percent(candles):
    assert calculate_daily_atr(candles, 100.0, period=14) == pytest.approx(2.0)


def test_daily_atr_from_daily_bars():
    # One candle per UTC day, each with a 4-point range
    daily = [make_candle(100.0, high=102.0, low=98.0, index=i * 96) for i in range(16)]

    assert calculate_daily_atr(daily, 100.0, period=14) == pytest.approx(4.0)


@pytest.mark.parametrize("atr,expected", [(4.0, 3.75), (2.5, 3.125), (1.0, 2.5)])
def test_atr_multiplier_widens_with_volatility(atr, expected):
    assert atr_multiplier(atr, 100.0, 2.5) == pytest.approx(expected)


# ============================================================================
# Ordering
# ============================================================================

@pytest.mark.parametrize("price", [0.5, 100.0, 2500.0])
@pytest.mark.parametrize("direction", list(TrendDirection))
def test_levels_bracket_price(price, direction, config):
    candles = make_flat_candles(count=100, price=price)

    levels = calculate_risk_levels(candles, price, price * 0.97, price * 1.03, direction, config)

    if direction == TrendDirection.BEARISH:
        assert levels.take_profit < price < levels.stop_loss
    else:
        assert levels.stop_loss < price < levels.take_profit


def test_non_positive_price_rejected(candles, config):
    with pytest.raises(ValueError):
        calculate_risk_levels(candles, 0.0, 95.0, 105.0, TrendDirection.BULLISH, config)


# ============================================================================
# Bullish
# ============================================================================

def test_bullish_without_clusters(candles, config):
    levels = calculate_risk_levels(candles, 100.0, 95.0, 105.0, TrendDirection.BULLISH, config)

    # ATR stop (100 - 2 x 2.5) is tighter than the buffered support (91.2)
    assert levels.stop_loss == pytest.approx(95.0)
    assert levels.take_profit == pytest.approx(101.0)
    assert levels.atr == pytest.approx(2.0)


def test_bullish_stop_below_nearest_cluster(candles, config):
    clusters = [_cluster(97.0), _cluster(99.0)]

    levels = calculate_risk_levels(candles, 100.0, 95.0, 105.0, TrendDirection.BULLISH, config, clusters)

    assert levels.stop_loss == pytest.approx(99.0 * 0.96)


def test_bullish_take_profit_at_next_cluster(candles, config):
    clusters = [_cluster(103.0), _cluster(106.0)]

    levels = calculate_risk_levels(candles, 100.0, 95.0, 105.0, TrendDirection.BULLISH, config, clusters)

    assert levels.take_profit == pytest.approx(103.0)


def test_bullish_take_profit_capped(candles, config):
    levels = calculate_risk_levels(
        candles, 100.0, 95.0, 105.0, TrendDirection.BULLISH, config, [_cluster(150.0)]
    )

    # min(4 x ATR, 15% of price) = 8
    assert levels.take_profit == pytest.approx(108.0)


def test_bullish_stop_clamped_to_max_distance(candles, config):
    wide = config.with_overrides(daily_atr_multiplier=5.0)

    levels = calculate_risk_levels(candles, 100.0, 80.0, 105.0, TrendDirection.BULLISH, wide)

    assert levels.stop_loss == pytest.approx(95.0)


def test_bullish_stop_clamped_to_min_distance(candles, config):
    tight = config.with_overrides(daily_atr_multiplier=1.0, min_stop_distance_percent=0.04)

    levels = calculate_risk_levels(candles, 100.0, 99.0, 105.0, TrendDirection.BULLISH, tight)

    assert levels.stop_loss == pytest.approx(96.0)


# ============================================================================
# Bearish / neutral
# ============================================================================

def test_bearish_without_clusters(candles, config):
    levels = calculate_risk_levels(candles, 100.0, 95.0, 105.0, TrendDirection.BEARISH, config)

    assert levels.stop_loss == pytest.approx(105.0)
    assert levels.take_profit == pytest.approx(99.0)


def test_bearish_take_profit_at_cluster_below(candles, config):
    levels = calculate_risk_levels(
        candles, 100.0, 95.0, 105.0, TrendDirection.BEARISH, config, [_cluster(96.0)]
    )

    assert levels.take_profit == pytest.approx(96.0)


def test_neutral_uses_risk_reward_ratio(candles, config):
    levels = calculate_risk_levels(candles, 100.0, 95.0, 105.0, TrendDirection.NEUTRAL, config)

    assert levels.stop_loss == pytest.approx(95.0)
    assert levels.take_profit == pytest.approx(115.0)
