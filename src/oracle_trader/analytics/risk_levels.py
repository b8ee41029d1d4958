"""
Risk-Level Calculator

Derives stop-loss and take-profit from daily ATR, liquidity clusters and the
volume-profile levels:

1. Daily ATR (15m candles resampled to UTC days)
2. Volatility-scaled ATR multiplier and level buffer
3. Stop beyond the nearest liquidity cluster (or support/resistance),
   bounded by minimum/maximum stop distance
4. Take profit at the next cluster in the trend direction, bounded by a
   minimum profit distance and min(4 x ATR, 15% of price)

Ordering guarantee for any positive price:
    bullish/neutral: stop_loss < price < take_profit
    bearish:         take_profit < price < stop_loss
"""

import logging
from dataclasses import dataclass
from typing import Sequence

from oracle_trader.analytics.indicators import calculate_atr, resample_to_daily
from oracle_trader.analytics.models import Candle, LiquidityCluster, TrendDirection
from oracle_trader.config.settings import AnalyzerConfig
from oracle_trader.utils.math_utils import clamp, sanitize

logger = logging.getLogger(__name__)

FALLBACK_ATR_PCT = 0.02
MIN_PROFIT_ATR_MULTIPLE = 0.5
MIN_PROFIT_PCT = 0.005
MAX_PROFIT_ATR_MULTIPLE = 4.0
MAX_PROFIT_PCT = 0.15


@dataclass(frozen=True)
class RiskLevels:
    """Stop-loss / take-profit pair and the ATR they were derived from."""
    stop_loss: float
    take_profit: float
    atr: float


def calculate_daily_atr(candles: Sequence[Candle], current_price: float, period: int = 14) -> float:
    """
    ATR over daily bars.

    Falls back to 2% of price when fewer than period + 1 daily bars exist.
    """
    daily = resample_to_daily(candles)
    if len(daily) < period + 1:
        logger.debug(f"Only {len(daily)} daily bars, using {FALLBACK_ATR_PCT:.0%} of price as ATR")
        return current_price * FALLBACK_ATR_PCT
    return sanitize(calculate_atr(daily, period), current_price * FALLBACK_ATR_PCT)


def atr_multiplier(atr: float, current_price: float, base: float) -> float:
    """Widen the ATR multiple in volatile markets (x1.5 above 3%, x1.25 above 2%)."""
    ratio = atr / current_price
    if ratio > 0.03:
        return base * 1.5
    if ratio > 0.02:
        return base * 1.25
    return base


def calculate_risk_levels(
    candles: Sequence[Candle],
    current_price: float,
    support: float,
    resistance: float,
    trend_direction: TrendDirection,
    config: AnalyzerConfig,
    liquidity_clusters: Sequence[LiquidityCluster] = ()
) -> RiskLevels:
    """
    Calculate stop-loss and take-profit for a trend direction.

    Args:
        candles: Candle history, most recent last
        current_price: Entry price (must be positive)
        support: Volume-profile support
        resistance: Volume-profile resistance
        trend_direction: Direction of the signal
        config: Analyzer configuration
        liquidity_clusters: Order book clusters

    Returns:
        RiskLevels
    """
    if current_price <= 0:
        raise ValueError(f"current_price must be positive, got {current_price}")

    atr = calculate_daily_atr(candles, current_price, config.min_atr_period)
    ratio = atr / current_price
    multiplier = atr_multiplier(atr, current_price, config.daily_atr_multiplier)
    buffer = clamp(ratio * 2, 0.02, 0.05)

    min_stop = current_price * config.min_stop_distance_percent
    max_stop = current_price * config.max_stop_distance_percent

    min_profit = max(atr * MIN_PROFIT_ATR_MULTIPLE, current_price * MIN_PROFIT_PCT)
    max_profit = max(min(atr * MAX_PROFIT_ATR_MULTIPLE, current_price * MAX_PROFIT_PCT), min_profit)

    cluster_prices = [cluster.price for cluster in liquidity_clusters]
    below = [price for price in cluster_prices if price < current_price]
    above = [price for price in cluster_prices if price > current_price]

    if trend_direction == TrendDirection.BULLISH:
        level = max(below) if below else support
        effective = level * (1 - buffer)
        stop_loss = max(effective, current_price - atr * multiplier)

        distance = current_price - stop_loss
        if distance < min_stop:
            stop_loss = current_price - min_stop
        elif distance > max_stop:
            stop_loss = current_price - max_stop

        target = min(above) if above else current_price + min_profit
        take_profit = current_price + clamp(target - current_price, min_profit, max_profit)

    elif trend_direction == TrendDirection.BEARISH:
        level = min(above) if above else resistance
        effective = level * (1 + buffer)
        stop_loss = min(effective, current_price + atr * multiplier)

        distance = stop_loss - current_price
        if distance < min_stop:
            stop_loss = current_price + min_stop
        elif distance > max_stop:
            stop_loss = current_price + max_stop

        target = max(below) if below else current_price - min_profit
        take_profit = current_price - clamp(current_price - target, min_profit, max_profit)

    else:
        distance = max(atr * multiplier, min_stop)
        stop_loss = current_price - distance
        take_profit = current_price + distance * config.risk_reward_ratio

    logger.debug(
        f"Risk levels ({trend_direction.value}): price={current_price:.4f} "
        f"stop={stop_loss:.4f} take={take_profit:.4f} atr={atr:.4f} mult={multiplier:.2f}"
    )

    return RiskLevels(stop_loss=stop_loss, take_profit=take_profit, atr=atr)
