"""
Technical Indicators - ATR, RSI, VWMA, VWAP, OBV, volume profile, order flow.

Implements:
1. ATR (Average True Range) - Volatility measure
2. RSI / Volume-RSI (Relative Strength Index) - Momentum oscillators
3. VWMA (Volume Weighted Moving Average) - Trend indicator
4. VWAP (Volume Weighted Average Price) - Running benchmark + volatility
5. OBV (On-Balance Volume) - Volume flow with divergence detection
6. Volume-based support/resistance - Volume profile levels
7. Order flow - Volume delta, book imbalance, liquidity clusters
8. AR(1) forecast - One-lag autoregressive price forecast

All functions are pure: they read a chronologically ascending candle sequence
and never mutate it.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from oracle_trader.analytics.models import (
    Candle,
    LiquidityCluster,
    OrderBookSnapshot,
    OrderFlowSignals,
)
from oracle_trader.utils.math_utils import StatisticalUtils, clamp, round_price, sanitize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VWAPAnalysis:
    """VWAP calculation result."""
    current_vwap: float
    volatility: float
    confirmed: bool
    series: Tuple[float, ...] = ()


@dataclass(frozen=True)
class OBVAnalysis:
    """On-Balance Volume result."""
    current_obv: float
    trend: float
    price_trend: float
    divergence: float
    is_divergent: bool


@dataclass(frozen=True)
class SupportResistance:
    """Volume-profile support and resistance."""
    support: float
    resistance: float
    levels: Tuple[float, ...] = ()


@dataclass(frozen=True)
class OrderFlowAnalysis:
    """Order flow result."""
    volume_delta: float
    bid_ask_imbalance: float
    liquidity_clusters: Tuple[LiquidityCluster, ...]


@dataclass(frozen=True)
class ARIMAForecast:
    """AR(1) forecast result."""
    forecast: float
    confidence: float


def _column(candles: Sequence[Candle], name: str) -> np.ndarray:
    return np.array([getattr(candle, name) for candle in candles], dtype=float)


def _typical_prices(candles: Sequence[Candle]) -> np.ndarray:
    return (_column(candles, "high") + _column(candles, "low") + _column(candles, "close")) / 3


def true_ranges(candles: Sequence[Candle]) -> np.ndarray:
    """
    True range of every candle after the first.

    TR = max(high - low, |high - prev_close|, |low - prev_close|)
    """
    if len(candles) < 2:
        return np.array([], dtype=float)

    highs = _column(candles, "high")
    lows = _column(candles, "low")
    closes = _column(candles, "close")

    high_low = highs[1:] - lows[1:]
    high_close = np.abs(highs[1:] - closes[:-1])
    low_close = np.abs(lows[1:] - closes[:-1])

    return np.maximum(np.maximum(high_low, high_close), low_close)


def calculate_atr(candles: Sequence[Candle], period: int = 14) -> float:
    """
    Calculate Average True Range (ATR).

    ATR Formula:
        ATR = simple mean of the last `period` true ranges

    Args:
        candles: Candles, most recent last
        period: ATR period (default: 14)

    Returns:
        ATR value (>= 0), or 0 if fewer than period + 1 candles
    """
    if period <= 0 or len(candles) < period + 1:
        return 0.0

    tr_values = true_ranges(candles)
    return sanitize(float(np.mean(tr_values[-period:])))


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_gain == 0 and avg_loss == 0:
        # No movement at all: trend is undefined
        return 50.0
    rs = 100.0 if avg_loss == 0 else avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def _wilder_rsi(values: np.ndarray, period: int) -> List[float]:
    if period <= 0 or len(values) < period + 1:
        return []

    deltas = np.diff(values)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    # Seed with simple averages over the first period
    avg_gain = float(np.mean(gains[:period]))
    avg_loss = float(np.mean(losses[:period]))
    rsi = [_rsi_value(avg_gain, avg_loss)]

    for i in range(period, len(deltas)):
        avg_gain = ((avg_gain * (period - 1)) + gains[i]) / period
        avg_loss = ((avg_loss * (period - 1)) + losses[i]) / period
        rsi.append(_rsi_value(avg_gain, avg_loss))

    return [sanitize(value, 50.0) for value in rsi]


def calculate_rsi(candles: Sequence[Candle], period: int = 21) -> List[float]:
    """
    Calculate Relative Strength Index (RSI) series over closes.

    RSI Formula:
        RSI = 100 - (100 / (1 + RS))
        where RS = Average Gain / Average Loss (100 when there are no losses)

    Using Wilder's smoothing:
        First Average = mean of the first `period` gains/losses
        Next Average = ((previous avg) × (period-1) + current) / period

    Args:
        candles: Candles, most recent last
        period: RSI period (default: 21)

    Returns:
        RSI values in [0, 100], empty if fewer than period + 1 candles
    """
    return _wilder_rsi(_column(candles, "close"), period)


def calculate_volume_rsi(candles: Sequence[Candle], period: int = 14) -> List[float]:
    """Same as calculate_rsi, applied to candle volume deltas."""
    return _wilder_rsi(_column(candles, "volume"), period)


def calculate_vwma(candles: Sequence[Candle], period: int = 96) -> List[float]:
    """
    Calculate Volume Weighted Moving Average (VWMA) series.

    VWMA Formula:
        VWMA = Σ(Typical Price × Volume) / Σ(Volume) over each window
        where Typical Price = (High + Low + Close) / 3

    A window without volume falls back to the plain mean typical price.

    Args:
        candles: Candles, most recent last
        period: Window length (default: 96)

    Returns:
        One value per full window, empty if fewer than period candles
    """
    if period <= 0 or len(candles) < period:
        return []

    typical = _typical_prices(candles)
    volumes = _column(candles, "volume")

    vwma = []
    for end in range(period, len(candles) + 1):
        window_tp = typical[end - period:end]
        window_vol = volumes[end - period:end]
        total_volume = window_vol.sum()
        if total_volume > 0:
            vwma.append(float((window_tp * window_vol).sum() / total_volume))
        else:
            vwma.append(float(window_tp.mean()))

    return vwma


def analyze_vwap(
    candles: Sequence[Candle],
    confirmation_threshold: float = 0.005
) -> VWAPAnalysis:
    """
    Calculate running VWAP, true-range volatility and VWAP confirmation.

    VWAP Formula:
        VWAP[i] = Σ(Typical Price × Volume)[0..i] / Σ(Volume)[0..i]

    Volatility = Σ(True Range) / number of candles.
    Confirmed = |close - VWAP| / VWAP > threshold AND last volume > mean volume.

    Args:
        candles: Candles, most recent last
        confirmation_threshold: Minimum relative deviation from VWAP

    Returns:
        VWAPAnalysis
    """
    if len(candles) == 0:
        return VWAPAnalysis(current_vwap=0.0, volatility=0.0, confirmed=False)

    typical = _typical_prices(candles)
    volumes = _column(candles, "volume")

    cumulative_tpv = np.cumsum(typical * volumes)
    cumulative_volume = np.cumsum(volumes)
    safe_volume = np.where(cumulative_volume > 0, cumulative_volume, 1.0)
    series = np.where(cumulative_volume > 0, cumulative_tpv / safe_volume, typical)

    volatility = float(true_ranges(candles).sum()) / len(candles)

    last = candles[-1]
    current_vwap = float(series[-1])
    deviation = StatisticalUtils.safe_divide(abs(last.close - current_vwap), current_vwap)
    average_volume = float(volumes.mean())

    return VWAPAnalysis(
        current_vwap=sanitize(current_vwap, last.close),
        volatility=sanitize(volatility),
        confirmed=bool(deviation > confirmation_threshold and last.volume > average_volume),
        series=tuple(float(v) for v in series),
    )


def analyze_obv(candles: Sequence[Candle], lookback: int = 288) -> OBVAnalysis:
    """
    Calculate On-Balance Volume and detect price/OBV divergence.

    OBV adds volume on up closes, subtracts it on down closes and holds on
    unchanged closes. Trends are net change over the last `lookback` points
    divided by `lookback`; they stay 0 until enough history exists.

    Divergence fires when sign(price trend) != sign(OBV trend); its
    magnitude is |price trend|.

    Args:
        candles: Candles, most recent last
        lookback: Trend window (default: 288)

    Returns:
        OBVAnalysis
    """
    closes = _column(candles, "close")
    volumes = _column(candles, "volume")

    obv = 0.0
    history: List[float] = []
    for i in range(1, len(candles)):
        if closes[i] > closes[i - 1]:
            obv += volumes[i]
        elif closes[i] < closes[i - 1]:
            obv -= volumes[i]
        history.append(obv)

    obv_trend = 0.0
    price_trend = 0.0
    if lookback > 0 and len(history) >= lookback:
        obv_trend = (history[-1] - history[-lookback]) / lookback
        price_trend = (closes[-1] - closes[-lookback]) / lookback

    obv_trend = sanitize(obv_trend)
    price_trend = sanitize(price_trend)
    is_divergent = StatisticalUtils.sign(price_trend) != StatisticalUtils.sign(obv_trend)

    return OBVAnalysis(
        current_obv=sanitize(obv),
        trend=obv_trend,
        price_trend=price_trend,
        divergence=abs(price_trend) if is_divergent else 0.0,
        is_divergent=is_divergent,
    )


def calculate_volume_support_resistance(
    candles: Sequence[Candle],
    lookback: int = 672,
    volume_threshold: float = 0.85
) -> SupportResistance:
    """
    Derive support/resistance from a volume profile.

    Every open/high/low/close (rounded to 2 decimals) collects the candle's
    volume. Levels with volume above max_volume × threshold are significant.
    Support is the nearest significant level below the last close (else the
    lowest one), resistance the nearest above (else the highest one).

    Args:
        candles: Candles, most recent last
        lookback: Number of recent candles in the profile (default: 672)
        volume_threshold: Fraction of the peak volume a level must exceed

    Returns:
        SupportResistance; last close × (0.98, 1.02) with fewer than 5 candles
    """
    recent = list(candles[-lookback:]) if lookback > 0 else list(candles)
    last_price = recent[-1].close if recent else 0.0
    fallback = SupportResistance(support=last_price * 0.98, resistance=last_price * 1.02)

    if len(recent) < 5:
        return fallback

    profile: Dict[float, float] = defaultdict(float)
    for candle in recent:
        for price in (candle.open, candle.high, candle.low, candle.close):
            profile[round_price(price)] += candle.volume

    max_volume = max(profile.values())
    significant = sorted(
        price for price, volume in profile.items()
        if volume > max_volume * volume_threshold
    )

    if not significant:
        return fallback

    below = [price for price in significant if price < last_price]
    above = [price for price in significant if price > last_price]

    support = max(below) if below else significant[0]
    resistance = min(above) if above else significant[-1]

    return SupportResistance(
        support=sanitize(support, fallback.support),
        resistance=sanitize(resistance, fallback.resistance),
        levels=tuple(significant),
    )


def analyze_order_flow(
    candles: Sequence[Candle],
    order_book: Optional[OrderBookSnapshot] = None,
    max_clusters: int = 5
) -> OrderFlowAnalysis:
    """
    Calculate volume delta, bid/ask imbalance and liquidity clusters.

    Volume Delta = Σ(Buy Volume - Sell Volume)
    Imbalance = (Total Bid - Total Ask) / (Total Bid + Total Ask)
    Clusters = top price levels (rounded to 2 decimals) by bid liquidity

    Args:
        candles: Candles, most recent last
        order_book: Order book snapshot (empty book if None)
        max_clusters: Number of clusters to keep (default: 5)

    Returns:
        OrderFlowAnalysis
    """
    book = order_book or OrderBookSnapshot()

    volume_delta = sum(
        (candle.buy_volume or 0.0) - (candle.sell_volume or 0.0)
        for candle in candles
    )

    total_bid = sum(quantity for _, quantity in book.bids)
    total_ask = sum(quantity for _, quantity in book.asks)
    total = total_bid + total_ask
    imbalance = (total_bid - total_ask) / total if total > 0 else 0.0

    liquidity: Dict[float, List[float]] = {}
    for price, quantity in book.bids:
        liquidity.setdefault(round_price(price), [0.0, 0.0])[0] += quantity
    for price, quantity in book.asks:
        liquidity.setdefault(round_price(price), [0.0, 0.0])[1] += quantity

    ranked = sorted(liquidity.items(), key=lambda item: item[1][0], reverse=True)
    clusters = tuple(
        LiquidityCluster(price=price, bid_liquidity=bid, ask_liquidity=ask)
        for price, (bid, ask) in ranked[:max_clusters]
    )

    return OrderFlowAnalysis(
        volume_delta=sanitize(volume_delta),
        bid_ask_imbalance=sanitize(imbalance),
        liquidity_clusters=clusters,
    )


def detect_order_flow_signals(
    current_price: float,
    order_book: Optional[OrderBookSnapshot],
    recent_candles: Sequence[Candle],
    volume_delta: float
) -> OrderFlowSignals:
    """
    Detect absorption and stop-run conditions.

    Absorption: price through the best ask with positive delta while the ask
    is 3x the bid size (or the mirror on the bid side).
    Stop run: the last candle takes out the previous high (low) while volume
    delta points the other way.

    Needs both book sides and at least two recent candles.
    """
    if order_book is None or not order_book.bids or not order_book.asks or len(recent_candles) < 2:
        return OrderFlowSignals()

    best_bid, bid_size = order_book.bids[0]
    best_ask, ask_size = order_book.asks[0]

    absorption = (
        (current_price > best_ask and volume_delta > 0 and ask_size > bid_size * 3)
        or (current_price < best_bid and volume_delta < 0 and bid_size > ask_size * 3)
    )

    previous = recent_candles[-2]
    last = recent_candles[-1]
    stop_run = (
        (last.high > previous.high and volume_delta < 0)
        or (last.low < previous.low and volume_delta > 0)
    )

    return OrderFlowSignals(
        absorption=absorption,
        stop_run=stop_run,
        liquidity_grab=absorption and stop_run,
    )


def forecast_ar1(candles: Sequence[Candle], min_candles: int = 10) -> ARIMAForecast:
    """
    One-lag autoregressive forecast on simple returns ("ARIMA-lite").

    phi = cov(r[t-1], r[t]) / var(r[t-1])
    forecast = last_close × (1 + phi × last_return)
    confidence = R² of the one-lag fit, clamped to [0.05, 0.95]

    Args:
        candles: Candles, most recent last
        min_candles: Minimum history (default: 10)

    Returns:
        ARIMAForecast; (0, 0) with insufficient or degenerate data
    """
    if len(candles) < max(min_candles, 3):
        return ARIMAForecast(forecast=0.0, confidence=0.0)

    prices = _column(candles, "close")
    with np.errstate(divide="ignore", invalid="ignore"):
        returns = np.diff(prices) / prices[:-1]

    if not np.all(np.isfinite(returns)):
        logger.debug("AR(1) skipped: non-finite returns")
        return ARIMAForecast(forecast=0.0, confidence=0.0)

    lagged = returns[:-1]
    current = returns[1:]

    lagged_variance = StatisticalUtils.population_covariance(lagged, lagged)
    if lagged_variance > 0:
        phi = StatisticalUtils.population_covariance(lagged, current) / lagged_variance
    else:
        phi = 0.0

    forecast_return = phi * returns[-1]
    forecast = prices[-1] * (1 + forecast_return)

    predicted = phi * lagged
    ss_res = float(np.sum((current - predicted) ** 2))
    ss_tot = float(np.sum((current - current.mean()) ** 2))
    r_squared = 1 - (ss_res / (ss_tot or 1.0))

    return ARIMAForecast(
        forecast=sanitize(forecast),
        confidence=sanitize(clamp(r_squared, 0.05, 0.95)),
    )


def resample_to_daily(candles: Sequence[Candle]) -> List[Candle]:
    """
    Aggregate candles into UTC calendar-day bars.

    open = first, high = max, low = min, close = last, volumes summed.
    The daily timestamp is the start of the day in epoch milliseconds.
    """
    if len(candles) == 0:
        return []

    frame = pd.DataFrame({
        "timestamp": [candle.timestamp for candle in candles],
        "open": _column(candles, "open"),
        "high": _column(candles, "high"),
        "low": _column(candles, "low"),
        "close": _column(candles, "close"),
        "volume": _column(candles, "volume"),
        "buy_volume": [candle.buy_volume or 0.0 for candle in candles],
        "sell_volume": [candle.sell_volume or 0.0 for candle in candles],
    })
    frame["day"] = pd.to_datetime(frame["timestamp"], unit="ms", utc=True).dt.floor("D")

    daily = frame.groupby("day", sort=False).agg(
        open=("open", "first"),
        high=("high", "max"),
        low=("low", "min"),
        close=("close", "last"),
        volume=("volume", "sum"),
        buy_volume=("buy_volume", "sum"),
        sell_volume=("sell_volume", "sum"),
    )

    return [
        Candle(
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
            timestamp=int(day.value // 1_000_000),
            buy_volume=float(row.buy_volume),
            sell_volume=float(row.sell_volume),
        )
        for day, row in daily.iterrows()
    ]
