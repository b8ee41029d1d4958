"""
Market data and analysis result models.

This module defines the immutable inputs of the analysis pipeline (candles,
order book snapshots, the per-call market data state) and its output,
BayesianRegressionResult.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple


class TrendDirection(str, Enum):
    """Directional bias of a price-action signal."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class MarketRegime(str, Enum):
    """Coarse market-state classification."""
    UPTREND = "uptrend"
    DOWNTREND = "downtrend"
    CONSOLIDATING = "consolidating"
    EXHAUSTION = "exhaustion"


@dataclass(frozen=True)
class Candle:
    """
    Represents an OHLC candle.

    Timestamps are epoch milliseconds (UTC). Aggressor buy/sell volume and a
    rolling average volume are optional and supplied by the market-data
    collector when it has them.
    """
    open: float
    high: float
    low: float
    close: float
    volume: float
    timestamp: int
    buy_volume: Optional[float] = None
    sell_volume: Optional[float] = None
    average_volume: Optional[float] = None

    def __post_init__(self):
        if not (self.low <= min(self.open, self.close) and max(self.open, self.close) <= self.high):
            raise ValueError(
                f"Inconsistent candle at {self.timestamp}: "
                f"o={self.open} h={self.high} l={self.low} c={self.close}"
            )
        if self.volume < 0:
            raise ValueError(f"Negative volume at {self.timestamp}: {self.volume}")

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Candle":
        """Build a candle from collector output (snake_case or camelCase keys)."""

        def pick(snake: str, camel: str) -> Optional[float]:
            value = data[snake] if snake in data else data.get(camel)
            return None if value is None else float(value)

        return cls(
            open=float(data["open"]),
            high=float(data["high"]),
            low=float(data["low"]),
            close=float(data["close"]),
            volume=float(data.get("volume", 0.0)),
            timestamp=int(data.get("timestamp", 0)),
            buy_volume=pick("buy_volume", "buyVolume"),
            sell_volume=pick("sell_volume", "sellVolume"),
            average_volume=pick("average_volume", "averageVolume"),
        )


@dataclass(frozen=True)
class OrderBookSnapshot:
    """Point-in-time order book. Best levels come first on each side."""
    bids: Tuple[Tuple[float, float], ...] = ()
    asks: Tuple[Tuple[float, float], ...] = ()
    timestamp: int = 0

    def __post_init__(self):
        # Accept lists from callers but store tuples
        object.__setattr__(self, "bids", tuple(tuple(level) for level in self.bids))
        object.__setattr__(self, "asks", tuple(tuple(level) for level in self.asks))

    @property
    def is_empty(self) -> bool:
        return not self.bids and not self.asks


@dataclass(frozen=True)
class MarketDataState:
    """
    Read-only market snapshot handed to the analyzer for one call.

    Owned and refreshed by the market-data collector; the analyzer neither
    mutates it nor keeps a reference after returning.
    """
    symbol: str
    candles: Tuple[Candle, ...]
    current_price: Optional[float] = None
    average_volume: Optional[float] = None
    order_book: Optional[OrderBookSnapshot] = None
    timestamp: int = 0
    signal: Optional[Mapping[str, Any]] = None

    def __post_init__(self):
        object.__setattr__(self, "candles", tuple(self.candles))

    @property
    def last_close(self) -> Optional[float]:
        return self.candles[-1].close if self.candles else None

    @property
    def effective_price(self) -> float:
        """Current price, falling back to the last close (0 when there is neither)."""
        if self.current_price:
            return float(self.current_price)
        if self.candles:
            return float(self.candles[-1].close)
        return 0.0


@dataclass(frozen=True)
class LiquidityCluster:
    """Rounded price level with aggregated order book depth."""
    price: float
    bid_liquidity: float
    ask_liquidity: float


@dataclass(frozen=True)
class OrderFlowSignals:
    """Order flow conditions detected from the book and recent candles."""
    absorption: bool = False
    stop_run: bool = False
    liquidity_grab: bool = False


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator values attached to every analysis result."""
    support: float
    resistance: float
    vwma: float
    obv: float
    rsi: float
    volume_rsi: float
    vwap: float
    volume_delta: float = 0.0
    bid_ask_imbalance: float = 0.0
    liquidity_clusters: Tuple[LiquidityCluster, ...] = ()
    arima_forecast: float = 0.0
    arima_confidence: float = 0.0


@dataclass(frozen=True)
class BayesianRegressionResult:
    """
    Output of the forecast aggregator.

    Created fresh on every analysis call and never mutated. Consumed by the
    prompt builder and by the decision validator.
    """
    current_price: float
    predicted_price: float
    confidence_interval: Tuple[float, float]
    stop_loss: float
    take_profit: float
    trend_direction: TrendDirection
    volatility: float
    std_dev: float
    variance: float
    z_score: float
    probability: float
    regime: MarketRegime
    indicators: IndicatorSnapshot
    order_flow_signals: OrderFlowSignals = field(default_factory=OrderFlowSignals)
    is_fallback: bool = False

    @property
    def support(self) -> float:
        return self.confidence_interval[0]

    @property
    def resistance(self) -> float:
        return self.confidence_interval[1]

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict form for prompts and structured logs."""
        data = asdict(self)
        data["trend_direction"] = self.trend_direction.value
        data["regime"] = self.regime.value
        data["confidence_interval"] = list(self.confidence_interval)
        data["indicators"]["liquidity_clusters"] = [
            asdict(cluster) for cluster in self.indicators.liquidity_clusters
        ]
        return data


def candles_from_dicts(rows: Sequence[Mapping[str, Any]]) -> Tuple[Candle, ...]:
    """Convert collector rows into candles, preserving order."""
    return tuple(Candle.from_dict(row) for row in rows)
