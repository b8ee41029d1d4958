"""
Mathematical Utilities

Provides the numeric helpers shared by the analytics pipeline:
- Sanitizing non-finite results at computation boundaries
- Safe division and clamping
- Half-up price rounding used for volume and liquidity buckets
"""

import math
from typing import Sequence

import numpy as np


def sanitize(value: float, fallback: float = 0.0) -> float:
    """
    Return value as a float, or fallback when it is None, NaN or infinite.

    Every indicator passes its outputs through this before handing them to
    the next stage, so downstream code never sees a non-finite number.
    """
    if value is None:
        return float(fallback)
    try:
        value = float(value)
    except (TypeError, ValueError):
        return float(fallback)
    if not math.isfinite(value):
        return float(fallback)
    return value


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp value into [lower, upper]."""
    return max(lower, min(upper, value))


def round_price(price: float, decimals: int = 2) -> float:
    """
    Round a price half-up to a fixed number of decimals.

    Python's round() uses banker's rounding; price buckets must round 0.005
    up so that the same level always lands in the same bucket.
    """
    factor = 10 ** decimals
    return math.floor(price * factor + 0.5) / factor


class StatisticalUtils:
    """Statistical calculation utilities."""

    @staticmethod
    def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
        """Safe division that handles zero denominators."""
        if denominator == 0 or math.isnan(denominator):
            return default
        return numerator / denominator

    @staticmethod
    def sign(value: float) -> int:
        """Sign of value as -1, 0 or 1."""
        if value > 0:
            return 1
        if value < 0:
            return -1
        return 0

    @staticmethod
    def population_covariance(x: Sequence[float], y: Sequence[float]) -> float:
        """Covariance normalised by N (not N-1)."""
        if len(x) != len(y) or len(x) == 0:
            return 0.0
        x_arr = np.asarray(x, dtype=float)
        y_arr = np.asarray(y, dtype=float)
        return float(np.mean((x_arr - x_arr.mean()) * (y_arr - y_arr.mean())))

    @staticmethod
    def population_std(data: Sequence[float]) -> float:
        """Standard deviation normalised by N."""
        if len(data) == 0:
            return 0.0
        return float(np.std(np.asarray(data, dtype=float)))
