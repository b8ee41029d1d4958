"""
Shared fixtures: candle series, market snapshots and analysis results.
"""

import pytest

from tests.factories import (
    make_candle,
    make_flat_candles,
    make_result,
    make_rising_candles,
    make_state,
)


@pytest.fixture
def candle_factory():
    return make_candle


@pytest.fixture
def flat_candles():
    return make_flat_candles()


@pytest.fixture
def rising_candles():
    return make_rising_candles()


@pytest.fixture
def state_factory():
    return make_state


@pytest.fixture
def result_factory():
    return make_result


@pytest.fixture
def buy_payload():
    """Valid buy against make_result() defaults (0.02 x $2000 of stablecoin)."""
    return {
        "decision": "buy",
        "tokenIn": "STABLECOIN",
        "tokenOut": "VOLATILE",
        "amount": "40",
        "slippage": 1.0,
        "stopLoss": 1900.0,
        "takeProfit": 2300.0,
        "reasoning": "Bounce off support with volume confirmation",
        "confidence": "high",
    }
