"""
Unit tests for prompt construction and spike classification.
"""

import json

import pytest

from oracle_trader.analytics.models import TrendDirection
from oracle_trader.config.settings import TokenPairConfig
from oracle_trader.decision.models import DecisionAction
from oracle_trader.decision.prompt import (
    PriceSpike,
    build_prompt,
    classify_spike_volatility,
    render_template,
)
from oracle_trader.decision.validator import DecisionValidator

from tests.factories import make_result


def test_render_template():
    rendered = render_template("{{a}} and {{b}} but not {{missing}}", {"a": 1, "b": "two"})

    assert rendered == "1 and two but not "


@pytest.mark.parametrize("change,level", [
    (1.5, "low"), (-1.99, "low"), (2.0, "medium"), (4.9, "medium"),
    (-7.0, "high"), (10.0, "extreme"), (25.0, "extreme"),
])
def test_classify_spike_volatility(change, level):
    assert classify_spike_volatility(change) == level


def test_price_spike_event():
    spike = PriceSpike(current_price=1900.0, previous_price=2000.0, change_percent=-5.0)

    assert spike.direction == "down"
    assert spike.to_event() == {
        "type": "spike",
        "direction": "down",
        "change_percent": 5.0,
        "current_price": 1900.0,
        "previous_price": 2000.0,
        "volatility_level": "high",
    }


def test_prompt_carries_levels_and_contract():
    analysis = make_result(trend_direction=TrendDirection.BEARISH)

    prompt = build_prompt(analysis, "ethusdt", min_slippage=0.5, max_slippage=3.0)

    assert "Symbol: ETHUSDT" in prompt.system
    assert "Stop Loss: 1900.0000" in prompt.system
    assert "Take Profit: 2300.0000" in prompt.system
    assert "between 0.5 and 3.0" in prompt.system
    assert 'amount MUST be "40" (USDC) for BUY and "0.02" (WETH) for SELL' in prompt.system
    assert 'tokenIn and tokenOut MUST be ""' in prompt.system
    assert "Trend: BEARISH ↓" in prompt.instructions
    assert "Confidence: 75.0%" in prompt.instructions
    assert "{{" not in prompt.system + prompt.instructions
    assert "price_event" not in prompt.market_context


def test_prompt_market_context():
    tokens = TokenPairConfig(stable_symbol="DAI", volatile_symbol="WBTC")

    prompt = build_prompt(make_result(), "BTCDAI", token_pair=tokens)

    context = prompt.market_context
    assert context["symbol"] == "BTCDAI"
    assert context["tokens"] == {"STABLECOIN": "DAI", "VOLATILE": "WBTC"}
    assert context["analysis"]["stop_loss"] == 1900.0
    assert context["analysis"]["trend_direction"] == "bullish"


def test_prompt_with_spike():
    spike = PriceSpike(current_price=2100.0, previous_price=2000.0, change_percent=5.0)

    prompt = build_prompt(make_result(), "ETHUSDT", spike=spike)

    assert prompt.market_context["price_event"]["direction"] == "up"
    assert "IMPORTANT: Price spike detected (5.00% up, high volatility)" in prompt.instructions


def test_prompt_serializes_to_json():
    prompt = build_prompt(make_result(), "ETHUSDT")

    data = json.loads(prompt.to_json())

    assert set(data) == {"system", "instructions", "market_context"}
    assert data["market_context"]["analysis"]["regime"] == "uptrend"


# ============================================================================
# Output contract
# ============================================================================

def _examples(prompt):
    lines = prompt.system.splitlines()
    start = lines.index("OUTPUT FORMAT - COMPLETE VALID JSON ONLY, one of:")
    return json.loads(lines[start + 1]), json.loads(lines[start + 2])


def test_contract_examples_pass_validation():
    validator = DecisionValidator()
    analysis = make_result()
    lower, upper = validator.slippage_bounds(analysis, analysis.current_price)

    prompt = build_prompt(
        analysis,
        "ETHUSDT",
        validator.tokens,
        min_slippage=lower,
        max_slippage=upper,
        buy_amount=validator.expected_amount(DecisionAction.BUY, analysis, 2000.0),
        sell_amount=validator.expected_amount(DecisionAction.SELL, analysis, 2000.0),
    )
    trade, hold = _examples(prompt)

    decision = validator.validate(trade, analysis)
    assert decision.decision == DecisionAction.BUY
    assert decision.amount == "40"
    assert validator.validate(hold, analysis).decision == DecisionAction.HOLD


def test_sell_example_follows_short_levels_and_deviation_tier():
    # |2000 - 1990| / 4 = 2.5 sigma -> 0.04 volatile units
    analysis = make_result(
        predicted_price=1990.0,
        std_dev=4.0,
        stop_loss=2100.0,
        take_profit=1700.0,
        trend_direction=TrendDirection.BEARISH,
    )

    prompt = build_prompt(analysis, "ETHUSDT")
    trade, _ = _examples(prompt)

    assert trade["decision"] == "sell"
    assert trade["amount"] == "0.04"
    assert "Position size: 80 USDC to buy, 0.04 WETH to sell" in prompt.instructions
    assert DecisionValidator().validate(trade, analysis).amount == "0.04"
