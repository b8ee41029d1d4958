"""
Prompt construction for the inference service.

Renders the analysis (levels, trend, regime, confidence) and the required
JSON output contract into a PromptConfig. Spike details, when present, are
attached as a price_event in the market context and called out in the
instructions.
"""

import json
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Mapping, Optional

from oracle_trader.analytics.models import BayesianRegressionResult, TrendDirection
from oracle_trader.config.settings import TokenPairConfig, ValidatorConfig
from oracle_trader.decision.models import DecisionAction
from oracle_trader.decision.validator import expected_position_size, format_amount

TEMPLATE_KEY_RE = re.compile(r"\{\{(\w+)\}\}")

TREND_ICONS = {
    TrendDirection.BULLISH: "↑",
    TrendDirection.BEARISH: "↓",
    TrendDirection.NEUTRAL: "→",
}

SYSTEM_TEMPLATE = "\n".join([
    "OHLC-BASED TRADING AGENT PROTOCOL - STRICT RULES APPLY",
    "Symbol: {{symbol}}",
    "Current Price: {{currentPrice}}",
    "Predicted Price: {{predictedPrice}}",
    "Volatility: {{volatility}}",
    "Market Regime: {{regime}}",
    "",
    "KEY LEVELS:",
    "Support: {{support}}",
    "Resistance: {{resistance}}",
    "Stop Loss: {{stopLoss}}",
    "Take Profit: {{takeProfit}}",
    "",
    "OHLC VOLUME-BASED RULES:",
    "1. Volume Confirmation REQUIRED for breakouts",
    "2. Volume Divergence indicates potential reversals",
    "3. Low volume = reduced position sizing",
    "",
    "ABSOLUTE REQUIREMENTS:",
    "1. For BUY/SELL decisions:",
    '   - tokenIn MUST be "STABLECOIN" for BUY, "VOLATILE" for SELL',
    '   - tokenOut MUST be "VOLATILE" for BUY, "STABLECOIN" for SELL',
    '   - amount MUST be "{{buyAmount}}" ({{stableSymbol}}) for BUY and "{{sellAmount}}" ({{volatileSymbol}}) for SELL',
    "   - slippage MUST be a percent between {{minSlippage}} and {{maxSlippage}}",
    "   - stopLoss and takeProfit MUST be the Stop Loss and Take Profit above",
    "2. For HOLD decisions:",
    '   - tokenIn and tokenOut MUST be ""',
    '   - amount MUST be "0"; slippage, stopLoss and takeProfit MUST be 0',
    "3. NEVER use token addresses (0x...) or return incomplete JSON",
    "",
    "OUTPUT FORMAT - COMPLETE VALID JSON ONLY, one of:",
    "{{tradeExample}}",
    "{{holdExample}}",
])

INSTRUCTIONS_TEMPLATE = "\n".join([
    "OHLC MARKET ANALYSIS:",
    "- Trend: {{trend}} {{icon}}",
    "- Confidence: {{confidence}}%",
    "- Regime: {{regime}}",
    "- Z-Score: {{zScore}}",
    "",
    "RISK MANAGEMENT:",
    "1. Bayesian Levels: stop loss {{stopLoss}}, take profit {{takeProfit}}",
    "2. Position size: {{buyAmount}} {{stableSymbol}} to buy, {{sellAmount}} {{volatileSymbol}} to sell",
    "",
    "Return COMPLETE, VALID JSON with ALL required fields.",
])


def render_template(template: str, data: Mapping[str, Any]) -> str:
    """Replace {{key}} placeholders; unknown keys render as empty strings."""
    return TEMPLATE_KEY_RE.sub(lambda m: str(data[m.group(1)]) if m.group(1) in data else "", template)


def classify_spike_volatility(change_percent: float) -> str:
    """low (< 2%), medium (< 5%), high (< 10%) or extreme."""
    change = abs(change_percent)
    if change < 2:
        return "low"
    if change < 5:
        return "medium"
    if change < 10:
        return "high"
    return "extreme"


@dataclass(frozen=True)
class PriceSpike:
    """On-chain price spike event."""
    current_price: float
    previous_price: float
    change_percent: float

    @property
    def direction(self) -> str:
        return "up" if self.current_price > self.previous_price else "down"

    @property
    def volatility_level(self) -> str:
        return classify_spike_volatility(self.change_percent)

    def to_event(self) -> Dict[str, Any]:
        return {
            "type": "spike",
            "direction": self.direction,
            "change_percent": abs(self.change_percent),
            "current_price": self.current_price,
            "previous_price": self.previous_price,
            "volatility_level": self.volatility_level,
        }


HOLD_EXAMPLE = {
    "decision": "hold",
    "tokenIn": "",
    "tokenOut": "",
    "amount": "0",
    "slippage": 0,
    "stopLoss": 0,
    "takeProfit": 0,
    "reasoning": "No edge at current levels",
    "confidence": "low",
}


def trade_example(
    analysis: BayesianRegressionResult,
    buy_amount: float,
    sell_amount: float,
    slippage: float
) -> Dict[str, Any]:
    """
    Trade in the direction the analysis levels describe.

    A stop loss above price is a short setup, so the example is a sell;
    otherwise it is a buy.
    """
    if analysis.stop_loss > analysis.current_price:
        action, token_in, token_out, amount = DecisionAction.SELL, "VOLATILE", "STABLECOIN", sell_amount
    else:
        action, token_in, token_out, amount = DecisionAction.BUY, "STABLECOIN", "VOLATILE", buy_amount

    return {
        "decision": action.value,
        "tokenIn": token_in,
        "tokenOut": token_out,
        "amount": format_amount(amount),
        "slippage": slippage,
        "stopLoss": analysis.stop_loss,
        "takeProfit": analysis.take_profit,
        "reasoning": "Detailed analysis here...",
        "confidence": "medium",
    }


@dataclass(frozen=True)
class PromptConfig:
    """Prompt sent to the inference service."""
    system: str
    instructions: str
    market_context: Dict[str, Any] = field(default_factory=dict, hash=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


def build_prompt(
    analysis: BayesianRegressionResult,
    symbol: str,
    token_pair: Optional[TokenPairConfig] = None,
    spike: Optional[PriceSpike] = None,
    min_slippage: float = 0.5,
    max_slippage: float = 1.5,
    buy_amount: Optional[float] = None,
    sell_amount: Optional[float] = None
) -> PromptConfig:
    """
    Build the inference prompt for an analysis.

    Args:
        analysis: Analyzer output
        symbol: Trading pair symbol
        token_pair: Token pair (aliases are described in the market context)
        spike: Triggering price spike, if any
        min_slippage: Lower slippage bound quoted to the model (%)
        max_slippage: Upper slippage bound quoted to the model (%)
        buy_amount: Stablecoin amount a buy must spend
        sell_amount: Volatile amount a sell must spend
          (both default to the sizes a default-configured validator expects)

    Returns:
        PromptConfig
    """
    tokens = token_pair or TokenPairConfig()
    price = analysis.current_price
    if buy_amount is None:
        buy_amount = expected_position_size(DecisionAction.BUY, analysis, price, ValidatorConfig())
    if sell_amount is None:
        sell_amount = expected_position_size(DecisionAction.SELL, analysis, price, ValidatorConfig())

    data = {
        "symbol": symbol.upper(),
        "currentPrice": f"{analysis.current_price:.4f}",
        "predictedPrice": f"{analysis.predicted_price:.4f}",
        "volatility": f"{analysis.volatility:.4f}",
        "regime": analysis.regime.value.upper(),
        "support": f"{analysis.support:.4f}",
        "resistance": f"{analysis.resistance:.4f}",
        "stopLoss": f"{analysis.stop_loss:.4f}",
        "takeProfit": f"{analysis.take_profit:.4f}",
        "trend": analysis.trend_direction.value.upper(),
        "icon": TREND_ICONS[analysis.trend_direction],
        "confidence": f"{analysis.probability * 100:.1f}",
        "zScore": f"{analysis.z_score:.2f}",
        "minSlippage": min_slippage,
        "maxSlippage": max_slippage,
        "buyAmount": format_amount(buy_amount),
        "sellAmount": format_amount(sell_amount),
        "stableSymbol": tokens.stable_symbol,
        "volatileSymbol": tokens.volatile_symbol,
        "tradeExample": json.dumps(trade_example(analysis, buy_amount, sell_amount, min_slippage)),
        "holdExample": json.dumps(HOLD_EXAMPLE),
    }

    instructions = render_template(INSTRUCTIONS_TEMPLATE, data)
    market_context: Dict[str, Any] = {
        "symbol": symbol.upper(),
        "analysis": analysis.to_dict(),
        "tokens": {
            "STABLECOIN": tokens.stable_symbol,
            "VOLATILE": tokens.volatile_symbol,
        },
    }

    if spike is not None:
        market_context["price_event"] = spike.to_event()
        instructions += (
            f"\n\nIMPORTANT: Price spike detected "
            f"({abs(spike.change_percent):.2f}% {spike.direction}, {spike.volatility_level} volatility)"
        )

    return PromptConfig(
        system=render_template(SYSTEM_TEMPLATE, data),
        instructions=instructions,
        market_context=market_context,
    )
