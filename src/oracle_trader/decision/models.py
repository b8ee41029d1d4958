"""
Trading decision models.

A decision arrives as untrusted text from the inference service, becomes a
raw payload via the parser (Parsed / Unparseable) and leaves the validator as
a normalized TradingDecision. Only the normalized form may reach execution.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Union

from oracle_trader.decision.errors import MalformedDecisionError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

FALLBACK_REASONING = "FALLBACK: Could not parse decision"


class DecisionAction(str, Enum):
    """Trade action proposed by the inference service."""
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class Confidence(str, Enum):
    """Self-reported confidence of a decision."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class TradingDecision:
    """
    Normalized trading decision.

    amount is a decimal string in input-token units (stablecoin for a buy,
    volatile token for a sell). slippage is in percent (0.5 == 0.5%).
    """
    decision: DecisionAction
    token_in: str
    token_out: str
    amount: str
    slippage: float
    stop_loss: float
    take_profit: float
    reasoning: str = ""
    confidence: Confidence = Confidence.MEDIUM

    @property
    def is_trade(self) -> bool:
        return self.decision != DecisionAction.HOLD

    @classmethod
    def fallback_hold(
        cls,
        reason: str = FALLBACK_REASONING,
        confidence: Confidence = Confidence.MEDIUM
    ) -> "TradingDecision":
        """Safe hold with zero addresses and amounts."""
        return cls(
            decision=DecisionAction.HOLD,
            token_in=ZERO_ADDRESS,
            token_out=ZERO_ADDRESS,
            amount="0",
            slippage=0.0,
            stop_loss=0.0,
            take_profit=0.0,
            reasoning=reason,
            confidence=confidence,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire form, using the inference protocol's camelCase keys."""
        return {
            "decision": self.decision.value,
            "tokenIn": self.token_in,
            "tokenOut": self.token_out,
            "amount": self.amount,
            "slippage": self.slippage,
            "stopLoss": self.stop_loss,
            "takeProfit": self.take_profit,
            "reasoning": self.reasoning,
            "confidence": self.confidence.value,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass(frozen=True)
class Parsed:
    """Successfully extracted JSON object and the strategy that found it."""
    payload: Dict[str, Any] = field(hash=False)
    strategy: str = "direct"

    ok = True

    def unwrap(self) -> Dict[str, Any]:
        return self.payload


@dataclass(frozen=True)
class Unparseable:
    """No strategy could extract a decision object."""
    reason: str

    ok = False

    def unwrap(self) -> Dict[str, Any]:
        raise MalformedDecisionError(f"Unparseable decision: {self.reason}", field="payload")


ParseResult = Union[Parsed, Unparseable]
