"""
Decision Validator / Normalizer

Reconciles an externally proposed trade with the analyzer's output before it
may reach execution. Checks run in order and each failure raises its own
DecisionValidationError subclass:

1. Action          - buy | sell | hold
2. Hold shape      - zero tokens/amounts, canonical hold
3. Tokens          - aliases resolved, checksummed, direction matches action
4. Amount          - finite and positive
5. Risk levels     - stop/take within tolerance of the analysis, ordered
                     around price, minimum risk/reward distance
6. Slippage        - within volatility-dependent bounds (percent)
7. Confidence      - high | medium | low
8. Position size   - matches the deviation-implied tier within tolerance

Lenient mode repairs what can be repaired without changing intent (reversed
token pair, out-of-range slippage, too-tight take profit) and still raises
for everything else. Validation is idempotent: a normalized decision
validates to an equal decision.
"""

import logging
import math
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from web3 import Web3

from oracle_trader.analytics.models import BayesianRegressionResult
from oracle_trader.config.settings import TokenPairConfig, ValidatorConfig
from oracle_trader.decision.errors import (
    AmountOutOfRangeError,
    MalformedDecisionError,
    PositionSizeMismatchError,
    RiskLevelDivergenceError,
    SlippageOutOfRangeError,
    TokenMismatchError,
)
from oracle_trader.decision.models import (
    FALLBACK_REASONING,
    ZERO_ADDRESS,
    Confidence,
    DecisionAction,
    TradingDecision,
    Unparseable,
)
from oracle_trader.decision.parser import parse_decision
from oracle_trader.utils.math_utils import round_price

logger = logging.getLogger(__name__)

# Wire key -> accepted snake_case alias
FIELD_ALIASES = {
    "tokenIn": "token_in",
    "tokenOut": "token_out",
    "stopLoss": "stop_loss",
    "takeProfit": "take_profit",
}


def _get(payload: Mapping[str, Any], key: str) -> Any:
    if key in payload:
        return payload[key]
    alias = FIELD_ALIASES.get(key)
    return payload.get(alias) if alias else None


def _to_float(value: Any) -> Optional[float]:
    """Parse a JSON number or numeric string; None if it is neither."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def format_amount(amount: float) -> str:
    """Decimal string with at most 8 decimals and no trailing zeros."""
    return f"{amount:.8f}".rstrip("0").rstrip(".")


def expected_position_size(
    action: DecisionAction,
    analysis: BayesianRegressionResult,
    price: float,
    config: ValidatorConfig
) -> float:
    """
    Deviation-implied position size in input-token units.

    deviation = min(cap, |price - predicted| / std_dev), 0 when std_dev is 0
    size = 0.04 (> 2 sigma), 0.03 (> 1 sigma), else 0.02 volatile units;
    a buy spends size x price of the stablecoin.
    """
    if analysis.std_dev > 0:
        deviation = min(
            config.max_deviation_sigma,
            abs(price - analysis.predicted_price) / analysis.std_dev,
        )
    else:
        deviation = 0.0

    if deviation > 2:
        size = config.high_position_size
    elif deviation > 1:
        size = config.medium_position_size
    else:
        size = config.base_position_size

    return size * price if action == DecisionAction.BUY else size


class DecisionValidator:
    """
    Validates and normalizes trading decisions against an analysis.

    Holds only configuration; safe to share between concurrent cycles.
    """

    def __init__(
        self,
        config: Optional[ValidatorConfig] = None,
        tokens: Optional[TokenPairConfig] = None,
        lenient: Optional[bool] = None
    ):
        """
        Initialize the validator.

        Args:
            config: Validator configuration (defaults when None)
            tokens: Traded token pair (defaults when None)
            lenient: Override config.lenient
        """
        self.config = config or ValidatorConfig()
        self.tokens = tokens or TokenPairConfig()
        self.lenient = self.config.lenient if lenient is None else lenient

        stable = Web3.to_checksum_address(self.tokens.stable_address)
        volatile = Web3.to_checksum_address(self.tokens.volatile_address)
        self.stable_address = stable
        self.volatile_address = volatile
        self.aliases: Dict[str, str] = {
            "STABLECOIN": stable,
            "VOLATILE": volatile,
            self.tokens.stable_symbol.upper(): stable,
            self.tokens.volatile_symbol.upper(): volatile,
        }

        logger.info(
            f"DecisionValidator initialized ({'lenient' if self.lenient else 'strict'}, "
            f"pair={self.tokens.symbol})"
        )

    # ========================================================================
    # Entry points
    # ========================================================================

    def normalize(
        self,
        text: str,
        analysis: BayesianRegressionResult,
        current_price: Optional[float] = None
    ) -> TradingDecision:
        """
        Parse inference text and validate it.

        Unparseable text yields the fallback hold instead of an exception;
        a parsed payload that fails validation still raises.
        """
        result = parse_decision(text)
        if isinstance(result, Unparseable):
            logger.warning(f"⚠️ Unparseable decision, holding: {result.reason}")
            return TradingDecision.fallback_hold(FALLBACK_REASONING)
        return self.validate(result.payload, analysis, current_price)

    def validate(
        self,
        payload: Union[Mapping[str, Any], TradingDecision],
        analysis: BayesianRegressionResult,
        current_price: Optional[float] = None
    ) -> TradingDecision:
        """
        Validate a raw payload (or an already normalized decision).

        Args:
            payload: Decision mapping with wire or snake_case keys
            analysis: Analysis the decision was made against
            current_price: Reference price (defaults to analysis.current_price)

        Returns:
            Normalized TradingDecision

        Raises:
            DecisionValidationError: On the first failed check
        """
        if isinstance(payload, TradingDecision):
            payload = payload.to_dict()
        if not isinstance(payload, Mapping):
            raise MalformedDecisionError(
                f"Decision must be an object, got {type(payload).__name__}", field="payload"
            )

        action = self._validate_action(payload)

        if action == DecisionAction.HOLD:
            return self._validate_hold(payload)

        price = analysis.current_price if current_price is None else float(current_price)
        if not (math.isfinite(price) and price > 0):
            raise MalformedDecisionError(f"No usable reference price ({price})", field="current_price")

        token_in, token_out = self._validate_tokens(payload, action)
        amount = self._validate_amount(payload)
        stop_loss, take_profit = self._validate_risk_levels(payload, action, analysis, price)
        slippage = self._validate_slippage(payload, analysis, price)
        confidence = self._validate_confidence(payload, required=True)
        self._validate_position_size(amount, action, analysis, price)

        decision = TradingDecision(
            decision=action,
            token_in=token_in,
            token_out=token_out,
            amount=format_amount(amount),
            slippage=slippage,
            stop_loss=stop_loss,
            take_profit=take_profit,
            reasoning=str(payload.get("reasoning") or ""),
            confidence=confidence,
        )
        logger.debug(f"Decision validated: {decision.decision.value} {decision.amount}")
        return decision

    # ========================================================================
    # Checks
    # ========================================================================

    def _validate_action(self, payload: Mapping[str, Any]) -> DecisionAction:
        raw = payload.get("decision")
        value = raw.strip().lower() if isinstance(raw, str) else raw
        try:
            return DecisionAction(value)
        except ValueError:
            raise MalformedDecisionError(f"Unknown decision: {raw!r}", field="decision")

    def _validate_hold(self, payload: Mapping[str, Any]) -> TradingDecision:
        for key in ("tokenIn", "tokenOut"):
            token = _get(payload, key)
            if token in (None, "") or (isinstance(token, str) and token.lower() == ZERO_ADDRESS):
                continue
            raise MalformedDecisionError(f"Hold must not name a token, got {token!r}", field=key)

        for key in ("amount", "slippage", "stopLoss", "takeProfit"):
            raw = _get(payload, key)
            if raw is None or raw == "":
                continue
            if _to_float(raw) != 0:
                raise MalformedDecisionError(f"Hold must have zero {key}, got {raw!r}", field=key)

        confidence = self._validate_confidence(payload, required=False)
        return TradingDecision.fallback_hold(
            str(payload.get("reasoning") or ""),
            confidence=confidence,
        )

    def resolve_token(self, value: Any, field: str) -> str:
        """Resolve an alias or address to a checksummed address of the configured pair."""
        if not isinstance(value, str) or not value.strip():
            raise TokenMismatchError(f"Missing token: {value!r}", field=field)

        token = value.strip()
        address = self.aliases.get(token.upper())
        if address is None:
            if not Web3.is_address(token):
                raise TokenMismatchError(f"Invalid token address: {token}", field=field)
            address = Web3.to_checksum_address(token)

        if address not in (self.stable_address, self.volatile_address):
            raise TokenMismatchError(f"Token {address} is not part of {self.tokens.symbol}", field=field)

        return address

    def _validate_tokens(self, payload: Mapping[str, Any], action: DecisionAction) -> Tuple[str, str]:
        token_in = self.resolve_token(_get(payload, "tokenIn"), "tokenIn")
        token_out = self.resolve_token(_get(payload, "tokenOut"), "tokenOut")

        if action == DecisionAction.BUY:
            expected = (self.stable_address, self.volatile_address)
        else:
            expected = (self.volatile_address, self.stable_address)

        if (token_in, token_out) == expected:
            return token_in, token_out

        if self.lenient and (token_out, token_in) == expected:
            logger.warning(f"Swapping reversed token pair for {action.value}")
            return expected

        raise TokenMismatchError(
            f"{action.value} must trade {expected[0]} -> {expected[1]}, got {token_in} -> {token_out}",
            field="tokenIn",
        )

    def _validate_amount(self, payload: Mapping[str, Any]) -> float:
        raw = payload.get("amount")
        amount = _to_float(raw)
        if amount is None or not math.isfinite(amount) or amount <= 0:
            raise AmountOutOfRangeError(f"Amount must be a positive number, got {raw!r}", field="amount")
        return amount

    def _widen_take_profit(self, action: DecisionAction, price: float, take_profit: float) -> float:
        distance = price * self.config.min_take_profit_distance_pct
        if action == DecisionAction.BUY and take_profit < price + distance:
            logger.warning(f"Widening take profit {take_profit} to {price + distance}")
            return price + distance
        if action == DecisionAction.SELL and take_profit > price - distance:
            logger.warning(f"Widening take profit {take_profit} to {price - distance}")
            return price - distance
        return take_profit

    def _validate_risk_levels(
        self,
        payload: Mapping[str, Any],
        action: DecisionAction,
        analysis: BayesianRegressionResult,
        price: float
    ) -> Tuple[float, float]:
        levels = {}
        for key in ("stopLoss", "takeProfit"):
            raw = _get(payload, key)
            value = _to_float(raw)
            if value is None or not math.isfinite(value):
                raise MalformedDecisionError(f"{key} must be a number, got {raw!r}", field=key)
            levels[key] = value

        stop_loss = levels["stopLoss"]
        take_profit = levels["takeProfit"]

        if self.lenient:
            take_profit = self._widen_take_profit(action, price, take_profit)

        tolerance = price * self.config.risk_level_tolerance_pct

        if abs(stop_loss - analysis.stop_loss) > tolerance:
            raise RiskLevelDivergenceError(
                f"Stop loss {stop_loss} is {abs(stop_loss - analysis.stop_loss):.4f} from "
                f"analysis {analysis.stop_loss:.4f} (tolerance {tolerance:.4f})",
                field="stopLoss",
            )

        if abs(take_profit - analysis.take_profit) > tolerance:
            raise RiskLevelDivergenceError(
                f"Take profit {take_profit} is {abs(take_profit - analysis.take_profit):.4f} from "
                f"analysis {analysis.take_profit:.4f} (tolerance {tolerance:.4f})",
                field="takeProfit",
            )

        if action == DecisionAction.BUY:
            ordered = stop_loss < price < take_profit
        else:
            ordered = take_profit < price < stop_loss
        if not ordered:
            raise RiskLevelDivergenceError(
                f"{action.value} needs stop/take on opposite sides of {price} "
                f"(stop={stop_loss}, take={take_profit})",
                field="stopLoss",
            )

        if abs(take_profit - stop_loss) < price * self.config.min_risk_reward_distance_pct:
            raise RiskLevelDivergenceError(
                f"Stop/take distance {abs(take_profit - stop_loss):.4f} below "
                f"{self.config.min_risk_reward_distance_pct:.2%} of price",
                field="takeProfit",
            )

        return stop_loss, take_profit

    def slippage_bounds(self, analysis: BayesianRegressionResult, price: float) -> Tuple[float, float]:
        """(min, max) slippage in percent for the analysis volatility."""
        volatility_ratio = analysis.volatility / price if price > 0 else 0.0
        if volatility_ratio > self.config.high_volatility_threshold:
            return self.config.min_slippage, self.config.high_volatility_max_slippage
        return self.config.min_slippage, self.config.max_slippage

    def _validate_slippage(self, payload: Mapping[str, Any], analysis: BayesianRegressionResult, price: float) -> float:
        raw = payload.get("slippage")
        slippage = _to_float(raw)
        lower, upper = self.slippage_bounds(analysis, price)

        if slippage is None or not math.isfinite(slippage):
            if not self.lenient:
                raise SlippageOutOfRangeError(f"Slippage must be a number, got {raw!r}", field="slippage")
            slippage = lower

        if not lower <= slippage <= upper:
            if not self.lenient:
                raise SlippageOutOfRangeError(
                    f"Slippage {slippage}% outside [{lower}, {upper}]", field="slippage"
                )
            clamped = max(lower, min(upper, slippage))
            logger.warning(f"Clamping slippage {slippage}% to {clamped}%")
            slippage = clamped

        return round_price(slippage, 2)

    def _validate_confidence(self, payload: Mapping[str, Any], required: bool) -> Confidence:
        raw = payload.get("confidence")
        if raw is None and not required:
            return Confidence.MEDIUM
        value = raw.strip().lower() if isinstance(raw, str) else raw
        try:
            return Confidence(value)
        except ValueError:
            raise MalformedDecisionError(f"Confidence must be high|medium|low, got {raw!r}", field="confidence")

    def expected_amount(self, action: DecisionAction, analysis: BayesianRegressionResult, price: float) -> float:
        """Deviation-implied position size in input-token units."""
        return expected_position_size(action, analysis, price, self.config)

    def _validate_position_size(
        self,
        amount: float,
        action: DecisionAction,
        analysis: BayesianRegressionResult,
        price: float
    ):
        expected = self.expected_amount(action, analysis, price)
        if abs(amount - expected) > expected * self.config.position_size_tolerance:
            raise PositionSizeMismatchError(
                f"Amount {amount} differs from expected {expected:.8f} by more than "
                f"{self.config.position_size_tolerance:.0%}",
                field="amount",
            )
