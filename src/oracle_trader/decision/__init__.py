"""
Decision module - parsing, validation and orchestration of trading decisions.

Components:
- errors: Error taxonomy (imported first; the analyzer depends on it)
- models: TradingDecision and the Parsed / Unparseable parse result
- parser: Three-strategy JSON extraction
- validator: DecisionValidator (guardrails + normalization)
- prompt: Inference prompt construction and spike classification
- engine: DecisionEngine (analysis -> inference -> validation cycles)
"""

from .errors import (
    AmountOutOfRangeError,
    DecisionValidationError,
    InsufficientDataError,
    MalformedDecisionError,
    OracleTraderError,
    PositionSizeMismatchError,
    RiskLevelDivergenceError,
    SlippageOutOfRangeError,
    TokenMismatchError,
)
from .models import (
    ZERO_ADDRESS,
    Confidence,
    DecisionAction,
    ParseResult,
    Parsed,
    TradingDecision,
    Unparseable,
)
from .parser import parse_decision
from .validator import DecisionValidator
from .prompt import PriceSpike, PromptConfig, build_prompt, classify_spike_volatility, render_template
from .engine import DecisionEngine, DecisionOutcome, create_decision_engine

__all__ = [
    'AmountOutOfRangeError',
    'DecisionValidationError',
    'InsufficientDataError',
    'MalformedDecisionError',
    'OracleTraderError',
    'PositionSizeMismatchError',
    'RiskLevelDivergenceError',
    'SlippageOutOfRangeError',
    'TokenMismatchError',
    'ZERO_ADDRESS',
    'Confidence',
    'DecisionAction',
    'ParseResult',
    'Parsed',
    'TradingDecision',
    'Unparseable',
    'parse_decision',
    'DecisionValidator',
    'PriceSpike',
    'PromptConfig',
    'build_prompt',
    'classify_spike_volatility',
    'render_template',
    'DecisionEngine',
    'DecisionOutcome',
    'create_decision_engine',
]
