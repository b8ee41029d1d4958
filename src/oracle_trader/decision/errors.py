"""
Error taxonomy for analysis and decision validation.

The analyzer catches InsufficientDataError itself and degrades to a neutral
result. The validator raises DecisionValidationError subclasses; the decision
engine turns them into hold outcomes.
"""

from typing import Optional


class OracleTraderError(Exception):
    """Base exception for oracle trader errors."""
    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.field:
            return f"{self.message} (field: {self.field})"
        return self.message


class InsufficientDataError(OracleTraderError):
    """Not enough candles (or no usable price) to run the analysis."""
    pass


# ============================================================================
# Decision Validation Errors
# ============================================================================

class DecisionValidationError(OracleTraderError):
    """Base exception for a decision that must not reach execution."""
    pass


class MalformedDecisionError(DecisionValidationError):
    """Unparseable payload, unknown action, missing field or bad confidence."""
    pass


class TokenMismatchError(DecisionValidationError):
    """Token pair does not match the trade direction or configured pair."""
    pass


class AmountOutOfRangeError(DecisionValidationError):
    """Amount is missing, non-numeric, non-finite or not positive."""
    pass


class RiskLevelDivergenceError(DecisionValidationError):
    """Stop loss / take profit disagree with the analysis or with the entry."""
    pass


class SlippageOutOfRangeError(DecisionValidationError):
    """Slippage outside the volatility-dependent bounds."""
    pass


class PositionSizeMismatchError(DecisionValidationError):
    """Amount differs from the deviation-implied size by more than the tolerance."""
    pass
