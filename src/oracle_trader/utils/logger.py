"""
Enhanced Logging Utilities

Provides structured logging with:
- JSON formatting for production
- Performance timing
- Context correlation (symbol, decision, regime, correlation id)
- Trading-specific events (analysis, accepted decisions, risk alerts)
"""

import logging
import json
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pathlib import Path
from contextlib import contextmanager


# Extra record attributes copied into JSON log lines when present
CONTEXT_FIELDS = (
    'correlation_id',
    'symbol',
    'decision',
    'regime',
    'trend',
    'confidence',
    'alert_type',
    'severity',
    'error_field',
    'execution_time',
)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record):
        log_entry: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class PerformanceLogger:
    """Logger for tracking operation timings."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    @contextmanager
    def timer(self, operation: str, **context):
        """Context manager for timing operations (logged at DEBUG)."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            execution_time = time.perf_counter() - start_time
            extra = {'execution_time': execution_time, **context}
            self.logger.debug(f"Operation completed: {operation} in {execution_time * 1000:.1f}ms", extra=extra)


class TradingLogger:
    """Specialized logger for analysis and decision events."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.performance = PerformanceLogger(self.logger)

    def analysis_completed(self, symbol: str, result, **context):
        """Log a finished analysis (a BayesianRegressionResult)."""
        extra = {
            'symbol': symbol,
            'trend': result.trend_direction.value,
            'regime': result.regime.value,
            'confidence': result.probability,
            **context
        }
        tag = " [fallback]" if result.is_fallback else ""
        self.logger.info(
            f"📊 {symbol}: {result.trend_direction.value} ({result.probability:.2f}), "
            f"regime={result.regime.value}, predicted={result.predicted_price:.4f}{tag}",
            extra=extra
        )

    def decision_accepted(self, symbol: str, decision, **context):
        """Log a validated decision (a TradingDecision)."""
        extra = {
            'symbol': symbol,
            'decision': decision.decision.value,
            'confidence': decision.confidence.value,
            **context
        }
        self.logger.info(
            f"✅ {symbol}: {decision.decision.value.upper()} {decision.amount} "
            f"(slippage={decision.slippage}%, stop={decision.stop_loss}, take={decision.take_profit})",
            extra=extra
        )

    def risk_alert(self, alert_type: str, severity: str, message: str, **context):
        """Log risk management alerts."""
        extra = {
            'alert_type': alert_type,
            'severity': severity,
            **context
        }
        if severity.lower() in ['high', 'critical']:
            self.logger.error(f"Risk Alert [{alert_type}]: {message}", extra=extra)
        else:
            self.logger.warning(f"Risk Alert [{alert_type}]: {message}", extra=extra)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = True
) -> logging.Logger:
    """
    Setup logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
        json_format: Use JSON formatting

    Returns:
        Configured root logger
    """
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, log_level.upper()))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_trading_logger(name: str) -> TradingLogger:
    """Get a trading-specific logger instance."""
    return TradingLogger(name)

