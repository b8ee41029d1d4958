"""
Oracle Trader - statistical guardrails for an on-chain spike trading bot.

Subpackages:
- analytics: Indicator library, regime/signal detection, risk levels and the
  forecast aggregator (BayesianPriceAnalyzer)
- decision: Inference-decision parsing, validation/normalization, prompt
  construction and the spike decision engine
- config: Pydantic configuration models and the YAML/env loader
- utils: Logging and numeric helpers
"""

__version__ = "0.3.0"
