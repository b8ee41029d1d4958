"""
Decision Engine - spike-driven decision cycle orchestrator.

One cycle per trading pair:
1. Analyze the market snapshot (BayesianPriceAnalyzer)
2. Build the inference prompt (analysis + optional spike)
3. Await the injected inference callable
4. Parse and validate the response (DecisionValidator)
5. Emit a DecisionOutcome to registered callbacks

A cycle is skipped while another one for the same symbol is in flight or
until the cooldown since the previous cycle has elapsed. Inference and
validation failures become hold outcomes; a malformed trade is never
emitted as executable.
"""

import logging
import time
from collections import Counter
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set

from oracle_trader.analytics.models import BayesianRegressionResult, MarketDataState
from oracle_trader.decision.errors import DecisionValidationError
from oracle_trader.decision.models import DecisionAction, TradingDecision
from oracle_trader.decision.prompt import PriceSpike, PromptConfig, build_prompt
from oracle_trader.decision.validator import DecisionValidator
from oracle_trader.utils.logger import get_trading_logger, setup_logging

logger = logging.getLogger(__name__)

InferenceFn = Callable[[str], Awaitable[Any]]


@dataclass(frozen=True)
class DecisionOutcome:
    """Result of one decision cycle."""
    symbol: str
    decision: TradingDecision
    analysis: BayesianRegressionResult
    prompt: PromptConfig
    error: Optional[Exception] = None
    executable: bool = False


class DecisionEngine:
    """
    Runs analysis -> inference -> validation cycles per trading pair.

    The inference call is injected as an async callable taking the prompt
    JSON and returning the raw response (text, or an already decoded
    mapping).
    """

    def __init__(
        self,
        inference: InferenceFn,
        analyzer,
        validator: DecisionValidator,
        cooldown_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = "DecisionEngine"
    ):
        """
        Initialize decision engine.

        Args:
            inference: async def inference(prompt_json: str) -> str | dict
            analyzer: Object with analyze(state) -> BayesianRegressionResult
            validator: Decision validator
            cooldown_seconds: Minimum seconds between cycles per symbol
            clock: Monotonic clock (seconds)
            name: Engine name for logging
        """
        self.inference = inference
        self.analyzer = analyzer
        self.validator = validator
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock
        self.name = name

        self._in_flight: Set[str] = set()
        self._last_cycle: Dict[str, float] = {}
        self._stats: Counter = Counter()

        # Event callbacks
        self._decision_callbacks: List[Callable] = []

        self.logger = logging.getLogger(f"{__name__}.{name}")
        self.trading_logger = get_trading_logger(f"{__name__}.{name}")
        self.logger.info(
            f"DecisionEngine initialized: cooldown={cooldown_seconds:.0f}s, "
            f"validator={'lenient' if validator.lenient else 'strict'}"
        )

    async def evaluate(
        self,
        state: MarketDataState,
        spike: Optional[PriceSpike] = None
    ) -> Optional[DecisionOutcome]:
        """
        Run one decision cycle for state.symbol.

        Args:
            state: Market data snapshot
            spike: Triggering price spike, if any

        Returns:
            DecisionOutcome, or None when the cycle was skipped
        """
        symbol = state.symbol
        now = self.clock()

        if symbol in self._in_flight:
            self._stats['skipped_in_flight'] += 1
            self.logger.info(f"⏭️ {symbol}: cycle already in flight, skipping")
            return None

        last = self._last_cycle.get(symbol)
        if last is not None and now - last < self.cooldown_seconds:
            self._stats['skipped_cooldown'] += 1
            self.logger.info(
                f"⏭️ {symbol}: cooldown active ({self.cooldown_seconds - (now - last):.1f}s left)"
            )
            return None

        self._in_flight.add(symbol)
        self._last_cycle[symbol] = now
        try:
            return await self._run_cycle(state, spike)
        finally:
            self._in_flight.discard(symbol)

    async def _run_cycle(self, state: MarketDataState, spike: Optional[PriceSpike]) -> DecisionOutcome:
        symbol = state.symbol
        self._stats['cycles'] += 1

        if spike is not None:
            self.logger.info(f"🔔 {symbol}: price spike {spike.change_percent:.2f}% {spike.direction}")

        with self.trading_logger.performance.timer("analysis", symbol=symbol):
            analysis = self.analyzer.analyze(state)
        self.trading_logger.analysis_completed(symbol, analysis)

        price = analysis.current_price
        lower, upper = self.validator.slippage_bounds(analysis, price)
        prompt = build_prompt(
            analysis,
            symbol,
            self.validator.tokens,
            spike,
            lower,
            upper,
            buy_amount=self.validator.expected_amount(DecisionAction.BUY, analysis, price),
            sell_amount=self.validator.expected_amount(DecisionAction.SELL, analysis, price),
        )

        error: Optional[Exception] = None
        try:
            response = await self.inference(prompt.to_json())
        except Exception as e:
            self._stats['inference_failures'] += 1
            self.logger.error(f"Inference failed for {symbol}: {e}")
            decision = TradingDecision.fallback_hold(f"FALLBACK: inference failed: {e}")
            error = e
        else:
            try:
                if isinstance(response, Mapping):
                    decision = self.validator.validate(response, analysis)
                else:
                    decision = self.validator.normalize(response, analysis)
            except DecisionValidationError as e:
                self._stats['validation_failures'] += 1
                self.trading_logger.risk_alert(
                    type(e).__name__, "high", e.message, symbol=symbol, error_field=e.field
                )
                decision = TradingDecision.fallback_hold(f"REJECTED: {e.message}")
                error = e

        outcome = DecisionOutcome(
            symbol=symbol,
            decision=decision,
            analysis=analysis,
            prompt=prompt,
            error=error,
            executable=error is None and decision.is_trade,
        )

        if outcome.executable:
            self._stats['executable'] += 1
            self.trading_logger.decision_accepted(symbol, decision)
        else:
            self._stats['holds'] += 1
            self.logger.info(f"⏸️ {symbol}: hold ({decision.reasoning or 'no reasoning'})")

        await self._emit_outcome(outcome)
        return outcome

    def on_decision(self, callback: Callable) -> None:
        """
        Register callback for decision outcomes.

        Args:
            callback: Async function called with every outcome
                     Signature: async def callback(outcome: DecisionOutcome) -> None
        """
        self._decision_callbacks.append(callback)
        self.logger.info(f"Registered decision callback: {getattr(callback, '__name__', repr(callback))}")

    async def _emit_outcome(self, outcome: DecisionOutcome) -> None:
        for callback in self._decision_callbacks:
            try:
                await callback(outcome)
            except Exception as e:
                self.logger.error(
                    f"Error in decision callback {getattr(callback, '__name__', repr(callback))}: {e}"
                )

    def get_stats(self) -> dict:
        """
        Get decision engine statistics.

        Returns:
            Dict with engine configuration and counters
        """
        return {
            'name': self.name,
            'cooldown_seconds': self.cooldown_seconds,
            'lenient': self.validator.lenient,
            'in_flight': sorted(self._in_flight),
            'decision_callbacks_registered': len(self._decision_callbacks),
            'cycles': self._stats['cycles'],
            'executable': self._stats['executable'],
            'holds': self._stats['holds'],
            'validation_failures': self._stats['validation_failures'],
            'inference_failures': self._stats['inference_failures'],
            'skipped_in_flight': self._stats['skipped_in_flight'],
            'skipped_cooldown': self._stats['skipped_cooldown'],
        }


def create_decision_engine(
    inference: InferenceFn,
    config=None,
    configure_logging: bool = True
) -> DecisionEngine:
    """
    Factory function to create a decision engine from application config.

    Args:
        inference: Async inference callable
        config: AppConfig (loaded via get_app_config() when None)
        configure_logging: Apply config.system logging settings to the root logger

    Returns:
        Configured DecisionEngine instance
    """
    from oracle_trader.analytics.analyzer import BayesianPriceAnalyzer
    from oracle_trader.config.loader import get_app_config

    config = config or get_app_config()

    if configure_logging:
        setup_logging(config.system.log_level, config.system.log_file, config.system.json_logs)

    return DecisionEngine(
        inference=inference,
        analyzer=BayesianPriceAnalyzer(config.analyzer),
        validator=DecisionValidator(config.validation, config.tokens),
        cooldown_seconds=config.engine.cooldown_seconds,
    )
