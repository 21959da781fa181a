"""Decision source base class: shared operations, timeouts and retry."""

import asyncio
import random
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from rich.console import Console

from trading_arena.agents import parser, prompts
from trading_arena.config import LLMConfig, RiskConfig
from trading_arena.errors import ExternalServiceError, ServiceErrorKind
from trading_arena.models import (
    AnalysisContext,
    ReflectionInput,
    ReflectionOutput,
    SingleStockAnalysis,
    StockRecommendation,
    TradeDecision,
)

console = Console()


class DecisionSource(ABC):
    """LLM-backed source of trade decisions, reflections and stock picks.

    Subclasses implement `_send` for one chat round-trip and `classify_error`
    to map provider exceptions onto ServiceErrorKind. Everything returned by
    the model is validated by the parser before use.
    """

    provider = ""

    def __init__(
        self,
        model: str,
        llm_config: LLMConfig | None = None,
        risk: RiskConfig | None = None,
    ):
        self.model = model
        self.config = llm_config or LLMConfig()
        self.risk = risk or RiskConfig()

    @abstractmethod
    async def _send(self, system: str, prompt: str, temperature: float, max_tokens: int) -> str:
        """Send one chat request and return the text of the reply."""

    @abstractmethod
    def classify_error(self, exc: Exception) -> ExternalServiceError:
        """Map a provider exception onto the service error taxonomy."""

    async def aclose(self) -> None:
        pass

    async def analyze(self, context: AnalysisContext) -> list[TradeDecision]:
        text = await self.complete(
            prompts.SYSTEM_PROMPT_ANALYSIS,
            prompts.build_analysis_prompt(context, self.risk),
            temperature=self.config.temperature_analysis,
            max_tokens=self.config.max_tokens_analysis,
            label="analyze",
        )
        return parser.parse_decisions(text)

    async def reflect(self, data: ReflectionInput) -> ReflectionOutput:
        text = await self.complete(
            prompts.SYSTEM_PROMPT_REFLECTION,
            prompts.build_reflection_prompt(data),
            temperature=self.config.temperature_reflection,
            max_tokens=self.config.max_tokens_reflection,
            label="reflect",
        )
        return parser.parse_reflection(text)

    async def pick_stocks(self, criteria: str, max_results: int = 10) -> list[StockRecommendation]:
        text = await self.complete(
            prompts.SYSTEM_PROMPT_PICKER,
            prompts.build_stock_picker_prompt(criteria, max_results),
            temperature=self.config.temperature_picker,
            max_tokens=self.config.max_tokens_analysis,
            label="pick_stocks",
        )
        return parser.parse_recommendations(text)

    async def analyze_single_stock(
        self, symbol: str, criteria: str | None = None
    ) -> SingleStockAnalysis:
        text = await self.complete(
            prompts.SYSTEM_PROMPT_SINGLE_STOCK,
            prompts.build_single_stock_prompt(symbol, criteria),
            temperature=self.config.temperature_analysis,
            max_tokens=self.config.max_tokens_analysis,
            label="analyze_single_stock",
        )
        return parser.parse_single_stock_analysis(text)

    async def complete(
        self, system: str, prompt: str, temperature: float, max_tokens: int, label: str = ""
    ) -> str:
        return await self.call_with_retry(
            lambda: self._send(system, prompt, temperature, max_tokens), label
        )

    async def call_with_retry(self, fn: Callable[[], Awaitable[str]], label: str = "") -> str:
        """Run `fn` with a timeout, retrying retryable failures with backoff.

        Auth and invalid-request failures are raised immediately.
        """
        attempts = self.config.max_retries + 1
        delay = self.config.initial_delay
        last_error: ExternalServiceError | None = None

        for attempt in range(attempts):
            try:
                return await asyncio.wait_for(fn(), timeout=self.config.timeout)
            except asyncio.TimeoutError:
                error = ExternalServiceError(
                    ServiceErrorKind.TIMEOUT,
                    f"no reply within {self.config.timeout:.0f}s",
                    self.provider,
                )
            except ExternalServiceError as e:
                error = e
            except Exception as e:
                error = self.classify_error(e)

            last_error = error
            console.print(
                f"  [yellow]{self.provider} {label} failed "
                f"(attempt {attempt + 1}/{attempts}): {error}[/yellow]"
            )
            if not error.retryable:
                raise error
            if attempt < attempts - 1:
                await asyncio.sleep(delay + delay * 0.1 * random.random())
                delay = min(delay * self.config.backoff_multiplier, self.config.max_delay)

        raise last_error
