"""Decision source backed by the Anthropic Messages API."""

import anthropic

from trading_arena.agents.base import DecisionSource
from trading_arena.config import LLMConfig, RiskConfig
from trading_arena.errors import ExternalServiceError, ServiceErrorKind


class ClaudeDecisionSource(DecisionSource):
    provider = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        llm_config: LLMConfig | None = None,
        risk: RiskConfig | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        super().__init__(model, llm_config, risk)
        # retries are handled by call_with_retry
        self.client = client or anthropic.AsyncAnthropic(
            api_key=api_key, max_retries=0, timeout=self.config.timeout
        )

    async def _send(self, system: str, prompt: str, temperature: float, max_tokens: int) -> str:
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        text = "".join(block.text for block in response.content if block.type == "text")
        if not text.strip():
            raise ExternalServiceError(ServiceErrorKind.UNKNOWN, "empty reply", self.provider)
        return text

    def classify_error(self, exc: Exception) -> ExternalServiceError:
        if isinstance(exc, anthropic.APITimeoutError):
            kind = ServiceErrorKind.TIMEOUT
        elif isinstance(exc, anthropic.APIConnectionError):
            kind = ServiceErrorKind.NETWORK
        elif isinstance(exc, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
            kind = ServiceErrorKind.AUTH
        elif isinstance(exc, anthropic.RateLimitError):
            kind = ServiceErrorKind.RATE_LIMIT
        elif isinstance(exc, anthropic.APIStatusError):
            kind = (
                ServiceErrorKind.SERVER
                if exc.status_code >= 500
                else ServiceErrorKind.INVALID_REQUEST
            )
        else:
            kind = ServiceErrorKind.UNKNOWN
        return ExternalServiceError(kind, str(exc) or type(exc).__name__, self.provider)

    async def aclose(self) -> None:
        await self.client.close()
