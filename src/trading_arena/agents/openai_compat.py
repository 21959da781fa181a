"""Decision source for OpenAI-compatible chat completion APIs (DeepSeek, Qwen, OpenAI)."""

import httpx

from trading_arena.agents.base import DecisionSource
from trading_arena.config import LLMConfig, RiskConfig
from trading_arena.errors import ExternalServiceError, ServiceErrorKind


class OpenAICompatibleDecisionSource(DecisionSource):
    def __init__(
        self,
        provider: str,
        api_url: str,
        api_key: str,
        model: str,
        llm_config: LLMConfig | None = None,
        risk: RiskConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(model, llm_config, risk)
        if not api_url:
            raise ValueError(f"{provider}: api_url must be set")
        self.provider = provider
        self.api_url = api_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=self.config.timeout)
        self._headers = {"Authorization": f"Bearer {api_key}"}

    async def _send(self, system: str, prompt: str, temperature: float, max_tokens: int) -> str:
        resp = await self.client.post(
            f"{self.api_url}/chat/completions",
            headers=self._headers,
            json={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )
        resp.raise_for_status()
        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            content = None
        if not content:
            raise ExternalServiceError(ServiceErrorKind.UNKNOWN, "empty reply", self.provider)
        return content

    def classify_error(self, exc: Exception) -> ExternalServiceError:
        if isinstance(exc, httpx.TimeoutException):
            kind = ServiceErrorKind.TIMEOUT
        elif isinstance(exc, httpx.HTTPStatusError):
            status = exc.response.status_code
            if status in (401, 403):
                kind = ServiceErrorKind.AUTH
            elif status == 429:
                kind = ServiceErrorKind.RATE_LIMIT
            elif status >= 500:
                kind = ServiceErrorKind.SERVER
            else:
                kind = ServiceErrorKind.INVALID_REQUEST
        elif isinstance(exc, httpx.TransportError):
            kind = ServiceErrorKind.NETWORK
        else:
            kind = ServiceErrorKind.UNKNOWN
        return ExternalServiceError(kind, str(exc) or type(exc).__name__, self.provider)

    async def aclose(self) -> None:
        await self.client.aclose()
