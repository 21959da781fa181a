"""LLM decision sources, selected per agent by its provider id."""

from trading_arena.agents.base import DecisionSource
from trading_arena.agents.claude import ClaudeDecisionSource
from trading_arena.agents.openai_compat import OpenAICompatibleDecisionSource
from trading_arena.config import AppConfig, Secrets
from trading_arena.models import Agent

__all__ = [
    "ClaudeDecisionSource",
    "DecisionSource",
    "DecisionSourcePool",
    "OpenAICompatibleDecisionSource",
    "create_decision_source",
]


def create_decision_source(agent: Agent, config: AppConfig, secrets: Secrets) -> DecisionSource:
    """Build the decision source for an agent from its provider and model."""
    api_key = secrets.api_key_for(agent.provider)
    if agent.provider == "anthropic":
        return ClaudeDecisionSource(
            api_key=api_key, model=agent.model, llm_config=config.llm, risk=config.risk
        )
    if agent.provider in ("deepseek", "qwen", "openai"):
        return OpenAICompatibleDecisionSource(
            provider=agent.provider,
            api_url=secrets.api_url_for(agent.provider),
            api_key=api_key,
            model=agent.model,
            llm_config=config.llm,
            risk=config.risk,
        )
    raise ValueError(f"Unknown provider {agent.provider!r} for agent {agent.name}")


class DecisionSourcePool:
    """Creates one decision source per agent and reuses it across cycles."""

    def __init__(self, config: AppConfig, secrets: Secrets):
        self.config = config
        self.secrets = secrets
        self._sources: dict[str, DecisionSource] = {}

    def get(self, agent: Agent) -> DecisionSource:
        source = self._sources.get(agent.name)
        if source is None:
            source = create_decision_source(agent, self.config, self.secrets)
            self._sources[agent.name] = source
        return source

    async def aclose(self) -> None:
        for source in self._sources.values():
            await source.aclose()
        self._sources.clear()
