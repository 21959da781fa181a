"""Configuration models and loader."""

from pathlib import Path

import yaml
from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings

PROVIDERS = ("anthropic", "deepseek", "qwen", "openai")


class TradingConfig(BaseModel):
    initial_capital: float = 100000.0


class RiskConfig(BaseModel):
    max_position_size: float = 0.20  # max fraction of total value in one symbol
    max_total_position: float = 0.80  # max fraction of total value invested

    @field_validator("max_position_size", "max_total_position")
    @classmethod
    def _fraction(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("must be a fraction in (0, 1]")
        return v


class ReflectionConfig(BaseModel):
    days: int = 5  # maturity window after a trade closes
    top_n_lessons: int = 10
    news_hours: int = 24


class AnalysisConfig(BaseModel):
    history_days: int = 30
    news_hours: int = 24
    data_timeout: float = 30.0  # seconds per market/news call


class ScheduleConfig(BaseModel):
    premarket_cron: str = "0 9 * * mon-fri"
    postmarket_cron: str = "30 16 * * mon-fri"
    report_cron: str = "0 17 * * mon-fri"
    timezone: str = "America/New_York"
    run_on_start: bool = False


class LLMConfig(BaseModel):
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    timeout: float = 60.0
    max_tokens_analysis: int = 4000
    max_tokens_reflection: int = 1000
    temperature_analysis: float = 0.7
    temperature_reflection: float = 0.8
    temperature_picker: float = 0.7


class AgentConfig(BaseModel):
    name: str
    display_name: str = ""
    provider: str
    model: str
    enabled: bool = True

    @field_validator("provider")
    @classmethod
    def _known_provider(cls, v: str) -> str:
        v = v.lower()
        if v not in PROVIDERS:
            raise ValueError(f"unknown provider {v!r}, expected one of {', '.join(PROVIDERS)}")
        return v


DEFAULT_AGENTS = [
    AgentConfig(name="deepseek-v3", display_name="DeepSeek V3", provider="deepseek",
                model="deepseek-chat"),
    AgentConfig(name="qwen-max", display_name="Qwen Max", provider="qwen", model="qwen-max"),
    AgentConfig(name="claude-sonnet", display_name="Claude Sonnet", provider="anthropic",
                model="claude-sonnet-4-20250514"),
]

DEFAULT_STOCK_POOL = ["NVDA", "TSLA", "AAPL", "MSFT", "GOOGL", "META", "AMZN", "AMD", "NFLX", "BABA"]


class AppConfig(BaseModel):
    trading: TradingConfig = TradingConfig()
    risk: RiskConfig = RiskConfig()
    reflection: ReflectionConfig = ReflectionConfig()
    analysis: AnalysisConfig = AnalysisConfig()
    schedule: ScheduleConfig = ScheduleConfig()
    llm: LLMConfig = LLMConfig()
    agents: list[AgentConfig] = DEFAULT_AGENTS
    stock_pool: list[str] = DEFAULT_STOCK_POOL
    market_data: str = "simulated"  # "simulated" or "alpaca"


class Secrets(BaseSettings):
    anthropic_api_key: str = ""
    deepseek_api_key: str = ""
    deepseek_api_url: str = "https://api.deepseek.com/v1"
    qwen_api_key: str = ""
    qwen_api_url: str = "https://dashscope.aliyuncs.com/compatible-mode/v1"
    openai_api_key: str = ""
    openai_api_url: str = "https://api.openai.com/v1"
    alpaca_api_key: str = ""
    alpaca_secret_key: str = ""
    db_path: str = "trading_arena.db"

    model_config = {"env_prefix": "", "case_sensitive": False}

    def api_key_for(self, provider: str) -> str:
        return getattr(self, f"{provider}_api_key", "")

    def api_url_for(self, provider: str) -> str:
        return getattr(self, f"{provider}_api_url", "")


def load_config(path: str | Path = "config.yaml") -> AppConfig:
    """Load application config from YAML file."""
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        return AppConfig(**data)
    return AppConfig()


def validate_secrets(config: AppConfig, secrets: Secrets) -> list[str]:
    """Return a list of missing credentials for the enabled configuration."""
    problems = []
    for agent in config.agents:
        if agent.enabled and not secrets.api_key_for(agent.provider):
            problems.append(f"{agent.provider.upper()}_API_KEY must be set for agent {agent.name}")
    if config.market_data == "alpaca" and not (
        secrets.alpaca_api_key and secrets.alpaca_secret_key
    ):
        problems.append("ALPACA_API_KEY and ALPACA_SECRET_KEY must be set for alpaca market data")
    return problems
