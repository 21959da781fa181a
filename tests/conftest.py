"""Shared fixtures: a fresh SQLite store, a controllable clock and a seeded ledger."""

from datetime import datetime, timedelta

import pytest

from trading_arena.config import AgentConfig, RiskConfig
from trading_arena.data import DataStore
from trading_arena.execution import TradeExecutor
from trading_arena.portfolio import PortfolioLedger
from trading_arena.risk import RiskManager


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 3, 10, 10, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    store = DataStore(tmp_path / "test.db")
    yield store
    store.close()


@pytest.fixture
def ledger(store, clock):
    # room for a 22.5% position (50 shares @ 450 on 100000)
    return PortfolioLedger(store, RiskManager(RiskConfig(max_position_size=0.25)), clock=clock)


@pytest.fixture
def executor(ledger):
    return TradeExecutor(ledger)


def make_agent(store, ledger, name="alpha", provider="deepseek", capital=100000.0):
    agent = store.upsert_agent(
        AgentConfig(name=name, display_name=name.title(), provider=provider, model=f"{name}-model")
    )
    ledger.initialize(agent.id, capital)
    return agent


@pytest.fixture
def agent(store, ledger):
    return make_agent(store, ledger)
