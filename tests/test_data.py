"""Tests for the SQLite store."""

import sqlite3
from datetime import datetime, timedelta

import pytest

from trading_arena.config import AgentConfig
from trading_arena.errors import NotFoundError
from trading_arena.models import Position, Reflection


def test_upsert_agent_refreshes_model(store):
    first = store.upsert_agent(AgentConfig(name="a", provider="qwen", model="qwen-plus"))
    again = store.upsert_agent(AgentConfig(name="a", provider="qwen", model="qwen-max"))

    assert again.id == first.id
    assert again.model == "qwen-max"
    assert again.display_name == "a"
    assert len(store.list_agents()) == 1


def test_agent_enable_toggle(store):
    agent = store.upsert_agent(AgentConfig(name="a", provider="qwen", model="m"))
    store.set_agent_enabled(agent.id, False)

    assert store.list_agents(enabled_only=True) == []
    assert store.get_agent(agent.id).enabled is False
    with pytest.raises(NotFoundError):
        store.set_agent_enabled(999, True)
    with pytest.raises(NotFoundError):
        store.get_agent(999)


def test_transaction_rolls_back_on_error(store, agent):
    portfolio_id = store.get_portfolio(agent.id)["id"]

    with pytest.raises(RuntimeError):
        with store.transaction():
            store.save_position(
                portfolio_id,
                Position(symbol="NVDA", quantity=1, avg_price=1, current_price=1),
            )
            store.update_portfolio(portfolio_id, 1.0, 2.0)
            raise RuntimeError("boom")

    assert store.list_positions(portfolio_id) == []
    assert store.get_portfolio(agent.id)["cash"] == 100000


def test_nested_transactions_join_outer(store, agent):
    portfolio_id = store.get_portfolio(agent.id)["id"]

    with pytest.raises(RuntimeError):
        with store.transaction():
            with store.transaction():
                store.update_portfolio(portfolio_id, 5.0, 5.0)
            raise RuntimeError("outer fails")

    assert store.get_portfolio(agent.id)["cash"] == 100000


def test_constraints_reject_bad_rows(store, agent):
    portfolio_id = store.get_portfolio(agent.id)["id"]
    with pytest.raises(sqlite3.IntegrityError):
        store.update_portfolio(portfolio_id, -1.0, 0.0)
    with pytest.raises(sqlite3.IntegrityError):
        store.save_position(
            portfolio_id, Position(symbol="NVDA", quantity=0, avg_price=1, current_price=1)
        )


def test_one_reflection_per_trade(store, executor, agent):
    executor.buy(agent.id, "NVDA", 1, 100.0)
    trade, _ = executor.sell(agent.id, "NVDA", 1, 110.0)
    store.insert_reflection(
        Reflection(trade_id=trade.id, agent_id=agent.id, content="a", pnl=10, score=5)
    )
    with pytest.raises(sqlite3.IntegrityError):
        store.insert_reflection(
            Reflection(trade_id=trade.id, agent_id=agent.id, content="b", pnl=10, score=5)
        )


def test_top_reflections_order(store, executor, agent):
    base = datetime(2025, 1, 1)
    contents = []
    for i, score in enumerate([5, 9, 9, 2]):
        executor.buy(agent.id, "NVDA", 1, 100.0)
        trade, _ = executor.sell(agent.id, "NVDA", 1, 101.0)
        content = f"lesson {i}"
        contents.append(content)
        store.insert_reflection(
            Reflection(
                trade_id=trade.id,
                agent_id=agent.id,
                content=content,
                pnl=1,
                score=score,
                created_at=base + timedelta(days=i),
            )
        )

    top = store.top_reflections(agent.id, limit=3)
    assert [r.content for r in top] == ["lesson 2", "lesson 1", "lesson 0"]


def test_list_trades_filters(store, executor, clock, agent):
    executor.buy(agent.id, "NVDA", 2, 100.0)
    clock.advance(hours=1)
    executor.buy(agent.id, "AAPL", 2, 100.0)
    clock.advance(hours=1)
    executor.sell(agent.id, "NVDA", 2, 100.0)

    assert [t.symbol for t in store.list_trades(agent_id=agent.id)] == ["NVDA", "AAPL", "NVDA"]
    assert len(store.list_trades(symbol="NVDA")) == 2
    assert len(store.list_trades(since=clock() - timedelta(minutes=90))) == 2
    assert len(store.list_trades(limit=1)) == 1


def test_state_and_reset(store, agent):
    store.set_state("last_run", "yesterday")
    store.set_state("last_run", "today")
    assert store.get_state("last_run") == "today"
    store.save_stock_pool(["NVDA"], "pool", "USER")

    store.reset()

    assert store.get_state("last_run") is None
    assert store.list_agents() == []
    assert store.get_active_stock_pool() is None
