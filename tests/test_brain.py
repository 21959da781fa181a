"""Tests for the decision pipeline."""

import pytest

from trading_arena.brain import Brain, OutcomeStatus, Stage
from trading_arena.config import AppConfig
from trading_arena.events import EventType
from trading_arena.models import Action, Reflection, TradeDecision

from conftest import make_agent
from fakes import FakeMarket, FakeNews, FakeSource, FakeSources, MemoryNotifier, auth_error

POOL = ["NVDA", "AAPL", "MSFT"]
PRICES = {"NVDA": 400.0, "AAPL": 200.0, "MSFT": 500.0}


def _decision(symbol, action=Action.BUY, size=0.1):
    return TradeDecision(
        symbol=symbol, action=action, position_size=size, rationale="test", confidence=0.7
    )


def _make_brain(ledger, executor, sources, prices=None, notifier=None, news=None):
    return Brain(
        ledger,
        executor,
        FakeMarket(prices or PRICES),
        news or FakeNews(),
        FakeSources(sources),
        notifier=notifier or MemoryNotifier(),
        config=AppConfig(),
    )


@pytest.mark.asyncio
async def test_cycle_buys_with_floor_sizing(ledger, executor, agent):
    source = FakeSource(decisions=[_decision("NVDA", size=0.1)])
    brain = _make_brain(ledger, executor, {"alpha": source})

    result = await brain.run_cycle(agent, POOL)

    assert result.stage == Stage.DONE
    (outcome,) = result.outcomes
    assert outcome.status == OutcomeStatus.EXECUTED
    # floor(100000 * 0.1 / 400) = 25
    assert outcome.trade.quantity == 25
    assert ledger.get_status(agent.id).position("NVDA").quantity == 25


@pytest.mark.asyncio
async def test_context_includes_portfolio_news_and_lessons(ledger, store, executor, agent):
    executor.buy(agent.id, "AAPL", 10, 200.0)
    sell, _ = executor.sell(agent.id, "AAPL", 10, 210.0)
    store.insert_reflection(
        Reflection(trade_id=sell.id, agent_id=agent.id, content="Take profits early", pnl=100, score=9)
    )
    source = FakeSource()
    brain = _make_brain(ledger, executor, {"alpha": source})

    await brain.run_cycle(agent, POOL)

    (context,) = source.contexts
    assert context.stock_pool == POOL
    assert context.current_prices == PRICES
    assert set(context.historical) == set(POOL)
    assert context.news
    assert context.lessons == ["Take profits early"]
    assert context.portfolio.agent_id == agent.id


@pytest.mark.asyncio
async def test_zero_quantity_buy_is_a_noop(ledger, executor, agent):
    # 100000 * 0.001 = 100 < 500
    source = FakeSource(decisions=[_decision("MSFT", size=0.001)])
    brain = _make_brain(ledger, executor, {"alpha": source})

    result = await brain.run_cycle(agent, POOL)

    assert result.outcomes[0].status == OutcomeStatus.SKIPPED
    assert ledger.get_status(agent.id).positions == []


@pytest.mark.asyncio
async def test_risk_precheck_skips_oversized_buy(ledger, executor, agent):
    source = FakeSource(decisions=[_decision("NVDA", size=0.5)])
    brain = _make_brain(ledger, executor, {"alpha": source})

    result = await brain.run_cycle(agent, POOL)

    assert result.outcomes[0].status == OutcomeStatus.SKIPPED
    assert "exceeds maximum" in result.outcomes[0].detail
    assert ledger.get_status(agent.id).cash == 100000


@pytest.mark.asyncio
async def test_sell_closes_whole_position(ledger, executor, agent):
    executor.buy(agent.id, "AAPL", 30, 190.0)
    source = FakeSource(decisions=[_decision("AAPL", Action.SELL, size=0.01)])
    brain = _make_brain(ledger, executor, {"alpha": source})

    result = await brain.run_cycle(agent, POOL)

    outcome = result.outcomes[0]
    assert outcome.status == OutcomeStatus.EXECUTED
    assert outcome.trade.quantity == 30
    assert outcome.realized_pnl == pytest.approx(300)
    assert ledger.get_status(agent.id).position("AAPL") is None


@pytest.mark.asyncio
async def test_failed_decision_does_not_stop_the_rest(ledger, executor, agent):
    decisions = [
        _decision("TSLA", Action.SELL),  # nothing held
        _decision("UNKNOWN"),  # no price
        _decision("AAPL", Action.HOLD),
        _decision("NVDA", size=0.1),
    ]
    brain = _make_brain(ledger, executor, {"alpha": FakeSource(decisions=decisions)})

    result = await brain.run_cycle(agent, POOL)

    statuses = [o.status for o in result.outcomes]
    assert statuses == [
        OutcomeStatus.SKIPPED,
        OutcomeStatus.SKIPPED,
        OutcomeStatus.HOLD,
        OutcomeStatus.EXECUTED,
    ]


@pytest.mark.asyncio
async def test_rejected_buy_is_isolated(store, ledger, executor):
    agent = make_agent(store, ledger, capital=1000.0)
    # The second buy passes the advisory check, which ignores the existing
    # AAPL holding, but stacking it would make AAPL 40% of the portfolio.
    decisions = [
        _decision("AAPL", size=0.2),
        _decision("AAPL", size=0.2),
        _decision("NVDA", size=0.2),
    ]
    brain = _make_brain(ledger, executor, {"alpha": FakeSource(decisions=decisions)})

    result = await brain.run_cycle(agent, POOL)

    assert [o.status for o in result.outcomes] == [
        OutcomeStatus.EXECUTED,
        OutcomeStatus.REJECTED,
        OutcomeStatus.SKIPPED,
    ]
    assert "40.0%" in result.outcomes[1].detail
    assert ledger.get_status(agent.id).position("AAPL").quantity == 1
    assert result.stage == Stage.DONE


@pytest.mark.asyncio
async def test_revalue_once_and_publish(ledger, store, executor, agent):
    notifier = MemoryNotifier()
    source = FakeSource(decisions=[_decision("NVDA", size=0.1)])
    brain = _make_brain(ledger, executor, {"alpha": source}, notifier=notifier)
    portfolio_id = store.get_portfolio(agent.id)["id"]

    await brain.run_cycle(agent, POOL)

    # one snapshot from the buy, one from the revaluation
    assert len(store.list_snapshots(portfolio_id)) == 2
    assert len(notifier.of_type(EventType.TRADE_EXECUTED)) == 1
    (update,) = notifier.of_type(EventType.PORTFOLIO_UPDATED)
    assert update.agent_id == agent.id
    assert update.payload["total_value"] == pytest.approx(100000)
    assert notifier.of_type(EventType.THINKING)
    assert notifier.events[-1].type == EventType.PORTFOLIO_UPDATED


@pytest.mark.asyncio
async def test_run_all_isolates_agent_failures(store, ledger, executor):
    good = make_agent(store, ledger, name="good")
    bad = make_agent(store, ledger, name="bad")
    notifier = MemoryNotifier()
    brain = _make_brain(
        ledger,
        executor,
        {
            "good": FakeSource(decisions=[_decision("NVDA", size=0.1)]),
            "bad": FakeSource(error=auth_error()),
        },
        notifier=notifier,
    )

    results = await brain.run_all(POOL)

    assert results["good"].stage == Stage.DONE
    assert isinstance(results["bad"], Exception)
    assert ledger.get_status(good.id).position("NVDA") is not None
    assert ledger.get_status(bad.id).positions == []
    (error,) = notifier.of_type(EventType.ERROR)
    assert error.agent_id == bad.id


@pytest.mark.asyncio
async def test_run_all_skips_disabled_agents(store, ledger, executor):
    make_agent(store, ledger, name="on")
    off = make_agent(store, ledger, name="off")
    store.set_agent_enabled(off.id, False)
    sources = {"on": FakeSource(), "off": FakeSource()}
    brain = _make_brain(ledger, executor, sources)

    results = await brain.run_all(POOL)

    assert list(results) == ["on"]
    assert sources["off"].contexts == []


@pytest.mark.asyncio
async def test_news_failure_fails_the_cycle_for_that_agent(ledger, executor, agent):
    brain = _make_brain(ledger, executor, {"alpha": FakeSource()}, news=FakeNews(fail=True))
    results = await brain.run_all(POOL)
    assert isinstance(results["alpha"], RuntimeError)
