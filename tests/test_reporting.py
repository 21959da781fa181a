"""Tests for the daily report aggregator."""

import pytest

from trading_arena.errors import NotFoundError
from trading_arena.models import AgentPerformance, TradeStatus
from trading_arena.reporting import (
    ReportAggregator,
    generate_key_insights,
    generate_overall_insight,
)

from conftest import make_agent


def _set_return(store, agent_id, pct):
    portfolio = store.get_portfolio(agent_id)
    total = portfolio["initial_value"] * (1 + pct / 100)
    store.update_portfolio(portfolio["id"], total, total)


def _by_name(report):
    return {p.agent_name: p for p in report.performances}


def test_ranks_flip_between_days(store, ledger, clock):
    first = make_agent(store, ledger, name="first")
    second = make_agent(store, ledger, name="second")
    reports = ReportAggregator(ledger, clock=clock)

    _set_return(store, first.id, 15)
    _set_return(store, second.id, 8)
    day1 = reports.generate()

    assert day1.day == 1
    perf = _by_name(day1)
    assert (perf["First"].rank, perf["Second"].rank) == (1, 2)
    assert perf["First"].rank_change is None
    assert perf["Second"].rank_change is None

    clock.advance(days=1)
    _set_return(store, first.id, 8)
    _set_return(store, second.id, 15)
    day2 = reports.generate()

    assert day2.day == 2
    perf = _by_name(day2)
    assert (perf["First"].rank, perf["Second"].rank) == (2, 1)
    assert perf["First"].rank_change == -1
    assert perf["Second"].rank_change == 1
    assert [p.agent_name for p in day2.performances] == ["Second", "First"]


def test_new_agent_has_no_rank_change(store, ledger, clock):
    make_agent(store, ledger, name="first")
    reports = ReportAggregator(ledger, clock=clock)
    reports.generate()

    make_agent(store, ledger, name="late")
    clock.advance(days=1)
    day2 = reports.generate()

    assert _by_name(day2)["Late"].rank_change is None
    assert _by_name(day2)["First"].rank_change is not None


def test_performance_metrics(store, ledger, executor, clock, agent):
    executor.buy(agent.id, "AAPL", 10, 100.0)
    executor.sell(agent.id, "AAPL", 10, 120.0)  # +200
    executor.buy(agent.id, "MSFT", 10, 300.0)
    executor.sell(agent.id, "MSFT", 10, 250.0)  # -500
    executor.buy(agent.id, "NVDA", 20, 400.0)
    ledger.revalue(agent.id, {"NVDA": 410.0})

    report = ReportAggregator(ledger, clock=clock).generate()
    (perf,) = report.performances

    assert perf.win_rate == pytest.approx(50.0)
    assert perf.best_trade.symbol == "AAPL"
    assert perf.best_trade.pnl == pytest.approx(200)
    assert perf.worst_trade.symbol == "MSFT"
    assert perf.trades_count == 5
    assert perf.buy_count == 3
    assert perf.sell_count == 2
    assert perf.positions_count == 1
    assert perf.cash_ratio + perf.position_ratio == pytest.approx(100)
    assert perf.position_ratio == pytest.approx(8200 / perf.total_value * 100)

    nvda_buy = next(t for t in perf.today_trades if t.symbol == "NVDA")
    assert nvda_buy.pnl == pytest.approx(200)
    assert nvda_buy.pnl_pct == pytest.approx(2.5)

    closed = {t.id: t for t in perf.today_trades if t.status == TradeStatus.CLOSED}
    assert closed[perf.today_best_trade_id].symbol == "AAPL"
    assert closed[perf.today_worst_trade_id].symbol == "MSFT"
    assert perf.daily_return is None
    assert perf.strategy_analysis
    assert perf.key_insights


def test_no_closed_trades_means_no_win_rate(store, ledger, clock, agent):
    (perf,) = ReportAggregator(ledger, clock=clock).generate().performances
    assert perf.win_rate is None
    assert perf.best_trade is None
    assert perf.today_trades == []
    assert perf.key_insights == ["No trades yet, waiting for an entry"]


def test_daily_return_against_previous_day(store, ledger, executor, clock, agent):
    executor.buy(agent.id, "NVDA", 100, 100.0)
    clock.advance(days=1, minutes=5)
    ledger.revalue(agent.id, {"NVDA": 120.0})

    (perf,) = ReportAggregator(ledger, clock=clock).generate().performances

    assert perf.daily_return == pytest.approx(2000)
    assert perf.daily_return_pct == pytest.approx(2.0)
    # yesterday's buy is not one of today's trades
    assert perf.trades_count == 0


def test_report_describes_state_at_generation(store, ledger, executor, clock, agent):
    executor.buy(agent.id, "NVDA", 10, 400.0)
    clock.advance(minutes=30)
    executor.buy(agent.id, "AAPL", 20, 180.0)

    report = ReportAggregator(ledger, clock=clock).generate()

    assert report.date == clock()
    (perf,) = report.performances
    assert perf.trades_count == 2
    assert {p.symbol for p in perf.positions_detail} == {"NVDA", "AAPL"}
    assert perf.total_value == ledger.get_status(agent.id).total_value


def test_stock_distribution_changes(store, ledger, executor, clock):
    first = make_agent(store, ledger, name="first")
    second = make_agent(store, ledger, name="second")
    reports = ReportAggregator(ledger, clock=clock)

    executor.buy(first.id, "NVDA", 10, 400.0)
    executor.buy(second.id, "NVDA", 5, 400.0)
    executor.buy(second.id, "AAPL", 10, 200.0)
    day1 = reports.generate()

    nvda = next(d for d in day1.distributions if d.symbol == "NVDA")
    assert nvda.holding_count == 2
    assert nvda.total_shares == 15
    assert nvda.total_value == pytest.approx(6000)
    assert {(c.agent_name, c.action) for c in nvda.changes} == {("First", "NEW"), ("Second", "NEW")}
    assert day1.distributions[0].symbol == "NVDA"

    clock.advance(days=1)
    executor.sell(first.id, "NVDA", 10, 410.0)
    executor.sell(second.id, "AAPL", 10, 210.0)
    executor.buy(first.id, "MSFT", 10, 300.0)
    day2 = reports.generate()

    dists = {d.symbol: d for d in day2.distributions}
    assert [h.agent_name for h in dists["NVDA"].holders] == ["Second"]
    assert {(c.agent_name, c.action) for c in dists["NVDA"].changes} == {("First", "CLOSED")}
    assert dists["AAPL"].holding_count == 0
    assert {(c.agent_name, c.action) for c in dists["AAPL"].changes} == {("Second", "CLOSED")}
    assert {(c.agent_name, c.action) for c in dists["MSFT"].changes} == {("First", "NEW")}


def test_reports_are_stored_and_listed(store, ledger, clock, agent):
    reports = ReportAggregator(ledger, clock=clock)
    first = reports.generate()
    clock.advance(days=1)
    second = reports.generate()

    assert [r.day for r in reports.list_reports()] == [2, 1]
    assert reports.get_report(first.id).day == 1
    assert reports.get_report_by_day(2).id == second.id
    assert reports.get_report_by_day(2).performances[0].agent_name == "Alpha"
    with pytest.raises(NotFoundError):
        reports.get_report_by_day(3)
    with pytest.raises(NotFoundError):
        reports.get_report(999)


def test_report_day_must_increase(store, ledger, clock, agent):
    report = ReportAggregator(ledger, clock=clock).generate()
    with pytest.raises(ValueError):
        store.insert_report(report.model_copy(update={"id": None}))


def test_no_agents(store, ledger, clock):
    with pytest.raises(NotFoundError):
        ReportAggregator(ledger, clock=clock).generate()


def test_insight_templates():
    assert generate_key_insights(12.0, 6.0, 80.0, 8) == [
        "Cumulative return passed 10%, now at 12.00%",
        "Strong single-day return of 6.00%",
        "Win rate of 80.00% shows accurate decisions",
        "High trading frequency, an aggressive approach",
    ]
    assert generate_key_insights(1.0, None, None, 2) == ["Steady strategy, watching the market"]


def test_overall_insight_mentions_average():
    perfs = [
        AgentPerformance(
            agent_id=i,
            agent_name=f"A{i}",
            total_value=100000,
            return_amount=0,
            return_pct=pct,
            cash_ratio=100,
            position_ratio=0,
            positions_count=0,
            trades_count=1,
        )
        for i, pct in enumerate([3.0, 1.0])
    ]
    insight = generate_overall_insight(perfs)
    assert "2.00%" in insight
    assert "2 trade(s)" in insight
