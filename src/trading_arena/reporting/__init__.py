"""Daily report aggregation: rankings, per-agent performance and holdings."""

from collections.abc import Callable
from datetime import datetime, timedelta

from rich.console import Console
from rich.table import Table

from trading_arena.data import DataStore
from trading_arena.errors import NotFoundError
from trading_arena.models import (
    Agent,
    AgentPerformance,
    DailyReport,
    Holder,
    HoldingChange,
    StockDistribution,
    Trade,
    TradeSide,
    TradeStatus,
    TradeSummary,
)
from trading_arena.portfolio import PortfolioLedger

console = Console()

DAILY_LOOKBACK = timedelta(hours=24)
ACTIVE_TRADER_THRESHOLD = 5


def _summary(trade: Trade, pnl: float | None = None, pnl_pct: float | None = None) -> TradeSummary:
    return TradeSummary(
        id=trade.id,
        symbol=trade.symbol,
        side=trade.side,
        quantity=trade.quantity,
        price=trade.price,
        amount=trade.amount,
        pnl=trade.pnl if pnl is None else pnl,
        pnl_pct=pnl_pct,
        rationale=trade.rationale,
        status=trade.status,
        executed_at=trade.executed_at,
    )


class ReportAggregator:
    """Builds one immutable report per trading day.

    Reports are numbered by a strictly increasing day counter. A report
    describes the ledger as it stands when generated; past days are read
    back from storage, never rebuilt.
    """

    def __init__(
        self,
        ledger: PortfolioLedger,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.ledger = ledger
        self.store = ledger.store
        self.clock = clock

    def generate(self) -> DailyReport:
        report_date = self.clock()
        day = self.store.latest_report_day() + 1

        agents = [
            a
            for a in self.store.list_agents(enabled_only=True)
            if self.store.get_portfolio(a.id) is not None
        ]
        if not agents:
            raise NotFoundError("No enabled agents with a portfolio")

        previous = self._previous_report(day)
        previous_ranks = (
            {p.agent_id: p.rank for p in previous.performances} if previous else {}
        )

        performances = [self.collect_performance(a, report_date) for a in agents]
        performances.sort(key=lambda p: p.return_pct, reverse=True)
        for rank, perf in enumerate(performances, start=1):
            perf.rank = rank
            prev_rank = previous_ranks.get(perf.agent_id)
            perf.rank_change = prev_rank - rank if prev_rank is not None else None

        report = DailyReport(
            day=day,
            date=report_date,
            title=f"Day {day} Report: {len(performances)} AI traders compared",
            summary=generate_summary(performances),
            overall_insight=generate_overall_insight(performances),
            performances=performances,
            distributions=self.stock_distributions(performances, previous),
        )
        report = self.store.insert_report(report)
        console.print(f"  [green]✓[/green] Daily report created: Day {day} (id {report.id})")
        return report

    def _previous_report(self, day: int) -> DailyReport | None:
        if day <= 1:
            return None
        try:
            return self.store.get_report_by_day(day - 1)
        except NotFoundError:
            return None

    def collect_performance(self, agent: Agent, report_date: datetime) -> AgentPerformance:
        status = self.ledger.get_status(agent.id)
        portfolio = self.ledger.require_portfolio(agent.id)
        positions = status.positions
        marks = {p.symbol: p.current_price for p in positions}

        start_of_day = report_date.replace(hour=0, minute=0, second=0, microsecond=0)
        today = self.store.list_trades(agent_id=agent.id, since=start_of_day, until=report_date)

        today_trades = []
        for trade in today:
            if trade.status != TradeStatus.CLOSED and trade.side == TradeSide.BUY:
                mark = marks.get(trade.symbol)
                if mark is not None:
                    today_trades.append(
                        _summary(
                            trade,
                            pnl=(mark - trade.price) * trade.quantity,
                            pnl_pct=(mark - trade.price) / trade.price * 100,
                        )
                    )
                    continue
            today_trades.append(_summary(trade))

        closed = [
            t
            for t in self.store.list_trades(
                agent_id=agent.id, status=TradeStatus.CLOSED, until=report_date
            )
            if t.pnl is not None
        ]
        win_rate = (
            sum(1 for t in closed if t.pnl > 0) / len(closed) * 100 if closed else None
        )
        by_pnl = sorted(closed, key=lambda t: t.pnl, reverse=True)
        best = _summary(by_pnl[0]) if by_pnl else None
        worst = _summary(by_pnl[-1]) if by_pnl else None

        today_closed = sorted(
            (t for t in today_trades if t.status == TradeStatus.CLOSED and t.pnl is not None),
            key=lambda t: t.pnl,
            reverse=True,
        )

        daily_return = daily_return_pct = None
        baseline = self.store.latest_snapshot_at_or_before(
            portfolio["id"], report_date - DAILY_LOOKBACK
        )
        if baseline and baseline.total_value:
            daily_return = status.total_value - baseline.total_value
            daily_return_pct = daily_return / baseline.total_value * 100

        cash_ratio = status.cash / status.total_value * 100 if status.total_value else 100.0
        return_pct = status.performance.total_return_pct

        return AgentPerformance(
            agent_id=agent.id,
            agent_name=agent.display_name,
            total_value=status.total_value,
            return_amount=status.performance.total_return,
            return_pct=return_pct,
            daily_return=daily_return,
            daily_return_pct=daily_return_pct,
            cash_ratio=cash_ratio,
            position_ratio=100 - cash_ratio,
            positions_count=len(positions),
            positions_detail=positions,
            trades_count=len(today),
            buy_count=sum(1 for t in today if t.side == TradeSide.BUY),
            sell_count=sum(1 for t in today if t.side == TradeSide.SELL),
            win_rate=win_rate,
            best_trade=best,
            worst_trade=worst,
            today_trades=today_trades,
            today_best_trade_id=today_closed[0].id if today_closed else None,
            today_worst_trade_id=today_closed[-1].id if today_closed else None,
            strategy_analysis=generate_strategy_analysis(
                agent.display_name, len(positions), len(today), return_pct
            ),
            key_insights=generate_key_insights(
                return_pct, daily_return_pct, win_rate, len(today)
            ),
        )

    def stock_distributions(
        self, performances: list[AgentPerformance], previous: DailyReport | None
    ) -> list[StockDistribution]:
        """Who holds what across agents, with NEW/CLOSED changes since the previous report."""
        holders: dict[str, list[Holder]] = {}
        cleared: dict[str, set[str]] = {}

        for perf in performances:
            held = set()
            for pos in perf.positions_detail:
                held.add(pos.symbol)
                holders.setdefault(pos.symbol, []).append(
                    Holder(
                        agent_name=perf.agent_name,
                        shares=pos.quantity,
                        avg_price=pos.avg_price,
                        current_price=pos.current_price,
                        pnl=pos.unrealized_pnl,
                    )
                )
            for trade in perf.today_trades:
                if trade.side == TradeSide.SELL and trade.symbol not in held:
                    cleared.setdefault(trade.symbol, set()).add(perf.agent_name)

        previous_holders: dict[str, set[str]] = {}
        if previous:
            for dist in previous.distributions:
                previous_holders[dist.symbol] = {h.agent_name for h in dist.holders}

        distributions = []
        for symbol in sorted(set(holders) | set(cleared) | set(previous_holders)):
            current = holders.get(symbol, [])
            today_names = {h.agent_name for h in current}
            yesterday_names = previous_holders.get(symbol, set())

            changes = [
                HoldingChange(agent_name=name, action="NEW")
                for name in sorted(today_names - yesterday_names)
            ]
            closed_names = (yesterday_names - today_names) | (
                cleared.get(symbol, set()) - today_names
            )
            changes += [
                HoldingChange(agent_name=name, action="CLOSED") for name in sorted(closed_names)
            ]

            if not current and not changes:
                continue
            distributions.append(
                StockDistribution(
                    symbol=symbol,
                    holding_count=len(current),
                    total_shares=sum(h.shares for h in current),
                    total_value=sum(h.shares * h.current_price for h in current),
                    total_pnl=sum(h.pnl for h in current),
                    holders=current,
                    changes=changes,
                )
            )

        distributions.sort(key=lambda d: d.holding_count, reverse=True)
        return distributions

    def list_reports(self, limit: int = 20) -> list[DailyReport]:
        return self.store.list_reports(limit)

    def get_report(self, report_id: int) -> DailyReport:
        return self.store.get_report(report_id)

    def get_report_by_day(self, day: int) -> DailyReport:
        return self.store.get_report_by_day(day)


def generate_summary(performances: list[AgentPerformance]) -> str:
    ranked = sorted(performances, key=lambda p: p.return_pct, reverse=True)
    best, worst = ranked[0], ranked[-1]
    gainers = sum(1 for p in ranked if p.return_pct > 0)
    trend = "trending up" if gainers > len(ranked) / 2 else "choppy"
    return (
        f"{len(ranked)} AI traders took part today. {best.agent_name} led with "
        f"{best.return_pct:.2f}%; {worst.agent_name} trailed at {worst.return_pct:.2f}%. "
        f"Overall the market was {trend}."
    )


def generate_overall_insight(performances: list[AgentPerformance]) -> str:
    avg_return = sum(p.return_pct for p in performances) / len(performances)
    total_trades = sum(p.trades_count for p in performances)
    insight = (
        f"Across {len(performances)} AI traders the average return is {avg_return:.2f}% "
        f"with {total_trades} trade(s) executed today."
    )
    if avg_return > 2:
        return insight + " Most traders captured the market's opportunities."
    if avg_return > 0:
        return insight + " Performance was steady and strategies stayed conservative."
    return insight + " Volatility was high and traders stayed cautious."


def generate_strategy_analysis(
    name: str, positions_count: int, trades_count: int, return_pct: float
) -> str:
    analysis = f"{name} holds {positions_count} position(s)"
    if trades_count:
        analysis += f" and executed {trades_count} trade(s) today."
    else:
        analysis += " and made no trades today, staying on the sidelines."

    if return_pct > 5:
        return analysis + " The strategy is clearly paying off."
    if return_pct > 0:
        return analysis + " It remains steadily profitable."
    return analysis + " It is adjusting its strategy to market conditions."


def generate_key_insights(
    return_pct: float,
    daily_return_pct: float | None,
    win_rate: float | None,
    trades_count: int,
) -> list[str]:
    insights = []
    if return_pct > 10:
        insights.append(f"Cumulative return passed 10%, now at {return_pct:.2f}%")
    if daily_return_pct is not None and daily_return_pct > 5:
        insights.append(f"Strong single-day return of {daily_return_pct:.2f}%")
    if win_rate is not None and win_rate > 70:
        insights.append(f"Win rate of {win_rate:.2f}% shows accurate decisions")
    if trades_count > ACTIVE_TRADER_THRESHOLD:
        insights.append("High trading frequency, an aggressive approach")
    elif trades_count == 0:
        insights.append("No trades yet, waiting for an entry")
    return insights or ["Steady strategy, watching the market"]


def print_report(report: DailyReport) -> None:
    console.rule(f"[bold green]{report.title}")
    console.print(f"  {report.summary}")
    console.print(f"  [dim]{report.overall_insight}[/dim]")

    table = Table(title="Rankings")
    table.add_column("#", justify="right")
    table.add_column("Agent", style="cyan")
    table.add_column("Total Value", justify="right")
    table.add_column("Return", justify="right")
    table.add_column("Daily", justify="right")
    table.add_column("Δ Rank", justify="right")
    table.add_column("Win Rate", justify="right")
    table.add_column("Trades", justify="right")

    for p in report.performances:
        ret_style = "green" if p.return_pct >= 0 else "red"
        if p.rank_change is None:
            delta = "-"
        elif p.rank_change > 0:
            delta = f"[green]▲{p.rank_change}[/green]"
        elif p.rank_change < 0:
            delta = f"[red]▼{-p.rank_change}[/red]"
        else:
            delta = "0"
        table.add_row(
            str(p.rank),
            p.agent_name,
            f"${p.total_value:,.2f}",
            f"[{ret_style}]{p.return_pct:+.2f}%[/{ret_style}]",
            f"{p.daily_return_pct:+.2f}%" if p.daily_return_pct is not None else "-",
            delta,
            f"{p.win_rate:.0f}%" if p.win_rate is not None else "-",
            str(p.trades_count),
        )
    console.print(table)

    if report.distributions:
        dist = Table(title="Holdings")
        dist.add_column("Symbol", style="cyan")
        dist.add_column("Holders", justify="right")
        dist.add_column("Shares", justify="right")
        dist.add_column("Value", justify="right")
        dist.add_column("P&L", justify="right")
        dist.add_column("Changes")
        for d in report.distributions:
            pnl_style = "green" if d.total_pnl >= 0 else "red"
            dist.add_row(
                d.symbol,
                str(d.holding_count),
                f"{d.total_shares:g}",
                f"${d.total_value:,.2f}",
                f"[{pnl_style}]${d.total_pnl:+,.2f}[/{pnl_style}]",
                ", ".join(f"{c.agent_name} {c.action}" for c in d.changes),
            )
        console.print(dist)
