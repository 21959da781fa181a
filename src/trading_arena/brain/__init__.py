"""Decision pipeline: context, decisions, execution, revaluation, publish."""

import asyncio
import math
from enum import Enum
from typing import Protocol

from pydantic import BaseModel
from rich.console import Console
from rich.table import Table

from trading_arena.agents import DecisionSource
from trading_arena.clients import MarketDataSource, NewsSource
from trading_arena.config import AppConfig
from trading_arena.errors import TradeRejectedError
from trading_arena.events import Event, EventType, NullNotifier, Notifier, notify
from trading_arena.execution import TradeExecutor
from trading_arena.models import (
    Action,
    Agent,
    AnalysisContext,
    PortfolioStatus,
    Trade,
    TradeDecision,
)
from trading_arena.portfolio import PortfolioLedger

console = Console()


class Stage(str, Enum):
    GATHER_CONTEXT = "gather_context"
    REQUEST_DECISIONS = "request_decisions"
    EXECUTE_DECISIONS = "execute_decisions"
    REVALUE = "revalue"
    PUBLISH = "publish"
    DONE = "done"


class OutcomeStatus(str, Enum):
    EXECUTED = "executed"
    SKIPPED = "skipped"
    REJECTED = "rejected"
    HOLD = "hold"


class DecisionOutcome(BaseModel):
    decision: TradeDecision
    status: OutcomeStatus
    detail: str = ""
    trade: Trade | None = None
    realized_pnl: float | None = None


class CycleResult(BaseModel):
    agent_id: int
    agent_name: str
    stage: Stage = Stage.GATHER_CONTEXT
    decisions: list[TradeDecision] = []
    outcomes: list[DecisionOutcome] = []
    status: PortfolioStatus | None = None


class SourceProvider(Protocol):
    def get(self, agent: Agent) -> DecisionSource: ...


class Brain:
    """Runs one analysis cycle per agent, strictly in stage order.

    A rejected or failed decision never stops the rest of the agent's
    decisions, and one agent's failure never stops its siblings in run_all().
    """

    def __init__(
        self,
        ledger: PortfolioLedger,
        executor: TradeExecutor,
        market: MarketDataSource,
        news: NewsSource,
        sources: SourceProvider,
        notifier: Notifier | None = None,
        config: AppConfig | None = None,
    ):
        self.ledger = ledger
        self.store = ledger.store
        self.executor = executor
        self.market = market
        self.news = news
        self.sources = sources
        self.notifier = notifier or NullNotifier()
        self.config = config or AppConfig()

    async def _timed(self, coro):
        return await asyncio.wait_for(coro, timeout=self.config.analysis.data_timeout)

    async def gather_context(self, agent: Agent, stock_pool: list[str]) -> AnalysisContext:
        portfolio = self.ledger.get_status(agent.id)
        historical = await self._timed(
            self.market.get_historical(stock_pool, self.config.analysis.history_days)
        )
        prices = await self._timed(self.market.get_current_prices(stock_pool))
        news = await self._timed(self.news.get_news(stock_pool, self.config.analysis.news_hours))
        lessons = [
            r.content
            for r in self.store.top_reflections(agent.id, self.config.reflection.top_n_lessons)
        ]
        return AnalysisContext(
            stock_pool=stock_pool,
            historical=historical,
            current_prices=prices,
            news=news,
            portfolio=portfolio,
            lessons=lessons,
        )

    async def request_decisions(
        self, agent: Agent, context: AnalysisContext
    ) -> list[TradeDecision]:
        source = self.sources.get(agent)
        decisions = await source.analyze(context)
        return [d for d in decisions if isinstance(d, TradeDecision)]

    def _buy(self, agent: Agent, decision: TradeDecision, price: float) -> DecisionOutcome:
        status = self.ledger.get_status(agent.id)
        quantity = math.floor(status.total_value * decision.position_size / price)
        if quantity <= 0:
            return DecisionOutcome(
                decision=decision,
                status=OutcomeStatus.SKIPPED,
                detail=f"quantity would be 0 at ${price:,.2f}",
            )

        check = self.ledger.can_open(status, decision.symbol, decision.position_size)
        if not check.allowed:
            return DecisionOutcome(
                decision=decision, status=OutcomeStatus.SKIPPED, detail=check.reason or ""
            )

        trade = self.executor.buy(agent.id, decision.symbol, quantity, price, decision.rationale)
        return DecisionOutcome(
            decision=decision,
            status=OutcomeStatus.EXECUTED,
            detail=f"BUY {quantity} @ ${price:,.2f}",
            trade=trade,
        )

    def _sell(self, agent: Agent, decision: TradeDecision, price: float) -> DecisionOutcome:
        position = self.ledger.get_status(agent.id).position(decision.symbol)
        if position is None:
            return DecisionOutcome(
                decision=decision, status=OutcomeStatus.SKIPPED, detail="no position"
            )

        trade, pnl = self.executor.sell(
            agent.id, decision.symbol, position.quantity, price, decision.rationale
        )
        return DecisionOutcome(
            decision=decision,
            status=OutcomeStatus.EXECUTED,
            detail=f"SELL {position.quantity:g} @ ${price:,.2f}, P&L ${pnl:+,.2f}",
            trade=trade,
            realized_pnl=pnl,
        )

    async def execute_decisions(
        self, agent: Agent, decisions: list[TradeDecision]
    ) -> list[DecisionOutcome]:
        actionable = sorted({d.symbol for d in decisions if d.action != Action.HOLD})
        prices = await self._timed(self.market.get_current_prices(actionable)) if actionable else {}

        outcomes = []
        for decision in decisions:
            if decision.action == Action.HOLD:
                outcomes.append(DecisionOutcome(decision=decision, status=OutcomeStatus.HOLD))
                continue

            price = prices.get(decision.symbol)
            if not price or price <= 0:
                outcome = DecisionOutcome(
                    decision=decision, status=OutcomeStatus.SKIPPED, detail="no current price"
                )
            else:
                try:
                    if decision.action == Action.BUY:
                        outcome = self._buy(agent, decision, price)
                    else:
                        outcome = self._sell(agent, decision, price)
                except TradeRejectedError as e:
                    outcome = DecisionOutcome(
                        decision=decision, status=OutcomeStatus.REJECTED, detail=str(e)
                    )

            if outcome.status == OutcomeStatus.EXECUTED:
                console.print(f"  [green]✓[/green] {agent.name} {decision.symbol}: {outcome.detail}")
                await notify(
                    self.notifier,
                    Event(
                        type=EventType.TRADE_EXECUTED,
                        agent_id=agent.id,
                        payload=outcome.trade.model_dump(mode="json"),
                    ),
                )
            elif outcome.status == OutcomeStatus.REJECTED:
                console.print(f"  [red]✗[/red] {agent.name} {decision.symbol}: {outcome.detail}")
            else:
                console.print(
                    f"  [dim]Skipping {decision.action.value} {decision.symbol}: "
                    f"{outcome.detail}[/dim]"
                )
            outcomes.append(outcome)
        return outcomes

    async def run_cycle(self, agent: Agent, stock_pool: list[str]) -> CycleResult:
        """Run GATHER_CONTEXT → REQUEST_DECISIONS → EXECUTE_DECISIONS → REVALUE → PUBLISH."""
        result = CycleResult(agent_id=agent.id, agent_name=agent.name)

        await notify(
            self.notifier,
            Event(
                type=EventType.THINKING,
                agent_id=agent.id,
                payload=f"{agent.display_name} is analyzing market data...",
            ),
        )
        context = await self.gather_context(agent, stock_pool)

        result.stage = Stage.REQUEST_DECISIONS
        result.decisions = await self.request_decisions(agent, context)
        await notify(
            self.notifier,
            Event(
                type=EventType.THINKING,
                agent_id=agent.id,
                payload=f"{agent.display_name} generated {len(result.decisions)} trading decisions",
            ),
        )
        _print_decisions(agent, result.decisions)

        result.stage = Stage.EXECUTE_DECISIONS
        result.outcomes = await self.execute_decisions(agent, result.decisions)

        result.stage = Stage.REVALUE
        prices = await self._timed(self.market.get_current_prices(stock_pool))
        self.ledger.revalue(agent.id, prices)

        result.stage = Stage.PUBLISH
        result.status = self.ledger.get_status(agent.id)
        await notify(
            self.notifier,
            Event(
                type=EventType.PORTFOLIO_UPDATED,
                agent_id=agent.id,
                payload=result.status.model_dump(mode="json"),
            ),
        )
        console.print(
            f"  {agent.name}: total value ${result.status.total_value:,.2f} "
            f"({result.status.performance.total_return_pct:+.2f}%)"
        )
        result.stage = Stage.DONE
        return result

    async def run_all(
        self, stock_pool: list[str], agents: list[Agent] | None = None
    ) -> dict[str, CycleResult | BaseException]:
        """Run a cycle for every enabled agent concurrently; collect every outcome."""
        agents = agents if agents is not None else self.store.list_agents(enabled_only=True)
        console.rule("[bold blue]Analysis Cycle")
        console.print(f"  Stock pool: {', '.join(stock_pool)}")
        console.print(f"  Agents: {', '.join(a.name for a in agents) or 'none'}")

        results = await asyncio.gather(
            *(self.run_cycle(agent, stock_pool) for agent in agents), return_exceptions=True
        )

        outcome: dict[str, CycleResult | BaseException] = {}
        for agent, result in zip(agents, results):
            if isinstance(result, BaseException):
                console.print(f"[red]Analysis failed for {agent.name}: {result}[/red]")
                await notify(
                    self.notifier,
                    Event(
                        type=EventType.ERROR,
                        agent_id=agent.id,
                        payload=f"Failed to analyze for {agent.name}: {result}",
                    ),
                )
            outcome[agent.name] = result

        console.rule("[bold blue]Analysis Cycle Complete")
        return outcome


def _print_decisions(agent: Agent, decisions: list[TradeDecision]) -> None:
    table = Table(title=f"{agent.display_name} Decisions")
    table.add_column("Symbol", style="cyan")
    table.add_column("Action", style="bold")
    table.add_column("Size", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Rationale")

    for d in decisions:
        action_style = {
            Action.BUY: "green",
            Action.SELL: "red",
            Action.HOLD: "yellow",
        }.get(d.action, "white")

        table.add_row(
            d.symbol,
            f"[{action_style}]{d.action.value}[/{action_style}]",
            f"{d.position_size:.0%}",
            f"{d.confidence:.2f}",
            d.rationale[:60] + "..." if len(d.rationale) > 60 else d.rationale,
        )

    console.print(table)
