"""Reflection pipeline: review matured closed trades and store the lessons."""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta

from rich.console import Console

from trading_arena.brain import SourceProvider
from trading_arena.clients import NewsSource
from trading_arena.config import ReflectionConfig
from trading_arena.data import DataStore
from trading_arena.events import Event, EventType, NullNotifier, Notifier, notify
from trading_arena.models import (
    Agent,
    MarketContext,
    Reflection,
    ReflectionInput,
    Trade,
    TradeSide,
)

console = Console()

MAX_NEWS_EVENTS = 3


class ReflectionPipeline:
    """Turns closed trades older than the maturity window into reflections.

    Each trade is reflected on at most once. A failure on one trade is
    logged and the pipeline moves on to the next.
    """

    def __init__(
        self,
        store: DataStore,
        news: NewsSource,
        sources: SourceProvider,
        notifier: Notifier | None = None,
        config: ReflectionConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.news = news
        self.sources = sources
        self.notifier = notifier or NullNotifier()
        self.config = config or ReflectionConfig()
        self.clock = clock

    def select_matured_trades(
        self, agent_id: int | None = None, reflection_days: int | None = None
    ) -> list[Trade]:
        """CLOSED trades closed at least `reflection_days` ago with no reflection yet."""
        days = self.config.days if reflection_days is None else reflection_days
        return self.store.unreflected_closed_trades(
            self.clock() - timedelta(days=days), agent_id=agent_id
        )

    async def build_input(self, trade: Trade) -> ReflectionInput | None:
        """Pair a closing SELL with its opening BUY. None when no BUY exists."""
        entry = self.store.last_buy_before(trade.agent_id, trade.symbol, trade.executed_at)
        if entry is None:
            return None

        pnl_pct = (trade.price - entry.price) / entry.price * 100 if entry.price else 0.0
        try:
            articles = await self.news.get_news([trade.symbol], self.config.news_hours)
        except Exception as e:
            console.print(f"  [dim]No news for {trade.symbol} reflection: {e}[/dim]")
            articles = []

        return ReflectionInput(
            trade_id=trade.id,
            symbol=trade.symbol,
            side=TradeSide.BUY,
            quantity=trade.quantity,
            entry_price=entry.price,
            exit_price=trade.price,
            pnl=trade.pnl if trade.pnl is not None else (trade.price - entry.price) * trade.quantity,
            pnl_pct=pnl_pct,
            rationale=entry.rationale,
            market_context=MarketContext(
                price_change=pnl_pct,
                news_events=[a.title for a in articles[:MAX_NEWS_EVENTS]],
            ),
        )

    async def reflect_on_trade(self, agent: Agent, trade: Trade) -> Reflection | None:
        data = await self.build_input(trade)
        if data is None:
            console.print(
                f"  [dim]No opening BUY for trade {trade.id} ({trade.symbol}), skipping[/dim]"
            )
            return None

        output = await self.sources.get(agent).reflect(data)
        reflection = self.store.insert_reflection(
            Reflection(
                trade_id=trade.id,
                agent_id=agent.id,
                content=output.content,
                pnl=data.pnl,
                score=output.score,
                created_at=self.clock(),
            )
        )
        await notify(
            self.notifier,
            Event(
                type=EventType.REFLECTION_CREATED,
                agent_id=agent.id,
                payload=reflection.model_dump(mode="json"),
            ),
        )
        console.print(
            f"  [green]✓[/green] {agent.name} reflected on {trade.symbol} "
            f"(P&L ${data.pnl:+,.2f}, score {reflection.score})"
        )
        return reflection

    async def run_for_agent(self, agent: Agent) -> list[Reflection]:
        trades = self.select_matured_trades(agent_id=agent.id)
        if not trades:
            console.print(f"  [dim]{agent.name}: no trades ready for reflection[/dim]")
            return []

        reflections = []
        for trade in trades:
            try:
                reflection = await self.reflect_on_trade(agent, trade)
            except Exception as e:
                console.print(f"  [red]Reflection failed for trade {trade.id}: {e}[/red]")
                await notify(
                    self.notifier,
                    Event(
                        type=EventType.ERROR,
                        agent_id=agent.id,
                        payload=f"Reflection failed for trade {trade.id}: {e}",
                    ),
                )
                continue
            if reflection is not None:
                reflections.append(reflection)
        return reflections

    async def run_all(self, agents: list[Agent] | None = None) -> dict[str, list[Reflection]]:
        """Reflect for every enabled agent concurrently."""
        agents = agents if agents is not None else self.store.list_agents(enabled_only=True)
        console.rule("[bold magenta]Reflection")

        results = await asyncio.gather(
            *(self.run_for_agent(agent) for agent in agents), return_exceptions=True
        )

        outcome: dict[str, list[Reflection]] = {}
        for agent, result in zip(agents, results):
            if isinstance(result, BaseException):
                console.print(f"[red]Reflection failed for {agent.name}: {result}[/red]")
                outcome[agent.name] = []
            else:
                outcome[agent.name] = result

        total = sum(len(r) for r in outcome.values())
        console.print(f"  Created {total} reflection(s)")
        return outcome
