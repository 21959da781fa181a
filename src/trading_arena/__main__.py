"""CLI entrypoint for trading-arena."""

import asyncio
import signal
import sys
from importlib.metadata import version as pkg_version

from rich.console import Console
from rich.table import Table

from trading_arena.agents import DecisionSourcePool
from trading_arena.brain import Brain
from trading_arena.clients import AlpacaMarketData, AlpacaNews
from trading_arena.clients.simulated import SimulatedMarketData, SimulatedNews
from trading_arena.config import AppConfig, Secrets, load_config, validate_secrets
from trading_arena.data import DataStore
from trading_arena.events import ConsoleNotifier
from trading_arena.execution import TradeExecutor
from trading_arena.portfolio import PortfolioLedger
from trading_arena.reflection import ReflectionPipeline
from trading_arena.reporting import ReportAggregator, print_report
from trading_arena.risk import RiskManager
from trading_arena.scheduler import TradingScheduler
from trading_arena.stockpool import StockPicker, print_recommendations

console = Console()

APP_VERSION = pkg_version("trading-arena")


class App:
    """Everything one process needs, wired once and passed explicitly."""

    def __init__(self, config: AppConfig, secrets: Secrets):
        self.config = config
        self.secrets = secrets
        self.store = DataStore(secrets.db_path)
        self.ledger = PortfolioLedger(self.store, RiskManager(config.risk))
        self.executor = TradeExecutor(self.ledger)
        self.notifier = ConsoleNotifier()
        self.sources = DecisionSourcePool(config, secrets)

        if config.market_data == "alpaca":
            self.market = AlpacaMarketData(secrets)
            self.news = AlpacaNews(secrets)
        else:
            self.market = SimulatedMarketData()
            self.news = SimulatedNews()

        self.brain = Brain(
            self.ledger,
            self.executor,
            self.market,
            self.news,
            self.sources,
            notifier=self.notifier,
            config=config,
        )
        self.reflection = ReflectionPipeline(
            self.store, self.news, self.sources, notifier=self.notifier, config=config.reflection
        )
        self.reports = ReportAggregator(self.ledger)

    def seed(self) -> None:
        """Register configured agents and give each a portfolio."""
        for agent_config in self.config.agents:
            agent = self.store.upsert_agent(agent_config)
            self.store.set_agent_enabled(agent.id, agent_config.enabled)
            self.ledger.initialize(agent.id, self.config.trading.initial_capital)
            console.print(f"  [green]✓[/green] {agent.display_name} ({agent.provider}/{agent.model})")

    def stock_pool(self) -> list[str]:
        return self.store.get_active_stock_pool() or list(self.config.stock_pool)

    def picker(self) -> StockPicker:
        agents = self.store.list_agents(enabled_only=True)
        if not agents:
            raise SystemExit("No enabled agents; run with --seed first")
        return StockPicker(self.store, self.sources.get(agents[0]), self.config.stock_pool)

    async def analyze(self):
        return await self.brain.run_all(self.stock_pool())

    async def reflect(self):
        return await self.reflection.run_all()

    async def report(self):
        report = self.reports.generate()
        print_report(report)
        return report

    async def aclose(self) -> None:
        await self.sources.aclose()
        self.store.close()


def _print_portfolios(app: App) -> None:
    table = Table(title="Portfolios")
    table.add_column("Agent", style="cyan")
    table.add_column("Cash", justify="right")
    table.add_column("Total Value", justify="right")
    table.add_column("Return", justify="right")
    table.add_column("Positions", justify="right")

    for agent in app.store.list_agents():
        if app.store.get_portfolio(agent.id) is None:
            continue
        status = app.ledger.get_status(agent.id)
        ret = status.performance.total_return_pct
        style = "green" if ret >= 0 else "red"
        table.add_row(
            status.agent_name,
            f"${status.cash:,.2f}",
            f"${status.total_value:,.2f}",
            f"[{style}]{ret:+.2f}%[/{style}]",
            str(len(status.positions)),
        )
    console.print(table)


def _flag_value(flag: str) -> str | None:
    if flag not in sys.argv:
        return None
    i = sys.argv.index(flag)
    return sys.argv[i + 1] if i + 1 < len(sys.argv) else ""


async def _run_scheduler(app: App) -> None:
    scheduler = TradingScheduler(
        app.store,
        app.config.schedule,
        premarket=app.analyze,
        postmarket=app.reflect,
        report=app.report,
        notifier=app.notifier,
    )
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    scheduler.start()
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")
    await stop.wait()
    scheduler.shutdown()


async def _run(app: App) -> None:
    try:
        if "--seed" in sys.argv:
            console.rule("[bold]Seeding agents")
            app.seed()

        criteria = _flag_value("--pick")
        if criteria is not None:
            if not criteria:
                raise SystemExit('--pick needs criteria, e.g. --pick "AI chip makers"')
            print_recommendations(await app.picker().pick_and_save(criteria))

        if "--analyze" in sys.argv:
            await app.analyze()
        if "--reflect" in sys.argv:
            await app.reflect()
        if "--report" in sys.argv:
            await app.report()

        if "--schedule" in sys.argv:
            await _run_scheduler(app)
        else:
            _print_portfolios(app)
    finally:
        await app.aclose()


def main():
    config = load_config()
    secrets = Secrets()

    # --reset: wipe the database and start fresh
    if "--reset" in sys.argv:
        store = DataStore(secrets.db_path)
        store.reset()
        store.close()
        console.print(f"[green]Cleared {secrets.db_path}, starting fresh[/green]")
        if len(sys.argv) <= 2:
            return

    console.print(f"[bold]trading-arena v{APP_VERSION}[/bold]")
    console.print(f"Market data: {config.market_data}")

    needs_sources = any(
        flag in sys.argv for flag in ("--analyze", "--reflect", "--pick", "--schedule")
    )
    problems = validate_secrets(config, secrets)
    if needs_sources and problems:
        for problem in problems:
            console.print(f"[red]Error: {problem}[/red]")
        sys.exit(1)

    app = App(config, secrets)
    asyncio.run(_run(app))


if __name__ == "__main__":
    main()
