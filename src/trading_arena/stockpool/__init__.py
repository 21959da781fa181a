"""Stock pool selection: ask a decision source for candidates, keep one active pool."""

from rich.console import Console
from rich.table import Table

from trading_arena.agents import DecisionSource
from trading_arena.data import DataStore
from trading_arena.models import SingleStockAnalysis, StockRecommendation

console = Console()


class StockPicker:
    def __init__(self, store: DataStore, source: DecisionSource, default_pool: list[str]):
        self.store = store
        self.source = source
        self.default_pool = default_pool

    async def pick_stocks(self, criteria: str, max_results: int = 10) -> list[StockRecommendation]:
        """Recommendations for `criteria`, best score first, at most `max_results`."""
        recommendations = await self.source.pick_stocks(criteria, max_results)
        recommendations.sort(key=lambda r: r.score, reverse=True)
        return recommendations[:max_results]

    async def analyze_stock(self, symbol: str, criteria: str | None = None) -> SingleStockAnalysis:
        return await self.source.analyze_single_stock(symbol.upper(), criteria)

    def save_stock_pool(
        self, symbols: list[str], name: str, created_by: str = "user", reason: str | None = None
    ) -> int:
        """Replace the active pool. Symbols are upper-cased and de-duplicated in order."""
        cleaned = list(dict.fromkeys(s.strip().upper() for s in symbols if s.strip()))
        if not cleaned:
            raise ValueError("Stock pool must contain at least one symbol")
        pool_id = self.store.save_stock_pool(cleaned, name, created_by, reason)
        console.print(f"  [green]✓[/green] Saved stock pool {name!r}: {', '.join(cleaned)}")
        return pool_id

    def get_active_stock_pool(self) -> list[str]:
        """The saved active pool, or the configured default when none is saved."""
        return self.store.get_active_stock_pool() or list(self.default_pool)

    async def pick_and_save(self, criteria: str, max_results: int = 10) -> list[StockRecommendation]:
        recommendations = await self.pick_stocks(criteria, max_results)
        if recommendations:
            self.save_stock_pool(
                [r.symbol for r in recommendations],
                name=criteria[:50],
                created_by=self.source.model,
                reason=criteria,
            )
        return recommendations


def print_recommendations(recommendations: list[StockRecommendation]) -> None:
    table = Table(title="Stock Picks")
    table.add_column("Symbol", style="cyan")
    table.add_column("Name")
    table.add_column("Score", justify="right")
    table.add_column("Reason")
    for r in recommendations:
        table.add_row(
            r.symbol,
            r.name,
            str(r.score),
            r.reason[:60] + "..." if len(r.reason) > 60 else r.reason,
        )
    console.print(table)
