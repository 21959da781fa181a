"""Portfolio ledger: cash, positions, valuation and snapshot history."""

from collections.abc import Callable
from datetime import datetime, timedelta

from trading_arena.data import DataStore
from trading_arena.errors import NotFoundError
from trading_arena.models import (
    Performance,
    PortfolioSnapshot,
    PortfolioStatus,
    RiskCheck,
)
from trading_arena.risk import RiskManager

DAILY_LOOKBACK = timedelta(hours=24)


class PortfolioLedger:
    """Authoritative view of each agent's portfolio.

    total_value is never written by callers: every mutation ends with
    settle(), which recomputes it from cash and position marks and appends a
    snapshot in the same transaction.
    """

    def __init__(
        self,
        store: DataStore,
        risk: RiskManager | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.risk = risk or RiskManager()
        self.clock = clock

    def initialize(self, agent_id: int, initial_capital: float) -> None:
        """Create the agent's portfolio unless one already exists."""
        with self.store.transaction():
            if self.store.get_portfolio(agent_id) is None:
                self.store.insert_portfolio(agent_id, initial_capital)

    def require_portfolio(self, agent_id: int):
        row = self.store.get_portfolio(agent_id)
        if row is None:
            raise NotFoundError(f"Portfolio not found for agent {agent_id}")
        return row

    def get_status(self, agent_id: int) -> PortfolioStatus:
        portfolio = self.require_portfolio(agent_id)
        agent = self.store.get_agent(agent_id)
        positions = self.store.list_positions(portfolio["id"])
        total_value = portfolio["total_value"]
        initial_value = portfolio["initial_value"]

        total_return = total_value - initial_value
        total_return_pct = total_return / initial_value * 100 if initial_value else 0.0

        daily_return = daily_return_pct = 0.0
        baseline = self.store.latest_snapshot_at_or_before(
            portfolio["id"], self.clock() - DAILY_LOOKBACK
        )
        if baseline and baseline.total_value:
            daily_return = total_value - baseline.total_value
            daily_return_pct = daily_return / baseline.total_value * 100

        return PortfolioStatus(
            agent_id=agent_id,
            agent_name=agent.display_name,
            cash=portfolio["cash"],
            total_value=total_value,
            initial_value=initial_value,
            positions=positions,
            performance=Performance(
                total_return=total_return,
                total_return_pct=total_return_pct,
                daily_return=daily_return,
                daily_return_pct=daily_return_pct,
            ),
        )

    def revalue(self, agent_id: int, prices: dict[str, float]) -> PortfolioSnapshot:
        """Mark held symbols found in `prices`; others keep their last mark."""
        with self.store.transaction():
            portfolio = self.require_portfolio(agent_id)
            for position in self.store.list_positions(portfolio["id"]):
                price = prices.get(position.symbol)
                if price is None or price <= 0:
                    continue
                self.store.save_position(
                    portfolio["id"], position.model_copy(update={"current_price": price})
                )
            return self.settle(portfolio, portfolio["cash"])

    def settle(self, portfolio, cash: float) -> PortfolioSnapshot:
        """Recompute total value from `cash` and current marks, then snapshot.

        Must run inside the caller's transaction.
        """
        positions = self.store.list_positions(portfolio["id"])
        position_value = sum(p.market_value for p in positions)
        total_value = cash + position_value
        self.store.update_portfolio(portfolio["id"], cash, total_value)

        initial_value = portfolio["initial_value"]
        snapshot = PortfolioSnapshot(
            portfolio_id=portfolio["id"],
            total_value=total_value,
            cash=cash,
            position_value=position_value,
            return_pct=(total_value - initial_value) / initial_value * 100
            if initial_value
            else 0.0,
            timestamp=self.clock(),
        )
        return snapshot.model_copy(update={"id": self.store.insert_snapshot(snapshot)})

    def can_open(self, status: PortfolioStatus, symbol: str, position_size: float) -> RiskCheck:
        """Advisory risk pre-check. Does not touch the store."""
        return self.risk.can_open(status, symbol, position_size)

    def get_history(self, agent_id: int, hours_back: int = 72) -> list[PortfolioSnapshot]:
        """Snapshots from the last `hours_back` hours, oldest first."""
        portfolio = self.store.get_portfolio(agent_id)
        if portfolio is None:
            return []
        since = self.clock() - timedelta(hours=hours_back)
        return self.store.list_snapshots(portfolio["id"], since=since)
