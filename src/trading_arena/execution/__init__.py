"""Trade execution engine: atomic buy/sell against the portfolio ledger."""

from trading_arena.errors import InsufficientPositionError
from trading_arena.models import Position, Trade, TradeSide, TradeStatus
from trading_arena.portfolio import PortfolioLedger


def _require_positive(quantity: float, price: float) -> None:
    if quantity <= 0:
        raise ValueError(f"quantity must be positive, got {quantity}")
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")


class TradeExecutor:
    """Turns a single-symbol trade into ledger mutations plus a trade record.

    Every check runs on state read inside the same transaction that applies
    the trade, so a concurrent trade on the same portfolio cannot slip in
    between the check and the write. Any failure rolls back everything.
    """

    def __init__(self, ledger: PortfolioLedger):
        self.ledger = ledger
        self.store = ledger.store

    def buy(
        self, agent_id: int, symbol: str, quantity: float, price: float, rationale: str = ""
    ) -> Trade:
        """Buy `quantity` shares of `symbol` at `price`. Returns the BUY trade."""
        _require_positive(quantity, price)
        with self.store.transaction():
            portfolio = self.ledger.require_portfolio(agent_id)
            positions = self.store.list_positions(portfolio["id"])
            cash = portfolio["cash"]
            self.ledger.risk.check_buy(positions, cash, symbol, quantity, price)

            cost = quantity * price
            existing = next((p for p in positions if p.symbol == symbol), None)
            if existing:
                new_quantity = existing.quantity + quantity
                avg_price = (existing.avg_price * existing.quantity + price * quantity) / new_quantity
                position = existing.model_copy(
                    update={"quantity": new_quantity, "avg_price": avg_price, "current_price": price}
                )
            else:
                position = Position(
                    symbol=symbol, quantity=quantity, avg_price=price, current_price=price
                )
            self.store.save_position(portfolio["id"], position)
            self.ledger.settle(portfolio, cash - cost)

            return self.store.insert_trade(
                Trade(
                    agent_id=agent_id,
                    symbol=symbol,
                    side=TradeSide.BUY,
                    quantity=quantity,
                    price=price,
                    amount=cost,
                    rationale=rationale,
                    status=TradeStatus.EXECUTED,
                    executed_at=self.ledger.clock(),
                )
            )

    def sell(
        self, agent_id: int, symbol: str, quantity: float, price: float, rationale: str = ""
    ) -> tuple[Trade, float]:
        """Sell `quantity` shares of `symbol` at `price`.

        Returns the SELL trade and the realized P&L measured against the
        position's average cost. Only a full close records pnl on the trade.
        """
        _require_positive(quantity, price)
        with self.store.transaction():
            portfolio = self.ledger.require_portfolio(agent_id)
            position = self.store.get_position(portfolio["id"], symbol)
            if position is None or position.quantity < quantity:
                held = position.quantity if position else 0
                raise InsufficientPositionError(
                    f"Insufficient position. Symbol: {symbol}, Available: {held}, "
                    f"Requested: {quantity}"
                )

            revenue = quantity * price
            realized_pnl = (price - position.avg_price) * quantity
            full_close = quantity == position.quantity

            if full_close:
                self.store.delete_position(portfolio["id"], symbol)
            else:
                self.store.save_position(
                    portfolio["id"],
                    position.model_copy(
                        update={"quantity": position.quantity - quantity, "current_price": price}
                    ),
                )
            self.ledger.settle(portfolio, portfolio["cash"] + revenue)

            now = self.ledger.clock()
            trade = self.store.insert_trade(
                Trade(
                    agent_id=agent_id,
                    symbol=symbol,
                    side=TradeSide.SELL,
                    quantity=quantity,
                    price=price,
                    amount=revenue,
                    rationale=rationale,
                    status=TradeStatus.CLOSED if full_close else TradeStatus.EXECUTED,
                    executed_at=now,
                    closed_at=now if full_close else None,
                    pnl=realized_pnl if full_close else None,
                )
            )
        return trade, realized_pnl
