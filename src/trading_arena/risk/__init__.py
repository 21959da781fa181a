"""Risk management: position and exposure limits for agent trades."""

from trading_arena.config import RiskConfig
from trading_arena.errors import InsufficientFundsError, RiskLimitError
from trading_arena.models import PortfolioStatus, Position, RiskCheck


class RiskManager:
    """Evaluates trades against the single-symbol and total exposure limits.

    `can_open` is the advisory check the decision pipeline runs on a status
    view before sizing a buy. `check_buy` is the authoritative check the
    execution engine runs on freshly read state inside the buy transaction.
    """

    def __init__(self, config: RiskConfig | None = None):
        self.config = config or RiskConfig()

    def can_open(
        self, status: PortfolioStatus, symbol: str, position_size: float
    ) -> RiskCheck:
        """Pre-check a new exposure of `position_size` (fraction of total value)."""
        max_pos = self.config.max_position_size
        max_total = self.config.max_total_position

        if position_size > max_pos:
            return RiskCheck(
                allowed=False,
                reason=f"Position size {position_size * 100:.1f}% exceeds maximum "
                f"{max_pos * 100:.1f}% for {symbol}",
            )

        if status.total_value <= 0:
            return RiskCheck(allowed=False, reason="Portfolio has no value")

        projected = (status.position_value + position_size * status.total_value) / status.total_value
        if projected > max_total:
            return RiskCheck(
                allowed=False,
                reason=f"Total position would be {projected * 100:.1f}%, exceeds maximum "
                f"{max_total * 100:.1f}%",
            )

        return RiskCheck(allowed=True)

    def check_buy(
        self,
        positions: list[Position],
        cash: float,
        symbol: str,
        quantity: float,
        price: float,
    ) -> None:
        """Raise if buying `quantity` of `symbol` at `price` breaks a rule.

        Limits are measured the same way `can_open` measures them: held
        positions at their stored marks plus the cost of the trade, against
        the current total of cash and marked positions.
        """
        cost = quantity * price
        if cost > cash:
            raise InsufficientFundsError(
                f"Insufficient cash. Required: ${cost:,.2f}, Available: ${cash:,.2f}"
            )

        existing = next((p for p in positions if p.symbol == symbol), None)
        held_value = sum(p.market_value for p in positions)
        total_value = cash + held_value
        if total_value <= 0:
            raise RiskLimitError("Portfolio has no value")

        symbol_value = (existing.market_value if existing else 0.0) + cost
        symbol_pct = symbol_value / total_value
        if symbol_pct > self.config.max_position_size:
            raise RiskLimitError(
                f"{symbol} would be {symbol_pct * 100:.1f}% of the portfolio, exceeds maximum "
                f"{self.config.max_position_size * 100:.1f}%"
            )

        invested_pct = (held_value + cost) / total_value
        if invested_pct > self.config.max_total_position:
            raise RiskLimitError(
                f"Total position would be {invested_pct * 100:.1f}%, exceeds maximum "
                f"{self.config.max_total_position * 100:.1f}%"
            )
