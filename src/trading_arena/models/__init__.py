"""Pydantic models for agents, portfolios, trades, reflections and reports."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, computed_field


class Action(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class TradeSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class TradeStatus(str, Enum):
    EXECUTED = "EXECUTED"
    CLOSED = "CLOSED"


class Sentiment(str, Enum):
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"


class TradeDecision(BaseModel):
    """A validated decision returned by a decision source. Never persisted."""

    symbol: str
    action: Action
    position_size: float = Field(ge=0, le=1)
    rationale: str
    confidence: float = Field(ge=0, le=1)


class Agent(BaseModel):
    id: int
    name: str
    display_name: str
    provider: str
    model: str
    enabled: bool = True
    created_at: datetime = Field(default_factory=datetime.now)


class Position(BaseModel):
    """Open holding in a portfolio, marked at current_price."""

    symbol: str
    quantity: float
    avg_price: float
    current_price: float

    @computed_field
    @property
    def market_value(self) -> float:
        return self.quantity * self.current_price

    @computed_field
    @property
    def unrealized_pnl(self) -> float:
        return (self.current_price - self.avg_price) * self.quantity

    @computed_field
    @property
    def unrealized_pnl_pct(self) -> float:
        cost = self.avg_price * self.quantity
        return self.unrealized_pnl / cost * 100 if cost else 0.0


class Performance(BaseModel):
    total_return: float
    total_return_pct: float
    daily_return: float = 0.0
    daily_return_pct: float = 0.0


class PortfolioStatus(BaseModel):
    """Read-only view of an agent's portfolio."""

    agent_id: int
    agent_name: str
    cash: float
    total_value: float
    initial_value: float
    positions: list[Position]
    performance: Performance

    @property
    def position_value(self) -> float:
        return sum(p.market_value for p in self.positions)

    def position(self, symbol: str) -> Position | None:
        return next((p for p in self.positions if p.symbol == symbol), None)


class PortfolioSnapshot(BaseModel):
    """Immutable point-in-time valuation."""

    id: int | None = None
    portfolio_id: int
    total_value: float
    cash: float
    position_value: float
    return_pct: float
    timestamp: datetime = Field(default_factory=datetime.now)


class Trade(BaseModel):
    id: int | None = None
    agent_id: int
    symbol: str
    side: TradeSide
    quantity: float
    price: float
    amount: float
    rationale: str = ""
    status: TradeStatus = TradeStatus.EXECUTED
    executed_at: datetime = Field(default_factory=datetime.now)
    closed_at: datetime | None = None
    pnl: float | None = None


class Reflection(BaseModel):
    id: int | None = None
    trade_id: int
    agent_id: int
    content: str
    pnl: float
    score: int = Field(ge=1, le=10)
    created_at: datetime = Field(default_factory=datetime.now)


class MarketContext(BaseModel):
    price_change: float
    news_events: list[str] = []


class ReflectionInput(BaseModel):
    trade_id: int
    symbol: str
    side: TradeSide = TradeSide.BUY  # the opening decision is what gets reviewed
    quantity: float
    entry_price: float
    exit_price: float
    pnl: float
    pnl_pct: float
    rationale: str
    market_context: MarketContext


class ReflectionOutput(BaseModel):
    content: str
    score: int = Field(ge=1, le=10)


class StockRecommendation(BaseModel):
    symbol: str
    name: str
    reason: str
    score: int = Field(ge=0, le=100)


class SingleStockAnalysis(BaseModel):
    symbol: str
    name: str
    score: float = Field(ge=0, le=10)
    analysis: str
    recommendation: Action
    reason: str


class DailyBar(BaseModel):
    """Single day OHLCV bar."""

    date: str
    open: float
    high: float
    low: float
    close: float
    volume: int


class NewsArticle(BaseModel):
    symbol: str | None = None
    title: str
    summary: str = ""
    sentiment: Sentiment = Sentiment.NEUTRAL
    source: str
    url: str | None = None
    published_at: datetime


class AnalysisContext(BaseModel):
    """Bundle handed to a decision source for one analysis cycle."""

    stock_pool: list[str]
    historical: dict[str, list[DailyBar]]
    current_prices: dict[str, float]
    news: list[NewsArticle]
    portfolio: PortfolioStatus
    lessons: list[str] = []


class RiskCheck(BaseModel):
    allowed: bool
    reason: str | None = None


class TradeSummary(BaseModel):
    id: int | None = None
    symbol: str
    side: TradeSide
    quantity: float = 0
    price: float = 0
    amount: float = 0
    pnl: float | None = None
    pnl_pct: float | None = None
    rationale: str = ""
    status: TradeStatus = TradeStatus.EXECUTED
    executed_at: datetime | None = None


class AgentPerformance(BaseModel):
    agent_id: int
    agent_name: str
    rank: int = 0
    rank_change: int | None = None
    total_value: float
    return_amount: float
    return_pct: float
    daily_return: float | None = None
    daily_return_pct: float | None = None
    cash_ratio: float
    position_ratio: float
    positions_count: int
    positions_detail: list[Position] = []
    trades_count: int = 0
    buy_count: int = 0
    sell_count: int = 0
    win_rate: float | None = None
    best_trade: TradeSummary | None = None
    worst_trade: TradeSummary | None = None
    today_trades: list[TradeSummary] = []
    today_best_trade_id: int | None = None
    today_worst_trade_id: int | None = None
    strategy_analysis: str = ""
    key_insights: list[str] = []


class Holder(BaseModel):
    agent_name: str
    shares: float
    avg_price: float
    current_price: float
    pnl: float


class HoldingChange(BaseModel):
    agent_name: str
    action: str  # NEW or CLOSED


class StockDistribution(BaseModel):
    symbol: str
    holding_count: int
    total_shares: float
    total_value: float
    total_pnl: float
    holders: list[Holder] = []
    changes: list[HoldingChange] = []


class DailyReport(BaseModel):
    id: int | None = None
    day: int
    date: datetime
    title: str
    summary: str = ""
    overall_insight: str = ""
    performances: list[AgentPerformance] = []
    distributions: list[StockDistribution] = []
