"""Simulated market data and news for development and demos."""

import random
from datetime import datetime, timedelta

from trading_arena.models import DailyBar, NewsArticle, Sentiment

BASE_PRICES = {
    "NVDA": 480.0,
    "TSLA": 240.0,
    "AAPL": 180.0,
    "MSFT": 380.0,
    "GOOGL": 140.0,
    "META": 350.0,
    "AMZN": 155.0,
    "AMD": 145.0,
    "NFLX": 480.0,
    "BABA": 85.0,
}
DEFAULT_BASE_PRICE = 100.0

COMPANY_NAMES = {
    "NVDA": "NVIDIA",
    "TSLA": "Tesla",
    "AAPL": "Apple",
    "MSFT": "Microsoft",
    "GOOGL": "Google",
    "META": "Meta",
    "AMZN": "Amazon",
    "AMD": "AMD",
    "NFLX": "Netflix",
    "BABA": "Alibaba",
}

HEADLINES = {
    Sentiment.POSITIVE: [
        "{name} Beats Earnings Expectations, Stock Surges",
        "{name} Announces Major Partnership Deal",
        "Analysts Upgrade {name} to 'Strong Buy'",
        "{name} Reports Record Revenue Growth",
    ],
    Sentiment.NEGATIVE: [
        "{name} Faces Regulatory Scrutiny",
        "{name} Misses Quarterly Targets",
        "{name} Stock Tumbles on Weak Guidance",
        "{name} Announces Workforce Reduction",
    ],
    Sentiment.NEUTRAL: [
        "{name} Maintains Steady Performance",
        "Analysts Hold Neutral Stance on {name}",
        "{name} Awaits Key Earnings Report",
    ],
}

SUMMARIES = {
    Sentiment.POSITIVE: "Results beat expectations on robust demand; management guided higher.",
    Sentiment.NEGATIVE: "Results fell short amid rising costs and tougher competition.",
    Sentiment.NEUTRAL: "Results were in line; the market awaits further catalysts.",
}

SOURCES = ["Bloomberg", "Reuters", "CNBC", "Wall Street Journal", "Financial Times", "MarketWatch"]


class SimulatedMarketData:
    """Random-walk prices around a per-symbol base price."""

    def __init__(self, seed: int | None = None, base_prices: dict[str, float] | None = None):
        self.rng = random.Random(seed)
        self.base_prices = base_prices or BASE_PRICES

    def base_price(self, symbol: str) -> float:
        return self.base_prices.get(symbol, DEFAULT_BASE_PRICE)

    async def get_historical(self, symbols: list[str], days: int = 30) -> dict[str, list[DailyBar]]:
        result = {}
        today = datetime.now().date()
        for symbol in symbols:
            price = self.base_price(symbol)
            bars = []
            for i in range(days - 1, -1, -1):
                price *= 1 + (self.rng.random() - 0.5) * 0.05
                open_ = price * (1 + (self.rng.random() - 0.5) * 0.02)
                close = price * (1 + (self.rng.random() - 0.5) * 0.02)
                bars.append(
                    DailyBar(
                        date=(today - timedelta(days=i)).isoformat(),
                        open=open_,
                        high=max(open_, close) * (1 + self.rng.random() * 0.02),
                        low=min(open_, close) * (1 - self.rng.random() * 0.02),
                        close=close,
                        volume=self.rng.randint(10_000_000, 60_000_000),
                    )
                )
            result[symbol] = bars
        return result

    async def get_current_prices(self, symbols: list[str]) -> dict[str, float]:
        return {
            s: self.base_price(s) * (1 + (self.rng.random() - 0.5) * 0.02) for s in symbols
        }


class SimulatedNews:
    """Two or three random headlines per symbol, or market-wide when no symbols given."""

    def __init__(self, seed: int | None = None):
        self.rng = random.Random(seed)

    def _sentiment(self) -> Sentiment:
        roll = self.rng.random()
        if roll < 0.4:
            return Sentiment.POSITIVE
        if roll < 0.7:
            return Sentiment.NEUTRAL
        return Sentiment.NEGATIVE

    async def get_news(
        self, symbols: list[str] | None = None, hours_back: int = 24
    ) -> list[NewsArticle]:
        now = datetime.now()
        articles = []
        for symbol in symbols or [None]:
            name = COMPANY_NAMES.get(symbol, symbol) if symbol else "Market"
            for i in range(self.rng.randint(2, 3)):
                sentiment = self._sentiment()
                slug = (symbol or "market").lower()
                articles.append(
                    NewsArticle(
                        symbol=symbol,
                        title=self.rng.choice(HEADLINES[sentiment]).format(name=name),
                        summary=SUMMARIES[sentiment],
                        sentiment=sentiment,
                        source=self.rng.choice(SOURCES),
                        url=f"https://example.com/news/{slug}-{i}",
                        published_at=now - timedelta(hours=self.rng.random() * hours_back),
                    )
                )
        articles.sort(key=lambda a: a.published_at, reverse=True)
        return articles
