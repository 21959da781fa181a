"""In-memory stand-ins for market data, news and decision sources."""

from datetime import datetime

from trading_arena.errors import ExternalServiceError, ServiceErrorKind
from trading_arena.events import Event, EventType
from trading_arena.models import (
    DailyBar,
    NewsArticle,
    ReflectionOutput,
    StockRecommendation,
)


class FakeMarket:
    def __init__(self, prices: dict[str, float]):
        self.prices = dict(prices)
        self.price_requests: list[list[str]] = []

    async def get_historical(self, symbols, days=30):
        return {
            s: [
                DailyBar(date="2025-03-07", open=p, high=p, low=p, close=p, volume=1_000_000)
            ]
            for s, p in self.prices.items()
            if s in symbols
        }

    async def get_current_prices(self, symbols):
        self.price_requests.append(list(symbols))
        return {s: self.prices[s] for s in symbols if s in self.prices}


class FakeNews:
    def __init__(self, titles=None, fail=False):
        self.titles = titles or ["Headline one", "Headline two", "Headline three", "Headline four"]
        self.fail = fail

    async def get_news(self, symbols=None, hours_back=24):
        if self.fail:
            raise RuntimeError("news feed down")
        symbol = symbols[0] if symbols else None
        return [
            NewsArticle(symbol=symbol, title=t, source="Test", published_at=datetime(2025, 3, 10))
            for t in self.titles
        ]


class FakeSource:
    """Decision source returning canned answers and recording what it was asked."""

    model = "fake-model"

    def __init__(self, decisions=None, reflection=None, recommendations=None, error=None):
        self.decisions = decisions or []
        self.reflection = reflection or ReflectionOutput(content="Lesson learned.", score=7)
        self.recommendations = recommendations or []
        self.error = error
        self.contexts = []
        self.reflection_inputs = []

    async def analyze(self, context):
        self.contexts.append(context)
        if self.error:
            raise self.error
        return list(self.decisions)

    async def reflect(self, data):
        self.reflection_inputs.append(data)
        if self.error:
            raise self.error
        return self.reflection

    async def pick_stocks(self, criteria, max_results=10):
        return list(self.recommendations)

    async def analyze_single_stock(self, symbol, criteria=None):
        raise NotImplementedError


class FakeSources:
    def __init__(self, by_name: dict[str, FakeSource]):
        self.by_name = by_name

    def get(self, agent):
        return self.by_name[agent.name]


def auth_error():
    return ExternalServiceError(ServiceErrorKind.AUTH, "invalid api key", "fake")


def make_recommendation(symbol, score):
    return StockRecommendation(symbol=symbol, name=symbol, reason="test", score=score)


class MemoryNotifier:
    """Keeps every published event in a list."""

    def __init__(self):
        self.events: list[Event] = []

    async def publish(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[Event]:
        return [e for e in self.events if e.type == event_type]
