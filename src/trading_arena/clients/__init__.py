"""Market data and news sources."""

import asyncio
from datetime import datetime, timedelta
from typing import Protocol

from alpaca.data.historical import StockHistoricalDataClient
from alpaca.data.historical.news import NewsClient
from alpaca.data.requests import NewsRequest, StockBarsRequest, StockLatestQuoteRequest
from alpaca.data.timeframe import TimeFrame
from rich.console import Console

from trading_arena.config import Secrets
from trading_arena.models import DailyBar, NewsArticle

console = Console()


class MarketDataSource(Protocol):
    async def get_historical(self, symbols: list[str], days: int = 30) -> dict[str, list[DailyBar]]:
        """Daily bars per symbol, oldest first. Unknown symbols are omitted."""
        ...

    async def get_current_prices(self, symbols: list[str]) -> dict[str, float]:
        """Latest price per symbol. Unknown symbols are omitted."""
        ...


class NewsSource(Protocol):
    async def get_news(
        self, symbols: list[str] | None = None, hours_back: int = 24
    ) -> list[NewsArticle]:
        """Recent articles, newest first. No symbols means market-wide news."""
        ...


class AlpacaMarketData:
    """Daily bars and latest quotes from Alpaca's stock data API."""

    def __init__(self, secrets: Secrets | None = None):
        self.secrets = secrets or Secrets()
        self.data = StockHistoricalDataClient(
            api_key=self.secrets.alpaca_api_key,
            secret_key=self.secrets.alpaca_secret_key,
        )

    def _bars(self, symbols: list[str], days: int) -> dict[str, list[DailyBar]]:
        request = StockBarsRequest(
            symbol_or_symbols=symbols,
            timeframe=TimeFrame.Day,
            start=datetime.now() - timedelta(days=days + 5),
            limit=days * len(symbols),
        )
        bars = self.data.get_stock_bars(request)
        result: dict[str, list[DailyBar]] = {}
        for symbol in symbols:
            symbol_bars = bars.data.get(symbol, [])
            if not symbol_bars:
                continue
            result[symbol] = [
                DailyBar(
                    date=b.timestamp.strftime("%Y-%m-%d"),
                    open=float(b.open),
                    high=float(b.high),
                    low=float(b.low),
                    close=float(b.close),
                    volume=int(b.volume),
                )
                for b in symbol_bars[-days:]
            ]
        return result

    def _quotes(self, symbols: list[str]) -> dict[str, float]:
        quotes = self.data.get_stock_latest_quote(
            StockLatestQuoteRequest(symbol_or_symbols=symbols)
        )
        prices = {}
        for symbol, quote in quotes.items():
            # Use mid-price for more accurate P&L (avoid ask-side bias)
            bid = float(quote.bid_price)
            ask = float(quote.ask_price)
            mid = (bid + ask) / 2 if bid > 0 and ask > 0 else ask
            if mid > 0:
                prices[symbol] = mid
        return prices

    async def get_historical(self, symbols: list[str], days: int = 30) -> dict[str, list[DailyBar]]:
        if not symbols:
            return {}
        return await asyncio.to_thread(self._bars, symbols, days)

    async def get_current_prices(self, symbols: list[str]) -> dict[str, float]:
        if not symbols:
            return {}
        return await asyncio.to_thread(self._quotes, symbols)


class AlpacaNews:
    """Recent articles from Alpaca's news API."""

    def __init__(self, secrets: Secrets | None = None, limit: int = 50):
        self.secrets = secrets or Secrets()
        self.limit = limit
        self.news_client = NewsClient(
            api_key=self.secrets.alpaca_api_key,
            secret_key=self.secrets.alpaca_secret_key,
        )

    def _fetch(self, symbols: list[str] | None, hours_back: int) -> list[NewsArticle]:
        request = NewsRequest(
            symbols=",".join(symbols) if symbols else None,
            start=datetime.now() - timedelta(hours=hours_back),
            limit=self.limit,
            include_content=False,
            exclude_contentless=True,
            sort="DESC",
        )
        news_set = self.news_client.get_news(request)
        articles = []
        for article in news_set.data.get("news", []):
            matched = [s for s in (symbols or []) if s in article.symbols]
            articles.append(
                NewsArticle(
                    symbol=matched[0] if matched else None,
                    title=article.headline,
                    summary=article.summary or "",
                    source=article.source,
                    url=article.url,
                    published_at=article.created_at.replace(tzinfo=None),
                )
            )
        articles.sort(key=lambda a: a.published_at, reverse=True)
        return articles

    async def get_news(
        self, symbols: list[str] | None = None, hours_back: int = 24
    ) -> list[NewsArticle]:
        try:
            return await asyncio.to_thread(self._fetch, symbols, hours_back)
        except Exception as e:
            console.print(f"  [dim]Could not fetch news: {e}[/dim]")
            return []
