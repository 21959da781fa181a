"""Prompt templates for every decision-source operation."""

import json

from trading_arena.config import RiskConfig
from trading_arena.models import AnalysisContext, ReflectionInput

SYSTEM_PROMPT_ANALYSIS = """You are a professional AI trader managing a simulated equity portfolio.
You study price history, news sentiment, your open positions and the lessons you wrote after
past trades, then decide whether to BUY, SELL or HOLD each symbol in the stock pool.

Rules of thumb:
- Trade only symbols from the stock pool.
- Size positions with discipline; respect the portfolio constraints given in the prompt.
- A SELL always closes the whole position in that symbol.
- When no clear edge exists, HOLD. Do not force trades.
- Apply your past lessons. Repeat what worked, avoid what did not.

You MUST respond with a JSON array only, no prose."""

SYSTEM_PROMPT_REFLECTION = (
    "You are a senior trader who reviews closed trades and distills short, reusable lessons."
)

SYSTEM_PROMPT_PICKER = (
    "You are a senior equity analyst who recommends US-listed stocks matching a user's criteria."
)

SYSTEM_PROMPT_SINGLE_STOCK = (
    "You are a professional equity analyst covering technicals, fundamentals and sentiment."
)


def _format_positions(context: AnalysisContext) -> str:
    return (
        "\n".join(
            f"  {p.symbol}: {p.quantity:g} shares @ ${p.avg_price:.2f} "
            f"(now ${p.current_price:.2f}, P&L: {p.unrealized_pnl_pct:+.1f}%)"
            for p in context.portfolio.positions
        )
        or "  No open positions"
    )


def _format_history(context: AnalysisContext) -> str:
    lines = []
    for symbol, bars in context.historical.items():
        if not bars:
            continue
        recent = bars[-5:]
        history = " → ".join(
            f"{b.date}: O:{b.open:.2f} H:{b.high:.2f} L:{b.low:.2f} C:{b.close:.2f} V:{b.volume:,}"
            for b in recent
        )
        first, last = bars[0].close, bars[-1].close
        change = (last - first) / first * 100 if first else 0.0
        lines.append(f"  {symbol} ({len(bars)}d change {change:+.1f}%): {history}")
    return "\n".join(lines) or "  No price history available"


def _format_news(context: AnalysisContext) -> str:
    lines = []
    for article in context.news:
        ts = article.published_at.strftime("%m/%d %H:%M")
        tag = f"{article.symbol} " if article.symbol else ""
        lines.append(f"  [{ts}] {tag}{article.title} ({article.source}, {article.sentiment.value})")
        if article.summary:
            lines.append(f"    {article.summary[:200]}")
    return "\n".join(lines) or "  No recent news"


def build_analysis_prompt(context: AnalysisContext, risk: RiskConfig | None = None) -> str:
    risk = risk or RiskConfig()
    portfolio = context.portfolio
    quotes = (
        "\n".join(f"  {s}: ${p:.2f}" for s, p in context.current_prices.items())
        or "  No quotes available"
    )
    lessons = (
        "\n".join(f"  - {lesson}" for lesson in context.lessons)
        or "  No lessons recorded yet."
    )

    return f"""Analyze the portfolio and market data below, then decide on each symbol in the pool.

## Portfolio State
- Cash: ${portfolio.cash:,.2f}
- Total Value: ${portfolio.total_value:,.2f}
- Total Return: {portfolio.performance.total_return_pct:+.2f}%

## Current Positions
{_format_positions(context)}

## Stock Pool
{", ".join(context.stock_pool)}

## Latest Prices
{quotes}

## Recent Price History
{_format_history(context)}

## Recent News & Sentiment
{_format_news(context)}

## Lessons From Your Past Trades
{lessons}

## Portfolio Constraints
- A single symbol may not exceed {risk.max_position_size * 100:.0f}% of total value.
- Total invested may not exceed {risk.max_total_position * 100:.0f}% of total value.

## Output
Return a JSON array. One object per decision:
[
  {{
    "symbol": "NVDA",
    "action": "BUY",
    "positionSize": 0.15,
    "rationale": "Earnings beat, strong AI demand, price holding above support",
    "confidence": 0.8
  }}
]
positionSize is the fraction (0-1) of total portfolio value to put into the symbol.
confidence is between 0 and 1."""


def build_reflection_prompt(data: ReflectionInput) -> str:
    news = "; ".join(data.market_context.news_events) or "none recorded"
    return f"""You made a trade earlier. Review its outcome and write down what you learned.

## Trade
- Symbol: {data.symbol}
- Quantity: {data.quantity:g} shares
- Entry price: ${data.entry_price:.2f}
- Exit price: ${data.exit_price:.2f}
- P&L: ${data.pnl:,.2f} ({data.pnl_pct:+.2f}%)

## Your rationale at entry
"{data.rationale}"

## What happened while you held it
- Price change: {data.market_context.price_change:+.2f}%
- News: {news}

## Output
Answer: what went right, what went wrong, and which lesson to keep for future trades.
Return a JSON object:
{{"content": "Two or three sentence lesson", "score": 7}}
score is 1-10, how important this lesson is."""


def build_stock_picker_prompt(criteria: str, max_results: int) -> str:
    return f"""Recommend {max_results} US-listed stocks matching these criteria:
"{criteria}"

Return a JSON array:
[
  {{"symbol": "NVDA", "name": "NVIDIA Corporation",
    "reason": "Why it matches the criteria", "score": 95}}
]
score is 0-100, how well the stock matches."""


def build_single_stock_prompt(symbol: str, criteria: str | None = None) -> str:
    focus = f"\n## Focus\n{criteria}\n" if criteria else ""
    payload = json.dumps(
        {
            "symbol": symbol,
            "name": "Company name",
            "score": 7.5,
            "analysis": "Technicals...\\n\\nFundamentals...\\n\\nSentiment...\\n\\nRisks...",
            "recommendation": "BUY",
            "reason": "Short justification",
        },
        indent=2,
    )
    return f"""Write an in-depth analysis of {symbol}.
{focus}
Cover price trend and technical indicators, fundamentals and valuation, news and
sentiment, and the main risks. Then score it 0-10 and recommend BUY, HOLD or SELL.

Return a JSON object:
{payload}"""
