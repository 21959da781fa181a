"""Parse and validate untrusted decision-source responses."""

import json
import re

from rich.console import Console

from trading_arena.errors import ValidationError
from trading_arena.models import (
    Action,
    ReflectionOutput,
    SingleStockAnalysis,
    StockRecommendation,
    TradeDecision,
)

console = Console()

_FENCED = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

DEFAULT_REFLECTION = ReflectionOutput(content="No valid reflection could be generated.", score=1)


def extract_json(text: str):
    """Pull the first JSON value out of a response.

    Accepts bare JSON, JSON inside a fenced code block, or JSON embedded in
    prose. Returns None when nothing parses.
    """
    if not text or not text.strip():
        return None

    match = _FENCED.search(text)
    candidate = match.group(1).strip() if match else text.strip()
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    decoder = json.JSONDecoder()
    for i, ch in enumerate(candidate):
        if ch in "[{":
            try:
                value, _ = decoder.raw_decode(candidate, i)
                return value
            except json.JSONDecodeError:
                continue
    return None


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _items(parsed, key: str) -> list:
    if isinstance(parsed, dict) and isinstance(parsed.get(key), list):
        return parsed[key]
    if isinstance(parsed, list):
        return parsed
    return [parsed]


def validate_decision(raw) -> TradeDecision:
    """Validate one decision object, raising ValidationError if malformed."""
    if not isinstance(raw, dict):
        raise ValidationError(f"decision is not an object: {raw!r}")
    symbol = raw.get("symbol")
    if not isinstance(symbol, str) or not symbol.strip():
        raise ValidationError(f"decision has no symbol: {raw!r}")
    action = raw.get("action")
    if not isinstance(action, str) or action.upper() not in Action.__members__:
        raise ValidationError(f"decision has invalid action: {raw!r}")
    size = raw.get("positionSize", raw.get("position_size"))
    confidence = raw.get("confidence")
    if not _is_number(size) or not _is_number(confidence):
        raise ValidationError(f"decision has non-numeric size or confidence: {raw!r}")
    rationale = raw.get("rationale") or raw.get("reasoning")
    return TradeDecision(
        symbol=symbol.strip().upper(),
        action=Action(action.upper()),
        position_size=_clamp(float(size), 0.0, 1.0),
        rationale=rationale if isinstance(rationale, str) else "No rationale provided",
        confidence=_clamp(float(confidence), 0.0, 1.0),
    )


def parse_decisions(text: str) -> list[TradeDecision]:
    """Parse trade decisions. Malformed entries are dropped, never fatal."""
    parsed = extract_json(text)
    if parsed is None:
        console.print("  [yellow]Decision response contained no JSON[/yellow]")
        return []

    decisions = []
    for raw in _items(parsed, "decisions"):
        try:
            decisions.append(validate_decision(raw))
        except ValidationError as e:
            console.print(f"  [dim]Dropped invalid decision: {e}[/dim]")
    return decisions


def parse_reflection(text: str) -> ReflectionOutput:
    """Parse a reflection, substituting a low-importance placeholder on failure."""
    parsed = extract_json(text)
    if not isinstance(parsed, dict):
        console.print("  [yellow]Reflection response contained no JSON object[/yellow]")
        return DEFAULT_REFLECTION
    content = parsed.get("content")
    score = parsed.get("score")
    if not isinstance(content, str) or not content.strip() or not _is_number(score):
        console.print("  [yellow]Reflection response missing content or score[/yellow]")
        return DEFAULT_REFLECTION
    return ReflectionOutput(content=content.strip(), score=int(_clamp(round(score), 1, 10)))


def parse_recommendations(text: str) -> list[StockRecommendation]:
    parsed = extract_json(text)
    if parsed is None:
        return []

    recommendations = []
    for raw in _items(parsed, "recommendations"):
        if not (
            isinstance(raw, dict)
            and isinstance(raw.get("symbol"), str)
            and isinstance(raw.get("name"), str)
            and isinstance(raw.get("reason"), str)
            and _is_number(raw.get("score"))
        ):
            console.print(f"  [dim]Dropped invalid recommendation: {raw!r}[/dim]")
            continue
        recommendations.append(
            StockRecommendation(
                symbol=raw["symbol"].strip().upper(),
                name=raw["name"],
                reason=raw["reason"],
                score=int(_clamp(round(raw["score"]), 0, 100)),
            )
        )
    return recommendations


def parse_single_stock_analysis(text: str) -> SingleStockAnalysis:
    """Parse a single-stock analysis. Raises ValidationError when malformed."""
    parsed = extract_json(text)
    if not isinstance(parsed, dict):
        raise ValidationError("Could not extract a JSON object from the analysis")
    recommendation = parsed.get("recommendation")
    if not (
        isinstance(parsed.get("symbol"), str)
        and isinstance(parsed.get("name"), str)
        and _is_number(parsed.get("score"))
        and isinstance(parsed.get("analysis"), str)
        and isinstance(recommendation, str)
        and recommendation.upper() in Action.__members__
        and isinstance(parsed.get("reason"), str)
    ):
        raise ValidationError(f"Analysis has missing or invalid fields: {parsed!r}")
    return SingleStockAnalysis(
        symbol=parsed["symbol"].upper(),
        name=parsed["name"],
        score=_clamp(float(parsed["score"]), 0.0, 10.0),
        analysis=parsed["analysis"],
        recommendation=Action(recommendation.upper()),
        reason=parsed["reason"],
    )
