"""Tests for parsing untrusted decision-source responses."""

import pytest

from trading_arena.agents.parser import (
    DEFAULT_REFLECTION,
    extract_json,
    parse_decisions,
    parse_recommendations,
    parse_reflection,
    parse_single_stock_analysis,
)
from trading_arena.errors import ValidationError
from trading_arena.models import Action


def test_extract_json_bare():
    assert extract_json('[{"a": 1}]') == [{"a": 1}]


def test_extract_json_fenced_block():
    text = 'Here you go:\n```json\n{"content": "ok", "score": 5}\n```\nThanks'
    assert extract_json(text) == {"content": "ok", "score": 5}


def test_extract_json_embedded_in_prose():
    text = 'My decisions are [{"symbol": "NVDA"}] based on momentum.'
    assert extract_json(text) == [{"symbol": "NVDA"}]


@pytest.mark.parametrize("text", ["", "   ", "no json here", "{broken"])
def test_extract_json_nothing_parses(text):
    assert extract_json(text) is None


def test_parse_decisions_valid():
    text = """```json
    [
      {"symbol": "nvda", "action": "buy", "positionSize": 0.15,
       "rationale": "Strong AI demand", "confidence": 0.8},
      {"symbol": "AAPL", "action": "HOLD", "positionSize": 0, "rationale": "Wait",
       "confidence": 0.5}
    ]
    ```"""
    decisions = parse_decisions(text)
    assert len(decisions) == 2
    assert decisions[0].symbol == "NVDA"
    assert decisions[0].action == Action.BUY
    assert decisions[0].position_size == 0.15
    assert decisions[1].action == Action.HOLD


def test_parse_decisions_drops_malformed_entries():
    text = """[
      {"symbol": "NVDA", "action": "BUY", "positionSize": 0.1, "rationale": "ok", "confidence": 0.7},
      {"symbol": 42, "action": "BUY", "positionSize": 0.1, "confidence": 0.7},
      {"symbol": "TSLA", "action": "SHORT", "positionSize": 0.1, "confidence": 0.7},
      {"symbol": "AMD", "action": "SELL", "positionSize": "lots", "confidence": 0.7},
      "not an object"
    ]"""
    decisions = parse_decisions(text)
    assert [d.symbol for d in decisions] == ["NVDA"]


def test_parse_decisions_clamps_size_and_confidence():
    text = '[{"symbol": "NVDA", "action": "BUY", "positionSize": 1.7, "confidence": -0.3, "rationale": "x"}]'
    (decision,) = parse_decisions(text)
    assert decision.position_size == 1.0
    assert decision.confidence == 0.0


def test_parse_decisions_accepts_wrapped_object_and_snake_case():
    text = (
        '{"decisions": [{"symbol": "MSFT", "action": "SELL", "position_size": 0.2, '
        '"reasoning": "Overvalued", "confidence": 0.6}]}'
    )
    (decision,) = parse_decisions(text)
    assert decision.action == Action.SELL
    assert decision.rationale == "Overvalued"


def test_parse_decisions_single_object():
    text = '{"symbol": "META", "action": "BUY", "positionSize": 0.05, "confidence": 0.9}'
    (decision,) = parse_decisions(text)
    assert decision.symbol == "META"
    assert decision.rationale == "No rationale provided"


def test_parse_decisions_no_json():
    assert parse_decisions("I would rather not trade today.") == []


def test_parse_reflection_valid():
    out = parse_reflection('{"content": "Cut losers faster.", "score": 8}')
    assert out.content == "Cut losers faster."
    assert out.score == 8


@pytest.mark.parametrize("score,expected", [(0, 1), (-5, 1), (11, 10), (7.6, 8)])
def test_parse_reflection_clamps_score(score, expected):
    out = parse_reflection(f'{{"content": "lesson", "score": {score}}}')
    assert out.score == expected


@pytest.mark.parametrize(
    "text",
    [
        "no json",
        '{"content": "", "score": 5}',
        '{"content": "lesson"}',
        '{"content": "lesson", "score": "high"}',
        '["content", 5]',
    ],
)
def test_parse_reflection_falls_back_to_placeholder(text):
    assert parse_reflection(text) == DEFAULT_REFLECTION


def test_parse_recommendations():
    text = """[
      {"symbol": "nvda", "name": "NVIDIA", "reason": "AI leader", "score": 95},
      {"symbol": "AMD", "name": "AMD", "reason": "Challenger", "score": 140},
      {"symbol": "X", "name": "Bad"}
    ]"""
    recs = parse_recommendations(text)
    assert [r.symbol for r in recs] == ["NVDA", "AMD"]
    assert recs[1].score == 100


def test_parse_single_stock_analysis():
    text = """{"symbol": "aapl", "name": "Apple", "score": 7.5,
               "analysis": "Solid services growth", "recommendation": "buy",
               "reason": "Reasonable valuation"}"""
    analysis = parse_single_stock_analysis(text)
    assert analysis.symbol == "AAPL"
    assert analysis.score == 7.5
    assert analysis.recommendation == Action.BUY


def test_parse_single_stock_analysis_invalid():
    with pytest.raises(ValidationError):
        parse_single_stock_analysis('{"symbol": "AAPL", "recommendation": "MAYBE"}')
    with pytest.raises(ValidationError):
        parse_single_stock_analysis("nothing")
