"""Tests for stock picking and the active stock pool."""

import pytest

from trading_arena.stockpool import StockPicker

from fakes import FakeSource, make_recommendation

DEFAULT_POOL = ["NVDA", "AAPL"]


def _make_picker(store, recommendations=None):
    source = FakeSource(recommendations=recommendations or [])
    return StockPicker(store, source, DEFAULT_POOL)


@pytest.mark.asyncio
async def test_pick_stocks_sorted_and_truncated(store):
    picker = _make_picker(
        store,
        [
            make_recommendation("AMD", 70),
            make_recommendation("NVDA", 95),
            make_recommendation("INTC", 40),
            make_recommendation("AVGO", 88),
        ],
    )

    picks = await picker.pick_stocks("AI semiconductors", max_results=3)

    assert [p.symbol for p in picks] == ["NVDA", "AVGO", "AMD"]


def test_default_pool_when_nothing_saved(store):
    assert _make_picker(store).get_active_stock_pool() == DEFAULT_POOL


def test_save_replaces_active_pool(store):
    picker = _make_picker(store)
    picker.save_stock_pool(["tsla", "NVDA"], name="first")
    picker.save_stock_pool([" msft ", "msft", "AMZN", ""], name="second", created_by="AI")

    assert picker.get_active_stock_pool() == ["MSFT", "AMZN"]


def test_save_empty_pool_rejected(store):
    with pytest.raises(ValueError):
        _make_picker(store).save_stock_pool(["", "  "], name="empty")


@pytest.mark.asyncio
async def test_pick_and_save(store):
    picker = _make_picker(
        store, [make_recommendation("META", 60), make_recommendation("GOOGL", 80)]
    )

    picks = await picker.pick_and_save("ad-driven tech")

    assert [p.symbol for p in picks] == ["GOOGL", "META"]
    assert store.get_active_stock_pool() == ["GOOGL", "META"]


@pytest.mark.asyncio
async def test_pick_and_save_keeps_pool_when_nothing_recommended(store):
    picker = _make_picker(store)
    picker.save_stock_pool(["AAPL"], name="manual")

    assert await picker.pick_and_save("nothing matches") == []
    assert picker.get_active_stock_pool() == ["AAPL"]
