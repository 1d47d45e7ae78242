"""Unit tests for the co-occurrence indexer."""

import asyncio
from collections import Counter
from datetime import datetime, timedelta, timezone

import pytest

from storefront_recommender.domain import Order, OrderItem, RecommendationType
from storefront_recommender.services.co_occurrence import (
    CoOccurrenceIndexer,
    count_co_occurrences,
    top_neighbors,
)

FBT = RecommendationType.FREQUENTLY_BOUGHT_TOGETHER


def make_order(shop_id: str, *items: tuple[str, int]) -> Order:
    return Order(
        order_id=f"order-{'-'.join(pid for pid, _ in items)}",
        shop_id=shop_id,
        completed_at=datetime.now(timezone.utc),
        items=[OrderItem(product_id=pid, quantity=qty) for pid, qty in items],
    )


class TestCountCoOccurrences:
    """Tests for pair counting."""

    def test_three_item_order_is_symmetric(self, shop_id: str) -> None:
        index = count_co_occurrences([make_order(shop_id, ("A", 1), ("B", 1), ("C", 1))])

        assert index["A"] == Counter({"B": 1, "C": 1})
        assert index["B"] == Counter({"A": 1, "C": 1})
        assert index["C"] == Counter({"A": 1, "B": 1})
        assert "A" not in index["A"]

    def test_repeated_product_counts_once(self, shop_id: str) -> None:
        index = count_co_occurrences([make_order(shop_id, ("A", 2), ("B", 1), ("A", 1))])
        assert index["A"]["B"] == 1
        assert index["B"]["A"] == 1

    def test_single_product_order_has_no_edges(self, shop_id: str) -> None:
        assert count_co_occurrences([make_order(shop_id, ("A", 3))]) == {}

    def test_counts_accumulate_across_orders(self, shop_id: str) -> None:
        orders = [
            make_order(shop_id, ("A", 1), ("B", 1)),
            make_order(shop_id, ("B", 1), ("A", 1)),
        ]
        assert count_co_occurrences(orders)["A"]["B"] == 2

    def test_top_neighbors_ties_keep_first_seen_order(self) -> None:
        neighbors = Counter()
        for pid in ("B", "C", "D"):
            neighbors[pid] += 1
        neighbors["D"] += 1
        assert top_neighbors(neighbors, 3) == [("D", 2), ("B", 1), ("C", 1)]


class TestRebuild:
    """Tests for persisting frequently-bought-together rows."""

    @pytest.mark.asyncio
    async def test_tie_break_follows_first_seen(self, store, shop_id: str) -> None:
        store.orders.append(make_order(shop_id, ("A", 2), ("B", 1)))
        store.orders.append(make_order(shop_id, ("A", 1), ("C", 1)))

        summary = await CoOccurrenceIndexer(store).rebuild(shop_id)
        rows = await store.list_recommendations(shop_id, "A", FBT)

        assert [(r.recommended_product_id, r.score) for r in rows] == [("B", 1.0), ("C", 1.0)]
        assert summary["orders_scanned"] == 2
        assert summary["edges"] == 2
        assert summary["sources_written"] == 3
        assert summary["recommendations_written"] == 4

    @pytest.mark.asyncio
    async def test_keeps_top_k(self, store, shop_id: str) -> None:
        store.add_order(["A", "B", "C", "D"])
        store.add_order(["A", "D"])

        await CoOccurrenceIndexer(store, top_k=2).rebuild(shop_id)
        rows = await store.list_recommendations(shop_id, "A", FBT)

        assert [r.recommended_product_id for r in rows] == ["D", "B"]

    @pytest.mark.asyncio
    async def test_single_item_orders_are_skipped(self, store, shop_id: str) -> None:
        store.add_order(["A"])
        summary = await CoOccurrenceIndexer(store).rebuild(shop_id)

        assert summary["orders_skipped"] == 1
        assert store.calls["upsert_recommendation"] == 0

    @pytest.mark.asyncio
    async def test_orders_outside_window_are_ignored(self, store, shop_id: str) -> None:
        store.add_order(["A", "B"], completed_at=datetime.now(timezone.utc) - timedelta(days=120))
        summary = await CoOccurrenceIndexer(store).rebuild(shop_id, window_days=90)

        assert summary["orders_scanned"] == 0
        assert store.recommendations == {}

    @pytest.mark.asyncio
    async def test_stale_rows_kept_without_pruning(self, store, shop_id: str) -> None:
        store.add_recommendation("A", "Z", 4.0, recommendation_type=FBT)
        store.add_order(["A", "B"])

        summary = await CoOccurrenceIndexer(store).rebuild(shop_id)
        rows = await store.list_recommendations(shop_id, "A", FBT)

        assert {r.recommended_product_id for r in rows} == {"Z", "B"}
        assert summary["pruned"] == 0

    @pytest.mark.asyncio
    async def test_stale_rows_pruned_when_enabled(self, store, shop_id: str) -> None:
        store.add_recommendation("A", "Z", 4.0, recommendation_type=FBT)
        store.add_order(["A", "B"])

        summary = await CoOccurrenceIndexer(store, prune_stale=True).rebuild(shop_id)
        rows = await store.list_recommendations(shop_id, "A", FBT)

        assert [r.recommended_product_id for r in rows] == ["B"]
        assert summary["pruned"] == 1

    @pytest.mark.asyncio
    async def test_write_failures_are_isolated(self, store, shop_id: str) -> None:
        store.add_order(["A", "B"])
        store.failing.add("upsert_recommendation")

        summary = await CoOccurrenceIndexer(store).rebuild(shop_id)

        assert summary["errors"] == 2
        assert summary["sources_written"] == 0

    @pytest.mark.asyncio
    async def test_cancel_stops_scan(self, store, shop_id: str) -> None:
        store.add_order(["A", "B"])
        cancel = asyncio.Event()
        cancel.set()

        summary = await CoOccurrenceIndexer(store).rebuild(shop_id, cancel_event=cancel)

        assert summary["cancelled"] is True
        assert summary["orders_scanned"] == 0
        assert store.recommendations == {}
