"""Co-occurrence ("frequently bought together") indexing service."""

import asyncio
from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from itertools import combinations
from typing import Any, Iterable

import structlog

from shared.constants import CO_OCCURRENCE_TOP_K, CO_OCCURRENCE_WINDOW_DAYS
from storefront_recommender.domain import Order, RecommendationKey, RecommendationType
from storefront_recommender.errors import StorageUnavailable
from storefront_recommender.storage import RecommendationStore

logger = structlog.get_logger()

# source product -> neighbor -> number of orders containing both.
# Counters keep insertion order, so equal counts rank in first-seen order.
CoOccurrenceIndex = dict[str, Counter[str]]


def add_order_pairs(index: CoOccurrenceIndex, order: Order) -> bool:
    """Count every unordered pair of distinct products in one order.

    Returns False when the order carries no signal (fewer than two products).
    """
    product_ids = order.distinct_product_ids()
    if len(product_ids) < 2:
        return False
    for a, b in combinations(product_ids, 2):
        index[a][b] += 1
        index[b][a] += 1
    return True


def count_co_occurrences(orders: Iterable[Order]) -> CoOccurrenceIndex:
    """Build the symmetric co-occurrence index for a set of orders."""
    index: CoOccurrenceIndex = defaultdict(Counter)
    for order in orders:
        add_order_pairs(index, order)
    return dict(index)


def top_neighbors(neighbors: Counter[str], k: int = CO_OCCURRENCE_TOP_K) -> list[tuple[str, int]]:
    """Top-k neighbors by count, ties in first-seen order."""
    return [(pid, count) for pid, count in neighbors.most_common(k) if count > 0]


class CoOccurrenceIndexer:
    """Rebuilds FREQUENTLY_BOUGHT_TOGETHER recommendations from completed orders."""

    def __init__(
        self,
        store: RecommendationStore,
        top_k: int = CO_OCCURRENCE_TOP_K,
        prune_stale: bool = False,
    ):
        self.store = store
        self.top_k = top_k
        self.prune_stale = prune_stale

    async def rebuild(
        self,
        shop_id: str,
        window_days: int = CO_OCCURRENCE_WINDOW_DAYS,
        cancel_event: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        """
        Rebuild the co-occurrence index for a shop and persist top neighbors.

        This is a full rebuild over the window. Previously stored neighbors
        that drop out of a source's new top-k are only deleted when
        ``prune_stale`` is enabled.

        Args:
            shop_id: The shop domain
            window_days: Trailing window of completed orders
            cancel_event: Stops the run between orders/sources when set

        Returns:
            Summary of the operation
        """
        now = datetime.now(timezone.utc)
        orders = await self.store.query_orders(
            shop_id, completed_after=now - timedelta(days=window_days)
        )

        index: CoOccurrenceIndex = defaultdict(Counter)
        scanned = 0
        skipped = 0
        cancelled = False

        for order in orders:
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            scanned += 1
            if not add_order_pairs(index, order):
                skipped += 1

        sources_written = 0
        written = 0
        pruned = 0
        errors = 0

        for source_id, neighbors in index.items():
            if cancelled or (cancel_event is not None and cancel_event.is_set()):
                cancelled = True
                break

            top = top_neighbors(neighbors, self.top_k)
            try:
                for neighbor_id, count in top:
                    await self.store.upsert_recommendation(
                        RecommendationKey(
                            shop_id=shop_id,
                            source_product_id=source_id,
                            recommended_product_id=neighbor_id,
                            recommendation_type=RecommendationType.FREQUENTLY_BOUGHT_TOGETHER,
                        ),
                        score=float(count),
                        last_calculated=now,
                    )
                    written += 1
                if self.prune_stale:
                    pruned += await self.store.prune_recommendations(
                        shop_id,
                        source_id,
                        RecommendationType.FREQUENTLY_BOUGHT_TOGETHER,
                        keep_ids=[neighbor_id for neighbor_id, _ in top],
                    )
                sources_written += 1
            except StorageUnavailable as e:
                logger.error(
                    "Failed to write co-occurrence neighbors",
                    shop_id=shop_id,
                    product_id=source_id,
                    error=str(e),
                )
                errors += 1

        edges = sum(len(neighbors) for neighbors in index.values()) // 2

        logger.info(
            "Rebuilt co-occurrence index",
            shop_id=shop_id,
            window_days=window_days,
            orders=scanned,
            skipped=skipped,
            edges=edges,
            sources=sources_written,
            pruned=pruned,
            errors=errors,
            cancelled=cancelled,
        )

        return {
            "shop_id": shop_id,
            "orders_scanned": scanned,
            "orders_skipped": skipped,
            "edges": edges,
            "sources_written": sources_written,
            "recommendations_written": written,
            "pruned": pruned,
            "errors": errors,
            "cancelled": cancelled,
        }
