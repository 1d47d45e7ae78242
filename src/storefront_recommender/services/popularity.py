"""Popularity aggregation service.

Scores every catalog product from views and purchases in a trailing window
and writes the score back to the product metadata.
"""

import asyncio
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

import structlog

from shared.constants import POPULARITY_WEIGHTS, POPULARITY_WINDOW_DAYS, SYNC_BATCH_SIZE
from storefront_recommender.domain import EventKind, Order
from storefront_recommender.errors import NotFound, StorageUnavailable
from storefront_recommender.storage import EventQuery, RecommendationStore

logger = structlog.get_logger()


def count_purchases(orders: Iterable[Order]) -> Counter[str]:
    """Count purchase line items per product (one per line, not per unit)."""
    purchases: Counter[str] = Counter()
    for order in orders:
        for item in order.items:
            if item.product_id:
                purchases[item.product_id] += 1
    return purchases


class PopularityAggregator:
    """Recomputes ``ProductMetadata.popularity`` for a shop."""

    VIEW_WEIGHT = POPULARITY_WEIGHTS["view"]
    PURCHASE_WEIGHT = POPULARITY_WEIGHTS["purchase"]

    def __init__(self, store: RecommendationStore, batch_size: int = SYNC_BATCH_SIZE):
        self.store = store
        self.batch_size = batch_size

    def score(self, views: int, purchases: int) -> float:
        return views * self.VIEW_WEIGHT + purchases * self.PURCHASE_WEIGHT

    async def recompute(
        self,
        shop_id: str,
        window_days: int = POPULARITY_WINDOW_DAYS,
        cancel_event: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        """
        Recompute popularity for every product with metadata in the shop.

        Products are handled in batches; a failure for one product (or one
        batch of view counts) is logged and skipped.

        Args:
            shop_id: The shop domain
            window_days: Trailing window for views and purchases
            cancel_event: Stops the run between products when set

        Returns:
            Summary of the operation
        """
        since = datetime.now(timezone.utc) - timedelta(days=window_days)

        product_ids = await self.store.list_product_ids(shop_id)
        orders = await self.store.query_orders(shop_id, completed_after=since)
        purchases = count_purchases(orders)

        processed = 0
        updated = 0
        errors = 0
        cancelled = False

        for start in range(0, len(product_ids), self.batch_size):
            batch = product_ids[start : start + self.batch_size]
            try:
                views = await self._count_views(shop_id, batch, since)
            except StorageUnavailable as e:
                logger.error(
                    "Failed to count views for batch",
                    shop_id=shop_id,
                    batch_start=start,
                    error=str(e),
                )
                errors += len(batch)
                processed += len(batch)
                continue

            for product_id in batch:
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    break
                processed += 1
                score = self.score(views[product_id], purchases[product_id])
                try:
                    await self.store.update_popularity(shop_id, product_id, score)
                    updated += 1
                except NotFound:
                    logger.warning(
                        "Product metadata vanished during popularity run",
                        shop_id=shop_id,
                        product_id=product_id,
                    )
                    errors += 1
                except StorageUnavailable as e:
                    logger.error(
                        "Failed to update popularity",
                        shop_id=shop_id,
                        product_id=product_id,
                        error=str(e),
                    )
                    errors += 1
            if cancelled:
                break

        logger.info(
            "Recomputed popularity",
            shop_id=shop_id,
            window_days=window_days,
            products=processed,
            updated=updated,
            errors=errors,
            cancelled=cancelled,
        )

        return {
            "shop_id": shop_id,
            "products_processed": processed,
            "products_updated": updated,
            "errors": errors,
            "cancelled": cancelled,
        }

    async def _count_views(
        self, shop_id: str, product_ids: list[str], since: datetime
    ) -> Counter[str]:
        events = await self.store.query_events(
            EventQuery(
                shop_id=shop_id,
                kind=EventKind.VIEW,
                product_id_in=product_ids,
                since=since,
                newest_first=False,
            )
        )
        return Counter(e.product_id for e in events if e.product_id)
