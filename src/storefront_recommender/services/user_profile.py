"""User profile service.

Builds preference summaries (categories, brands, price band, recent items)
from a user's views and completed orders. Profiles are always rebuilt from
source events; there is no incremental merge path.
"""

import asyncio
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

import structlog

from shared.constants import (
    MAX_PREFERRED_BRANDS,
    MAX_PREFERRED_CATEGORIES,
    MAX_PROFILE_TAGS,
    MAX_PURCHASED_PRODUCTS,
    MAX_VIEWED_PRODUCTS,
    PRICE_RANGE_LOWER_FACTOR,
    PRICE_RANGE_UPPER_FACTOR,
    PROFILE_VIEW_EVENT_LIMIT,
    USER_PROFILE_LOOKBACK_DAYS,
)
from storefront_recommender.domain import EventKind, PriceRange, ProductMetadata, UserProfile
from storefront_recommender.errors import StorageUnavailable
from storefront_recommender.storage import EventQuery, MetadataFilter, RecommendationStore

logger = structlog.get_logger()


def _unique(values: Iterable[str | None], cap: int | None = None) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        if value:
            seen.setdefault(value, None)
            if cap is not None and len(seen) >= cap:
                break
    return list(seen)


def _top(counter: Counter[str], n: int) -> list[str]:
    return [value for value, _ in counter.most_common(n)]


def price_range_for(products: Iterable[ProductMetadata]) -> PriceRange | None:
    """Preferred price band, or None when no product has a price."""
    prices = [p.price for p in products if p.price is not None]
    if not prices:
        return None
    return PriceRange(
        min=min(prices) * PRICE_RANGE_LOWER_FACTOR,
        max=max(prices) * PRICE_RANGE_UPPER_FACTOR,
    )


class UserProfileService:
    """Service for rebuilding user preference profiles."""

    def __init__(self, store: RecommendationStore):
        self.store = store

    async def rebuild_user_profile(self, user_id: str, shop_id: str) -> dict[str, Any]:
        """
        Rebuild and upsert a user's profile from their views and orders.

        Args:
            user_id: The user's ID
            shop_id: The shop domain

        Returns:
            Summary of the operation, including top tags
        """
        views = await self.store.query_events(
            EventQuery(
                shop_id=shop_id,
                kind=EventKind.VIEW,
                user_id=user_id,
                newest_first=True,
                limit=PROFILE_VIEW_EVENT_LIMIT,
            )
        )
        orders = await self.store.query_orders(shop_id, completed_after=None, user_id=user_id)

        viewed = _unique((e.product_id for e in views), cap=MAX_VIEWED_PRODUCTS)
        # Most recent order first
        purchased = _unique(
            (item.product_id for order in reversed(orders) for item in order.items),
            cap=MAX_PURCHASED_PRODUCTS,
        )

        product_ids = _unique([*viewed, *purchased])
        products: list[ProductMetadata] = []
        if product_ids:
            found = await self.store.find_metadata(shop_id, MetadataFilter(ids_in=product_ids))
            by_id = {p.product_id: p for p in found}
            products = [by_id[pid] for pid in product_ids if pid in by_id]

        tag_counts: Counter[str] = Counter()
        collection_counts: Counter[str] = Counter()
        vendor_counts: Counter[str] = Counter()
        for product in products:
            tag_counts.update(product.tags)
            collection_counts.update(product.collections)
            if product.vendor:
                vendor_counts[product.vendor] += 1

        profile = UserProfile(
            shop_id=shop_id,
            user_id=user_id,
            preferred_categories=_top(collection_counts, MAX_PREFERRED_CATEGORIES),
            preferred_brands=_top(vendor_counts, MAX_PREFERRED_BRANDS),
            preferred_price_range=price_range_for(products),
            viewed_products=viewed,
            purchased_products=purchased,
            last_active=datetime.now(timezone.utc),
        )
        await self.store.upsert_user_profile(profile)

        top_tags = _top(tag_counts, MAX_PROFILE_TAGS)
        logger.info(
            "Rebuilt user profile",
            shop_id=shop_id,
            user_id=user_id,
            viewed=len(viewed),
            purchased=len(purchased),
            top_categories=profile.preferred_categories[:3],
        )

        return {
            "user_id": user_id,
            "shop_id": shop_id,
            "views_processed": len(views),
            "orders_processed": len(orders),
            "preferred_categories": profile.preferred_categories,
            "preferred_brands": profile.preferred_brands,
            "top_tags": top_tags,
        }

    async def rebuild_active_profiles(
        self,
        shop_id: str,
        lookback_days: int = USER_PROFILE_LOOKBACK_DAYS,
        cancel_event: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        """
        Rebuild profiles for every user active in the lookback window.

        Args:
            shop_id: The shop domain
            lookback_days: Window used to select active users
            cancel_event: Stops the run between users when set

        Returns:
            Summary of the operation
        """
        since = datetime.now(timezone.utc) - timedelta(days=lookback_days)
        users = await self.store.list_active_users(shop_id, since)

        updated = 0
        errors = 0
        cancelled = False

        for user_id in users:
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            try:
                await self.rebuild_user_profile(user_id, shop_id)
                updated += 1
            except StorageUnavailable as e:
                logger.error(
                    "Error rebuilding user profile",
                    shop_id=shop_id,
                    user_id=user_id,
                    error=str(e),
                )
                errors += 1

        return {
            "shop_id": shop_id,
            "updated": updated,
            "errors": errors,
            "total_users": len(users),
            "cancelled": cancelled,
        }
