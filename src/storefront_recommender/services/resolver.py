"""Recommendation resolver.

Answers a recommendation request with a strict fallback chain. Each tier is
tried only if the previous one produced nothing:

1. cached recommendation rows for the source product
2. personalized candidates from the user's profile (written back to the cache)
3. session candidates from co-viewed products (not persisted)
4. catalog matches for the source product, then shop-wide popularity
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Iterable

import structlog

from shared.constants import (
    DEFAULT_RECOMMENDATION_LIMIT,
    PERSONALIZED_CANDIDATE_MULTIPLIER,
    SESSION_NEIGHBOR_EVENT_LIMIT,
    SESSION_RECENT_VIEWS,
)
from storefront_recommender.domain import (
    EventKind,
    ProductMetadata,
    RecommendationKey,
    RecommendationType,
)
from storefront_recommender.errors import InvalidRequest, StorageUnavailable
from storefront_recommender.storage import EventQuery, MetadataFilter, RecommendationStore

logger = structlog.get_logger()


class ResolverTier(str, Enum):
    """Tier of the fallback chain that produced a result."""

    CACHE = "cache"
    PERSONALIZED = "personalized"
    SESSION = "session"
    CATALOG_MATCH = "catalog_match"
    POPULAR = "popular"


@dataclass
class ResolveResult:
    """Ranked, duplicate-free products and the tier that produced them."""

    products: list[ProductMetadata]
    tier: ResolverTier


@dataclass
class _Request:
    shop_id: str
    product_id: str | None
    user_id: str | None
    session_id: str | None
    limit: int
    recommendation_type: RecommendationType
    _source: ProductMetadata | None = field(default=None, repr=False)
    _source_loaded: bool = field(default=False, repr=False)


def _unique(
    products: Iterable[ProductMetadata], exclude: set[str] | None = None
) -> list[ProductMetadata]:
    seen: set[str] = set(exclude or ())
    unique = []
    for product in products:
        if product.product_id not in seen:
            seen.add(product.product_id)
            unique.append(product)
    return unique


def _merge(*groups: Iterable[str]) -> list[str]:
    """Concatenate string groups, dropping duplicates and keeping first occurrence."""
    seen: dict[str, None] = {}
    for group in groups:
        for value in group:
            if value:
                seen.setdefault(value, None)
    return list(seen)


class RecommendationResolver:
    """Resolves recommendation requests against derived state."""

    def __init__(
        self,
        store: RecommendationStore,
        cache_max_age: timedelta | None = None,
    ):
        self.store = store
        self.cache_max_age = cache_max_age

    async def resolve(
        self,
        shop_id: str,
        product_id: str | None = None,
        user_id: str | None = None,
        session_id: str | None = None,
        limit: int = DEFAULT_RECOMMENDATION_LIMIT,
        recommendation_type: RecommendationType | str = RecommendationType.SIMILAR_PRODUCTS,
    ) -> ResolveResult:
        """
        Resolve a ranked recommendation list.

        Args:
            shop_id: The shop domain (required)
            product_id: Optional source product
            user_id: Optional user for the personalized tier
            session_id: Optional session for the session tier
            limit: Maximum number of products
            recommendation_type: Cached recommendation set to read

        Returns:
            Products (at most ``limit``) and the tier that produced them

        Raises:
            InvalidRequest: Missing shop, non-positive limit or unknown type
            StorageUnavailable: The final fallback tier could not read storage
        """
        request = self._validate(
            shop_id, product_id, user_id, session_id, limit, recommendation_type
        )
        log = logger.bind(
            shop_id=request.shop_id,
            product_id=request.product_id,
            user_id=request.user_id,
            session_id=request.session_id,
        )

        if request.product_id:
            products = await self._attempt(ResolverTier.CACHE, self._from_cache(request))
            if products:
                log.debug("Resolved from cache", count=len(products))
                return ResolveResult(products, ResolverTier.CACHE)

        if request.user_id:
            products = await self._attempt(
                ResolverTier.PERSONALIZED, self._personalized(request)
            )
            if products:
                log.debug("Resolved personalized", count=len(products))
                return ResolveResult(products, ResolverTier.PERSONALIZED)
        elif request.session_id:
            products = await self._attempt(ResolverTier.SESSION, self._session_based(request))
            if products:
                log.debug("Resolved from session", count=len(products))
                return ResolveResult(products, ResolverTier.SESSION)

        result = await self._fallback(request)
        log.debug("Resolved by fallback", tier=result.tier.value, count=len(result.products))
        return result

    # ==========================================================================
    # Tiers
    # ==========================================================================

    async def _from_cache(self, request: _Request) -> list[ProductMetadata]:
        rows = await self.store.list_recommendations(
            request.shop_id,
            request.product_id,
            request.recommendation_type,
            limit=request.limit,
        )
        if self.cache_max_age is not None:
            cutoff = datetime.now(timezone.utc) - self.cache_max_age
            rows = [row for row in rows if row.last_calculated >= cutoff]
        if not rows:
            return []

        ids = [row.recommended_product_id for row in rows]
        found = await self.store.find_metadata(request.shop_id, MetadataFilter(ids_in=ids))
        by_id = {p.product_id: p for p in found}

        # Metadata comes back in storage order; restore the cached rank
        ranked = sorted(
            (row for row in rows if row.recommended_product_id in by_id),
            key=lambda row: row.score,
            reverse=True,
        )
        return _unique(
            (by_id[row.recommended_product_id] for row in ranked),
            exclude={request.product_id},
        )[: request.limit]

    async def _personalized(self, request: _Request) -> list[ProductMetadata]:
        source = await self._source(request)
        if source is None:
            return []
        profile = await self.store.get_user_profile(request.shop_id, request.user_id)
        if profile is None:
            return []

        exclude = [source.product_id, *profile.viewed_products]
        candidates = await self.store.find_metadata(
            request.shop_id,
            MetadataFilter(
                collections_any=_merge(source.collections, profile.preferred_categories),
                tags_any=list(source.tags),
                product_type=source.product_type,
                vendor_in=list(profile.preferred_brands) or None,
                exclude_ids=exclude,
            ),
            limit=request.limit * PERSONALIZED_CANDIDATE_MULTIPLIER,
        )
        top = _unique(candidates, exclude=set(exclude))[: request.limit]

        now = datetime.now(timezone.utc)
        try:
            for product in top:
                await self.store.upsert_recommendation(
                    RecommendationKey(
                        shop_id=request.shop_id,
                        source_product_id=source.product_id,
                        recommended_product_id=product.product_id,
                        recommendation_type=RecommendationType.PERSONALIZED,
                    ),
                    score=max(0.0, product.popularity),
                    last_calculated=now,
                )
        except StorageUnavailable as e:
            logger.warning(
                "Failed to persist personalized recommendations",
                shop_id=request.shop_id,
                product_id=source.product_id,
                error=str(e),
            )
        return top

    async def _session_based(self, request: _Request) -> list[ProductMetadata]:
        recent = await self.store.query_events(
            EventQuery(
                shop_id=request.shop_id,
                kind=EventKind.VIEW,
                session_id=request.session_id,
                newest_first=True,
                distinct_product=True,
                limit=SESSION_RECENT_VIEWS + 1,
            )
        )
        viewed = [
            e.product_id
            for e in recent
            if e.product_id and e.product_id != request.product_id
        ][:SESSION_RECENT_VIEWS]
        if not viewed:
            return []

        co_viewed = await self._co_viewed_products(request, viewed)
        viewed_products = await self.store.find_metadata(
            request.shop_id, MetadataFilter(ids_in=viewed)
        )
        collections = _merge(*(p.collections for p in viewed_products))

        exclude = [*viewed]
        if request.product_id:
            exclude.append(request.product_id)
        candidates = await self.store.find_metadata(
            request.shop_id,
            MetadataFilter(ids_in=co_viewed, collections_any=collections, exclude_ids=exclude),
            limit=request.limit,
        )
        return _unique(candidates, exclude=set(exclude))[: request.limit]

    async def _co_viewed_products(self, request: _Request, viewed: list[str]) -> list[str]:
        """Products viewed in other sessions that also viewed ``viewed``."""
        neighbor_views = await self.store.query_events(
            EventQuery(
                shop_id=request.shop_id,
                kind=EventKind.VIEW,
                product_id_in=viewed,
                limit=SESSION_NEIGHBOR_EVENT_LIMIT,
            )
        )
        sessions = sorted(
            {
                e.session_id
                for e in neighbor_views
                if e.session_id and e.session_id != request.session_id
            }
        )
        if not sessions:
            return []

        session_views = await self.store.query_events(
            EventQuery(
                shop_id=request.shop_id,
                kind=EventKind.VIEW,
                session_id_in=sessions,
                limit=SESSION_NEIGHBOR_EVENT_LIMIT,
            )
        )
        return _merge([e.product_id for e in session_views if e.product_id])

    async def _fallback(self, request: _Request) -> ResolveResult:
        source = await self._source(request) if request.product_id else None

        if source is not None and (source.collections or source.tags or source.product_type):
            products = await self.store.find_metadata(
                request.shop_id,
                MetadataFilter(
                    collections_any=list(source.collections),
                    tags_any=list(source.tags),
                    product_type=source.product_type,
                    exclude_ids=[source.product_id],
                ),
                limit=request.limit,
            )
            products = _unique(products, exclude={source.product_id})
            if products:
                return ResolveResult(products[: request.limit], ResolverTier.CATALOG_MATCH)

        exclude = [request.product_id] if request.product_id else None
        products = await self.store.find_metadata(
            request.shop_id, MetadataFilter(exclude_ids=exclude), limit=request.limit
        )
        return ResolveResult(
            _unique(products, exclude=set(exclude or ()))[: request.limit],
            ResolverTier.POPULAR,
        )

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def _validate(
        self,
        shop_id: str,
        product_id: str | None,
        user_id: str | None,
        session_id: str | None,
        limit: int,
        recommendation_type: RecommendationType | str,
    ) -> _Request:
        if not shop_id:
            raise InvalidRequest("shop_id is required")
        if limit < 1:
            raise InvalidRequest("limit must be at least 1")
        try:
            recommendation_type = RecommendationType(recommendation_type)
        except ValueError as e:
            raise InvalidRequest(f"unknown recommendation type: {recommendation_type}") from e

        return _Request(
            shop_id=shop_id,
            product_id=product_id or None,
            user_id=user_id or None,
            session_id=session_id or None,
            limit=limit,
            recommendation_type=recommendation_type,
        )

    async def _source(self, request: _Request) -> ProductMetadata | None:
        """Source product metadata, loaded at most once per request."""
        if not request.product_id:
            return None
        if not request._source_loaded:
            request._source = await self.store.get_metadata(request.shop_id, request.product_id)
            request._source_loaded = True
        return request._source

    async def _attempt(
        self, tier: ResolverTier, work: Awaitable[list[ProductMetadata]]
    ) -> list[ProductMetadata]:
        """Run a non-final tier; storage failures demote to the next tier."""
        try:
            return await work
        except StorageUnavailable as e:
            logger.warning("Resolver tier failed, falling through", tier=tier.value, error=str(e))
            return []

