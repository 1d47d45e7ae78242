"""Recommendation API endpoints."""

from datetime import datetime, timezone
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from shared.constants import MAX_RECOMMENDATION_LIMIT
from storefront_recommender.api.dependencies import get_cache, get_resolver
from storefront_recommender.config import Settings, get_settings
from storefront_recommender.domain import RecommendationType
from storefront_recommender.infrastructure.redis import CacheService, response_cache_key
from storefront_recommender.services.resolver import RecommendationResolver

logger = structlog.get_logger()

router = APIRouter()


class ProductSummary(BaseModel):
    """A recommended product as rendered by the storefront."""

    product_id: str
    title: str
    price: float | None = None


class RecommendationResponse(BaseModel):
    """Response containing ranked recommendations."""

    recommendations: list[ProductSummary]
    tier: str = Field(..., description="Fallback tier that produced the result")
    shop_domain: str
    generated_at: str


@router.get("", response_model=RecommendationResponse)
async def get_recommendations(
    shop_domain: Annotated[str, Query(min_length=1, description="Shop domain")],
    product_id: Annotated[str | None, Query(description="Source product")] = None,
    user_id: Annotated[str | None, Query(description="User ID for personalization")] = None,
    session_id: Annotated[str | None, Query(description="Storefront session ID")] = None,
    limit: Annotated[int | None, Query(ge=1, le=MAX_RECOMMENDATION_LIMIT)] = None,
    recommendation_type: RecommendationType = RecommendationType.SIMILAR_PRODUCTS,
    resolver: RecommendationResolver = Depends(get_resolver),
    cache: CacheService = Depends(get_cache),
    settings: Settings = Depends(get_settings),
) -> RecommendationResponse:
    """
    Get ranked product recommendations.

    **Fallback chain:**
    1. Cached recommendations for the product
    2. Personalized candidates (requires `user_id`)
    3. Session co-views (requires `session_id`, no `user_id`)
    4. Catalog matches for the product, then shop-wide popularity

    **Usage in UI:**
    - Product page "You might also like" and "Frequently bought together"
    - Homepage popular products (no `product_id`)
    """
    limit = limit or settings.default_recommendation_limit
    key = response_cache_key(
        shop_domain, product_id, user_id, session_id, limit, recommendation_type.value
    )
    cached = await cache.get(key)
    if cached:
        return RecommendationResponse(**cached)

    result = await resolver.resolve(
        shop_id=shop_domain,
        product_id=product_id,
        user_id=user_id,
        session_id=session_id,
        limit=limit,
        recommendation_type=recommendation_type,
    )

    response = RecommendationResponse(
        recommendations=[
            ProductSummary(product_id=p.product_id, title=p.title, price=p.price)
            for p in result.products
        ],
        tier=result.tier.value,
        shop_domain=shop_domain,
        generated_at=datetime.now(timezone.utc).isoformat(),
    )
    await cache.set(key, response.model_dump(), ttl_seconds=settings.response_cache_ttl_seconds)

    logger.info(
        "Served recommendations",
        shop_domain=shop_domain,
        product_id=product_id,
        tier=result.tier.value,
        count=len(response.recommendations),
    )
    return response
