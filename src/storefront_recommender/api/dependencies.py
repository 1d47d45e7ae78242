"""FastAPI dependencies wiring the engine to its collaborators."""

from datetime import timedelta

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront_recommender.config import Settings, get_settings
from storefront_recommender.infrastructure.database.connection import get_session
from storefront_recommender.infrastructure.database.store import SqlRecommendationStore
from storefront_recommender.infrastructure.redis import CacheService, get_redis_client
from storefront_recommender.services.resolver import RecommendationResolver
from storefront_recommender.storage import RecommendationStore


async def get_store(session: AsyncSession = Depends(get_session)) -> RecommendationStore:
    """Storage collaborator bound to the request's database session."""
    return SqlRecommendationStore(session)


async def get_cache() -> CacheService:
    """Response cache; no-ops when Redis is unreachable."""
    return CacheService(await get_redis_client())


async def get_resolver(
    store: RecommendationStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> RecommendationResolver:
    max_age = None
    if settings.recommendation_cache_max_age_hours is not None:
        max_age = timedelta(hours=settings.recommendation_cache_max_age_hours)
    return RecommendationResolver(store, cache_max_age=max_age)
