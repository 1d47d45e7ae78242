"""Business logic services."""

from storefront_recommender.services.co_occurrence import CoOccurrenceIndexer
from storefront_recommender.services.popularity import PopularityAggregator
from storefront_recommender.services.resolver import (
    RecommendationResolver,
    ResolverTier,
    ResolveResult,
)
from storefront_recommender.services.user_profile import UserProfileService

__all__ = [
    "CoOccurrenceIndexer",
    "PopularityAggregator",
    "RecommendationResolver",
    "ResolverTier",
    "ResolveResult",
    "UserProfileService",
]
