"""API v1 router that aggregates all endpoint routers."""

from fastapi import APIRouter

from storefront_recommender.api.v1 import events, health, recommendations

api_router = APIRouter()

# Include all routers
api_router.include_router(
    health.router,
    tags=["Health"],
)

api_router.include_router(
    recommendations.router,
    prefix="/recommendations",
    tags=["Recommendations"],
)

api_router.include_router(
    events.router,
    prefix="/events",
    tags=["Events"],
)
