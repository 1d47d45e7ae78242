"""Bridge from synchronous Celery tasks to the async engine."""

import asyncio
from typing import Awaitable, Callable, TypeVar

from storefront_recommender.infrastructure.database.connection import (
    get_async_engine,
    get_async_session_factory,
    get_db_session,
)
from storefront_recommender.infrastructure.database.store import SqlRecommendationStore
from storefront_recommender.storage import RecommendationStore

T = TypeVar("T")


def run_job(job: Callable[[RecommendationStore], Awaitable[T]]) -> T:
    """Run an async job against a fresh store on its own event loop.

    Each call gets its own engine because pooled asyncpg connections are
    bound to the loop that opened them.
    """

    async def _run() -> T:
        engine = get_async_engine()
        try:
            async with get_db_session(get_async_session_factory(engine)) as session:
                return await job(SqlRecommendationStore(session))
        finally:
            await engine.dispose()

    return asyncio.run(_run())
