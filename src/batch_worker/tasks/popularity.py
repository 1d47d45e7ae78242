"""Popularity recomputation tasks."""

import structlog
from celery import shared_task

from batch_worker.runner import run_job
from storefront_recommender.config import get_settings
from storefront_recommender.errors import StorageUnavailable
from storefront_recommender.services.popularity import PopularityAggregator

logger = structlog.get_logger()


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def recompute_popularity_all_shops(self) -> dict:
    """
    Schedule a popularity recomputation for every shop.

    Returns:
        dict: Number of shops scheduled
    """
    shops = run_job(lambda store: store.list_shops())
    for shop_id in shops:
        recompute_shop_popularity.delay(shop_id)

    logger.info("Scheduled popularity recomputation", shops=len(shops))
    return {"shops_scheduled": len(shops)}


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def recompute_shop_popularity(self, shop_id: str, window_days: int | None = None) -> dict:
    """
    Recompute popularity scores for one shop.

    Args:
        shop_id: The shop domain
        window_days: Trailing window; defaults to the configured window

    Returns:
        dict: Summary of the run
    """
    window = window_days or get_settings().popularity_window_days
    logger.info("Recomputing popularity", shop_id=shop_id, window_days=window)

    try:
        return run_job(lambda store: PopularityAggregator(store).recompute(shop_id, window))
    except StorageUnavailable as exc:
        logger.error("Popularity recomputation failed", shop_id=shop_id, error=str(exc))
        raise self.retry(exc=exc)
