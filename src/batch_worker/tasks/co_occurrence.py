"""Co-occurrence ("frequently bought together") rebuild tasks."""

import structlog
from celery import shared_task

from batch_worker.runner import run_job
from storefront_recommender.config import get_settings
from storefront_recommender.errors import StorageUnavailable
from storefront_recommender.services.co_occurrence import CoOccurrenceIndexer

logger = structlog.get_logger()


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def rebuild_co_occurrence_all_shops(self) -> dict:
    """
    Schedule a co-occurrence rebuild for every shop.

    Returns:
        dict: Number of shops scheduled
    """
    shops = run_job(lambda store: store.list_shops())
    for shop_id in shops:
        rebuild_shop_co_occurrence.delay(shop_id)

    logger.info("Scheduled co-occurrence rebuild", shops=len(shops))
    return {"shops_scheduled": len(shops)}


@shared_task(bind=True, max_retries=3, default_retry_delay=600)
def rebuild_shop_co_occurrence(self, shop_id: str, window_days: int | None = None) -> dict:
    """
    Rebuild frequently-bought-together recommendations for one shop.

    Args:
        shop_id: The shop domain
        window_days: Order window; defaults to the configured window

    Returns:
        dict: Summary of the run
    """
    settings = get_settings()
    window = window_days or settings.co_occurrence_window_days
    logger.info("Rebuilding co-occurrence", shop_id=shop_id, window_days=window)

    def job(store):
        indexer = CoOccurrenceIndexer(
            store,
            top_k=settings.co_occurrence_top_k,
            prune_stale=settings.co_occurrence_prune_stale,
        )
        return indexer.rebuild(shop_id, window)

    try:
        return run_job(job)
    except StorageUnavailable as exc:
        logger.error("Co-occurrence rebuild failed", shop_id=shop_id, error=str(exc))
        raise self.retry(exc=exc)
