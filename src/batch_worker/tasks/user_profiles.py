"""User profile rebuild tasks."""

import structlog
from celery import shared_task

from batch_worker.runner import run_job
from storefront_recommender.config import get_settings
from storefront_recommender.errors import StorageUnavailable
from storefront_recommender.services.user_profile import UserProfileService

logger = structlog.get_logger()


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def rebuild_profiles_all_shops(self) -> dict:
    """
    Schedule profile rebuilds for the active users of every shop.

    Returns:
        dict: Number of shops scheduled
    """
    shops = run_job(lambda store: store.list_shops())
    for shop_id in shops:
        rebuild_shop_profiles.delay(shop_id)

    logger.info("Scheduled user profile rebuild", shops=len(shops))
    return {"shops_scheduled": len(shops)}


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def rebuild_shop_profiles(self, shop_id: str) -> dict:
    """
    Rebuild profiles for users active in the configured lookback window.

    Args:
        shop_id: The shop domain

    Returns:
        dict: Summary of the run
    """
    lookback = get_settings().profile_lookback_days
    logger.info("Rebuilding user profiles", shop_id=shop_id, lookback_days=lookback)

    try:
        return run_job(
            lambda store: UserProfileService(store).rebuild_active_profiles(shop_id, lookback)
        )
    except StorageUnavailable as exc:
        logger.error("User profile rebuild failed", shop_id=shop_id, error=str(exc))
        raise self.retry(exc=exc)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def rebuild_user_profile(self, shop_id: str, user_id: str) -> dict:
    """
    Rebuild a single user's profile.

    Runs on demand only; the beat schedule rebuilds profiles per shop.

    Args:
        shop_id: The shop domain
        user_id: The user's ID

    Returns:
        dict: Summary of the rebuild
    """
    logger.info("Rebuilding profile for user", shop_id=shop_id, user_id=user_id)

    try:
        return run_job(
            lambda store: UserProfileService(store).rebuild_user_profile(user_id, shop_id)
        )
    except StorageUnavailable as exc:
        logger.error("User profile rebuild failed", shop_id=shop_id, user_id=user_id, error=str(exc))
        raise self.retry(exc=exc)
