"""Celery application for the batch worker."""

from celery import Celery
from celery.schedules import crontab

from storefront_recommender.config import get_settings
from storefront_recommender.logging_config import configure_logging

settings = get_settings()
configure_logging(settings)

# Create Celery app
app = Celery(
    "batch_worker",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
    include=[
        "batch_worker.tasks.popularity",
        "batch_worker.tasks.co_occurrence",
        "batch_worker.tasks.user_profiles",
    ],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=1800,  # 30 minutes
    task_soft_time_limit=1740,  # 29 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue="batch",
    task_routes={
        "batch_worker.tasks.*": {"queue": "batch"},
    },
)

# Beat schedule for periodic tasks; each entry fans out one task per shop
app.conf.beat_schedule = {
    # Recompute popularity every hour
    "recompute-popularity": {
        "task": "batch_worker.tasks.popularity.recompute_popularity_all_shops",
        "schedule": crontab(minute=0),
    },
    # Rebuild co-occurrence nightly at 3 AM
    "rebuild-co-occurrence": {
        "task": "batch_worker.tasks.co_occurrence.rebuild_co_occurrence_all_shops",
        "schedule": crontab(minute=0, hour=3),
    },
    # Rebuild user profiles every 2 hours
    "rebuild-user-profiles": {
        "task": "batch_worker.tasks.user_profiles.rebuild_profiles_all_shops",
        "schedule": crontab(minute=30, hour="*/2"),
    },
}


def run() -> None:
    """Run the Celery worker."""
    app.worker_main(["worker", "--loglevel=info", "-Q", "batch"])


if __name__ == "__main__":
    run()
