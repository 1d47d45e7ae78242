"""Celery worker running the periodic recommendation batch jobs."""
