from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from app.core.config import settings


def _create_celery() -> Celery:
    redis_url = settings.REDIS_URL
    celery = Celery(
        "tax_engine",
        broker=redis_url,
        backend=redis_url,
        include=["app.workers.tasks"],
    )
    celery.conf.update(
        task_default_queue="default",
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        task_always_eager=settings.ENV.lower() in {"test"},
        task_eager_propagates=settings.ENV.lower() in {"test"},
    )
    # Beat schedule (only active outside test env)
    if settings.ENV.lower() not in {"test"}:
        celery.conf.beat_schedule = {
            "period-close-tax-reports": {
                "task": "tax.generate_previous_period_reports",
                # 02:00 UTC on the first day of every month; quarterly filers
                # get their closed quarter refreshed until it is filed
                "schedule": crontab(minute=0, hour=2, day_of_month=1),
            }
        }
    return celery


celery_app = _create_celery()
