"""
Celery application for pipeline jobs.

Broker/backend: Redis (REDIS_URL env).
Default queue: pipeline.
"""
from celery import Celery

from trendscout.settings import get_settings

settings = get_settings()

celery_app = Celery(
    "trendscout",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    # one job tick includes the bounded Gemini poll (~3 min)
    task_time_limit=15 * 60,
    task_soft_time_limit=12 * 60,
    task_default_queue="pipeline",
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    broker_transport_options={"visibility_timeout": 20 * 60},
)

celery_app.autodiscover_tasks(["trendscout.worker"])
