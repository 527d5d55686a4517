from celery import Celery

from orgledger.config import settings

celery_app = Celery(
    "orgledger",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "orgledger.workers.notification_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_ignore_result=True,
    # Enqueue is on the request path after commit; don't hang on a dead broker
    broker_connection_timeout=2,
    broker_transport_options={"max_retries": 1},
)
