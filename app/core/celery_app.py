from celery import Celery, signals
from app.core.config import settings

NOTIFICATION_QUEUE = "kpi_notifications"

# Create Celery app
celery_app = Celery(
    "kpi_tracker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["app.workers.celery_tasks.kpi_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.TIMEZONE,
    enable_utc=True,
    result_expires=24 * 3600,
    # Batches are long running; each worker process reserves one at a time
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_routes={"app.workers.celery_tasks.kpi_tasks.*": {"queue": NOTIFICATION_QUEUE}},
)


@signals.setup_logging.connect
def configure_worker_logging(**kwargs):
    """Workers log through the application's dictConfig instead of Celery's own"""
    from app.core.logging_config import setup_logging

    setup_logging()
