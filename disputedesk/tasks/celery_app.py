from celery import Celery
from celery.signals import worker_process_init

from disputedesk.common.logging import setup_logging
from disputedesk.config import settings

app = Celery(
    "disputedesk",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "disputedesk.tasks.settlement_tasks.*": {"queue": "settlements"},
        "disputedesk.tasks.notification_tasks.*": {"queue": "notifications"},
    },
)


@worker_process_init.connect
def _configure_worker_logging(**kwargs):
    setup_logging()


app.autodiscover_tasks(
    [
        "disputedesk.tasks.settlement_tasks",
        "disputedesk.tasks.notification_tasks",
    ]
)
