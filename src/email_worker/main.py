"""Celery application for the notification worker.

Beat triggers a dispatch pass every 30 seconds and an hourly cleanup. This
is the external-cron alternative to the in-process queue driver; the
conditional job claim makes running both safe.
"""

from celery import Celery
from celery.schedules import crontab

from notification_service.config import get_settings
from shared.log_config import configure_logging

settings = get_settings()
configure_logging(settings)

app = Celery(
    "email_worker",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
    include=[
        "email_worker.tasks.queue",
    ],
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Results live in the queue table; nothing reads them from the backend
    task_ignore_result=True,
    # One batch per pass; every send is bounded by the SMTP timeout
    task_soft_time_limit=settings.queue_batch_size * settings.smtp_timeout_seconds + 30,
    task_time_limit=settings.queue_batch_size * settings.smtp_timeout_seconds + 60,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue="notifications",
)

app.conf.beat_schedule = {
    # Drain due notification jobs
    "process-notification-queue": {
        "task": "email_worker.tasks.queue.process_notification_queue",
        "schedule": settings.queue_poll_interval_seconds,
        "options": {"expires": settings.queue_poll_interval_seconds},
    },
    # Remove old completed/failed jobs at the top of every hour
    "cleanup-old-jobs": {
        "task": "email_worker.tasks.queue.cleanup_old_jobs",
        "schedule": crontab(minute=0),
    },
}


def run() -> None:
    """Run a worker with an embedded beat scheduler."""
    app.worker_main(["worker", "--beat", "--loglevel=info", "-Q", "notifications"])


if __name__ == "__main__":
    run()
