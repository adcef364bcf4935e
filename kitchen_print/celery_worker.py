"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend, and
schedules the print queue processor with Celery beat.

Run:
    celery -A kitchen_print.celery_worker worker --beat --loglevel=info
"""

from datetime import timedelta

from celery import Celery

from kitchen_print.core.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    'kitchen_print_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['kitchen_print.tasks']  # Module containing our tasks
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,  # Process one task at a time
    worker_concurrency=2,  # One printer; extra processes only contend for claims

    # Result settings
    result_expires=3600,  # Results expire after 1 hour

    # Task execution settings
    task_acks_late=True,  # Acknowledge task after completion
    task_reject_on_worker_lost=True,  # Requeue task if worker dies

    broker_connection_retry_on_startup=True,

    # Periodic tasks
    beat_schedule={
        'process-print-queue': {
            'task': 'kitchen_print.tasks.process_print_queue',
            'schedule': timedelta(seconds=settings.print_process_interval_seconds),
            # A backed-up beat must not stack stale runs
            'options': {'expires': settings.print_process_interval_seconds},
        },
        'purge-old-print-jobs': {
            'task': 'kitchen_print.tasks.purge_old_print_jobs',
            'schedule': timedelta(hours=24),
        },
    },
)


if __name__ == '__main__':
    celery_app.start()
