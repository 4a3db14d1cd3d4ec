"""
StockLedger - Celery Configuration

Celery configuration for background task processing.
Uses Redis as the message broker and result backend.
"""

from celery import Celery
from celery.schedules import crontab

from app.config import settings


celery_app = Celery(
    'stockledger',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['app.tasks.celery_tasks'],
)

celery_app.conf.update(
    # Serialization
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',

    # Ledger days are UTC days
    timezone='UTC',
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=3600,
    task_soft_time_limit=3300,

    # Worker settings
    worker_prefetch_multiplier=1,

    # Result backend settings
    result_expires=86400,  # 24 hours

    # Balance runs report where to resume instead of retrying blindly
    task_max_retries=0,

    beat_schedule={
        # Yesterday's snapshots for every configured client
        'process-daily-balances': {
            'task': 'app.tasks.celery_tasks.process_daily_balances_task',
            'schedule': crontab(hour=settings.balance_job_hour, minute=settings.balance_job_minute),
        },
    },
)


celery_app.conf.task_routes = {
    'app.tasks.celery_tasks.*': {'queue': 'balances'},
}
