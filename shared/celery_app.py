"""Celery application: notification queue and periodic lease sweeps."""

import logging
from datetime import timedelta

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from shared.config import settings

celery_app = Celery(
    "car_lease",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "services.notification_service.tasks.email_tasks",
        "services.lease_service.tasks.sweep_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
    task_routes={
        "notifications.*": {"queue": "email"},
        "lease.*": {"queue": "lease_sweeps"},
    },
    beat_schedule={
        "lease-reminder-sweep": {
            "task": "lease.reminder_sweep",
            "schedule": timedelta(minutes=settings.reminder_interval_minutes),
        },
        "lease-expiry-sweep": {
            "task": "lease.expiry_sweep",
            "schedule": timedelta(minutes=settings.expiry_sweep_interval_minutes),
        },
        "lease-hold-reaper": {
            "task": "lease.release_expired_holds",
            "schedule": timedelta(minutes=settings.expiry_sweep_interval_minutes),
        },
        "idempotency-cleanup": {
            "task": "lease.cleanup_idempotency_keys",
            "schedule": crontab(hour=3, minute=0),
        },
    },
)


@setup_logging.connect
def configure_worker_logging(**kwargs):
    """Use the same log format as the API process."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
