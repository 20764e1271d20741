"""Celery application bootstrap."""

from __future__ import annotations

from celery import Celery

from leadflow.core.config import get_config

config = get_config()

celery_app = Celery(
    "leadflow",
    broker=config.CELERY_BROKER_URL,
    backend=config.CELERY_RESULT_BACKEND,
    include=["leadflow.tasks.import_tasks"],
)
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

# Local/dev convenience: run tasks synchronously when requested.
if config.CELERY_TASK_ALWAYS_EAGER:
    celery_app.conf.task_always_eager = True
