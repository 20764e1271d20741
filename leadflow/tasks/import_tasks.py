"""Queue entry points for import execution."""

from __future__ import annotations

import logging
from typing import Any

from leadflow.core.logging import LogContext, build_log_event
from leadflow.services.import_executor import ImportExecutor
from leadflow.tasks.celery_app import celery_app
from leadflow.utils.ids import new_trace_id

logger = logging.getLogger(__name__)

EXECUTE_IMPORT_TASK = "imports.execute"


@celery_app.task(bind=True, name=EXECUTE_IMPORT_TASK)
def execute_import(self, job_id: str) -> dict[str, Any]:
    """Run a confirmed import job to completion and return its final snapshot."""
    context = LogContext(job_id=job_id, trace_id=self.request.id or new_trace_id())
    logger.info("task.start", extra=build_log_event("task.start", context, task=EXECUTE_IMPORT_TASK))
    snapshot = ImportExecutor().run(job_id)
    logger.info(
        "task.finish",
        extra=build_log_event(
            "task.finish",
            context,
            task=EXECUTE_IMPORT_TASK,
            status=snapshot.status.value,
        ),
    )
    return snapshot.model_dump(mode="json")


def dispatch_import_job(job_id: str) -> str:
    """Queue a job for execution; returns the Celery task id."""
    result = execute_import.apply_async(args=[job_id])
    logger.info(
        "import.job.dispatched",
        extra=build_log_event(
            "import.job.dispatched",
            LogContext(job_id=job_id, trace_id=result.id),
        ),
    )
    return result.id
