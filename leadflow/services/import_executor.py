"""Row-by-row execution of a confirmed import job."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import pydantic
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from leadflow.core.config import get_config
from leadflow.core.enums import ImportJobStatus
from leadflow.core.exceptions import ConfigurationError, NotFoundError
from leadflow.core.logging import LogContext, build_log_event
from leadflow.database.db import get_session_factory
from leadflow.models.base import utcnow
from leadflow.models.import_job import ImportJob, ImportUpload
from leadflow.orchestration.state_machine import IMPORT_JOB_STATE_MACHINE
from leadflow.schemas.imports import ImportJobSnapshot, LeadImportRow
from leadflow.schemas.leads import LeadCreateRequest
from leadflow.services.import_service import snapshot_of
from leadflow.services.lead_service import LeadService
from leadflow.services.status_catalog import INITIAL_STAGE

logger = logging.getLogger(__name__)

IMPORT_ORIGIN = "import"
JOB_LEVEL_ROW = 0


def row_issues(exc: pydantic.ValidationError) -> list[str]:
    """Flatten pydantic errors into short, user-facing issue strings."""
    issues: list[str] = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "row"
        if error.get("type") == "missing" or error.get("input") is None:
            issues.append(f"{field} is required")
            continue
        message = str(error.get("msg", "invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        issues.append(f"{field}: {message}")
    return issues


def map_row(values: dict[str, str], mapping: dict[str, str]) -> dict[str, str]:
    return {field: values.get(header, "") for field, header in mapping.items() if header}


class ImportAborted(Exception):
    """A catalog or configuration failure that stops the whole job."""


class ImportExecutor:
    """Runs one import job to a terminal status.

    Rows are processed in file order. A bad row is recorded in the job's
    error list and the job moves on; only a missing campaign or stage
    catalog aborts it.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        flush_every: int | None = None,
    ) -> None:
        self.session_factory = session_factory or get_session_factory()
        self.flush_every = flush_every or get_config().IMPORT_PROGRESS_FLUSH_EVERY

    def run(self, job_id: str) -> ImportJobSnapshot:
        with self.session_factory() as db:
            job = db.get(ImportJob, job_id)
            if job is None:
                raise NotFoundError(f"Import job {job_id} not found.")
            if job.status != ImportJobStatus.PENDING.value:
                logger.warning(
                    "import.job.skipped",
                    extra=build_log_event(
                        "import.job.skipped",
                        LogContext(job_id=job_id),
                        status=job.status,
                    ),
                )
                return snapshot_of(job)

            self._transition(job, ImportJobStatus.PROCESSING)
            job.started_at = utcnow()
            db.commit()
            logger.info(
                "import.job.started",
                extra=build_log_event("import.job.started", LogContext(job_id=job_id), total=job.total),
            )

            try:
                self._execute(db, job)
            except ImportAborted as exc:
                db.rollback()
                self._finish(db, job, ImportJobStatus.FAILED, abort_reason=str(exc))
            except Exception:
                db.rollback()
                self._finish(db, job, ImportJobStatus.FAILED, abort_reason="unexpected error while importing")
                raise
            else:
                self._finish(db, job, ImportJobStatus.COMPLETED)
            return snapshot_of(job)

    def _transition(self, job: ImportJob, target: ImportJobStatus) -> None:
        IMPORT_JOB_STATE_MACHINE.assert_transition(job.status, target.value)
        job.status = target.value

    def _preflight(self, service: LeadService, job: ImportJob) -> ImportUpload:
        if service.get_campaign(job.campaign_id) is None:
            raise ImportAborted(f"campaign {job.campaign_id} no longer exists")
        try:
            service.stage_row(INITIAL_STAGE)
        except ConfigurationError as exc:
            raise ImportAborted(str(exc)) from exc
        upload = service.db.get(ImportUpload, job.import_id)
        if upload is None:
            raise ImportAborted(f"upload {job.import_id} no longer exists")
        return upload

    def _execute(self, db: Session, job: ImportJob) -> None:
        service = LeadService(db)
        upload = self._preflight(service, job)
        errors: list[dict[str, Any]] = list(job.errors or [])
        context = LogContext(job_id=job.id)

        for index, parsed in enumerate(upload.rows, start=1):
            issues = self._import_row(service, job, parsed["values"])
            job.processed += 1
            if issues:
                job.failed += 1
                errors.append({"row": parsed["row"], "issues": issues})
                logger.info(
                    "import.row.failed",
                    extra=build_log_event("import.row.failed", context, row=parsed["row"], issues=issues),
                )
            else:
                job.created += 1
            if index % self.flush_every == 0:
                job.errors = list(errors)
                db.commit()

        job.errors = list(errors)

    def _import_row(self, service: LeadService, job: ImportJob, values: dict[str, str]) -> list[str]:
        try:
            row = LeadImportRow.model_validate(map_row(values, job.mapping))
        except pydantic.ValidationError as exc:
            return row_issues(exc)

        request = LeadCreateRequest(
            **row.model_dump(),
            origin=IMPORT_ORIGIN,
            campaign_id=job.campaign_id,
        )
        try:
            with service.db.begin_nested():
                service.create_lead(request, stage=INITIAL_STAGE, commit=False)
        except SQLAlchemyError as exc:
            return [f"could not be saved: {exc.__class__.__name__}"]
        return []

    def _finish(
        self,
        db: Session,
        job: ImportJob,
        status: ImportJobStatus,
        abort_reason: str | None = None,
    ) -> None:
        if abort_reason:
            job.errors = [*(job.errors or []), {"row": JOB_LEVEL_ROW, "issues": [abort_reason]}]
        self._transition(job, status)
        job.finished_at = utcnow()
        db.commit()

        event = "import.job.completed" if status == ImportJobStatus.COMPLETED else "import.job.failed"
        log = logger.info if status == ImportJobStatus.COMPLETED else logger.error
        log(
            event,
            extra=build_log_event(
                event,
                LogContext(job_id=job.id),
                total=job.total,
                processed=job.processed,
                created_count=job.created,
                failed=job.failed,
                reason=abort_reason,
            ),
        )
