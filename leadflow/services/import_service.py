"""Upload, preview, confirm and status operations of the lead import pipeline."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import pydantic

from leadflow.core.config import get_config
from leadflow.core.enums import ImportJobStatus, UploadStatus
from leadflow.core.exceptions import NotFoundError, TransientError, ValidationError
from leadflow.core.logging import LogContext, build_log_event
from leadflow.models.base import utcnow
from leadflow.models.campaign import Campaign
from leadflow.models.import_job import ImportJob, ImportUpload
from leadflow.orchestration.state_machine import IMPORT_JOB_STATE_MACHINE, UPLOAD_STATE_MACHINE
from leadflow.schemas.imports import ConfirmImportRequest, ImportJobSnapshot, ImportPreview
from leadflow.services.base_service import BaseService
from leadflow.services.import_parser import (
    build_template_csv,
    parse_table,
    suggest_mapping,
    validate_mapping,
)
from leadflow.utils.ids import new_import_id, new_job_id

logger = logging.getLogger(__name__)


def build_confirm_request(
    import_id: str,
    mapping: dict[str, str],
    campaign_id: int,
    actor_label: str | None = None,
) -> ConfirmImportRequest:
    try:
        return ConfirmImportRequest(
            import_id=import_id,
            mapping=mapping,
            campaign_id=campaign_id,
            actor_label=actor_label,
        )
    except pydantic.ValidationError as exc:
        issues = [f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()]
        raise ValidationError("Invalid import confirmation.", issues=issues) from exc


def snapshot_of(job: ImportJob) -> ImportJobSnapshot:
    return ImportJobSnapshot.model_validate(job)


class ImportService(BaseService):
    """Phases of an import that run in the caller's process.

    Row execution happens elsewhere (see `ImportExecutor`); this service only
    creates the job and hands its id to `dispatcher`.
    """

    def __init__(self, db=None, dispatcher: Callable[[str], Any] | None = None) -> None:
        super().__init__(db)
        self.config = get_config()
        self._dispatcher = dispatcher

    def _require_upload(self, import_id: str) -> ImportUpload:
        upload = self.db.get(ImportUpload, import_id)
        if upload is None:
            raise NotFoundError(f"Import {import_id} not found.")
        return upload

    def _require_job(self, job_id: str) -> ImportJob:
        job = self.db.get(ImportJob, job_id)
        if job is None:
            raise NotFoundError(f"Import job {job_id} not found.")
        return job

    def _preview_of(self, upload: ImportUpload) -> ImportPreview:
        sample = [row["values"] for row in upload.rows[: self.config.IMPORT_SAMPLE_ROWS]]
        return ImportPreview(
            import_id=upload.id,
            filename=upload.filename,
            headers=list(upload.headers),
            sample_rows=sample,
            suggested_mapping=suggest_mapping(upload.headers),
            total_rows=len(upload.rows),
        )

    def upload(self, filename: str, content: bytes) -> ImportPreview:
        table = parse_table(filename, content)
        if len(table.rows) > self.config.IMPORT_MAX_ROWS:
            raise ValidationError(
                f"The file has {len(table.rows)} rows; the limit is {self.config.IMPORT_MAX_ROWS}."
            )

        upload = ImportUpload(
            id=new_import_id(),
            filename=filename,
            headers=table.headers,
            rows=[parsed.as_dict() for parsed in table.rows],
            status=UploadStatus.UPLOADED.value,
        )
        self.db.add(upload)
        preview = self._preview_of(upload)
        UPLOAD_STATE_MACHINE.assert_transition(upload.status, UploadStatus.PREVIEWED.value)
        upload.status = UploadStatus.PREVIEWED.value
        self.commit()
        logger.info(
            "import.upload.previewed",
            extra=build_log_event(
                "import.upload.previewed",
                LogContext(),
                import_id=upload.id,
                upload_filename=filename,
                total_rows=preview.total_rows,
                suggested_fields=sorted(preview.suggested_mapping),
            ),
        )
        return preview

    def get_preview(self, import_id: str) -> ImportPreview:
        return self._preview_of(self._require_upload(import_id))

    def cancel(self, import_id: str) -> None:
        upload = self._require_upload(import_id)
        UPLOAD_STATE_MACHINE.assert_transition(upload.status, UploadStatus.CANCELLED.value)
        upload.status = UploadStatus.CANCELLED.value
        self.commit()
        logger.info(
            "import.upload.cancelled",
            extra=build_log_event("import.upload.cancelled", LogContext(), import_id=import_id),
        )

    def confirm(self, request: ConfirmImportRequest) -> ImportJobSnapshot:
        """Validate the mapping, create a pending job and dispatch it.

        Nothing is created when the mapping or the campaign is rejected.
        """
        upload = self._require_upload(request.import_id)
        if not UPLOAD_STATE_MACHINE.can_transition(upload.status, UploadStatus.CONFIRMED.value):
            raise ValidationError(f"Import {upload.id} is already {upload.status}.")

        mapping = {field: header for field, header in request.mapping.items() if header and header.strip()}
        validate_mapping(mapping, upload.headers)
        if self.db.get(Campaign, request.campaign_id) is None:
            raise ValidationError(f"Campaign {request.campaign_id} does not exist.")

        job = ImportJob(
            id=new_job_id(),
            import_id=upload.id,
            campaign_id=request.campaign_id,
            mapping=mapping,
            status=ImportJobStatus.PENDING.value,
            total=len(upload.rows),
            errors=[],
            actor_label=request.actor_label,
        )
        self.db.add(job)
        upload.status = UploadStatus.CONFIRMED.value
        self.commit()
        logger.info(
            "import.job.created",
            extra=build_log_event(
                "import.job.created",
                LogContext(job_id=job.id),
                import_id=upload.id,
                campaign_id=request.campaign_id,
                total=job.total,
                mapped_fields=sorted(mapping),
            ),
        )

        self._dispatch(job)
        self.db.refresh(job)
        return snapshot_of(job)

    def _dispatch(self, job: ImportJob) -> None:
        dispatcher = self._dispatcher
        if dispatcher is None:
            from leadflow.tasks.import_tasks import dispatch_import_job

            dispatcher = dispatch_import_job
        try:
            dispatcher(job.id)
        except Exception as exc:
            self.rollback()
            self.db.refresh(job)
            if IMPORT_JOB_STATE_MACHINE.can_transition(job.status, ImportJobStatus.FAILED.value):
                job.status = ImportJobStatus.FAILED.value
                job.errors = [{"row": 0, "issues": [f"job could not be queued: {exc}"]}]
                job.finished_at = utcnow()
                self.commit()
            logger.error(
                "import.job.dispatch_failed",
                extra=build_log_event(
                    "import.job.dispatch_failed",
                    LogContext(job_id=job.id),
                    error_type=exc.__class__.__name__,
                    error=str(exc),
                ),
            )
            raise TransientError(f"Import job {job.id} could not be queued.") from exc

    def get_job(self, job_id: str) -> ImportJobSnapshot:
        """Current snapshot of a job. Read-only."""
        return snapshot_of(self._require_job(job_id))

    def build_template(self) -> str:
        return build_template_csv()
