"""Transport boundary to the lead store.

`LeadGateway` is the contract the board, bulk and import flows talk to.
`HttpLeadGateway` speaks to the remote REST store; `LocalLeadGateway` serves
the same operations straight from the local SQLAlchemy store.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import pydantic
import requests
from sqlalchemy.orm import Session

from leadflow.core.config import get_config
from leadflow.core.exceptions import (
    ConflictError,
    NotFoundError,
    PreconditionError,
    TransientError,
    ValidationError,
)
from leadflow.core.logging import LogContext, build_log_event
from leadflow.database.db import get_session_factory
from leadflow.schemas.imports import ImportJobSnapshot, ImportPreview
from leadflow.schemas.leads import LeadFilters, LeadRecord, StageCatalogEntry
from leadflow.services.import_service import ImportService, build_confirm_request
from leadflow.services.lead_service import LeadService

logger = logging.getLogger(__name__)


class LeadGateway(ABC):
    """Asynchronous lead store operations.

    `fetch_leads`, `fetch_stage_catalog` and `poll_import_job` are idempotent.
    Failures surface as `LeadflowError` subclasses.
    """

    @abstractmethod
    async def fetch_leads(self, filters: LeadFilters | None = None) -> list[LeadRecord]:
        raise NotImplementedError

    @abstractmethod
    async def set_lead_owner(self, lead_id: int, owner_id: int, actor_id: int | None) -> LeadRecord:
        raise NotImplementedError

    @abstractmethod
    async def set_lead_stage(self, lead_id: int, stage_id: int, actor_id: int | None) -> LeadRecord:
        raise NotImplementedError

    @abstractmethod
    async def fetch_stage_catalog(self) -> list[StageCatalogEntry]:
        raise NotImplementedError

    @abstractmethod
    async def upload_for_preview(self, filename: str, content: bytes) -> ImportPreview:
        raise NotImplementedError

    @abstractmethod
    async def confirm_import(
        self,
        import_id: str,
        mapping: dict[str, str],
        campaign_id: int,
        actor_label: str | None = None,
    ) -> ImportJobSnapshot:
        raise NotImplementedError

    @abstractmethod
    async def poll_import_job(self, job_id: str) -> ImportJobSnapshot:
        raise NotImplementedError


def _unwrap(body: Any) -> Any:
    if isinstance(body, dict):
        for key in ("data", "items", "results"):
            if key in body:
                return body[key]
    return body


def _error_message(response: requests.Response) -> tuple[str, dict[str, Any]]:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get("message") or body.get("detail") or body.get("error") or response.reason or "request failed"
    if isinstance(message, list):
        message = "; ".join(str(item) for item in message)
    return str(message), body


def _raise_for_response(response: requests.Response) -> None:
    status = response.status_code
    if status < 400:
        return
    message, body = _error_message(response)
    if status == 409:
        raise ConflictError(message)
    if status in (412, 428):
        raise PreconditionError(message, code=body.get("code"))
    if status in (400, 422):
        raise ValidationError(
            message,
            missing_fields=body.get("missing_fields") or body.get("missingFields"),
            issues=body.get("issues"),
        )
    if status == 404:
        raise NotFoundError(message)
    if status >= 500 or status == 429:
        raise TransientError(f"Lead store unavailable ({status}): {message}")
    raise ConflictError(f"Lead store rejected the request ({status}): {message}")


def _lead_from_payload(payload: dict[str, Any]) -> LeadRecord:
    data = dict(payload)
    stage = data.pop("stage", None)
    if isinstance(stage, dict):
        data.setdefault("stage_id", stage.get("id"))
        data.setdefault("stage_label", stage.get("label") or stage.get("name"))
    elif isinstance(stage, str):
        data.setdefault("stage_label", stage)
    return LeadRecord.model_validate(data)


def _parse(builder: Callable[[Any], Any], payload: Any, what: str) -> Any:
    try:
        return builder(payload)
    except (pydantic.ValidationError, TypeError, AttributeError) as exc:
        raise TransientError(f"Lead store returned an unreadable {what}: {exc}") from exc


class HttpLeadGateway(LeadGateway):
    """REST client for the remote lead store.

    Blocking `requests` calls run in a worker thread. Only idempotent reads
    are retried; mutations fail on the first error.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout_seconds: int | None = None,
        max_retries: int | None = None,
        backoff_seconds: float = 1.0,
        page_size: int = 100,
        session: requests.Session | None = None,
    ) -> None:
        config = get_config()
        self.base_url = (base_url or config.LEAD_API_URL).rstrip("/")
        self.timeout_seconds = timeout_seconds or config.HTTP_TIMEOUT_SECONDS
        self.max_retries = config.HTTP_MAX_RETRIES if max_retries is None else max_retries
        self.backoff_seconds = backoff_seconds
        self.page_size = page_size
        self.session = session or requests.Session()
        token = token if token is not None else config.LEAD_API_TOKEN
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        self.session.headers.setdefault("Accept", "application/json")

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        idempotent: bool = False,
    ) -> Any:
        url = f"{self.base_url}{path}"
        total_attempts = (self.max_retries if idempotent else 0) + 1
        last_error: TransientError | None = None
        cause: Exception | None = None

        for attempt in range(1, total_attempts + 1):
            try:
                response = self.session.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    files=files,
                    timeout=(5, self.timeout_seconds),
                )
                _raise_for_response(response)
                if not response.content:
                    return None
                try:
                    return _unwrap(response.json())
                except ValueError as exc:
                    raise TransientError(f"Lead store returned invalid JSON for {path}.") from exc
            except requests.exceptions.RequestException as exc:
                last_error = TransientError(f"Lead store unreachable: {exc}")
                cause = exc
            except TransientError as exc:
                last_error = exc
                cause = exc.__cause__

            logger.warning(
                "gateway.request.failed",
                extra=build_log_event(
                    "gateway.request.failed",
                    LogContext(),
                    method=method,
                    path=path,
                    attempt=attempt,
                    attempts_total=total_attempts,
                    error=str(last_error),
                ),
            )
            if attempt < total_attempts:
                time.sleep(min(self.backoff_seconds * attempt, 5))

        raise last_error from cause

    async def _call(self, method: str, path: str, **kwargs: Any) -> Any:
        return await asyncio.to_thread(self._request, method, path, **kwargs)

    async def fetch_leads(self, filters: LeadFilters | None = None) -> list[LeadRecord]:
        filters = filters or LeadFilters()
        params = filters.model_dump(exclude={"limit", "offset"}, exclude_none=True)
        if not params.get("only_unassigned"):
            params.pop("only_unassigned", None)

        leads: list[LeadRecord] = []
        offset = filters.offset
        while len(leads) < filters.limit:
            page_size = min(self.page_size, filters.limit - len(leads))
            page = await self._call(
                "GET",
                "/leads",
                params={**params, "limit": page_size, "offset": offset},
                idempotent=True,
            )
            page = page or []
            leads.extend(_parse(lambda items: [_lead_from_payload(item) for item in items], page, "lead list"))
            if len(page) < page_size:
                break
            offset += len(page)
        return leads

    async def set_lead_owner(self, lead_id: int, owner_id: int, actor_id: int | None) -> LeadRecord:
        body = await self._call(
            "POST",
            f"/leads/{lead_id}/owner",
            json={"owner_id": owner_id, "actor_id": actor_id},
        )
        return _parse(_lead_from_payload, body, "lead")

    async def set_lead_stage(self, lead_id: int, stage_id: int, actor_id: int | None) -> LeadRecord:
        body = await self._call(
            "POST",
            f"/leads/{lead_id}/stage",
            json={"stage_id": stage_id, "actor_id": actor_id},
        )
        return _parse(_lead_from_payload, body, "lead")

    async def fetch_stage_catalog(self) -> list[StageCatalogEntry]:
        body = await self._call("GET", "/leads/catalog/stages", idempotent=True)
        return _parse(
            lambda items: [StageCatalogEntry.model_validate(item) for item in items or []],
            body,
            "stage catalog",
        )

    async def upload_for_preview(self, filename: str, content: bytes) -> ImportPreview:
        body = await self._call(
            "POST",
            "/leads/import/preview",
            files={"file": (filename, content)},
        )
        return _parse(ImportPreview.model_validate, body, "import preview")

    async def confirm_import(
        self,
        import_id: str,
        mapping: dict[str, str],
        campaign_id: int,
        actor_label: str | None = None,
    ) -> ImportJobSnapshot:
        request = build_confirm_request(import_id, mapping, campaign_id, actor_label)
        body = await self._call("POST", "/leads/import/confirm", json=request.model_dump())
        return _parse(ImportJobSnapshot.model_validate, body, "import job")

    async def poll_import_job(self, job_id: str) -> ImportJobSnapshot:
        body = await self._call("GET", f"/leads/import/status/{job_id}", idempotent=True)
        return _parse(ImportJobSnapshot.model_validate, body, "import job")


class LocalLeadGateway(LeadGateway):
    """Gateway backed by the local database.

    Each call opens its own session. `dispatcher` receives the job id of a
    confirmed import; it defaults to the Celery task.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        dispatcher: Callable[[str], Any] | None = None,
    ) -> None:
        self.session_factory = session_factory or get_session_factory()
        self.dispatcher = dispatcher

    async def _run(self, work: Callable[[Session], Any]) -> Any:
        # Yield once so concurrent callers interleave like real requests.
        await asyncio.sleep(0)
        with self.session_factory() as db:
            return work(db)

    async def fetch_leads(self, filters: LeadFilters | None = None) -> list[LeadRecord]:
        return await self._run(lambda db: LeadService(db).list_leads(filters))

    async def set_lead_owner(self, lead_id: int, owner_id: int, actor_id: int | None) -> LeadRecord:
        return await self._run(lambda db: LeadService(db).set_owner(lead_id, owner_id, actor_id))

    async def set_lead_stage(self, lead_id: int, stage_id: int, actor_id: int | None) -> LeadRecord:
        return await self._run(lambda db: LeadService(db).set_stage(lead_id, stage_id, actor_id))

    async def fetch_stage_catalog(self) -> list[StageCatalogEntry]:
        return await self._run(lambda db: LeadService(db).list_stages())

    async def upload_for_preview(self, filename: str, content: bytes) -> ImportPreview:
        return await self._run(lambda db: ImportService(db).upload(filename, content))

    async def confirm_import(
        self,
        import_id: str,
        mapping: dict[str, str],
        campaign_id: int,
        actor_label: str | None = None,
    ) -> ImportJobSnapshot:
        request = build_confirm_request(import_id, mapping, campaign_id, actor_label)
        return await self._run(lambda db: ImportService(db, dispatcher=self.dispatcher).confirm(request))

    async def poll_import_job(self, job_id: str) -> ImportJobSnapshot:
        return await self._run(lambda db: ImportService(db).get_job(job_id))
