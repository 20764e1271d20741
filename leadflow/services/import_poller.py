"""Client side of the import pipeline: upload, confirm and progress polling."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from leadflow.core.config import get_config
from leadflow.core.exceptions import TransientError
from leadflow.core.logging import LogContext, build_log_event
from leadflow.schemas.imports import ImportJobSnapshot, ImportPreview
from leadflow.services.import_parser import validate_mapping
from leadflow.services.lead_gateway import LeadGateway

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[ImportJobSnapshot], None]


class ImportPoller:
    """Polls a job until it reaches a terminal status.

    Polling only reads snapshots. `stop()` detaches the observer; the job
    keeps running wherever it executes.
    """

    def __init__(self, gateway: LeadGateway, interval: float | None = None) -> None:
        self.gateway = gateway
        self.interval = interval if interval is not None else get_config().IMPORT_POLL_INTERVAL_SECONDS
        self._stopped = asyncio.Event()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def stop(self) -> None:
        self._stopped.set()

    async def _poll(self, job_id: str) -> ImportJobSnapshot | None:
        try:
            return await self.gateway.poll_import_job(job_id)
        except TransientError as exc:
            logger.warning(
                "import.poll.failed",
                extra=build_log_event(
                    "import.poll.failed",
                    LogContext(job_id=job_id),
                    error=str(exc),
                ),
            )
            return None

    async def _sleep(self) -> None:
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            pass

    async def watch(
        self,
        job_id: str,
        on_update: SnapshotCallback | None = None,
    ) -> ImportJobSnapshot | None:
        """Follow a job and return its final report.

        Once a terminal status is seen the snapshot is fetched exactly once
        more and returned. Returns the last snapshot seen when stopped early.
        """
        self._stopped.clear()
        last: ImportJobSnapshot | None = None

        while not self.stopped:
            snapshot = await self._poll(job_id)
            if snapshot is not None:
                last = snapshot
                if on_update is not None:
                    on_update(snapshot)
                if snapshot.is_terminal:
                    final = await self._poll(job_id) or snapshot
                    if on_update is not None and final is not snapshot:
                        on_update(final)
                    logger.info(
                        "import.poll.finished",
                        extra=build_log_event(
                            "import.poll.finished",
                            LogContext(job_id=job_id),
                            status=final.status.value,
                            created_count=final.created,
                            failed=final.failed,
                        ),
                    )
                    return final
            await self._sleep()

        logger.info(
            "import.poll.detached",
            extra=build_log_event("import.poll.detached", LogContext(job_id=job_id)),
        )
        return last


class ImportPipeline:
    """Upload, map, confirm and follow an import through a gateway.

    The mapping is checked against the preview before the confirm request
    is sent.
    """

    def __init__(self, gateway: LeadGateway, poller: ImportPoller | None = None) -> None:
        self.gateway = gateway
        self.poller = poller or ImportPoller(gateway)

    async def upload(self, filename: str, content: bytes) -> ImportPreview:
        return await self.gateway.upload_for_preview(filename, content)

    async def confirm(
        self,
        preview: ImportPreview,
        mapping: dict[str, str],
        campaign_id: int,
        actor_label: str | None = None,
    ) -> ImportJobSnapshot:
        mapping = {field: header for field, header in mapping.items() if header and header.strip()}
        validate_mapping(mapping, preview.headers)
        return await self.gateway.confirm_import(preview.import_id, mapping, campaign_id, actor_label)

    async def run(
        self,
        filename: str,
        content: bytes,
        campaign_id: int,
        mapping: dict[str, str] | None = None,
        actor_label: str | None = None,
        on_update: SnapshotCallback | None = None,
    ) -> ImportJobSnapshot | None:
        """Upload, confirm with `mapping` (or the suggested one) and wait for the report."""
        preview = await self.upload(filename, content)
        job = await self.confirm(preview, mapping or preview.suggested_mapping, campaign_id, actor_label)
        return await self.poller.watch(job.job_id, on_update=on_update)

    def stop(self) -> None:
        self.poller.stop()
