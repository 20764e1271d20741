from __future__ import annotations

from collections.abc import Callable

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from leadflow.core.enums import Stage
from leadflow.core.exceptions import TransientError
from leadflow.models import Base
from leadflow.schemas.leads import LeadCreateRequest, LeadRecord
from leadflow.services.import_executor import ImportExecutor
from leadflow.services.lead_gateway import LeadGateway, LocalLeadGateway
from leadflow.services.lead_service import LeadService
from leadflow.services.status_catalog import definition_for


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'leadflow_test.db'}",
        connect_args={"check_same_thread": False},
    )
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )
    Base.metadata.create_all(bind=engine)
    with TestingSessionLocal() as db:
        LeadService(db).seed_stage_catalog()
    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def campaign_id(session_factory) -> int:
    with session_factory() as db:
        return LeadService(db).create_campaign("Spring campaign").id


@pytest.fixture
def make_lead(session_factory) -> Callable[..., LeadRecord]:
    """Create a lead, optionally owned and moved to a stage."""

    def _make(
        first_name: str = "Ana",
        owner_id: int | None = None,
        stage: Stage | None = None,
        campaign_id: int | None = None,
    ) -> LeadRecord:
        with session_factory() as db:
            service = LeadService(db)
            record = service.create_lead(
                LeadCreateRequest(first_name=first_name, phone="987654321", campaign_id=campaign_id)
            )
            if owner_id is not None:
                record = service.set_owner(record.id, owner_id, actor_id=1)
            if stage is not None:
                record = service.set_stage(record.id, definition_for(stage).catalog_id, actor_id=1)
            return record

    return _make


@pytest.fixture
def run_job(session_factory) -> Callable[[str], object]:
    def _run(job_id: str):
        return ImportExecutor(session_factory=session_factory, flush_every=1).run(job_id)

    return _run


@pytest.fixture
def gateway(session_factory, run_job) -> LocalLeadGateway:
    return LocalLeadGateway(session_factory=session_factory, dispatcher=run_job)


class FlakyGateway(LeadGateway):
    """Delegates to a real gateway, failing chosen calls on demand."""

    def __init__(self, inner: LeadGateway) -> None:
        self.inner = inner
        self.owner_failures: dict[int, Exception] = {}
        self.stage_failures: dict[int, Exception] = {}
        self.poll_failures: list[Exception] = []
        self.catalog_failure: Exception | None = None
        self.calls: list[tuple] = []

    async def fetch_leads(self, filters=None):
        self.calls.append(("fetch_leads",))
        return await self.inner.fetch_leads(filters)

    async def set_lead_owner(self, lead_id, owner_id, actor_id):
        self.calls.append(("set_lead_owner", lead_id, owner_id))
        if lead_id in self.owner_failures:
            raise self.owner_failures[lead_id]
        return await self.inner.set_lead_owner(lead_id, owner_id, actor_id)

    async def set_lead_stage(self, lead_id, stage_id, actor_id):
        self.calls.append(("set_lead_stage", lead_id, stage_id))
        if lead_id in self.stage_failures:
            raise self.stage_failures[lead_id]
        return await self.inner.set_lead_stage(lead_id, stage_id, actor_id)

    async def fetch_stage_catalog(self):
        self.calls.append(("fetch_stage_catalog",))
        if self.catalog_failure is not None:
            raise self.catalog_failure
        return await self.inner.fetch_stage_catalog()

    async def upload_for_preview(self, filename, content):
        self.calls.append(("upload_for_preview", filename))
        return await self.inner.upload_for_preview(filename, content)

    async def confirm_import(self, import_id, mapping, campaign_id, actor_label=None):
        self.calls.append(("confirm_import", import_id))
        return await self.inner.confirm_import(import_id, mapping, campaign_id, actor_label)

    async def poll_import_job(self, job_id):
        self.calls.append(("poll_import_job", job_id))
        if self.poll_failures:
            raise self.poll_failures.pop(0)
        return await self.inner.poll_import_job(job_id)

    def mutation_calls(self) -> list[tuple]:
        return [call for call in self.calls if call[0] in {"set_lead_owner", "set_lead_stage"}]


@pytest.fixture
def flaky_gateway(gateway) -> FlakyGateway:
    return FlakyGateway(gateway)


@pytest.fixture
def transient_error() -> TransientError:
    return TransientError("Lead store unreachable: connection reset")
