"""Pydantic schemas exchanged with the lead store."""

from leadflow.schemas.bulk import BulkItemResult, BulkPlan, BulkResult
from leadflow.schemas.imports import (
    ConfirmImportRequest,
    ImportJobSnapshot,
    ImportPreview,
    ImportRowError,
    LeadImportRow,
)
from leadflow.schemas.leads import (
    AssignmentRecord,
    LeadCreateRequest,
    LeadFilters,
    LeadRecord,
    StageCatalogEntry,
)

__all__ = [
    "AssignmentRecord",
    "BulkItemResult",
    "BulkPlan",
    "BulkResult",
    "ConfirmImportRequest",
    "ImportJobSnapshot",
    "ImportPreview",
    "ImportRowError",
    "LeadCreateRequest",
    "LeadFilters",
    "LeadImportRow",
    "LeadRecord",
    "StageCatalogEntry",
]
