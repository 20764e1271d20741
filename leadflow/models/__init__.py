"""SQLAlchemy models for the local lead store."""

from leadflow.models.base import Base
from leadflow.models.campaign import Campaign
from leadflow.models.import_job import ImportJob, ImportUpload
from leadflow.models.lead import Lead, LeadAssignment
from leadflow.models.stage import LeadStage

__all__ = [
    "Base",
    "Campaign",
    "ImportJob",
    "ImportUpload",
    "Lead",
    "LeadAssignment",
    "LeadStage",
]
