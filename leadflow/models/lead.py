"""Lead and assignment model module."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leadflow.models.base import AuditMixin, Base, utcnow
from leadflow.models.stage import LeadStage


class Lead(Base, AuditMixin):
    __tablename__ = "leads"
    __table_args__ = (Index("idx_leads_campaign_stage", "campaign_id", "stage_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str | None] = mapped_column(String(255))
    last_name: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(40))
    email: Mapped[str | None] = mapped_column(String(320))
    document_id: Mapped[str | None] = mapped_column(String(20))
    city: Mapped[str | None] = mapped_column(String(120))
    occupation: Mapped[str | None] = mapped_column(String(120))
    notes: Mapped[str | None] = mapped_column(Text)
    origin: Mapped[str | None] = mapped_column(String(60))
    campaign_id: Mapped[int | None] = mapped_column(ForeignKey("campaigns.id", ondelete="SET NULL"))
    stage_id: Mapped[int | None] = mapped_column(ForeignKey("lead_stages.id"))

    stage: Mapped[LeadStage | None] = relationship(lazy="joined")
    assignments: Mapped[list["LeadAssignment"]] = relationship(
        back_populates="lead",
        order_by="LeadAssignment.id",
        lazy="selectin",
    )

    @property
    def stage_label(self) -> str | None:
        return self.stage.label if self.stage is not None else None

    @property
    def active_assignment(self) -> "LeadAssignment | None":
        return next((assignment for assignment in self.assignments if assignment.active), None)


class LeadAssignment(Base):
    """Ownership history row; deactivated on reassignment, never deleted."""

    __tablename__ = "lead_assignments"
    __table_args__ = (Index("idx_lead_assignments_lead_active", "lead_id", "active"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    actor_id: Mapped[int | None] = mapped_column(Integer)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    lead: Mapped[Lead] = relationship(back_populates="assignments")
