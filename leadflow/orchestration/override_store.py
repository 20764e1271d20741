"""In-memory store of unconfirmed, optimistically rendered stage changes."""

from __future__ import annotations

from collections.abc import Iterable
from threading import Lock

from leadflow.schemas.leads import LeadRecord
from leadflow.services.status_catalog import StatusCatalog


class OverrideStore:
    """Per-lead proposed stage labels, never persisted.

    Writes for one lead id come from a single mutation flow at a time; the
    lock only protects the map itself for readers on other threads.
    """

    def __init__(self) -> None:
        self._overrides: dict[int, str] = {}
        self._lock = Lock()

    def propose(self, lead_id: int, stage_label: str) -> None:
        with self._lock:
            self._overrides[lead_id] = stage_label

    def confirm(self, lead_id: int) -> str | None:
        with self._lock:
            return self._overrides.pop(lead_id, None)

    def rollback(self, lead_id: int, previous_stage_label: str) -> None:
        with self._lock:
            self._overrides[lead_id] = previous_stage_label

    def get(self, lead_id: int) -> str | None:
        with self._lock:
            return self._overrides.get(lead_id)

    def snapshot(self) -> dict[int, str]:
        with self._lock:
            return dict(self._overrides)

    def __contains__(self, lead_id: object) -> bool:
        with self._lock:
            return lead_id in self._overrides

    def __len__(self) -> int:
        with self._lock:
            return len(self._overrides)

    def reconcile(self, leads: Iterable[LeadRecord], catalog: StatusCatalog) -> list[int]:
        """Retire overrides the authoritative data has caught up with.

        An override goes away when its lead is gone from the authoritative
        set or when the lead's stage now resolves to the proposed stage.
        Returns the retired lead ids.
        """
        by_id = {lead.id: lead for lead in leads}
        retired: list[int] = []
        with self._lock:
            for lead_id, label in list(self._overrides.items()):
                lead = by_id.get(lead_id)
                if lead is None or catalog.lead_stage(lead) == catalog.resolve(label):
                    del self._overrides[lead_id]
                    retired.append(lead_id)
        return retired
