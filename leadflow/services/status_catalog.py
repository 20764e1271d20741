"""Canonical stage catalog and free-text status resolution.

Every label coming from the store, the board or a spreadsheet goes through
`resolve()`. Alias tables live only in this module; other modules compare
stages by `Stage` value (the canonical key), never by raw label.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from leadflow.core.enums import Stage
from leadflow.core.exceptions import ConfigurationError, LeadflowError
from leadflow.core.logging import LogContext, build_log_event
from leadflow.schemas.leads import LeadRecord, StageCatalogEntry

if TYPE_CHECKING:
    from leadflow.services.lead_gateway import LeadGateway

logger = logging.getLogger(__name__)

_PARENTHETICAL_RE = re.compile(r"\s*\(.*?\)")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class StageDefinition:
    stage: Stage
    label: str
    catalog_id: int
    aliases: tuple[str, ...] = ()
    terminal: bool = False


STAGE_DEFINITIONS: tuple[StageDefinition, ...] = (
    StageDefinition(
        Stage.PENDING,
        "Pending",
        1,
        ("pendiente", "pendiente sin asignar", "pendiente (sin asignar)", "sin asignar", "unassigned", "new"),
    ),
    StageDefinition(Stage.ASSIGNED, "Assigned", 2, ("asignado", "asignada")),
    StageDefinition(
        Stage.CONTACTED,
        "Contacted",
        3,
        ("contactado", "contactar", "contactado nuevamente", "contactado otra vez"),
    ),
    StageDefinition(
        Stage.IN_PROGRESS,
        "In Progress",
        4,
        ("en gestion", "gestion", "en gestion comercial", "in progress", "working"),
    ),
    StageDefinition(
        Stage.CALL_BACK,
        "Call Back",
        7,
        ("volver a llamar", "llamar de nuevo", "reintentar llamada", "callback"),
    ),
    StageDefinition(
        Stage.APPOINTMENT_PENDING,
        "Appointment Pending",
        8,
        ("cita pendiente", "cita programada", "pendiente de cita", "appointment scheduled"),
    ),
    StageDefinition(
        Stage.APPOINTMENT_DONE,
        "Appointment Done",
        9,
        ("cita concretada", "cita realizada", "cita confirmada", "appointment completed"),
    ),
    StageDefinition(
        Stage.NO_ANSWER,
        "No Answer",
        10,
        ("no contesta", "sin contestar", "no responde", "unreachable"),
    ),
    StageDefinition(Stage.FOLLOW_UP, "Follow Up", 11, ("seguimiento", "followup")),
    StageDefinition(Stage.WON, "Won", 6, ("ganado", "ganada", "vendido", "closed won"), terminal=True),
    StageDefinition(Stage.OTHER_PRODUCT, "Other Product", 12, ("otro producto", "producto alterno")),
    StageDefinition(Stage.LOST, "Lost", 5, ("perdido", "perdida", "closed lost"), terminal=True),
    StageDefinition(
        Stage.NOT_INTERESTED,
        "Not Interested",
        13,
        ("no desea", "no interesado", "no desea continuar"),
    ),
    StageDefinition(Stage.DISQUALIFIED, "Disqualified", 14, ("no califica", "no calificado")),
    StageDefinition(
        Stage.UNCATEGORIZED,
        "Uncategorized",
        15,
        (
            "otros (no catalogados)",
            "otros",
            "otro",
            "no catalogado",
            "no catalogados",
            "sin estado",
            "sin clasificar",
            "sin categoria",
            "other",
        ),
    ),
)

INITIAL_STAGE = Stage.PENDING
ASSIGNED_STAGE = Stage.ASSIGNED
FALLBACK_STAGE = Stage.UNCATEGORIZED


def normalize_label(value: object) -> str:
    """Fold a free-text label into its lookup form.

    Diacritics are stripped, parenthetical qualifiers dropped, punctuation
    collapsed to single spaces and the result case-folded.
    """
    if value is None:
        return ""
    if isinstance(value, Stage):
        value = value.value
    text = unicodedata.normalize("NFD", str(value))
    text = "".join(char for char in text if not unicodedata.combining(char))
    text = _PARENTHETICAL_RE.sub("", text)
    text = _NON_ALNUM_RE.sub(" ", text.casefold())
    return text.strip()


def _build_indexes(
    definitions: Iterable[StageDefinition],
) -> tuple[dict[str, Stage], dict[str, Stage], dict[Stage, StageDefinition]]:
    canonical: dict[str, Stage] = {}
    aliases: dict[str, Stage] = {}
    by_stage: dict[Stage, StageDefinition] = {}
    for definition in definitions:
        by_stage[definition.stage] = definition
        for key in (normalize_label(definition.label), normalize_label(definition.stage.value)):
            canonical[key] = definition.stage
    for definition in definitions:
        for alias in definition.aliases:
            key = normalize_label(alias)
            owner = canonical.get(key) or aliases.get(key)
            if owner is not None and owner != definition.stage:
                raise ConfigurationError(
                    f"Alias '{alias}' maps to both {owner.value} and {definition.stage.value}"
                )
            aliases[key] = definition.stage
    if set(by_stage) != set(Stage):
        missing = sorted(stage.value for stage in set(Stage) - set(by_stage))
        raise ConfigurationError(f"Stage catalog is missing definitions for: {', '.join(missing)}")
    return canonical, aliases, by_stage


_CANONICAL_INDEX, _ALIAS_INDEX, _DEFINITIONS = _build_indexes(STAGE_DEFINITIONS)


def resolve(label: str | Stage | None) -> Stage:
    """Resolve any status label to exactly one canonical stage."""
    if isinstance(label, Stage):
        return label
    key = normalize_label(label)
    if not key:
        return FALLBACK_STAGE
    return _CANONICAL_INDEX.get(key) or _ALIAS_INDEX.get(key) or FALLBACK_STAGE


def is_known_label(label: str | Stage | None) -> bool:
    """True when `label` names a stage directly or through an alias.

    `resolve()` sends unknown text to Uncategorized; callers acting on user
    input check this first.
    """
    if isinstance(label, Stage):
        return True
    key = normalize_label(label)
    return bool(key) and (key in _CANONICAL_INDEX or key in _ALIAS_INDEX)


def canonical_key(label: str | Stage | None) -> str:
    return resolve(label).value


def definition_for(stage: Stage) -> StageDefinition:
    return _DEFINITIONS[stage]


def is_terminal(stage: Stage) -> bool:
    return _DEFINITIONS[stage].terminal


def fallback_entries() -> list[StageCatalogEntry]:
    return [StageCatalogEntry(id=item.catalog_id, label=item.label) for item in STAGE_DEFINITIONS]


class StatusCatalog:
    """Maps canonical stages onto the store's stage ids and labels."""

    def __init__(self, entries: Iterable[StageCatalogEntry] | None = None) -> None:
        self._entries = list(entries or [])
        self._stage_by_id: dict[int, Stage] = {}
        self._entry_by_stage: dict[Stage, StageCatalogEntry] = {}
        for entry in self._entries:
            stage = resolve(entry.label)
            self._stage_by_id[entry.id] = stage
            self._entry_by_stage.setdefault(stage, entry)

    @classmethod
    def fallback(cls) -> "StatusCatalog":
        return cls(fallback_entries())

    @classmethod
    def from_remote(cls, entries: Iterable[StageCatalogEntry]) -> "StatusCatalog":
        materialized = list(entries)
        if not materialized:
            return cls.fallback()
        return cls(materialized)

    @property
    def entries(self) -> list[StageCatalogEntry]:
        return list(self._entries)

    @property
    def stages(self) -> list[Stage]:
        """Board column order."""
        return [definition.stage for definition in STAGE_DEFINITIONS]

    def resolve(self, label: str | Stage | None) -> Stage:
        return resolve(label)

    def is_known(self, label: str | Stage | None) -> bool:
        """Known canonical label, alias, or a label of the store's own catalog."""
        if is_known_label(label):
            return True
        key = normalize_label(label)
        return bool(key) and any(normalize_label(entry.label) == key for entry in self._entries)

    def stage_id(self, stage: Stage) -> int:
        entry = self._entry_by_stage.get(stage)
        if entry is not None:
            return entry.id
        return definition_for(stage).catalog_id

    def stage_for_id(self, stage_id: int | None) -> Stage:
        if stage_id is None:
            return INITIAL_STAGE
        if stage_id in self._stage_by_id:
            return self._stage_by_id[stage_id]
        for definition in STAGE_DEFINITIONS:
            if definition.catalog_id == stage_id and not self._entries:
                return definition.stage
        return FALLBACK_STAGE

    def label_for(self, stage: Stage) -> str:
        entry = self._entry_by_stage.get(stage)
        return entry.label if entry is not None else definition_for(stage).label

    def lead_stage(self, lead: LeadRecord) -> Stage:
        """Authoritative stage of a lead; a lead without any stage is Pending."""
        if lead.stage_label and lead.stage_label.strip():
            return resolve(lead.stage_label)
        if lead.stage_id is not None:
            return self.stage_for_id(lead.stage_id)
        return INITIAL_STAGE


async def load_catalog(gateway: "LeadGateway") -> StatusCatalog:
    """Fetch the remote catalog, falling back to the hardcoded one on failure."""
    try:
        entries = await gateway.fetch_stage_catalog()
    except LeadflowError as exc:
        logger.warning(
            "catalog.fetch.fallback",
            extra=build_log_event(
                "catalog.fetch.fallback",
                LogContext(),
                error_type=exc.__class__.__name__,
                error=str(exc),
            ),
        )
        return StatusCatalog.fallback()
    return StatusCatalog.from_remote(entries)
