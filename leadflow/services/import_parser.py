"""Spreadsheet parsing and column mapping for lead imports."""

from __future__ import annotations

import csv
import difflib
import io
import zipfile
from dataclasses import dataclass, field
from pathlib import PurePath

import pandas as pd

from leadflow.core.exceptions import ValidationError
from leadflow.services.status_catalog import normalize_label

HEADER_ROW_NUMBER = 1
SUGGESTION_CUTOFF = 0.8
CSV_SUFFIXES = {".csv", ".txt"}
EXCEL_SUFFIXES = {".xlsx", ".xls"}
CSV_DELIMITERS = ",;\t|"
DEFAULT_DELIMITER = ","
SNIFF_SAMPLE_BYTES = 8192


@dataclass(frozen=True)
class ImportField:
    key: str
    label: str
    required: bool = False
    aliases: tuple[str, ...] = ()

    @property
    def match_keys(self) -> set[str]:
        return {normalize_label(value) for value in (self.key, self.label, *self.aliases)}


IMPORT_FIELDS: tuple[ImportField, ...] = (
    ImportField("document_id", "Document ID", aliases=("dni", "documento", "document", "doc", "nro documento")),
    ImportField("first_name", "First name", required=True, aliases=("nombres", "nombre", "name", "names")),
    ImportField("last_name", "Last name", aliases=("apellidos", "apellido", "surname")),
    ImportField(
        "phone",
        "Phone",
        required=True,
        aliases=("telefono", "celular", "movil", "mobile", "phone number", "numero"),
    ),
    ImportField("email", "Email", aliases=("correo", "correo electronico", "e mail", "mail")),
    ImportField("city", "City", aliases=("ciudad", "distrito", "localidad")),
    ImportField("occupation", "Occupation", aliases=("ocupacion", "profesion", "job title", "cargo")),
    ImportField("notes", "Notes", aliases=("descripcion", "notas", "comentarios", "description", "observaciones")),
)

FIELDS_BY_KEY = {item.key: item for item in IMPORT_FIELDS}
REQUIRED_FIELDS = tuple(item.key for item in IMPORT_FIELDS if item.required)


@dataclass
class ParsedRow:
    row: int
    values: dict[str, str]

    def as_dict(self) -> dict:
        return {"row": self.row, "values": self.values}


@dataclass
class ParsedTable:
    headers: list[str]
    rows: list[ParsedRow] = field(default_factory=list)

    def sample(self, size: int) -> list[dict[str, str]]:
        return [parsed.values for parsed in self.rows[:size]]


def _detect_delimiter(content: bytes, encoding: str) -> str:
    sample = content[:SNIFF_SAMPLE_BYTES].decode(encoding, errors="ignore")
    if len(content) > SNIFF_SAMPLE_BYTES and "\n" in sample:
        # Drop the partial last line.
        sample = sample.rsplit("\n", 1)[0]
    try:
        return csv.Sniffer().sniff(sample, delimiters=CSV_DELIMITERS).delimiter
    except csv.Error:
        return DEFAULT_DELIMITER


def _read_csv(content: bytes, encoding: str) -> pd.DataFrame:
    return pd.read_csv(
        io.BytesIO(content),
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=False,
        sep=_detect_delimiter(content, encoding),
        engine="python",
        encoding=encoding,
    )


def _read_frame(filename: str, content: bytes) -> pd.DataFrame:
    suffix = PurePath(filename or "").suffix.lower()
    if suffix in CSV_SUFFIXES:
        try:
            return _read_csv(content, "utf-8-sig")
        except UnicodeDecodeError:
            return _read_csv(content, "latin-1")
    if suffix in EXCEL_SUFFIXES:
        return pd.read_excel(io.BytesIO(content), dtype=str)
    raise ValidationError(f"Unsupported file type '{suffix or filename}'. Upload a .csv or .xlsx file.")


def parse_table(filename: str, content: bytes) -> ParsedTable:
    """Parse an uploaded table into trimmed string rows.

    Row numbers are 1-based and count the header row, so the first data row
    is row 2. Fully blank rows are skipped but keep their numbering slot.
    """
    if not content:
        raise ValidationError("The uploaded file is empty.")
    try:
        frame = _read_frame(filename, content)
    except pd.errors.EmptyDataError as exc:
        raise ValidationError("The uploaded file is empty.") from exc
    except (pd.errors.ParserError, csv.Error, zipfile.BadZipFile, ValueError) as exc:
        raise ValidationError(f"The uploaded file could not be read: {exc}") from exc

    headers = [
        "" if str(column).startswith("Unnamed:") else str(column).strip()
        for column in frame.columns
    ]
    if not any(headers):
        raise ValidationError("The uploaded file has no header row.")

    frame = frame.fillna("").astype(str)
    frame.columns = headers
    rows: list[ParsedRow] = []
    for index, record in enumerate(frame.itertuples(index=False, name=None)):
        values = {
            header: str(value).strip()
            for header, value in zip(headers, record)
            if header
        }
        if not any(values.values()):
            continue
        rows.append(ParsedRow(row=index + HEADER_ROW_NUMBER + 1, values=values))

    if not rows:
        raise ValidationError("The uploaded file has no data rows.")
    return ParsedTable(headers=[header for header in headers if header], rows=rows)


def _header_score(item: ImportField, header: str) -> float:
    normalized = normalize_label(header)
    if not normalized:
        return 0.0
    if normalized in item.match_keys:
        return 1.0
    return max(difflib.SequenceMatcher(None, normalized, key).ratio() for key in item.match_keys)


def suggest_mapping(headers: list[str]) -> dict[str, str]:
    """Best-effort `field -> header` mapping; each header is used at most once."""
    candidates: list[tuple[float, int, str, str]] = []
    for order, item in enumerate(IMPORT_FIELDS):
        for header in headers:
            score = _header_score(item, header)
            if score >= SUGGESTION_CUTOFF:
                candidates.append((score, -order, item.key, header))

    mapping: dict[str, str] = {}
    used_headers: set[str] = set()
    for _score, _order, key, header in sorted(candidates, reverse=True):
        if key in mapping or header in used_headers:
            continue
        mapping[key] = header
        used_headers.add(header)
    return {item.key: mapping[item.key] for item in IMPORT_FIELDS if item.key in mapping}


def missing_required_fields(mapping: dict[str, str]) -> list[str]:
    return [key for key in REQUIRED_FIELDS if not (mapping.get(key) or "").strip()]


def validate_mapping(mapping: dict[str, str], headers: list[str]) -> None:
    """Raise ValidationError when required fields or mapped headers are missing."""
    unknown_fields = sorted(key for key in mapping if key not in FIELDS_BY_KEY)
    if unknown_fields:
        raise ValidationError(f"Unknown import fields: {', '.join(unknown_fields)}.")

    missing = missing_required_fields(mapping)
    if missing:
        raise ValidationError(
            "Map every required field before confirming.",
            missing_fields=missing,
        )

    available = set(headers)
    absent = [header for header in mapping.values() if header and header not in available]
    if absent:
        raise ValidationError(
            "Mapped columns are not present in the uploaded file.",
            issues=[f"unknown column '{header}'" for header in absent],
        )


def build_template_csv() -> str:
    return pd.DataFrame(columns=[item.label for item in IMPORT_FIELDS]).to_csv(index=False)
