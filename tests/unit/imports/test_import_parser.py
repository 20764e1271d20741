from __future__ import annotations

import io

import pandas as pd
import pytest

from leadflow.core.exceptions import ValidationError
from leadflow.services.import_parser import (
    IMPORT_FIELDS,
    build_template_csv,
    missing_required_fields,
    parse_table,
    suggest_mapping,
    validate_mapping,
)

CSV = (
    "DNI,Nombres,Apellidos,Teléfono,Correo,Ciudad\n"
    "12345678,Lucia,Quispe,987654321,lucia@example.com,Lima\n"
    ",,,,,\n"
    "87654321, Mateo ,Rojas,912345678,,Cusco\n"
).encode("utf-8")


def test_parse_csv_trims_and_skips_blank_rows_keeping_numbers():
    table = parse_table("leads.csv", CSV)
    assert table.headers == ["DNI", "Nombres", "Apellidos", "Teléfono", "Correo", "Ciudad"]
    assert [row.row for row in table.rows] == [2, 4]
    assert table.rows[1].values["Nombres"] == "Mateo"
    assert table.rows[1].values["Correo"] == ""


def test_parse_semicolon_csv_in_latin1():
    content = "Nombres;Teléfono\nAna;987654321\n".encode("latin-1")
    table = parse_table("export.csv", content)
    assert table.headers == ["Nombres", "Teléfono"]
    assert table.rows[0].values == {"Nombres": "Ana", "Teléfono": "987654321"}


def test_parse_xlsx():
    buffer = io.BytesIO()
    pd.DataFrame({"Nombres": ["Ana", "Luis"], "Celular": ["987654321", "912345678"]}).to_excel(buffer, index=False)
    table = parse_table("leads.xlsx", buffer.getvalue())
    assert table.headers == ["Nombres", "Celular"]
    assert [row.row for row in table.rows] == [2, 3]
    assert table.rows[1].values["Celular"] == "912345678"


@pytest.mark.parametrize(
    ("filename", "content"),
    [
        ("leads.csv", b""),
        ("leads.csv", b"Nombres,Telefono\n"),
        ("leads.pdf", b"%PDF-1.4"),
        ("leads.xlsx", b"not a zip file"),
    ],
)
def test_parse_rejects_unusable_files(filename, content):
    with pytest.raises(ValidationError):
        parse_table(filename, content)


def test_suggest_mapping_matches_spanish_and_english_headers():
    mapping = suggest_mapping(["DNI", "Nombres", "Apellidos", "Teléfono", "E-mail", "Ciudad", "Notas"])
    assert mapping == {
        "document_id": "DNI",
        "first_name": "Nombres",
        "last_name": "Apellidos",
        "phone": "Teléfono",
        "email": "E-mail",
        "city": "Ciudad",
        "notes": "Notas",
    }


def test_suggest_mapping_is_fuzzy_but_uses_each_header_once():
    mapping = suggest_mapping(["Telefonos", "First Name", "Last Name", "Random"])
    assert mapping["phone"] == "Telefonos"
    assert mapping["first_name"] == "First Name"
    assert mapping["last_name"] == "Last Name"
    assert "Random" not in mapping.values()
    assert len(set(mapping.values())) == len(mapping)


def test_missing_required_fields_lists_unmapped_required_fields():
    assert missing_required_fields({"first_name": "Nombres"}) == ["phone"]
    assert missing_required_fields({"first_name": " ", "phone": ""}) == ["first_name", "phone"]


def test_validate_mapping_reports_missing_fields():
    with pytest.raises(ValidationError) as excinfo:
        validate_mapping({"email": "Correo"}, ["Correo"])
    assert excinfo.value.missing_fields == ["first_name", "phone"]


def test_validate_mapping_rejects_unknown_headers_and_fields():
    with pytest.raises(ValidationError) as excinfo:
        validate_mapping({"first_name": "Nombres", "phone": "Movil"}, ["Nombres", "Telefono"])
    assert excinfo.value.issues == ["unknown column 'Movil'"]

    with pytest.raises(ValidationError):
        validate_mapping({"first_name": "Nombres", "phone": "Telefono", "age": "Edad"}, ["Nombres", "Telefono"])


def test_template_lists_every_field_label():
    header = build_template_csv().strip().splitlines()[0]
    assert header.split(",") == [field.label for field in IMPORT_FIELDS]


@pytest.mark.parametrize(
    ("content", "header", "values"),
    [
        (b"Telefono\n987654321\n", "Telefono", ["987654321"]),
        (b"Nombres\nAna\nLuis\n", "Nombres", ["Ana", "Luis"]),
    ],
)
def test_parse_single_column_csv_keeps_header_and_values(content, header, values):
    table = parse_table("x.csv", content)
    assert table.headers == [header]
    assert [row.values[header] for row in table.rows] == values


def test_parse_pipe_and_tab_delimited_csv():
    assert parse_table("a.csv", b"Nombres|Telefono\nAna|987654321\n").headers == ["Nombres", "Telefono"]
    assert parse_table("b.txt", b"Nombres\tTelefono\nAna\t987654321\n").headers == ["Nombres", "Telefono"]


def test_template_headers_map_back_to_every_field():
    headers = build_template_csv().strip().splitlines()[0].split(",")
    assert suggest_mapping(headers) == {field.key: field.label for field in IMPORT_FIELDS}
