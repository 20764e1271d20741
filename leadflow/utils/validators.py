"""Deterministic validators and sanitizers for lead contact data."""

from __future__ import annotations

import re

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_LOCAL_MOBILE_RE = re.compile(r"^(\+?51)?9\d{8}$")
_GENERIC_PHONE_RE = re.compile(r"^\+?[0-9\s-]{6,15}$")
_DOCUMENT_ID_RE = re.compile(r"^\d{8}$")


def sanitize_text(value: str | None, max_len: int = 20000) -> str:
    """Sanitize free-form content before persistence/display."""
    if value is None:
        return ""
    cleaned = str(value).replace("\x00", "").strip()
    cleaned = cleaned[:max_len]
    return cleaned


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email.strip()))


def is_valid_phone(phone: str | None) -> bool:
    """Blank phones are accepted; presence is checked by the caller."""
    if not phone:
        return True
    trimmed = phone.strip()
    return bool(_LOCAL_MOBILE_RE.match(trimmed) or _GENERIC_PHONE_RE.match(trimmed))


def is_valid_document_id(document_id: str) -> bool:
    return bool(_DOCUMENT_ID_RE.match(document_id.strip()))
