"""Identifier generation helpers."""

from __future__ import annotations

import uuid


def new_import_id() -> str:
    """Create a UUID4-based upload identifier."""
    return str(uuid.uuid4())


def new_job_id() -> str:
    return f"job-{uuid.uuid4().hex}"


def new_trace_id() -> str:
    return uuid.uuid4().hex
