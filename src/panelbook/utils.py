"""Shared helpers — cell text, hashing, timestamps."""

from __future__ import annotations

import hashlib
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

import pandas as pd


def cell_text(value: Any) -> str:
    """Return the trimmed text of a cell value (``""`` for empty cells)."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    return str(value).strip()


def row_value(row: Sequence[Any], idx: int) -> Any:
    """Return ``row[idx]``, or ``None`` when *idx* is unresolved or out of range."""
    if idx < 0 or idx >= len(row):
        return None
    return row[idx]


def is_blank_row(row: Sequence[Any]) -> bool:
    return all(cell_text(v) == "" for v in row)


def sha256_bytes(data: bytes) -> str:
    """Return the hex SHA-256 digest of *data*."""
    return hashlib.sha256(data).hexdigest()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utcnow_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return utcnow().isoformat()


def parse_timestamp(value: Any) -> datetime | None:
    """Parse *value* leniently into an aware UTC datetime (``None`` if unparseable)."""
    if value is None or cell_text(value) == "":
        return None
    parsed = pd.to_datetime(value if isinstance(value, datetime) else cell_text(value), errors="coerce", utc=True)
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()
