"""I/O helpers — read workbooks, write artifacts, persist the working set."""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from panelbook.models import InspectionRecord, ReportRecord

DATASET_VERSION = 1

# ── Loading ──────────────────────────────────────────────────────


def read_bytes(path: Path) -> bytes:
    """Return the contents of *path*.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If *path* is a directory.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    if path.is_dir():
        raise ValueError(f"Expected a file, got a directory: {path}")
    return path.read_bytes()


def load_dataset(path: Path) -> tuple[list[InspectionRecord], list[ReportRecord]]:
    """Load a working set written by :func:`write_dataset`.

    A missing file is an empty working set.

    Raises
    ------
    ValueError
        If the file is not valid JSON or a record fails validation.
    """
    path = Path(path)
    if not path.exists():
        return [], []
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Dataset {path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"Dataset {path} must be a JSON object")

    try:
        records = [InspectionRecord.from_dict(item) for item in payload.get("records", [])]
        reports = [ReportRecord.from_dict(item) for item in payload.get("reports", [])]
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Dataset {path} has an invalid entry: {exc}") from exc
    return records, reports


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path


def write_bytes(path: Path, data: bytes) -> Path:
    """Write *data* to *path* via a temporary sibling, then swap it in."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.stem}.tmp{path.suffix}")
    tmp_path.write_bytes(data)
    tmp_path.replace(path)
    return path


def write_dataset(
    path: Path, records: Sequence[InspectionRecord], reports: Sequence[ReportRecord]
) -> Path:
    """Persist the working set as JSON; record order is preserved."""
    return write_json(
        path,
        {
            "version": DATASET_VERSION,
            "records": [r.to_dict() for r in records],
            "reports": [r.to_dict() for r in reports],
        },
    )
