"""Import summary persistence."""

from __future__ import annotations

from pathlib import Path

from panelbook.io import write_json
from panelbook.models import ImportSummary
from panelbook.utils import utcnow_iso


def write_import_summary(
    out_dir: Path,
    summary: ImportSummary,
    *,
    source: str = "",
    sha256: str = "",
) -> Path:
    """Write ``import_summary.json`` into *out_dir* and return the path."""
    payload = summary.to_dict()
    payload["message"] = summary.message()
    payload["source"] = source
    payload["sha256"] = sha256
    payload["created_at_utc"] = utcnow_iso()
    return write_json(Path(out_dir) / "import_summary.json", payload)
