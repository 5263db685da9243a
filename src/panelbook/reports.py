"""Report importer / regenerator.

Report rows are optional auxiliary data: a row without a board key or a
report id is skipped, and a payload that fails to decode is regenerated
from the record it belongs to.
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from jinja2 import Environment, StrictUndefined

from panelbook.decode import coerce_status
from panelbook.errors import ReportDecodeError
from panelbook.headers import NOT_FOUND
from panelbook.models import UNSET_DATE, LOAD_LABELS, InspectionRecord, Loads, ReportRecord, Status
from panelbook.utils import cell_text, is_blank_row, parse_timestamp, row_value, utcnow

logger = logging.getLogger(__name__)

MAX_CELL_CHARS = 32767
"""Largest text an Excel cell holds."""

STATUS_COLORS: dict[Status, str] = {
    Status.complete: "#10b981",
    Status.in_progress: "#3b82f6",
    Status.pending: "#94a3b8",
}

_REPORT_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>Inspection Report - {{ record.panel_no }}</title>
<style>
body { font-family: sans-serif; background: #f3f4f6; color: #1f2937; padding: 40px 20px; }
.report { max-width: 800px; margin: 0 auto; background: #fff; border-radius: 12px; }
.header { background: #1e293b; color: #fff; padding: 32px; text-align: center; }
.content { padding: 32px; }
.label { font-size: 12px; color: #64748b; text-transform: uppercase; }
.value { font-size: 16px; font-weight: 600; }
.badge { display: inline-block; padding: 6px 12px; border-radius: 6px; color: #fff; background: {{ color }}; }
.memo { background: #f8fafc; padding: 20px; border-left: 4px solid #3b82f6; white-space: pre-wrap; }
.footer { padding: 24px; text-align: center; color: #64748b; font-size: 12px; }
</style>
</head>
<body>
<div class="report">
<div class="header">
<h1>Distribution Board Inspection Report</h1>
<div class="subtitle">Generated on {{ generated_label }}</div>
</div>
<div class="content">
<section>
<h2>Board Information</h2>
<div><span class="label">Board ID</span> <span class="value">{{ record.panel_no }}</span></div>
<div><span class="label">Status</span> <span class="badge">{{ record.status.value }}</span></div>
<div><span class="label">Last Inspection</span> <span class="value">{{ record.last_inspection_date }}</span></div>
{% if record.project_name %}<div><span class="label">Project</span> <span class="value">{{ record.project_name }}</span></div>{% endif %}
{% if record.contractor %}<div><span class="label">Contractor</span> <span class="value">{{ record.contractor }}</span></div>{% endif %}
{% if record.management_number %}<div><span class="label">Management No.</span> <span class="value">{{ record.management_number }}</span></div>{% endif %}
{% if record.inspectors %}<div><span class="label">Inspectors</span> <span class="value">{{ record.inspectors | join(", ") }}</span></div>{% endif %}
</section>
<section>
<h2>Connected Loads</h2>
<div class="value">{{ load_cause }}</div>
<ul>
{% for label, connected in loads %}<li>{{ label }}: {{ "Connected" if connected else "Not connected" }}</li>
{% endfor %}</ul>
</section>
{% if record.memo %}<section>
<h2>Inspection Notes</h2>
<div class="memo">{{ record.memo }}</div>
</section>{% endif %}
</div>
<div class="footer">Report {{ report_id }} &middot; {{ generated_at }}</div>
</div>
</body>
</html>
"""

_env = Environment(autoescape=True, undefined=StrictUndefined)
_template = _env.from_string(_REPORT_TEMPLATE)


# month names stay English whatever the process locale
_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def make_report_id(board_id: str, generated_at: datetime) -> str:
    return f"RPT-{board_id}-{generated_at:%Y%m%d}"


def render_report_html(record: InspectionRecord, generated_at: datetime, report_id: str | None = None) -> str:
    """Render the canonical HTML report for *record*.

    Output depends only on the record's fields, *generated_at* and
    *report_id* (derived from the board and date when omitted).
    """
    return _template.render(
        record=record,
        color=STATUS_COLORS[record.status],
        load_cause=record.loads.describe(),
        loads=[(label, getattr(record.loads, name)) for name, label in LOAD_LABELS.items()],
        generated_label=f"{_MONTHS[generated_at.month - 1]} {generated_at.day}, {generated_at:%Y %H:%M}",
        generated_at=generated_at.isoformat(),
        report_id=report_id or make_report_id(record.panel_no, generated_at),
    )


def generate_report(record: InspectionRecord, now: datetime | None = None) -> ReportRecord:
    """Create a report for a completed inspection.

    Raises
    ------
    ValueError
        If the record is not ``Complete``.
    """
    if record.status is not Status.complete:
        raise ValueError(f"Reports are only generated for completed inspections ({record.panel_no})")
    generated_at = now or utcnow()
    report_id = make_report_id(record.panel_no, generated_at)
    return ReportRecord(
        report_id=report_id,
        board_id=record.panel_no,
        generated_at=generated_at.isoformat(),
        status=record.status,
        html_content=render_report_html(record, generated_at, report_id),
    )


# ── Payload codec ────────────────────────────────────────────────


def decode_html_payload(text: Any) -> str:
    """Decode a base64 HTML cell.

    Raises
    ------
    ReportDecodeError
        If the text is not strict base64, is not UTF-8, or is empty.
    """
    raw = "".join(cell_text(text).split())
    if not raw:
        raise ReportDecodeError("empty payload")
    try:
        html = base64.b64decode(raw, validate=True).decode("utf-8")
    except (binascii.Error, ValueError) as exc:
        raise ReportDecodeError(f"invalid payload: {exc}") from exc
    if not html.strip():
        raise ReportDecodeError("payload decodes to empty content")
    return html


def encode_html_payload(html: str) -> str | None:
    """Return *html* as base64, or ``None`` when it would not fit in one cell."""
    encoded = base64.b64encode(html.encode("utf-8")).decode("ascii")
    if len(encoded) > MAX_CELL_CHARS:
        return None
    return encoded


# ── Report rows ──────────────────────────────────────────────────


def _loads_from_text(text: str) -> Loads:
    lowered = text.lower()
    return Loads(**{name: label.lower() in lowered for name, label in LOAD_LABELS.items()})


def _coerce_row_status(value: Any) -> Status | None:
    if not cell_text(value):
        return None
    return coerce_status(value)


def _stub_record(board_id: str, row: Sequence[Any], columns: Mapping[str, int], status: Status) -> InspectionRecord:
    def cell(name: str) -> Any:
        return row_value(row, columns.get(name, NOT_FOUND))

    return InspectionRecord(
        panel_no=board_id,
        status=status,
        last_inspection_date=cell_text(cell("last_inspection_date")) or UNSET_DATE,
        loads=_loads_from_text(cell_text(cell("load_cause"))),
        memo=cell_text(cell("memo")),
    )


def decode_report_rows(
    rows: Sequence[Sequence[Any]],
    columns: Mapping[str, int],
    records: Sequence[InspectionRecord],
    now: datetime | None = None,
    *,
    first_row_number: int = 2,
) -> tuple[list[ReportRecord], list[str]]:
    """Decode a reports sheet; returns ``(reports, warnings)``.

    *records* is the reconciled working set; it supplies status and the
    regeneration source for rows whose payload is missing or invalid.
    """
    now = now or utcnow()
    by_panel = {record.panel_no: record for record in records}
    reports: list[ReportRecord] = []
    warnings: list[str] = []

    def cell(row: Sequence[Any], name: str) -> Any:
        return row_value(row, columns.get(name, NOT_FOUND))

    for row_number, row in enumerate(rows, start=first_row_number):
        if is_blank_row(row):
            continue
        board_id = cell_text(cell(row, "board_id"))
        report_id = cell_text(cell(row, "report_id"))
        if not board_id or not report_id:
            logger.debug("Reports row %d lacks a board or report id; skipped", row_number)
            continue

        generated = parse_timestamp(cell(row, "generated_at")) or now
        record = by_panel.get(board_id)
        status = _coerce_row_status(cell(row, "status")) or (record.status if record else Status.complete)

        try:
            html = decode_html_payload(cell(row, "html"))
        except ReportDecodeError as exc:
            source = record or _stub_record(board_id, row, columns, status)
            html = render_report_html(source, generated, report_id)
            message = f"Reports row {row_number} ({report_id}): {exc}; report regenerated"
            logger.warning(message)
            warnings.append(message)

        reports.append(
            ReportRecord(
                report_id=report_id,
                board_id=board_id,
                generated_at=generated.isoformat(),
                status=status,
                html_content=html,
            )
        )
    return reports, warnings
