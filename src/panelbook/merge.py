"""Reconciliation — upsert decoded records and reports into the working set.

Pure functions: inputs are never mutated, a new list is always returned.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import datetime, timezone

from panelbook.models import InspectionRecord, ReportRecord
from panelbook.utils import parse_timestamp

PROTECTED_FIELDS: tuple[str, ...] = ("photo_url",)
"""Fields kept from the existing record unless the incoming one supplies a value."""

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _is_unset(value: object) -> bool:
    return value is None or value == ""


def reconcile_record(
    existing: InspectionRecord,
    incoming: InspectionRecord,
    protected: Sequence[str] = PROTECTED_FIELDS,
) -> InspectionRecord:
    """Return *incoming* with protected fields carried over from *existing*."""
    carried = {
        name: getattr(existing, name)
        for name in protected
        if _is_unset(getattr(incoming, name)) and not _is_unset(getattr(existing, name))
    }
    return replace(incoming, **carried) if carried else incoming


def dedupe_records(records: Iterable[InspectionRecord]) -> list[InspectionRecord]:
    """Keep one record per ``panel_no``: the last occurrence wins."""
    unique: dict[str, InspectionRecord] = {}
    for record in records:
        unique[record.panel_no] = record
    return list(unique.values())


def merge_records(
    existing: Sequence[InspectionRecord],
    incoming: Iterable[InspectionRecord],
    protected: Sequence[str] = PROTECTED_FIELDS,
) -> list[InspectionRecord]:
    """Upsert *incoming* into *existing* by ``panel_no``.

    Known keys are replaced field by field (except *protected* fields the
    incoming record leaves empty), unknown keys are appended, and a final
    dedup pass guarantees one live record per key. Applying the same
    *incoming* batch twice gives the same result as applying it once.
    """
    merged = list(existing)
    index = {record.panel_no: pos for pos, record in enumerate(merged)}

    for record in incoming:
        pos = index.get(record.panel_no)
        if pos is None:
            index[record.panel_no] = len(merged)
            merged.append(record)
        else:
            merged[pos] = reconcile_record(merged[pos], record, protected)

    return dedupe_records(merged)


def merge_reports(
    existing: Iterable[ReportRecord], incoming: Iterable[ReportRecord]
) -> list[ReportRecord]:
    """Merge reports keyed by ``report_id``; a later entry replaces an earlier one."""
    by_id: dict[str, ReportRecord] = {}
    for report in [*existing, *incoming]:
        by_id[report.report_id] = report
    return list(by_id.values())


def latest_reports(reports: Iterable[ReportRecord]) -> list[ReportRecord]:
    """Return the newest report per ``board_id``, in first-seen board order."""
    newest: dict[str, tuple[datetime, ReportRecord]] = {}
    for report in reports:
        stamp = parse_timestamp(report.generated_at) or _EPOCH
        current = newest.get(report.board_id)
        if current is None or stamp >= current[0]:
            newest[report.board_id] = (stamp, report)
    return [report for _stamp, report in newest.values()]
