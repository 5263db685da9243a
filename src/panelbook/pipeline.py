"""Import / export orchestration — bytes and records in, records and bytes out.

Nothing here touches the filesystem. Every function works on copies of
the caller's working set and returns new lists; an aborted import leaves
the inputs exactly as they were.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import datetime
from io import BytesIO
from typing import Any
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook.workbook import Workbook

from panelbook import SUPPORTED_FORMAT_VERSION
from panelbook.decode import decode_breaker_rows, decode_inspection_rows
from panelbook.errors import FormatError
from panelbook.headers import (
    BREAKER_ALIASES,
    INSPECTION_ALIASES,
    PHOTO_ALIASES,
    REPORT_ALIASES,
    SHEET_ALIASES,
    AliasTable,
    find_sheet,
    resolve_columns,
    with_extra_aliases,
)
from panelbook.media import SITE, THERMAL, collect_panel_images, to_data_url
from panelbook.merge import merge_records, merge_reports
from panelbook.models import (
    Breaker,
    ExportResult,
    ImageAnchor,
    ImportResult,
    ImportSummary,
    InspectionRecord,
    ReportRecord,
    ThermalImage,
)
from panelbook.reports import decode_report_rows
from panelbook.summary import compute_load_summary, status_counts
from panelbook.utils import utcnow
from panelbook.versioning import ConfirmVersion, check_format_version
from panelbook.writer import build_workbook

logger = logging.getLogger(__name__)

__all__ = [
    "compute_load_summary",
    "export_workbook",
    "import_workbook",
    "locate_sheets",
    "status_counts",
]

_AUXILIARY = ("meta", "breakers", "photos", "reports")


# ── Workbook access ──────────────────────────────────────────────


def open_workbook(data: bytes) -> Workbook:
    """Parse ``.xlsx`` bytes.

    Raises
    ------
    FormatError
        If *data* is not a readable workbook.
    """
    try:
        return load_workbook(BytesIO(data), data_only=True)
    except (BadZipFile, InvalidFileException, KeyError, OSError, ValueError) as exc:
        raise FormatError(f"Not a readable .xlsx workbook: {exc}") from exc


def locate_sheets(sheetnames: Sequence[str]) -> dict[str, str | None]:
    """Map each logical sheet to an actual sheet name (``None`` when absent).

    Auxiliary sheets are matched first so the inspection sheet lookup can
    never claim one of them. Without a name match, the first remaining sheet
    holds the inspections.

    Raises
    ------
    FormatError
        If no sheet can hold the inspections.
    """
    located: dict[str, str | None] = {}
    for key in _AUXILIARY:
        taken = [name for name in located.values() if name]
        located[key] = find_sheet(sheetnames, SHEET_ALIASES[key], exclude=taken)

    taken = [name for name in located.values() if name]
    inspections = find_sheet(sheetnames, SHEET_ALIASES["inspections"], exclude=taken)
    if inspections is None:
        remaining = [name for name in sheetnames if name not in taken]
        if not remaining:
            raise FormatError("No inspection sheet found in workbook")
        inspections = remaining[0]
        logger.info("No inspection sheet matched by name; using %r", inspections)
    located["inspections"] = inspections
    return located


def _sheet_rows(wb: Workbook, name: str) -> list[tuple[Any, ...]]:
    return list(wb[name].iter_rows(values_only=True))


def _optional_columns_warning(sheet: str, missing: Sequence[str]) -> list[str]:
    return [f"Sheet {sheet!r}: optional column(s) not found: {', '.join(missing)}"] if missing else []


# ── Import stages ────────────────────────────────────────────────


def _decode_breakers(
    wb: Workbook, sheet: str | None, aliases: AliasTable
) -> tuple[dict[str, list[Breaker]], list[str]]:
    if sheet is None:
        return {}, []
    rows = _sheet_rows(wb, sheet)
    if not rows:
        return {}, []
    try:
        columns, missing = resolve_columns(rows[0], aliases, required=("panel_no",), sheet=sheet)
    except FormatError as exc:
        logger.warning("Breakers ignored: %s", exc)
        return {}, [f"Breakers ignored: {exc}"]
    grouped, warnings = decode_breaker_rows(rows[1:], columns)
    return grouped, _optional_columns_warning(sheet, missing) + warnings


def _attach_images(
    records: list[InspectionRecord], images: Mapping[str, Mapping[str, ImageAnchor]]
) -> tuple[list[InspectionRecord], int]:
    attached: list[InspectionRecord] = []
    bound = 0
    for record in records:
        slots = images.get(record.panel_no)
        if not slots:
            attached.append(record)
            continue
        changes: dict[str, Any] = {}
        if SITE in slots:
            changes["photo_url"] = to_data_url(slots[SITE])
        if THERMAL in slots:
            thermal = record.thermal_image or ThermalImage()
            changes["thermal_image"] = replace(thermal, image_url=to_data_url(slots[THERMAL]))
        bound += len(changes)
        attached.append(replace(record, **changes))
    return attached, bound


def _bind_photos(
    wb: Workbook, sheet: str | None, aliases: AliasTable, records: list[InspectionRecord]
) -> tuple[list[InspectionRecord], int, list[str]]:
    if sheet is None:
        return records, 0, []
    ws = wb[sheet]
    header = next(ws.iter_rows(max_row=1, values_only=True), ())
    try:
        columns, _missing = resolve_columns(header, aliases, required=("panel_no",), sheet=sheet)
    except FormatError as exc:
        logger.warning("Photos ignored: %s", exc)
        return records, 0, [f"Photos ignored: {exc}"]
    images, diagnostics = collect_panel_images(ws, columns)
    attached, bound = _attach_images(records, images)
    return attached, bound, diagnostics


def _import_reports(
    wb: Workbook,
    sheet: str | None,
    aliases: AliasTable,
    records: Sequence[InspectionRecord],
    now: datetime,
) -> tuple[list[ReportRecord], list[str]]:
    if sheet is None:
        return [], []
    rows = _sheet_rows(wb, sheet)
    if not rows:
        return [], []
    columns, missing = resolve_columns(rows[0], aliases, sheet=sheet)
    decoded, warnings = decode_report_rows(rows[1:], columns, records, now)
    return decoded, _optional_columns_warning(sheet, missing) + warnings


# ── Public API ───────────────────────────────────────────────────


def import_workbook(
    data: bytes,
    records: Sequence[InspectionRecord] = (),
    reports: Sequence[ReportRecord] = (),
    *,
    confirm_version: ConfirmVersion | None = None,
    extra_aliases: Mapping[str, Sequence[str]] | None = None,
    now: datetime | None = None,
) -> ImportResult:
    """Decode *data* and reconcile it into the caller's working set.

    Raises
    ------
    FormatError
        If the bytes are not a workbook or the inspection sheet lacks its
        key column.
    VersionMismatch
        If the declared format version differs and was not confirmed.
    """
    now = now or utcnow()
    wb = open_workbook(data)
    warnings: list[str] = []

    declared = check_format_version(wb, confirm_version)
    if declared is not None and declared != SUPPORTED_FORMAT_VERSION:
        warnings.append(f"Imported format version {declared} (supported: {SUPPORTED_FORMAT_VERSION})")

    sheets = locate_sheets(wb.sheetnames)
    inspection_sheet = sheets["inspections"]
    if inspection_sheet is None:
        raise FormatError("No inspection sheet found in workbook")
    rows = _sheet_rows(wb, inspection_sheet)
    if not rows:
        raise FormatError(f"Sheet {inspection_sheet!r} is empty (no header row)")

    columns, missing = resolve_columns(
        rows[0],
        with_extra_aliases(INSPECTION_ALIASES, extra_aliases),
        required=("panel_no",),
        sheet=inspection_sheet,
    )
    warnings.extend(_optional_columns_warning(inspection_sheet, missing))

    breakers, breaker_warnings = _decode_breakers(
        wb, sheets["breakers"], with_extra_aliases(BREAKER_ALIASES, extra_aliases)
    )
    warnings.extend(breaker_warnings)

    decoded, failures = decode_inspection_rows(rows[1:], columns, breakers)
    decoded, images_bound, media_warnings = _bind_photos(
        wb, sheets["photos"], with_extra_aliases(PHOTO_ALIASES, extra_aliases), decoded
    )
    warnings.extend(media_warnings)

    merged = merge_records(records, decoded)

    imported_reports, report_warnings = _import_reports(
        wb, sheets["reports"], with_extra_aliases(REPORT_ALIASES, extra_aliases), merged, now
    )
    warnings.extend(report_warnings)
    merged_reports = merge_reports(reports, imported_reports)

    summary = ImportSummary(
        rows_in=len(decoded) + len(failures),
        imported=len(decoded),
        failures=failures,
        warnings=warnings,
        reports_imported=len(imported_reports),
        images_bound=images_bound,
        format_version=declared,
    )
    logger.info(
        "Imported %d record(s), %d failed row(s), %d report(s), %d image(s)",
        summary.imported,
        summary.skipped,
        summary.reports_imported,
        summary.images_bound,
    )
    return ImportResult(records=merged, reports=merged_reports, summary=summary)


def export_workbook(
    records: Sequence[InspectionRecord],
    reports: Sequence[ReportRecord] = (),
    *,
    now: datetime | None = None,
) -> ExportResult:
    """Render the working set as a workbook; see :func:`panelbook.writer.build_workbook`."""
    result = build_workbook(records, reports, now or utcnow())
    logger.info(
        "Exported %d record(s), %d report(s), %d embedded site photo(s)",
        len(records),
        len(reports),
        len(result.embedded_photo_panels),
    )
    return result
