"""Workbook writer — renders the working set as one interchange document."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from datetime import datetime, timezone
from io import BytesIO
from typing import Any

from openpyxl import Workbook
from openpyxl.drawing.image import Image as XLImage
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from panelbook import FORMAT_VERSION, SUPPORTED_FORMAT_VERSION, __version__
from panelbook.media import parse_data_url
from panelbook.models import BREAKER_FIELDS, ExportResult, InspectionRecord, ReportRecord
from panelbook.reports import encode_html_payload
from panelbook.summary import compute_load_summary
from panelbook.utils import utcnow

logger = logging.getLogger(__name__)

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

TITLE_FONT = Font(name="Calibri", bold=True, size=14, color="2F5496")
SECTION_FONT = Font(name="Calibri", bold=True, size=12, color="2F5496")
LABEL_FONT = Font(name="Calibri", bold=True, size=11)
VALUE_FONT = Font(name="Calibri", size=11)
NOTE_FONT = Font(name="Calibri", italic=True, size=10, color="595959")

LABEL_FILL = PatternFill(start_color="D6E4F0", end_color="D6E4F0", fill_type="solid")
NOTE_FILL = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")

_THIN = Side(style="thin", color="A6A6A6")
GRID_BORDER = Border(left=_THIN, right=_THIN, top=_THIN, bottom=_THIN)
WRAP_ALIGN = Alignment(vertical="center", wrap_text=True)

NUMBER_FMT = "#,##0.##"
PCT_FMT = '0.00"%"'

META_SHEET = "Meta"
INSPECTION_SHEET = "검사 현황 (Inspection Status)"
BREAKER_SHEET = "Breakers (차단기)"
PHOTO_SHEET = "Photos"
REPORT_SHEET = "Reports"

PHOTO_ROW_HEIGHT = 120
PHOTO_SIZE = (200, 150)
SITE_PHOTO_LABEL = "현장사진"
THERMAL_PHOTO_LABEL = "열화상 이미지"

_EXCEL_FORMULA_PREFIXES = ("=", "+", "-", "@")
_SHEET_NAME_RE = re.compile(r"[\[\]:*?/\\]")
_MAX_SHEET_NAME = 31

# ── Column layouts: (header, width) ──────────────────────────────

INSPECTION_COLUMNS: tuple[tuple[str, int], ...] = (
    ("PNL NO.", 15),
    ("검사 현황", 12),
    ("점검일", 18),
    ("용접기", 8),
    ("연삭기", 8),
    ("조명", 8),
    ("펌프", 8),
    ("부하 원인", 25),
    ("점검 조치 사항", 30),
    ("X 좌표 (%)", 12),
    ("Y 좌표 (%)", 12),
    ("공사명", 20),
    ("시공사", 16),
    ("관리번호", 14),
    ("점검자", 18),
    ("열화상 측정기", 14),
    ("측정 온도 (°C)", 12),
    ("최대 온도 (°C)", 12),
    ("최소 온도 (°C)", 12),
    ("방사율", 8),
    ("측정 시간", 18),
    ("상별 부하 합계 A [VA]", 14),
    ("상별 부하 합계 B [VA]", 14),
    ("상별 부하 합계 C [VA]", 14),
    ("총 연결 부하 합계 [VA]", 16),
    ("상별 부하 분담 A [%]", 14),
    ("상별 부하 분담 B [%]", 14),
    ("상별 부하 분담 C [%]", 14),
)

BREAKER_COLUMNS: tuple[tuple[str, int], ...] = (
    ("PNL NO.", 15),
    ("차단기 번호", 10),
    ("구분", 8),
    ("차단기 용량 (A)", 12),
    ("부하명", 20),
    ("형식", 8),
    ("종류", 8),
    ("L1 (A)", 9),
    ("L2 (A)", 9),
    ("L3 (A)", 9),
    ("R (VA)", 10),
    ("S (VA)", 10),
    ("T (VA)", 10),
    ("N (VA)", 10),
)

PHOTO_COLUMNS: tuple[tuple[str, int], ...] = (
    ("PNL NO.", 15),
    ("사진 종류", 15),
    ("사진", 30),
    ("사진 존재 여부", 15),
)

REPORT_COLUMNS: tuple[tuple[str, int], ...] = (
    ("PNL NO.", 15),
    ("Report ID", 25),
    ("보고서 생성일", 22),
    ("상태", 12),
    ("마지막 점검일", 20),
    ("부하 원인", 30),
    ("점검 조치 사항", 40),
    ("HTML (Base64)", 40),
)

# Detail sheet: columns A..M, one per breaker field; A also holds the grid labels.
DETAIL_WIDTHS: tuple[int, ...] = (24, 9, 11, 20, 8, 9, 9, 9, 9, 10, 10, 10, 10)
DETAIL_LAST_COL = len(BREAKER_FIELDS)

_BREAKER_SINGLE_HEADERS = ("차단기 번호", "구분", "차단기 용량 (A)", "부하명", "형식", "종류")
_BREAKER_GROUPS = (
    ("Current (A)", ("L1", "L2", "L3")),
    ("Load Capacity (VA)", ("R", "S", "T", "N")),
)

THERMAL_DESCRIPTION = (
    "열화상 카메라로 분전함 내부 온도 분포를 측정하여 단자 및 차단기의 과열 여부를 확인함. "
    "Thermal imaging of the panel interior to check terminals and breakers for overheating."
)


# ── Helpers ──────────────────────────────────────────────────────


def _excel_value(val: Any) -> Any:
    if isinstance(val, datetime) and val.tzinfo:
        return val.astimezone(timezone.utc).replace(tzinfo=None)
    return val


def _put(ws: Worksheet, row: int, col: int, value: Any, font: Font | None = VALUE_FONT) -> Any:
    cell = ws.cell(row=row, column=col, value=_excel_value(value))
    if isinstance(value, str) and value.lstrip()[:1] in _EXCEL_FORMULA_PREFIXES:
        # keep user text as text; openpyxl would store "=..." as a formula
        cell.data_type = "s"
    if font is not None:
        cell.font = font
    return cell


def _style_header(ws: Worksheet, ncols: int, row: int = 1) -> None:
    for c in range(1, ncols + 1):
        cell = ws.cell(row=row, column=c)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN


def _write_table(ws: Worksheet, columns: Sequence[tuple[str, int]], rows: Sequence[Sequence[Any]]) -> None:
    for c_idx, (header, width) in enumerate(columns, 1):
        ws.cell(row=1, column=c_idx, value=header)
        ws.column_dimensions[get_column_letter(c_idx)].width = width
    for r_idx, values in enumerate(rows, 2):
        for c_idx, value in enumerate(values, 1):
            _put(ws, r_idx, c_idx, value, font=None)
    _style_header(ws, len(columns))
    ws.freeze_panes = "A2"
    if rows:
        ws.auto_filter.ref = ws.dimensions


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def _format_percent(value: float) -> str:
    return f"{value:g}%"


def sanitize_sheet_title(name: str) -> str:
    cleaned = _SHEET_NAME_RE.sub("_", name).strip("'").strip()
    return (cleaned or "Sheet")[:_MAX_SHEET_NAME]


def _unique_sheet_title(wb: Workbook, base_name: str) -> str:
    existing = {title.lower() for title in wb.sheetnames}
    if base_name.lower() not in existing:
        return base_name

    suffix = 1
    while True:
        suffix_str = f" ({suffix})"
        candidate = f"{base_name[: _MAX_SHEET_NAME - len(suffix_str)]}{suffix_str}"
        if candidate.lower() not in existing:
            return candidate
        suffix += 1


def suggested_filename(now: datetime | None = None) -> str:
    """File name the CLI uses for an export, e.g. ``panel_inspections_v1.0_2024-05-01.xlsx``."""
    stamp = (now or utcnow()).date().isoformat()
    return f"panel_inspections_v{FORMAT_VERSION}_{stamp}.xlsx"


# ── Detail sheet ─────────────────────────────────────────────────


def _merge_value_row(ws: Worksheet, row: int, label: str, value: Any) -> None:
    lbl = _put(ws, row, 1, label, LABEL_FONT)
    lbl.fill = LABEL_FILL
    lbl.border = GRID_BORDER
    val = _put(ws, row, 2, value)
    val.alignment = WRAP_ALIGN
    for c in range(2, DETAIL_LAST_COL + 1):
        ws.cell(row=row, column=c).border = GRID_BORDER
    ws.merge_cells(start_row=row, start_column=2, end_row=row, end_column=DETAIL_LAST_COL)


def _section_title(ws: Worksheet, row: int, title: str) -> None:
    _put(ws, row, 1, title, SECTION_FONT)
    ws.merge_cells(start_row=row, start_column=1, end_row=row, end_column=DETAIL_LAST_COL)


def _write_metadata_block(ws: Worksheet, record: InspectionRecord, row: int) -> int:
    _section_title(ws, row, "기본 정보 (Panel Information)")
    row += 1
    grid = (
        ("공사명 (Project)", record.project_name),
        ("시공사 (Contractor)", record.contractor),
        ("관리번호 (Management No.)", record.management_number),
        ("분전함 번호 (PNL NO.)", record.panel_no),
        ("점검자 (Inspectors)", ", ".join(record.inspectors)),
        ("검사 현황 (Status)", record.status.value),
        ("점검일 (Inspection Date)", record.last_inspection_date),
        ("부하 원인 (Load Cause)", record.loads.describe()),
        ("점검 조치 사항 (Memo)", record.memo),
    )
    for label, value in grid:
        _merge_value_row(ws, row, label, value)
        row += 1
    return row


def _write_breaker_block(ws: Worksheet, record: InspectionRecord, row: int) -> int:
    _section_title(ws, row, "차단기 상세 (Breakers)")
    top = row + 1
    sub = top + 1

    _style_header(ws, DETAIL_LAST_COL, top)
    _style_header(ws, DETAIL_LAST_COL, sub)
    col = 1
    for header in _BREAKER_SINGLE_HEADERS:
        ws.cell(row=top, column=col, value=header)
        ws.merge_cells(start_row=top, start_column=col, end_row=sub, end_column=col)
        col += 1
    for group, members in _BREAKER_GROUPS:
        ws.cell(row=top, column=col, value=group)
        for offset, member in enumerate(members):
            ws.cell(row=sub, column=col + offset, value=member)
        ws.merge_cells(start_row=top, start_column=col, end_row=top, end_column=col + len(members) - 1)
        col += len(members)

    row = sub + 1
    if not record.breakers:
        _put(ws, row, 1, "등록된 차단기 없음 (No breakers recorded)", NOTE_FONT)
        ws.merge_cells(start_row=row, start_column=1, end_row=row, end_column=DETAIL_LAST_COL)
        return row + 1

    for breaker in record.breakers:
        for c_idx, name in enumerate(BREAKER_FIELDS, 1):
            cell = _put(ws, row, c_idx, getattr(breaker, name))
            cell.border = GRID_BORDER
            if isinstance(cell.value, float):
                cell.number_format = NUMBER_FMT
        row += 1
    return row


def _write_thermal_block(ws: Worksheet, record: InspectionRecord, row: int) -> int:
    _section_title(ws, row, "열화상 측정 (Thermal Measurement)")
    row += 1
    thermal = record.thermal_image
    measured = thermal is not None
    rows = (
        ("측정기 (Equipment)", thermal.equipment if thermal else "KT-352"),
        ("측정 온도 (°C)", thermal.temperature if measured else "-"),
        ("최대 온도 (°C)", thermal.max_temp if measured else "-"),
        ("최소 온도 (°C)", thermal.min_temp if measured else "-"),
        ("방사율 (Emissivity)", thermal.emissivity if measured else "-"),
        ("측정 시간 (Measured At)", (thermal.measurement_time or "-") if thermal else "-"),
    )
    for label, value in rows:
        _merge_value_row(ws, row, label, value)
        row += 1
    note = _put(ws, row, 1, THERMAL_DESCRIPTION, NOTE_FONT)
    note.fill = NOTE_FILL
    note.alignment = WRAP_ALIGN
    ws.merge_cells(start_row=row, start_column=1, end_row=row, end_column=DETAIL_LAST_COL)
    ws.row_dimensions[row].height = 32
    return row + 1


def _write_summary_block(ws: Worksheet, record: InspectionRecord, row: int) -> int:
    _section_title(ws, row, "부하 합계 (Load Summary)")
    row += 1
    summary = record.load_summary or compute_load_summary(record.breakers)

    for c_idx, header in enumerate(("구분", "A상", "B상", "C상", "합계 (Total)"), 1):
        _put(ws, row, c_idx, header, None)
    _style_header(ws, 5, row)
    row += 1

    body = (
        ("상별 부하 합계 [VA]", summary.phase_sum_a, summary.phase_sum_b, summary.phase_sum_c, summary.total, NUMBER_FMT),
        ("상별 부하 분담 [%]", summary.share_a, summary.share_b, summary.share_c, None, PCT_FMT),
    )
    for label, a, b, c, total, fmt in body:
        lbl = _put(ws, row, 1, label, LABEL_FONT)
        lbl.fill = LABEL_FILL
        for c_idx, value in enumerate((a, b, c, total), 2):
            cell = _put(ws, row, c_idx, value)
            cell.border = GRID_BORDER
            if value is not None:
                cell.number_format = fmt
        row += 1
    return row


def write_inspection_sheet(ws: Worksheet, record: InspectionRecord) -> None:
    """Render one record as a detail sheet.

    Sections, top to bottom: metadata grid, breaker table with a two-row
    header, thermal block, load summary. The layout depends only on the
    record.
    """
    _put(ws, 1, 1, f"분전함 점검 기록 (Panel Inspection) - {record.panel_no}", TITLE_FONT)
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=DETAIL_LAST_COL)

    row = _write_metadata_block(ws, record, 3)
    row = _write_breaker_block(ws, record, row + 1)
    row = _write_thermal_block(ws, record, row + 1)
    _write_summary_block(ws, record, row + 1)

    for c_idx, width in enumerate(DETAIL_WIDTHS, 1):
        ws.column_dimensions[get_column_letter(c_idx)].width = width


# ── Table sheets ─────────────────────────────────────────────────


def _write_meta(wb: Workbook, records: Sequence[InspectionRecord], reports: Sequence[ReportRecord], now: datetime) -> None:
    ws = wb.create_sheet(title=META_SHEET)
    rows = (
        ("포맷 버전 (Format Version)", FORMAT_VERSION),
        ("지원 포맷 버전 (Supported)", SUPPORTED_FORMAT_VERSION),
        ("내보낸 시각 (Exported At)", now.isoformat()),
        ("분전함 수 (Panels)", len(records)),
        ("보고서 수 (Reports)", len(reports)),
        ("Generator", f"panelbook {__version__}"),
    )
    for r_idx, (label, value) in enumerate(rows, 1):
        _put(ws, r_idx, 1, label, LABEL_FONT)
        _put(ws, r_idx, 2, value)
    ws.column_dimensions["A"].width = 28
    ws.column_dimensions["B"].width = 30


def _inspection_row(record: InspectionRecord) -> list[Any]:
    thermal = record.thermal_image
    summary = record.load_summary
    position = record.position
    return [
        record.panel_no,
        record.status.value,
        record.last_inspection_date,
        _yes_no(record.loads.welder),
        _yes_no(record.loads.grinder),
        _yes_no(record.loads.light),
        _yes_no(record.loads.pump),
        record.loads.describe(),
        record.memo,
        _format_percent(position.x) if position else "",
        _format_percent(position.y) if position else "",
        record.project_name,
        record.contractor,
        record.management_number,
        ", ".join(record.inspectors),
        thermal.equipment if thermal else "",
        thermal.temperature if thermal else "",
        thermal.max_temp if thermal else "",
        thermal.min_temp if thermal else "",
        thermal.emissivity if thermal else "",
        thermal.measurement_time if thermal else "",
        *(
            [
                summary.phase_sum_a,
                summary.phase_sum_b,
                summary.phase_sum_c,
                summary.total,
                summary.share_a,
                summary.share_b,
                summary.share_c,
            ]
            if summary
            else [""] * 7
        ),
    ]


def _breaker_rows(records: Sequence[InspectionRecord]) -> list[list[Any]]:
    return [
        [record.panel_no, *(getattr(breaker, name) for name in BREAKER_FIELDS)]
        for record in records
        for breaker in record.breakers
    ]


def _embed_photo(ws: Worksheet, row: int, url: str) -> str | None:
    """Anchor the image at ``C{row}``; returns a failure reason or ``None``."""
    parsed = parse_data_url(url)
    if parsed is None:
        return "not embedded"
    data, _ext = parsed
    try:
        img = XLImage(BytesIO(data))
    except (OSError, ValueError) as exc:
        return f"load failed: {exc}"
    img.width, img.height = PHOTO_SIZE
    ws.add_image(img, f"C{row}")
    ws.row_dimensions[row].height = PHOTO_ROW_HEIGHT
    return None


def _write_photos(wb: Workbook, records: Sequence[InspectionRecord]) -> tuple[list[str], list[str]]:
    """Write the Photos sheet; returns ``(panels with an embedded site photo, warnings)``."""
    ws = wb.create_sheet(title=PHOTO_SHEET)
    _write_table(ws, PHOTO_COLUMNS, [])
    ws.row_dimensions[1].height = 20

    embedded: list[str] = []
    warnings: list[str] = []
    row = 2
    for record in records:
        slots = []
        if record.photo_url:
            slots.append((SITE_PHOTO_LABEL, record.photo_url))
        if record.thermal_image and record.thermal_image.image_url:
            slots.append((THERMAL_PHOTO_LABEL, record.thermal_image.image_url))

        if not slots:
            for c_idx, value in enumerate((record.panel_no, "-", "", "No"), 1):
                _put(ws, row, c_idx, value, None)
            row += 1
            continue

        for label, url in slots:
            _put(ws, row, 1, record.panel_no, None)
            _put(ws, row, 2, label, None)
            failure = _embed_photo(ws, row, url)
            if failure is None:
                _put(ws, row, 4, "Yes", None)
                if label == SITE_PHOTO_LABEL:
                    embedded.append(record.panel_no)
            else:
                _put(ws, row, 4, f"No ({failure})", None)
                message = f"{label} for {record.panel_no} {failure}"
                logger.warning("Photo skipped: %s", message)
                warnings.append(message)
            row += 1

    if row > 2:
        ws.auto_filter.ref = ws.dimensions
    return embedded, warnings


def _write_reports(wb: Workbook, reports: Sequence[ReportRecord], records: Sequence[InspectionRecord]) -> list[str]:
    ws = wb.create_sheet(title=REPORT_SHEET)
    by_panel = {record.panel_no: record for record in records}
    rows: list[list[Any]] = []
    warnings: list[str] = []
    for report in reports:
        record = by_panel.get(report.board_id)
        payload = encode_html_payload(report.html_content) if report.html_content else None
        if report.html_content and payload is None:
            message = f"Report {report.report_id} is too large for one cell; it will be regenerated on import"
            logger.warning(message)
            warnings.append(message)
        rows.append(
            [
                report.board_id,
                report.report_id,
                report.generated_at,
                report.status.value,
                record.last_inspection_date if record else "",
                record.loads.describe() if record else "",
                record.memo if record else "",
                payload or "",
            ]
        )
    _write_table(ws, REPORT_COLUMNS, rows)
    return warnings


# ── Public API ───────────────────────────────────────────────────


def build_workbook(
    records: Sequence[InspectionRecord],
    reports: Sequence[ReportRecord] = (),
    now: datetime | None = None,
) -> ExportResult:
    """Render the working set as ``.xlsx`` bytes.

    Sheet order: Meta, inspection status, breakers, one detail sheet per
    panel, then Photos and Reports when there is something to put in them.
    """
    now = now or utcnow()

    wb = Workbook()
    active_sheet = wb.active
    if active_sheet is not None:
        wb.remove(active_sheet)
    wb.properties.creator = f"panelbook {__version__}"
    wb.properties.created = _excel_value(now)

    _write_meta(wb, records, reports, now)
    _write_table(wb.create_sheet(title=INSPECTION_SHEET), INSPECTION_COLUMNS, [_inspection_row(r) for r in records])
    _write_table(wb.create_sheet(title=BREAKER_SHEET), BREAKER_COLUMNS, _breaker_rows(records))

    for record in records:
        title = _unique_sheet_title(wb, sanitize_sheet_title(f"PNL {record.panel_no}"))
        write_inspection_sheet(wb.create_sheet(title=title), record)

    embedded: list[str] = []
    warnings: list[str] = []
    has_photos = any(r.photo_url or (r.thermal_image and r.thermal_image.image_url) for r in records)
    if has_photos:
        embedded, photo_warnings = _write_photos(wb, records)
        warnings.extend(photo_warnings)
    if reports:
        warnings.extend(_write_reports(wb, reports, records))

    buf = BytesIO()
    wb.save(buf)
    logger.debug("Workbook built: %d panel(s), %d report(s), %d photo(s) embedded", len(records), len(reports), len(embedded))
    return ExportResult(content=buf.getvalue(), embedded_photo_panels=embedded, warnings=warnings)
