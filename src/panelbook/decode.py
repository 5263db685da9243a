"""Row decoder — raw sheet rows in, validated records out.

Decoding is total per row: every optional field degrades to a default, and
the only rejection is a missing natural key. Anything a row throws is
recorded as a failure for that row and decoding moves on.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping, Sequence
from typing import Any

from panelbook.errors import RowDecodeError
from panelbook.headers import NOT_FOUND, normalize_header
from panelbook.models import (
    BREAKER_NUMBER_FIELDS,
    BREAKER_TEXT_FIELDS,
    UNSET_DATE,
    Breaker,
    InspectionRecord,
    LoadSummary,
    Loads,
    Position,
    RowFailure,
    Status,
    ThermalImage,
)
from panelbook.utils import cell_text, is_blank_row, row_value

logger = logging.getLogger(__name__)

AFFIRMATIVE = "yes"

_STATUS_ALIASES: dict[Status, tuple[str, ...]] = {
    Status.complete: ("complete", "completed", "완료"),
    Status.in_progress: ("in progress", "inprogress", "in-progress", "진행 중", "진행중"),
    Status.pending: ("pending", "대기", "미점검"),
}

_THOUSANDS_COMMA_RE = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d+)?$")
_DECIMAL_COMMA_RE = re.compile(r"^[+-]?\d+,\d{1,2}$")
_LIST_SPLIT_RE = re.compile(r"[,;\n]")

_THERMAL_COLUMNS: dict[str, str] = {
    "equipment": "thermal_equipment",
    "temperature": "thermal_temperature",
    "max_temp": "thermal_max_temp",
    "min_temp": "thermal_min_temp",
    "emissivity": "thermal_emissivity",
    "measurement_time": "thermal_time",
}

_SUMMARY_COLUMNS: dict[str, str] = {
    "phase_sum_a": "phase_sum_a",
    "phase_sum_b": "phase_sum_b",
    "phase_sum_c": "phase_sum_c",
    "total": "total_load",
    "share_a": "share_a",
    "share_b": "share_b",
    "share_c": "share_c",
}


# ── Cell coercion ────────────────────────────────────────────────


def _normalize_numeric_token(token: str) -> str:
    token = token.strip()
    if token.endswith("%"):
        token = token[:-1].strip()
    token = re.sub(r"(?<=\d)\s+(?=\d)", "", token)
    if _THOUSANDS_COMMA_RE.fullmatch(token):
        return token.replace(",", "")
    if _DECIMAL_COMMA_RE.fullmatch(token):
        return token.replace(",", ".")
    return token


def parse_number(value: Any) -> float | None:
    """Return *value* as a finite float, or ``None`` when it is not one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    else:
        token = _normalize_numeric_token(cell_text(value))
        if not token:
            return None
        try:
            result = float(token)
        except ValueError:
            return None
    return result if math.isfinite(result) else None


def _number_or(value: Any, default: float) -> float:
    parsed = parse_number(value)
    return default if parsed is None else parsed


def coerce_status(value: Any) -> Status:
    """Map a status cell onto :class:`Status`; unknown values become ``Pending``."""
    text = normalize_header(value)
    for status, aliases in _STATUS_ALIASES.items():
        if text in aliases:
            return status
    return Status.pending


def parse_flag(value: Any) -> bool:
    """A load flag is set iff the cell text contains the affirmative token."""
    return AFFIRMATIVE in cell_text(value).lower()


def parse_position(x_value: Any, y_value: Any) -> Position:
    """Decode a ``"25.5%"``-style coordinate pair, falling back to the centre."""
    x = parse_number(x_value)
    y = parse_number(y_value)
    if x is None or y is None or not (0.0 <= x <= 100.0 and 0.0 <= y <= 100.0):
        return Position.centered()
    return Position(x, y)


def split_list(value: Any) -> list[str]:
    return [part.strip() for part in _LIST_SPLIT_RE.split(cell_text(value)) if part.strip()]


# ── Inspection rows ──────────────────────────────────────────────


def _cell(row: Sequence[Any], columns: Mapping[str, int], name: str) -> Any:
    return row_value(row, columns.get(name, NOT_FOUND))


def _resolved(columns: Mapping[str, int], name: str) -> bool:
    return columns.get(name, NOT_FOUND) != NOT_FOUND


def _decode_thermal(row: Sequence[Any], columns: Mapping[str, int]) -> ThermalImage | None:
    cells = {name: _cell(row, columns, col) for name, col in _THERMAL_COLUMNS.items()}
    if all(cell_text(v) == "" for v in cells.values()):
        return None
    defaults = ThermalImage()
    return ThermalImage(
        temperature=_number_or(cells["temperature"], defaults.temperature),
        max_temp=_number_or(cells["max_temp"], defaults.max_temp),
        min_temp=_number_or(cells["min_temp"], defaults.min_temp),
        emissivity=_number_or(cells["emissivity"], defaults.emissivity),
        equipment=(
            cell_text(cells["equipment"])
            if _resolved(columns, "thermal_equipment")
            else defaults.equipment
        ),
        measurement_time=cell_text(cells["measurement_time"]),
    )


def _decode_load_summary(row: Sequence[Any], columns: Mapping[str, int]) -> LoadSummary | None:
    cells = {name: _cell(row, columns, col) for name, col in _SUMMARY_COLUMNS.items()}
    if all(cell_text(v) == "" for v in cells.values()):
        return None
    return LoadSummary(**{name: _number_or(value, 0.0) for name, value in cells.items()})


def decode_inspection_row(
    row: Sequence[Any],
    columns: Mapping[str, int],
    row_number: int,
    breakers_by_panel: Mapping[str, list[Breaker]] | None = None,
) -> InspectionRecord:
    """Decode one inspection-sheet row.

    Raises
    ------
    RowDecodeError
        If the natural-key cell is missing or empty.
    """
    panel_no = cell_text(_cell(row, columns, "panel_no"))
    if not panel_no:
        raise RowDecodeError(row_number, "missing PNL NO.")

    if _resolved(columns, "position_x") and _resolved(columns, "position_y"):
        position = parse_position(_cell(row, columns, "position_x"), _cell(row, columns, "position_y"))
    else:
        position = Position.centered()

    breakers = breakers_by_panel.get(panel_no, []) if breakers_by_panel else []

    return InspectionRecord(
        panel_no=panel_no,
        status=coerce_status(_cell(row, columns, "status")),
        last_inspection_date=cell_text(_cell(row, columns, "date")) or UNSET_DATE,
        loads=Loads(
            welder=parse_flag(_cell(row, columns, "welder")),
            grinder=parse_flag(_cell(row, columns, "grinder")),
            light=parse_flag(_cell(row, columns, "light")),
            pump=parse_flag(_cell(row, columns, "pump")),
        ),
        photo_url=None,
        memo=cell_text(_cell(row, columns, "memo")),
        position=position,
        breakers=[Breaker(**b.to_dict()) for b in breakers],
        thermal_image=_decode_thermal(row, columns),
        load_summary=_decode_load_summary(row, columns),
        project_name=cell_text(_cell(row, columns, "project_name")),
        contractor=cell_text(_cell(row, columns, "contractor")),
        management_number=cell_text(_cell(row, columns, "management_number")),
        inspectors=split_list(_cell(row, columns, "inspectors")),
    )


def _trim_trailing_blank_rows(rows: Sequence[Sequence[Any]]) -> list[Sequence[Any]]:
    trimmed = list(rows)
    while trimmed and is_blank_row(trimmed[-1]):
        trimmed.pop()
    return trimmed


def decode_inspection_rows(
    rows: Sequence[Sequence[Any]],
    columns: Mapping[str, int],
    breakers_by_panel: Mapping[str, list[Breaker]] | None = None,
    *,
    first_row_number: int = 2,
) -> tuple[list[InspectionRecord], list[RowFailure]]:
    """Decode every data row; returns ``(records, failures)``.

    *rows* are the rows after the header; *first_row_number* is the 1-based
    sheet row of ``rows[0]``. Trailing blank rows are ignored.
    """
    records: list[InspectionRecord] = []
    failures: list[RowFailure] = []

    for row_number, row in enumerate(_trim_trailing_blank_rows(rows), start=first_row_number):
        try:
            record = decode_inspection_row(row, columns, row_number, breakers_by_panel)
        except RowDecodeError as exc:
            failures.append(RowFailure(row_number, exc.reason))
            logger.warning("Skipping row %d: %s", row_number, exc.reason)
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            failures.append(RowFailure(row_number, reason))
            logger.warning("Skipping row %d: %s", row_number, reason)
        else:
            records.append(record)
    return records, failures


# ── Breaker rows ─────────────────────────────────────────────────


def _decode_breaker(row: Sequence[Any], columns: Mapping[str, int]) -> Breaker:
    defaults = Breaker()
    values: dict[str, Any] = {}
    for name in BREAKER_TEXT_FIELDS:
        values[name] = cell_text(_cell(row, columns, name)) if _resolved(columns, name) else getattr(defaults, name)
    for name in BREAKER_NUMBER_FIELDS:
        values[name] = _number_or(_cell(row, columns, name), 0.0)
    return Breaker(**values)


def decode_breaker_rows(
    rows: Sequence[Sequence[Any]],
    columns: Mapping[str, int],
    *,
    first_row_number: int = 2,
) -> tuple[dict[str, list[Breaker]], list[str]]:
    """Group breaker rows by panel, in sheet order; returns ``(grouped, warnings)``."""
    grouped: dict[str, list[Breaker]] = {}
    warnings: list[str] = []

    for row_number, row in enumerate(rows, start=first_row_number):
        if is_blank_row(row):
            continue
        panel_no = cell_text(_cell(row, columns, "panel_no"))
        if not panel_no:
            warnings.append(f"Breakers row {row_number}: missing PNL NO.")
            continue
        try:
            breaker = _decode_breaker(row, columns)
        except Exception as exc:
            warnings.append(f"Breakers row {row_number}: {exc}")
            logger.warning("Skipping breaker row %d: %s", row_number, exc)
            continue
        grouped.setdefault(panel_no, []).append(breaker)
    return grouped, warnings
