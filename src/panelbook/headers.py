"""Bilingual header and sheet-name resolution.

Every logical field owns an ordered tuple of aliases (Korean and English).
A field resolves to the first header, in column order, that contains the
first alias that matches anything at all; matching is a case-insensitive
substring test on whitespace-collapsed text. There is no scoring: the alias
declaration order is the only tie-break.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence

from panelbook.errors import FormatError

logger = logging.getLogger(__name__)

AliasTable = Mapping[str, Sequence[str]]

NOT_FOUND = -1

_PANEL_ALIASES = ("pnl no", "panel no", "board id", "분전함 번호")

SHEET_ALIASES: dict[str, tuple[str, ...]] = {
    "meta": ("meta", "메타"),
    "inspections": ("검사 현황", "inspection status", "inspections", "검사"),
    "breakers": ("breakers", "차단기"),
    "photos": ("photos", "사진"),
    "reports": ("reports", "보고서"),
}

VERSION_ALIASES: tuple[str, ...] = ("format version", "포맷 버전", "version")

INSPECTION_ALIASES: dict[str, tuple[str, ...]] = {
    "panel_no": (*_PANEL_ALIASES, "id"),
    "status": ("검사 현황", "inspection status", "status", "상태"),
    "date": ("점검일", "inspection date", "last inspection", "date"),
    "welder": ("용접기", "welder"),
    "grinder": ("연삭기", "grinder"),
    "light": ("조명", "light"),
    "pump": ("펌프", "pump"),
    "memo": ("점검 조치 사항", "조치 사항", "memo", "notes"),
    "position_x": ("x 좌표", "position x", "pos x"),
    "position_y": ("y 좌표", "position y", "pos y"),
    "project_name": ("공사명", "project"),
    "contractor": ("시공사", "contractor"),
    "management_number": ("관리번호", "관리 번호", "management no", "management number"),
    "inspectors": ("점검자", "inspector"),
    "thermal_equipment": ("열화상 측정기", "thermal equipment", "측정기"),
    "thermal_temperature": ("측정 온도", "measured temp", "temperature"),
    "thermal_max_temp": ("최대 온도", "max temp"),
    "thermal_min_temp": ("최소 온도", "min temp"),
    "thermal_emissivity": ("방사율", "emissivity"),
    "thermal_time": ("측정 시간", "measurement time"),
    "phase_sum_a": ("상별 부하 합계 a", "phase load a"),
    "phase_sum_b": ("상별 부하 합계 b", "phase load b"),
    "phase_sum_c": ("상별 부하 합계 c", "phase load c"),
    "total_load": ("총 연결 부하 합계", "total load"),
    "share_a": ("상별 부하 분담 a", "phase share a"),
    "share_b": ("상별 부하 분담 b", "phase share b"),
    "share_c": ("상별 부하 분담 c", "phase share c"),
}

BREAKER_ALIASES: dict[str, tuple[str, ...]] = {
    "panel_no": _PANEL_ALIASES,
    "breaker_no": ("차단기 번호", "breaker no", "breaker #"),
    "category": ("구분", "category"),
    "capacity": ("차단기 용량", "breaker capacity", "rated current"),
    "load_name": ("부하명", "load name"),
    "type": ("형식", "type"),
    "kind": ("종류", "kind"),
    "current_l1": ("l1", "current l1"),
    "current_l2": ("l2", "current l2"),
    "current_l3": ("l3", "current l3"),
    "load_r": ("r (va)", "load r", "부하 용량 r"),
    "load_s": ("s (va)", "load s", "부하 용량 s"),
    "load_t": ("t (va)", "load t", "부하 용량 t"),
    "load_n": ("n (va)", "load n", "부하 용량 n"),
}

PHOTO_ALIASES: dict[str, tuple[str, ...]] = {
    "panel_no": _PANEL_ALIASES,
    "photo_type": ("사진 종류", "photo type"),
    "has_photo": ("사진 존재 여부", "has photo", "photo exists"),
}

REPORT_ALIASES: dict[str, tuple[str, ...]] = {
    "board_id": _PANEL_ALIASES,
    "report_id": ("report id", "보고서 id", "reportid", "보고서 번호"),
    "generated_at": ("보고서 생성일", "generated at", "generated", "생성일"),
    "status": ("상태", "status", "검사 현황"),
    "last_inspection_date": ("마지막 점검일", "last inspection", "점검일"),
    "load_cause": ("부하 원인", "load cause"),
    "memo": ("점검 조치 사항", "memo"),
    "html": ("html", "보고서 내용", "report content"),
}

ALL_TABLES: tuple[AliasTable, ...] = (
    INSPECTION_ALIASES,
    BREAKER_ALIASES,
    PHOTO_ALIASES,
    REPORT_ALIASES,
)


def normalize_header(value: object) -> str:
    """Lowercase *value* and collapse runs of whitespace to one space."""
    if value is None:
        return ""
    return " ".join(str(value).split()).lower()


def known_fields() -> set[str]:
    fields: set[str] = set()
    for table in ALL_TABLES:
        fields.update(table)
    return fields


def with_extra_aliases(
    table: AliasTable, extra: Mapping[str, Sequence[str]] | None
) -> dict[str, tuple[str, ...]]:
    """Return a copy of *table* with caller-supplied aliases tried first."""
    merged = {name: tuple(aliases) for name, aliases in table.items()}
    if not extra:
        return merged
    for name, aliases in extra.items():
        if name in merged:
            merged[name] = (*aliases, *merged[name])
    return merged


def resolve_column(headers: Sequence[object], aliases: Iterable[str]) -> int:
    """Return the index of the header matching *aliases*, or ``NOT_FOUND``."""
    normalized = [normalize_header(h) for h in headers]
    for alias in aliases:
        needle = normalize_header(alias)
        if not needle:
            continue
        for idx, header in enumerate(normalized):
            if needle in header:
                return idx
    return NOT_FOUND


def resolve_columns(
    headers: Sequence[object],
    table: AliasTable,
    *,
    required: Sequence[str] = (),
    sheet: str = "",
) -> tuple[dict[str, int], list[str]]:
    """Resolve every field of *table* against *headers*.

    Returns ``(columns, missing_optional)``. Unresolved fields map to
    ``NOT_FOUND`` in *columns*.

    Raises
    ------
    FormatError
        If any field named in *required* cannot be resolved.
    """
    columns = {name: resolve_column(headers, aliases) for name, aliases in table.items()}

    for name in required:
        if columns.get(name, NOT_FOUND) == NOT_FOUND:
            expected = ", ".join(repr(a) for a in table.get(name, ()))
            where = f" in sheet {sheet!r}" if sheet else ""
            raise FormatError(
                f"Required column {name!r} not found{where} (expected a header containing one of: {expected})"
            )

    missing = [name for name, idx in columns.items() if idx == NOT_FOUND and name not in required]
    if missing:
        logger.info("Optional columns not found%s: %s", f" in {sheet!r}" if sheet else "", ", ".join(missing))
    return columns, missing


def find_sheet(
    names: Sequence[str], aliases: Iterable[str], *, exclude: Iterable[str] = ()
) -> str | None:
    """Return the first sheet name matching *aliases* (alias order, then sheet order)."""
    skipped = set(exclude)
    candidates = [name for name in names if name not in skipped]
    idx = resolve_column(candidates, aliases)
    return candidates[idx] if idx != NOT_FOUND else None
