from __future__ import annotations

import pytest

from panelbook.errors import FormatError
from panelbook.headers import (
    INSPECTION_ALIASES,
    NOT_FOUND,
    REPORT_ALIASES,
    SHEET_ALIASES,
    find_sheet,
    known_fields,
    normalize_header,
    resolve_column,
    resolve_columns,
    with_extra_aliases,
)


def test_normalize_header_collapses_whitespace_and_case() -> None:
    assert normalize_header("  PNL \n  NO. ") == "pnl no."
    assert normalize_header(None) == ""
    assert normalize_header(12) == "12"


def test_resolve_column_matches_substring_case_insensitively() -> None:
    headers = ["검사 현황", "  pnl   No. (분전함) ", "점검일"]

    assert resolve_column(headers, INSPECTION_ALIASES["panel_no"]) == 1
    assert resolve_column(headers, INSPECTION_ALIASES["date"]) == 2


def test_resolve_column_alias_order_beats_column_order() -> None:
    headers = ["Status", "검사 현황"]

    # "검사 현황" is declared before "status", so the later column wins
    assert resolve_column(headers, INSPECTION_ALIASES["status"]) == 1


def test_resolve_column_not_found_and_none_headers() -> None:
    assert resolve_column([None, "", "Memo"], INSPECTION_ALIASES["welder"]) == NOT_FOUND


def test_panel_key_falls_back_to_bare_id() -> None:
    assert resolve_column(["Name", "Panel ID"], INSPECTION_ALIASES["panel_no"]) == 1
    assert resolve_column(["Panel ID"], REPORT_ALIASES["board_id"]) == NOT_FOUND


def test_resolve_columns_raises_for_missing_required_field() -> None:
    with pytest.raises(FormatError, match="panel_no"):
        resolve_columns(["Name", "Status"], INSPECTION_ALIASES, required=("panel_no",), sheet="Sheet1")


def test_resolve_columns_reports_missing_optional_fields() -> None:
    columns, missing = resolve_columns(
        ["PNL NO.", "검사 현황", "용접기"], INSPECTION_ALIASES, required=("panel_no",)
    )

    assert columns["panel_no"] == 0
    assert columns["status"] == 1
    assert columns["welder"] == 2
    assert columns["memo"] == NOT_FOUND
    assert "memo" in missing
    assert "panel_no" not in missing
    assert "welder" not in missing


def test_with_extra_aliases_tries_caller_aliases_first() -> None:
    table = with_extra_aliases(INSPECTION_ALIASES, {"panel_no": ["Board"], "unknown": ["x"]})

    assert table["panel_no"][0] == "Board"
    assert "unknown" not in table
    assert resolve_column(["PNL NO.", "Board"], table["panel_no"]) == 1
    # the source table is untouched
    assert INSPECTION_ALIASES["panel_no"][0] == "pnl no"


def test_with_extra_aliases_none_returns_copy() -> None:
    table = with_extra_aliases(INSPECTION_ALIASES, None)

    assert table == {name: tuple(aliases) for name, aliases in INSPECTION_ALIASES.items()}
    assert table is not INSPECTION_ALIASES


def test_find_sheet_tolerates_renaming_and_reordering() -> None:
    names = ["Reports", "PNL P-01", "Breakers (차단기)", "검사 현황 (Inspection Status)", "meta"]

    assert find_sheet(names, SHEET_ALIASES["inspections"]) == "검사 현황 (Inspection Status)"
    assert find_sheet(names, SHEET_ALIASES["breakers"]) == "Breakers (차단기)"
    assert find_sheet(names, SHEET_ALIASES["meta"]) == "meta"
    assert find_sheet(names, SHEET_ALIASES["photos"]) is None


def test_find_sheet_respects_exclusions() -> None:
    names = ["사진", "Photos"]

    assert find_sheet(names, SHEET_ALIASES["photos"], exclude=["Photos"]) == "사진"


def test_known_fields_covers_every_table() -> None:
    fields = known_fields()

    assert {"panel_no", "position_x", "load_r", "photo_type", "report_id", "html"} <= fields
