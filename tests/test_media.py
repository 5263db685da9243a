from __future__ import annotations

from io import BytesIO

import pytest
from openpyxl import load_workbook

from conftest import make_book, make_png
from panelbook.errors import MediaBindingWarning
from panelbook.headers import PHOTO_ALIASES, resolve_columns
from panelbook.media import (
    SITE,
    THERMAL,
    bind_images,
    classify_photo_type,
    collect_panel_images,
    detect_extension,
    extract_anchors,
    parse_data_url,
    to_data_url,
)
from panelbook.models import ImageAnchor

PHOTO_HEADER = ["PNL NO.", "사진 종류", "사진", "사진 존재 여부"]


def _anchor(top: int, left: int = 2, bottom: int | None = None, data: bytes = b"img") -> ImageAnchor:
    return ImageAnchor(top=top, bottom=top if bottom is None else bottom, left=left, right=left, data=data)


# ── Binding ──────────────────────────────────────────────────────


def test_exact_anchor_binds_under_strict_search() -> None:
    anchor = _anchor(5)

    assert bind_images([5], [anchor]) == {5: anchor}


def test_off_by_one_anchor_binds_only_through_widened_search() -> None:
    drifted = _anchor(4)

    # row 4 takes it strictly when it is a data row
    assert bind_images([4, 5], [drifted]) == {4: drifted}
    # otherwise row 5 recovers it with the ±1 tolerance
    assert bind_images([5], [drifted]) == {5: drifted}


def test_anchor_two_rows_away_is_not_bound() -> None:
    assert bind_images([5], [_anchor(3)]) == {}


def test_widened_band_accepts_column_f_but_not_beyond() -> None:
    in_band = _anchor(5, left=5)
    outside = _anchor(5, left=7)

    assert bind_images([5], [outside, in_band]) == {5: in_band}
    assert bind_images([5], [outside]) == {}


def test_each_anchor_binds_at_most_once() -> None:
    tall = _anchor(5, bottom=6)

    assert bind_images([5, 6], [tall]) == {5: tall}


def test_nearest_candidate_then_sheet_order_wins() -> None:
    above = _anchor(4, data=b"above")
    below = _anchor(6, data=b"below")
    exact_wide = _anchor(5, left=0, data=b"exact")

    assert bind_images([5], [above, below, exact_wide]) == {5: exact_wide}
    assert bind_images([5], [above, below]) == {5: above}


def test_strict_matches_are_claimed_before_widened_pass() -> None:
    row_six = _anchor(6)

    # row 5 could reach it with tolerance, but row 6 owns it strictly
    assert bind_images([5, 6], [row_six]) == {6: row_six}


# ── Classification & helpers ─────────────────────────────────────


@pytest.mark.parametrize(
    ("label", "slot"),
    [
        ("열화상 이미지", THERMAL),
        ("Thermal", THERMAL),
        ("IR photo", THERMAL),
        ("현장사진", SITE),
        ("Stairwell", SITE),
        ("", SITE),
        (None, SITE),
    ],
)
def test_classify_photo_type(label: object, slot: str) -> None:
    assert classify_photo_type(label) == slot


def test_detect_extension_from_magic_bytes() -> None:
    assert detect_extension(make_png()) == "png"
    assert detect_extension(b"\xff\xd8\xff\xe0rest") == "jpeg"
    assert detect_extension(b"GIF89a....") == "gif"
    assert detect_extension(b"unknown", default="bin") == "bin"


def test_data_url_round_trip() -> None:
    anchor = ImageAnchor(top=0, bottom=0, left=2, right=2, data=make_png(), extension="png")

    url = to_data_url(anchor)

    assert url.startswith("data:image/png;base64,")
    assert parse_data_url(url) == (anchor.data, "png")


@pytest.mark.parametrize(
    "url",
    [None, "", "https://example.com/a.png", "blob:local/123", "data:image/png;base64,@@@", "data:image/png;base64,"],
)
def test_parse_data_url_rejects_non_inline_references(url: str | None) -> None:
    assert parse_data_url(url) is None


# ── Worksheets ───────────────────────────────────────────────────


def test_extract_anchors_reads_position_payload_and_format() -> None:
    png = make_png()
    content = make_book({"Photos": [PHOTO_HEADER, ["P-01", "현장사진", "", "Yes"]]}, {"Photos": [("C2", png)]})

    ws = load_workbook(BytesIO(content))["Photos"]
    anchors = extract_anchors(ws)

    assert len(anchors) == 1
    assert (anchors[0].top, anchors[0].left) == (1, 2)
    assert anchors[0].extension == "png"
    assert anchors[0].data == png


def test_collect_panel_images_assigns_slots_and_later_rows_win() -> None:
    red, blue, green = make_png("red"), make_png("blue"), make_png("green")
    rows = [
        PHOTO_HEADER,
        ["P-01", "현장사진", "", "Yes"],
        ["P-01", "열화상 이미지", "", "Yes"],
        ["P-02", "현장사진", "", "Yes"],
        ["P-02", "현장사진", "", "Yes"],
    ]
    content = make_book(
        {"Photos": rows},
        {"Photos": [("C2", red), ("C3", blue), ("C4", green), ("C5", red)]},
    )
    ws = load_workbook(BytesIO(content))["Photos"]
    columns, _missing = resolve_columns(PHOTO_HEADER, PHOTO_ALIASES, required=("panel_no",))

    images, diagnostics = collect_panel_images(ws, columns)

    assert diagnostics == []
    assert images["P-01"][SITE].data == red
    assert images["P-01"][THERMAL].data == blue
    assert images["P-02"][SITE].data == red
    assert set(images["P-02"]) == {SITE}


def test_collect_panel_images_warns_for_declared_but_missing_photo() -> None:
    rows = [PHOTO_HEADER, ["P-01", "현장사진", "", "Yes"], ["P-02", "-", "", "No"]]
    ws = load_workbook(BytesIO(make_book({"Photos": rows})))["Photos"]
    columns, _missing = resolve_columns(PHOTO_HEADER, PHOTO_ALIASES, required=("panel_no",))

    with pytest.warns(MediaBindingWarning, match="P-01"):
        images, diagnostics = collect_panel_images(ws, columns)

    assert images == {}
    assert len(diagnostics) == 1
    assert "row 2" in diagnostics[0]
