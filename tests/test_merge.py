from __future__ import annotations

from dataclasses import replace

from panelbook.merge import dedupe_records, latest_reports, merge_records, merge_reports
from panelbook.models import InspectionRecord, ReportRecord, Status


def _rec(panel_no: str, **kwargs: object) -> InspectionRecord:
    return InspectionRecord(panel_no=panel_no, **kwargs)  # type: ignore[arg-type]


def _report(report_id: str, board_id: str = "P-01", generated_at: str = "2024-05-01T09:00:00+00:00", html: str = "<p>x</p>") -> ReportRecord:
    return ReportRecord(report_id=report_id, board_id=board_id, generated_at=generated_at, html_content=html)


def test_merge_replaces_known_keys_and_appends_new_ones() -> None:
    existing = [_rec("P-01", memo="old"), _rec("P-02")]
    incoming = [_rec("P-03", memo="new panel"), _rec("P-01", memo="updated", status=Status.complete)]

    merged = merge_records(existing, incoming)

    assert [r.panel_no for r in merged] == ["P-01", "P-02", "P-03"]
    assert merged[0].memo == "updated"
    assert merged[0].status is Status.complete
    assert merged[2].memo == "new panel"


def test_protected_photo_survives_import_without_photo() -> None:
    existing = [_rec("P-01", photo_url="data:image/png;base64,AAAA", memo="old")]
    incoming = [_rec("P-01", memo="new")]

    merged = merge_records(existing, incoming)

    assert merged[0].photo_url == "data:image/png;base64,AAAA"
    assert merged[0].memo == "new"


def test_incoming_photo_replaces_protected_one() -> None:
    existing = [_rec("P-01", photo_url="data:image/png;base64,AAAA")]
    incoming = [_rec("P-01", photo_url="data:image/png;base64,BBBB")]

    assert merge_records(existing, incoming)[0].photo_url == "data:image/png;base64,BBBB"


def test_merge_is_idempotent() -> None:
    existing = [_rec("P-01", photo_url="data:image/png;base64,AAAA"), _rec("P-02", memo="keep")]
    batch = [_rec("P-01", memo="again"), _rec("P-04"), _rec("P-04", memo="dup")]

    once = merge_records(existing, batch)
    twice = merge_records(once, batch)

    assert twice == once


def test_merge_does_not_mutate_inputs() -> None:
    original = _rec("P-01", photo_url="data:image/png;base64,AAAA")
    existing = [original]
    incoming = [_rec("P-01"), _rec("P-02")]

    merge_records(existing, incoming)

    assert existing == [original]
    assert existing[0].photo_url == "data:image/png;base64,AAAA"
    assert incoming[0].photo_url is None


def test_duplicate_keys_collapse_to_last_occurrence() -> None:
    merged = merge_records([], [_rec("P-01", memo="first"), _rec("P-02"), _rec("P-01", memo="second")])

    assert [r.panel_no for r in merged] == ["P-01", "P-02"]
    assert merged[0].memo == "second"


def test_dedupe_records_keeps_first_position() -> None:
    a1 = _rec("A", memo="1")
    b = _rec("B")
    a2 = replace(a1, memo="2")

    assert dedupe_records([a1, b, a2]) == [a2, b]


def test_protected_fields_can_be_overridden() -> None:
    existing = [_rec("P-01", memo="keep me")]
    incoming = [_rec("P-01", memo="")]

    assert merge_records(existing, incoming, protected=("memo",))[0].memo == "keep me"
    assert merge_records(existing, incoming, protected=())[0].memo == ""


def test_reports_merge_by_id_last_write_wins() -> None:
    first = _report("RPT-1", html="<p>first</p>")
    second = _report("RPT-1", html="<p>second</p>")
    other = _report("RPT-2")

    merged = merge_reports([first, other], [second])

    assert [r.report_id for r in merged] == ["RPT-1", "RPT-2"]
    assert merged[0] == second


def test_latest_reports_returns_newest_per_board() -> None:
    old = _report("RPT-P-01-20240101", generated_at="2024-01-01T08:00:00+00:00")
    new = _report("RPT-P-01-20240301", generated_at="2024-03-01T08:00:00+00:00")
    unparsed = _report("RPT-P-01-x", generated_at="not a date")
    other = _report("RPT-P-02-20240201", board_id="P-02", generated_at="2024-02-01")

    latest = latest_reports([old, new, unparsed, other])

    assert latest == [new, other]
