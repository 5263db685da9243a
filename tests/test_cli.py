"""CLI integration smoke tests for panelbook."""

from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from conftest import make_book
from panelbook.cli import app
from panelbook.io import load_dataset, write_dataset
from panelbook.models import InspectionRecord

runner = CliRunner()

HEADER = ["PNL NO.", "검사 현황", "점검일"]


def _write_book(tmp_path: Path, name: str, sheets: dict[str, list[list[object]]]) -> Path:
    path = tmp_path / name
    path.write_bytes(make_book(sheets))
    return path


def test_version_flag_prints_tool_and_format_version() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert "panelbook v0.3.0" in result.output
    assert "format 1.0" in result.output


def test_export_then_import_round_trip(
    tmp_path: Path, complete_record: InspectionRecord, pending_record: InspectionRecord
) -> None:
    dataset = write_dataset(tmp_path / "panels.json", [complete_record, pending_record], [])
    out_dir = tmp_path / "out"

    exported = runner.invoke(app, ["export", "--dataset", str(dataset), "--out-dir", str(out_dir), "--quiet"])

    assert exported.exit_code == 0
    books = list(out_dir.glob("panel_inspections_v1.0_*.xlsx"))
    assert len(books) == 1
    # the exported document now owns the site photo
    released, _reports = load_dataset(dataset)
    assert released[0].photo_url is None
    assert released[0].thermal_image == complete_record.thermal_image

    fresh = tmp_path / "fresh" / "panels.json"
    imported = runner.invoke(app, ["import", "--input", str(books[0]), "--dataset", str(fresh), "--quiet"])

    assert imported.exit_code == 0
    records, _reports = load_dataset(fresh)
    assert [r.panel_no for r in records] == ["P-01", "P-02"]
    assert records[0].photo_url == complete_record.photo_url
    summary = json.loads((fresh.parent / "import_summary.json").read_text(encoding="utf-8"))
    assert summary["imported"] == 2
    assert summary["source"] == books[0].name
    assert len(summary["sha256"]) == 64


def test_export_keep_photos_leaves_dataset_untouched(tmp_path: Path, complete_record: InspectionRecord) -> None:
    dataset = write_dataset(tmp_path / "panels.json", [complete_record], [])
    before = dataset.read_text(encoding="utf-8")

    result = runner.invoke(
        app, ["export", "-d", str(dataset), "-o", str(tmp_path / "out"), "--keep-photos", "--quiet"]
    )

    assert result.exit_code == 0
    assert dataset.read_text(encoding="utf-8") == before


def test_import_version_mismatch_declined_exits_2(tmp_path: Path) -> None:
    book = _write_book(tmp_path, "v2.xlsx", {"Meta": [["포맷 버전", "2.0"]], "검사 현황": [HEADER, ["P-01", "Complete", ""]]})
    dataset = tmp_path / "panels.json"

    result = runner.invoke(app, ["import", "-i", str(book), "-d", str(dataset), "-q"], input="n\n")

    assert result.exit_code == 2
    assert not dataset.exists()


def test_import_version_mismatch_with_yes_proceeds(tmp_path: Path) -> None:
    book = _write_book(tmp_path, "v2.xlsx", {"Meta": [["포맷 버전", "2.0"]], "검사 현황": [HEADER, ["P-01", "Complete", ""]]})
    dataset = tmp_path / "panels.json"

    result = runner.invoke(app, ["import", "-i", str(book), "-d", str(dataset), "--yes", "-q"])

    assert result.exit_code == 0
    records, _reports = load_dataset(dataset)
    assert [r.panel_no for r in records] == ["P-01"]


def test_import_unknown_alias_field_exits_2(tmp_path: Path) -> None:
    book = _write_book(tmp_path, "ok.xlsx", {"검사 현황": [HEADER, ["P-01", "Complete", ""]]})

    result = runner.invoke(app, ["import", "-i", str(book), "-d", str(tmp_path / "p.json"), "--alias", "nope=Board"])

    assert result.exit_code == 2


def test_import_rejects_corrupt_dataset(tmp_path: Path) -> None:
    book = _write_book(tmp_path, "ok.xlsx", {"검사 현황": [HEADER, ["P-01", "Complete", ""]]})
    dataset = tmp_path / "panels.json"
    dataset.write_text("{broken", encoding="utf-8")

    result = runner.invoke(app, ["import", "-i", str(book), "-d", str(dataset), "-q"])

    assert result.exit_code == 2
    assert dataset.read_text(encoding="utf-8") == "{broken"


def test_validate_clean_workbook_passes(tmp_path: Path) -> None:
    book = _write_book(tmp_path, "ok.xlsx", {"검사 현황": [HEADER, ["P-01", "Complete", ""], ["P-02", "Pending", ""]]})

    result = runner.invoke(app, ["validate", "--input", str(book)])

    assert result.exit_code == 0
    assert "PASS" in result.output


def test_validate_failed_rows_exit_2(tmp_path: Path) -> None:
    book = _write_book(tmp_path, "bad.xlsx", {"검사 현황": [HEADER, ["P-01", "Complete", ""], ["", "Pending", ""]]})

    result = runner.invoke(app, ["validate", "--input", str(book)])

    assert result.exit_code == 2
    assert "FAIL" in result.output


def test_validate_non_workbook_exits_2(tmp_path: Path) -> None:
    bogus = tmp_path / "notes.xlsx"
    bogus.write_text("plain text", encoding="utf-8")

    result = runner.invoke(app, ["validate", "--input", str(bogus), "-q"])

    assert result.exit_code == 2


def test_validate_with_profile_aliases(tmp_path: Path) -> None:
    book = _write_book(tmp_path, "board.xlsx", {"검사 현황": [["Board", "Status"], ["B-7", "Complete"]]})
    profile = tmp_path / "site.profile"
    profile.write_text("# site headers\npanel_no=Board\n", encoding="utf-8")

    without = runner.invoke(app, ["validate", "-i", str(book), "-q"])
    with_profile = runner.invoke(app, ["validate", "-i", str(book), "--profile", str(profile), "-q"])

    assert without.exit_code == 2
    assert with_profile.exit_code == 0


def test_missing_profile_exits_2(tmp_path: Path) -> None:
    book = _write_book(tmp_path, "ok.xlsx", {"검사 현황": [HEADER, ["P-01", "Complete", ""]]})

    result = runner.invoke(app, ["validate", "-i", str(book), "--profile", str(tmp_path / "nope.txt"), "-q"])

    assert result.exit_code == 2
