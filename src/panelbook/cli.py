"""CLI entry point for panelbook."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table as RichTable

from panelbook import SUPPORTED_FORMAT_VERSION, __version__
from panelbook.errors import FormatError, VersionMismatch
from panelbook.headers import known_fields
from panelbook.io import load_dataset, read_bytes, write_bytes, write_dataset
from panelbook.models import ImportResult, ImportSummary
from panelbook.photos import release_exported_photos
from panelbook.pipeline import export_workbook, import_workbook, status_counts
from panelbook.qc import write_import_summary
from panelbook.utils import sha256_bytes, utcnow
from panelbook.writer import suggested_filename

app = typer.Typer(
    name="panelbook",
    help="panelbook — Spreadsheet interchange for electrical-panel inspections.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"panelbook v{__version__} (format {SUPPORTED_FORMAT_VERSION})")
        raise typer.Exit()


def _configure_logging(quiet: bool, verbose: bool) -> None:
    level = logging.ERROR if quiet else logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=False)],
        force=True,
    )


def _parse_aliases(raw: list[str] | None) -> dict[str, list[str]]:
    """Parse ``field=Header`` pairs into ``{field: [Header, ...]}``."""
    if not raw:
        return {}
    fields = known_fields()
    aliases: dict[str, list[str]] = {}
    for item in raw:
        if "=" not in item:
            raise ValueError(f"Invalid --alias value: {item!r}  (expected field=Header)")
        field_name, header = (part.strip() for part in item.split("=", 1))
        if not field_name or not header:
            raise ValueError("--alias entries must have a non-empty field and header (field=Header)")
        if field_name not in fields:
            raise ValueError(f"Unknown field {field_name!r}; expected one of: {', '.join(sorted(fields))}")
        aliases.setdefault(field_name, []).append(header)
    return aliases


def _load_profile_aliases(profile: Path | None) -> list[str]:
    """Return ``field=Header`` lines from a profile file."""
    if not profile:
        return []
    if not profile.exists():
        raise ValueError(f"Profile not found: {profile} (expected lines like panel_no=Board)")
    if profile.is_dir():
        raise ValueError(f"Profile is a directory, not a file: {profile}")
    try:
        text = profile.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read profile {profile}: {exc}") from exc

    lines: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(stripped)
    return lines


def _confirm_version(declared: str, supported: str) -> bool:
    return typer.confirm(
        f"Workbook declares format version {declared}, this tool supports {supported}. Import anyway?",
        default=False,
    )


def _run_import(
    input_file: Path,
    dataset: Path | None,
    *,
    alias: list[str] | None,
    profile: Path | None,
    yes: bool,
) -> tuple[ImportResult, bytes]:
    """Shared by ``import`` and ``validate``; exits with code 2 on any blocking error."""
    try:
        extra = _parse_aliases(_load_profile_aliases(profile) + (alias or []))
        records, reports = load_dataset(dataset) if dataset else ([], [])
        data = read_bytes(input_file)
    except (FileNotFoundError, ValueError, OSError) as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    confirm = (lambda _declared, _supported: True) if yes else _confirm_version
    try:
        result = import_workbook(data, records, reports, confirm_version=confirm, extra_aliases=extra or None)
    except FormatError as exc:
        _err(f"Format error: {exc}")
        raise typer.Exit(code=2)
    except VersionMismatch as exc:
        _err(str(exc))
        raise typer.Exit(code=2)
    return result, data


def _summary_table(title: str, summary: ImportSummary) -> RichTable:
    tbl = RichTable(title=title, show_lines=True)
    tbl.add_column("Check", style="bold")
    tbl.add_column("Result")
    tbl.add_row("Rows in", str(summary.rows_in))
    tbl.add_row("Imported", str(summary.imported))
    if summary.failures:
        tbl.add_row("Skipped", f"[red]{summary.skipped}[/red]")
        for failure in summary.failures[:10]:
            tbl.add_row(f"Row {failure.row_number}", f"[red]{failure.reason}[/red]")
    else:
        tbl.add_row("Skipped", "[green]0[/green]")
    tbl.add_row("Reports", str(summary.reports_imported))
    tbl.add_row("Images bound", str(summary.images_bound))
    tbl.add_row("Format version", summary.format_version or "[dim]not declared[/dim]")
    for w in summary.warnings:
        tbl.add_row("Warning", f"[yellow]{w}[/yellow]")
    return tbl


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """panelbook CLI."""


# ── import command ───────────────────────────────────────────────


@app.command("import")
def import_cmd(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Workbook (.xlsx) to import.",
        exists=True, readable=True,
    ),
    dataset: Path = typer.Option(
        Path("panels.json"), "--dataset", "-d",
        help="Working-set JSON to reconcile into (created if missing).",
    ),
    out: Path | None = typer.Option(
        None, "--out", "-o",
        help="Where to write the reconciled working set (default: --dataset).",
    ),
    alias: list[str] | None = typer.Option(
        None, "--alias", "-a",
        help="Extra header alias: field=Header. E.g. --alias panel_no=Board",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing header aliases (field=Header lines).",
    ),
    yes: bool = typer.Option(
        False, "--yes", "-y",
        help="Import even when the workbook declares another format version.",
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress informational output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug diagnostics."),
) -> None:
    """Reconcile a workbook into the working set."""
    _configure_logging(quiet, verbose)
    echo = _printer(quiet)
    target = out or dataset

    if not quiet:
        console.print(Panel(
            f"[bold]panelbook[/bold] v{__version__}\n"
            f"Input:   {input_file}\nDataset: {dataset}",
            title="Import", border_style="blue",
        ))

    result, data = _run_import(input_file, dataset, alias=alias, profile=profile, yes=yes)
    summary = result.summary

    dataset_path = write_dataset(target, result.records, result.reports)
    summary_path = write_import_summary(
        target.parent, summary, source=input_file.name, sha256=sha256_bytes(data)
    )

    echo(summary.message())
    if not quiet:
        for w in summary.warnings:
            console.print(f"  [yellow]![/yellow] {w}")
        counts = ", ".join(f"{label}: {n}" for label, n in status_counts(result.records).items())
        console.print(f"  Working set: {len(result.records)} panel(s) ({counts}), {len(result.reports)} report(s)")
    echo(f"  Dataset -> {dataset_path}")
    echo(f"  Summary -> {summary_path}")


# ── export command ───────────────────────────────────────────────


@app.command()
def export(
    dataset: Path = typer.Option(
        ..., "--dataset", "-d",
        help="Working-set JSON to export.",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Directory for the exported workbook.",
    ),
    keep_photos: bool = typer.Option(
        False, "--keep-photos",
        help="Keep embedded site photos in the working set after export.",
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress informational output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug diagnostics."),
) -> None:
    """Write the working set to an interchange workbook."""
    _configure_logging(quiet, verbose)
    echo = _printer(quiet)
    try:
        records, reports = load_dataset(dataset)
    except ValueError as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    now = utcnow()
    result = export_workbook(records, reports, now=now)
    book_path = write_bytes(out_dir / suggested_filename(now), result.content)
    echo(f"  Workbook -> {book_path}")

    for w in result.warnings:
        echo(f"  [yellow]![/yellow] {w}")

    if result.embedded_photo_panels and not keep_photos:
        released = release_exported_photos(records, result.embedded_photo_panels)
        write_dataset(dataset, released, reports)
        echo(f"  Released {len(result.embedded_photo_panels)} local photo(s) -> {dataset}")

    if not quiet:
        console.print(Panel(
            f"[green]Done[/green] — {len(records)} panel(s), {len(reports)} report(s) -> {book_path}",
            title="Export Complete", border_style="green",
        ))


# ── validate command ─────────────────────────────────────────────


@app.command()
def validate(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Workbook (.xlsx) to check.",
        exists=True, readable=True,
    ),
    alias: list[str] | None = typer.Option(
        None, "--alias", "-a",
        help="Extra header alias: field=Header.",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing header aliases (field=Header lines).",
    ),
    yes: bool = typer.Option(
        False, "--yes", "-y",
        help="Accept a different declared format version.",
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress the summary table."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug diagnostics."),
) -> None:
    """Decode a workbook without touching any working set.

    Exit 0 = every row decoded, exit 2 = format failure or failed rows.
    """
    _configure_logging(quiet, verbose)
    result, _data = _run_import(input_file, None, alias=alias, profile=profile, yes=yes)
    summary = result.summary

    if not quiet:
        tbl = _summary_table("Validation Summary", summary)
        tbl.add_row("Status", "[red]FAIL[/red]" if summary.failures else "[green]PASS[/green]")
        console.print(tbl)

    if summary.failures:
        _err(summary.message().splitlines()[-1])
        raise typer.Exit(code=2)
