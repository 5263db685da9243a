"""Format version gate — runs before any row is decoded."""

from __future__ import annotations

import logging
from collections.abc import Callable

from openpyxl.workbook.workbook import Workbook

from panelbook import SUPPORTED_FORMAT_VERSION
from panelbook.errors import VersionMismatch
from panelbook.headers import SHEET_ALIASES, VERSION_ALIASES, find_sheet, normalize_header
from panelbook.utils import cell_text, row_value

logger = logging.getLogger(__name__)

ConfirmVersion = Callable[[str, str], bool]


def read_format_version(workbook: Workbook) -> str | None:
    """Return the version declared in the metadata sheet, if any."""
    sheet_name = find_sheet(workbook.sheetnames, SHEET_ALIASES["meta"])
    if sheet_name is None:
        return None

    needles = [normalize_header(alias) for alias in VERSION_ALIASES]
    for row in workbook[sheet_name].iter_rows(values_only=True):
        label = normalize_header(row_value(row, 0))
        if label and any(needle in label for needle in needles):
            return cell_text(row_value(row, 1)) or None
    return None


def check_format_version(
    workbook: Workbook,
    confirm: ConfirmVersion | None = None,
    *,
    supported: str = SUPPORTED_FORMAT_VERSION,
) -> str | None:
    """Return the declared version once the document is cleared for import.

    A document without a metadata sheet or version row is treated as
    compatible. A different version is passed to *confirm*
    (``confirm(declared, supported)``); declining, or having no callback,
    aborts the import.

    Raises
    ------
    VersionMismatch
        If the versions differ and the caller did not confirm.
    """
    declared = read_format_version(workbook)
    if declared is None:
        logger.debug("No format version declared; assuming compatible")
        return None
    if declared == supported:
        return declared

    if confirm is None or not confirm(declared, supported):
        raise VersionMismatch(declared, supported)
    logger.warning("Importing format version %s (supported: %s)", declared, supported)
    return declared
