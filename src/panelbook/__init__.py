"""panelbook — Spreadsheet interchange and reconciliation for panel inspections."""

__version__ = "0.3.0"

FORMAT_VERSION = "1.0"
SUPPORTED_FORMAT_VERSION = "1.0"
