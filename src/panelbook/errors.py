"""Exception and warning types raised by the interchange engine."""

from __future__ import annotations


class PanelbookError(Exception):
    """Base class for every error the engine raises on purpose."""


class FormatError(PanelbookError):
    """A required sheet or column is missing, or the bytes are not a workbook.

    The import is aborted and the caller's dataset is left untouched.
    """


class VersionMismatch(PanelbookError):
    """The document declares a format version the caller declined to load."""

    def __init__(self, declared: str, supported: str) -> None:
        self.declared = declared
        self.supported = supported
        super().__init__(
            f"Document format version {declared!r} differs from supported version "
            f"{supported!r}; import aborted"
        )


class RowDecodeError(PanelbookError):
    """A single data row could not be decoded."""

    def __init__(self, row_number: int, reason: str) -> None:
        self.row_number = row_number
        self.reason = reason
        super().__init__(f"row {row_number}: {reason}")


class ReportDecodeError(PanelbookError):
    """An embedded report payload is not valid base64-encoded HTML."""


class MediaBindingWarning(UserWarning):
    """An embedded image could not be bound to a row (non-fatal)."""
