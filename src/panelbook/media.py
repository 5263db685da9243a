"""Embedded media locator — bind worksheet images to data rows by anchor.

Rows and columns are zero-based throughout, matching openpyxl anchor
markers. A data row's *native index* is its zero-based sheet row.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import warnings
from collections.abc import Mapping, Sequence
from typing import Any

from openpyxl.utils.cell import coordinate_from_string, column_index_from_string
from openpyxl.worksheet.worksheet import Worksheet

from panelbook.errors import MediaBindingWarning
from panelbook.headers import NOT_FOUND, normalize_header
from panelbook.models import ImageAnchor
from panelbook.utils import cell_text, is_blank_row, row_value

logger = logging.getLogger(__name__)

PHOTO_BAND: tuple[int, int] = (2, 3)
"""Columns C..D, where the writer places photos."""

WIDE_BAND: tuple[int, int] = (0, 5)
"""Columns A..F, searched when the strict pass finds nothing."""

ROW_TOLERANCE = 1

SITE = "site"
THERMAL = "thermal"

_THERMAL_ALIASES = ("열화상", "thermal")
_THERMAL_WORD_RE = re.compile(r"\bir\b")
_DATA_URL_RE = re.compile(r"^data:image/(?P<ext>[\w.+-]+);base64,(?P<payload>.*)$", re.DOTALL)

_MIME_EXT = {"jpg": "jpeg", "jpeg": "jpeg", "png": "png", "gif": "gif", "bmp": "bmp", "webp": "webp"}


def detect_extension(data: bytes, default: str = "png") -> str:
    """Guess an image extension from magic bytes."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "png"
    if data.startswith(b"\xff\xd8\xff"):
        return "jpeg"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "gif"
    if data.startswith(b"BM"):
        return "bmp"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    return default


# ── Anchor extraction ────────────────────────────────────────────


def _anchor_bounds(anchor: Any) -> tuple[int, int, int, int] | None:
    """Return ``(top, bottom, left, right)`` for an openpyxl anchor, or ``None``."""
    if isinstance(anchor, str):
        col_letters, row = coordinate_from_string(anchor)
        col = column_index_from_string(col_letters) - 1
        return row - 1, row - 1, col, col

    start = getattr(anchor, "_from", None)
    if start is None:
        return None
    end = getattr(anchor, "to", None)
    if end is None:
        return start.row, start.row, start.col, start.col
    return start.row, max(start.row, end.row), start.col, max(start.col, end.col)


def _image_bytes(img: Any) -> bytes:
    # openpyxl closes the underlying handle after the first _data() call
    return img._data()


def extract_anchors(ws: Worksheet) -> list[ImageAnchor]:
    """Return every embedded image of *ws* as an :class:`ImageAnchor`, in sheet order."""
    anchors: list[ImageAnchor] = []
    for position, img in enumerate(getattr(ws, "_images", [])):
        bounds = _anchor_bounds(img.anchor)
        if bounds is None:
            logger.warning("Image %d on %r has no usable anchor; ignored", position, ws.title)
            continue
        try:
            data = _image_bytes(img)
        except (OSError, ValueError) as exc:
            logger.warning("Image %d on %r could not be read: %s", position, ws.title, exc)
            continue
        if not data:
            continue
        fmt = (getattr(img, "format", "") or "").lower()
        extension = _MIME_EXT.get(fmt) or detect_extension(data)
        top, bottom, left, right = bounds
        anchors.append(ImageAnchor(top, bottom, left, right, data=data, extension=extension))
    return anchors


# ── Binding ──────────────────────────────────────────────────────


def _best_candidate(
    row: int, anchors: Sequence[ImageAnchor], claimed: set[int], band: tuple[int, int], tolerance: int
) -> int | None:
    best: tuple[int, int] | None = None
    for pos, anchor in enumerate(anchors):
        if pos in claimed:
            continue
        if not anchor.starts_in_columns(*band) or not anchor.overlaps_row(row, tolerance):
            continue
        key = (anchor.row_distance(row), pos)
        if best is None or key < best:
            best = key
    return None if best is None else best[1]


def bind_images(row_indices: Sequence[int], anchors: Sequence[ImageAnchor]) -> dict[int, ImageAnchor]:
    """Bind anchors to data rows; returns ``{native_row_index: anchor}``.

    A strict pass (rows overlap exactly, left column inside ``PHOTO_BAND``)
    runs over every row first; rows still unmatched then get a widened pass
    (``WIDE_BAND``, ``ROW_TOLERANCE``) over the anchors nobody claimed.
    Each anchor binds to at most one row. Among several candidates the
    nearest anchor wins, then the earliest in sheet order.
    """
    bound: dict[int, ImageAnchor] = {}
    claimed: set[int] = set()

    for row in row_indices:
        pos = _best_candidate(row, anchors, claimed, PHOTO_BAND, 0)
        if pos is not None:
            claimed.add(pos)
            bound[row] = anchors[pos]

    for row in row_indices:
        if row in bound:
            continue
        pos = _best_candidate(row, anchors, claimed, WIDE_BAND, ROW_TOLERANCE)
        if pos is not None:
            claimed.add(pos)
            bound[row] = anchors[pos]
            logger.info(
                "Row %d bound to image at rows %d-%d by widened search",
                row + 1,
                anchors[pos].top + 1,
                anchors[pos].bottom + 1,
            )
    return bound


def classify_photo_type(value: Any) -> str:
    """Return ``"thermal"`` for thermal-image labels, else ``"site"``."""
    text = normalize_header(value)
    if any(alias in text for alias in _THERMAL_ALIASES) or _THERMAL_WORD_RE.search(text):
        return THERMAL
    return SITE


def _declares_photo(value: Any) -> bool:
    # "No (not embedded)" rows are the writer's own markers, not misses
    return cell_text(value).lower().startswith("yes")


def collect_panel_images(
    ws: Worksheet, columns: Mapping[str, int]
) -> tuple[dict[str, dict[str, ImageAnchor]], list[str]]:
    """Bind the images of a photos sheet to panels.

    Returns ``({panel_no: {slot: anchor}}, warnings)``. When several rows
    fill the same slot of one panel, the later row in sheet order wins.
    """
    anchors = extract_anchors(ws)
    rows = list(ws.iter_rows(min_row=2, values_only=True))
    panel_col = columns.get("panel_no", NOT_FOUND)

    data_rows: dict[int, Sequence[Any]] = {}
    for offset, row in enumerate(rows):
        if is_blank_row(row) or not cell_text(row_value(row, panel_col)):
            continue
        data_rows[offset + 1] = row

    bound = bind_images(list(data_rows), anchors)
    images: dict[str, dict[str, ImageAnchor]] = {}
    diagnostics: list[str] = []

    for native, row in data_rows.items():
        panel_no = cell_text(row_value(row, panel_col))
        anchor = bound.get(native)
        if anchor is None:
            if _declares_photo(row_value(row, columns.get("has_photo", NOT_FOUND))):
                message = f"Photos row {native + 1} ({panel_no}): no embedded image found"
                warnings.warn(message, MediaBindingWarning, stacklevel=2)
                logger.warning(message)
                diagnostics.append(message)
            continue
        slot = classify_photo_type(row_value(row, columns.get("photo_type", NOT_FOUND)))
        images.setdefault(panel_no, {})[slot] = anchor

    unclaimed = len(anchors) - len(bound)
    if unclaimed:
        logger.info("%d embedded image(s) on %r were not bound to any row", unclaimed, ws.title)
    return images, diagnostics


# ── Data URLs ────────────────────────────────────────────────────


def to_data_url(anchor: ImageAnchor) -> str:
    encoded = base64.b64encode(anchor.data).decode("ascii")
    return f"data:image/{anchor.extension};base64,{encoded}"


def parse_data_url(url: str | None) -> tuple[bytes, str] | None:
    """Return ``(payload, extension)`` for an inline image URL, else ``None``."""
    if not url:
        return None
    match = _DATA_URL_RE.match(url.strip())
    if match is None:
        return None
    try:
        data = base64.b64decode(match.group("payload"), validate=True)
    except (binascii.Error, ValueError):
        return None
    if not data:
        return None
    ext = _MIME_EXT.get(match.group("ext").lower()) or detect_extension(data)
    return data, ext
