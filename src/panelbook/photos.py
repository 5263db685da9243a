"""Photo lifecycle: after an export, the document owns the embedded site photos."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace

from panelbook.models import InspectionRecord

logger = logging.getLogger(__name__)


def release_exported_photos(
    records: Sequence[InspectionRecord], embedded_panels: Iterable[str]
) -> list[InspectionRecord]:
    """Return a copy of *records* with ``photo_url`` cleared where the photo was exported.

    Call only once the exported document has been persisted; thermal images
    and records whose photo was not embedded are left as they are.
    """
    embedded = set(embedded_panels)
    released: list[InspectionRecord] = []
    cleared = 0
    for record in records:
        if record.panel_no in embedded and record.photo_url:
            released.append(replace(record, photo_url=None))
            cleared += 1
        else:
            released.append(record)
    if cleared:
        logger.info("Released %d local photo(s) now held by the exported document", cleared)
    return released
