from __future__ import annotations

import base64
from collections.abc import Sequence
from datetime import datetime, timezone
from io import BytesIO
from typing import Any

import pytest
from openpyxl import Workbook
from openpyxl.drawing.image import Image as XLImage
from PIL import Image

from panelbook.models import (
    Breaker,
    InspectionRecord,
    LoadSummary,
    Loads,
    Position,
    Status,
    ThermalImage,
)

FIXED_NOW = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


def make_png(color: str = "red", size: tuple[int, int] = (4, 4)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def png_data_url(color: str = "red") -> str:
    return "data:image/png;base64," + base64.b64encode(make_png(color)).decode("ascii")


def make_book(
    sheets: dict[str, Sequence[Sequence[Any]]],
    images: dict[str, Sequence[tuple[str, bytes]]] | None = None,
) -> bytes:
    """Build ``.xlsx`` bytes from ``{sheet: rows}`` plus ``{sheet: [(cell, png), ...]}``."""
    wb = Workbook()
    active = wb.active
    if active is not None:
        wb.remove(active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title=title)
        for row in rows:
            ws.append(list(row))
        for cell, data in (images or {}).get(title, ()):
            ws.add_image(XLImage(BytesIO(data)), cell)
    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def complete_record() -> InspectionRecord:
    return InspectionRecord(
        panel_no="P-01",
        status=Status.complete,
        last_inspection_date="2024-04-30 14:00",
        loads=Loads(welder=True, pump=True),
        photo_url=png_data_url("red"),
        memo="Tightened N-bar terminals",
        position=Position(25.5, 30.0),
        breakers=[
            Breaker(breaker_no="1", category="1차", capacity=100.0, load_name="Main", type="3P",
                    kind="MCCB", current_l1=12.5, current_l2=11.0, current_l3=10.0,
                    load_r=1200.0, load_s=900.0, load_t=600.0, load_n=0.0),
            Breaker(breaker_no="2", category="2차", capacity=30.0, load_name="Welder outlet",
                    load_r=300.0),
        ],
        thermal_image=ThermalImage(
            image_url=png_data_url("blue"),
            temperature=41.5,
            max_temp=58.0,
            min_temp=22.5,
            emissivity=0.95,
            equipment="KT-352",
            measurement_time="2024-04-30 13:40",
        ),
        load_summary=LoadSummary(
            phase_sum_a=1500.0, phase_sum_b=900.0, phase_sum_c=600.0, total=3000.0,
            share_a=50.0, share_b=30.0, share_c=20.0,
        ),
        project_name="Riverside Tower",
        contractor="Hanbit E&C",
        management_number="MG-0042",
        inspectors=["Kim", "Lee"],
    )


@pytest.fixture
def pending_record() -> InspectionRecord:
    return InspectionRecord(panel_no="P-02", status=Status.pending)
