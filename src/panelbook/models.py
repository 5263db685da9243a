"""Data models / typed records used across the package."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from numbers import Integral, Real
from typing import Any

UNSET_DATE = "-"
"""Sentinel stored in ``last_inspection_date`` when no inspection happened yet."""


class Status(str, Enum):
    complete = "Complete"
    in_progress = "In Progress"
    pending = "Pending"


LOAD_LABELS: dict[str, str] = {
    "welder": "Welder",
    "grinder": "Grinder",
    "light": "Light",
    "pump": "Pump",
}

BREAKER_TEXT_FIELDS: tuple[str, ...] = ("breaker_no", "category", "load_name", "type", "kind")
BREAKER_NUMBER_FIELDS: tuple[str, ...] = (
    "capacity",
    "current_l1",
    "current_l2",
    "current_l3",
    "load_r",
    "load_s",
    "load_t",
    "load_n",
)
BREAKER_FIELDS: tuple[str, ...] = (
    "breaker_no",
    "category",
    "capacity",
    "load_name",
    "type",
    "kind",
    "current_l1",
    "current_l2",
    "current_l3",
    "load_r",
    "load_s",
    "load_t",
    "load_n",
)
THERMAL_NUMBER_FIELDS: tuple[str, ...] = ("temperature", "max_temp", "min_temp", "emissivity")
LOAD_SUMMARY_FIELDS: tuple[str, ...] = (
    "phase_sum_a",
    "phase_sum_b",
    "phase_sum_c",
    "total",
    "share_a",
    "share_b",
    "share_c",
)


# ── Validation helpers ───────────────────────────────────────────


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_string_list(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return normalized


def _to_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise TypeError(f"{field_name} must be a number")
    result = float(value)
    if not math.isfinite(result):
        raise ValueError(f"{field_name} must be finite")
    return result


def _to_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    return value


def _to_optional_str(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    return _to_str(value, field_name)


def _to_key(value: Any, field_name: str) -> str:
    text = _to_str(value, field_name).strip()
    if not text:
        raise ValueError(f"{field_name} must be a non-empty string")
    return text


def _to_status(value: Any, field_name: str = "status") -> Status:
    if isinstance(value, Status):
        return value
    if isinstance(value, str):
        for status in Status:
            if status.value == value:
                return status
    raise ValueError(f"{field_name} must be one of: {', '.join(s.value for s in Status)}")


def _check_type(value: Any, expected: type, field_name: str) -> None:
    if not isinstance(value, expected):
        raise TypeError(f"{field_name} must be a {expected.__name__}")


# ── Inspection record parts ──────────────────────────────────────


@dataclass
class Loads:
    """Which temporary loads are connected to the panel."""

    welder: bool = False
    grinder: bool = False
    light: bool = False
    pump: bool = False

    def __post_init__(self) -> None:
        for name in LOAD_LABELS:
            if not isinstance(getattr(self, name), bool):
                raise TypeError(f"loads.{name} must be a bool")

    def connected_labels(self) -> list[str]:
        return [label for name, label in LOAD_LABELS.items() if getattr(self, name)]

    def describe(self) -> str:
        """Return the load-cause text, e.g. ``"Welder, Pump"`` or ``"None"``."""
        labels = self.connected_labels()
        return ", ".join(labels) if labels else "None"

    def to_dict(self) -> dict[str, bool]:
        return {name: getattr(self, name) for name in LOAD_LABELS}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Loads:
        return cls(**{name: data.get(name, False) for name in LOAD_LABELS})


@dataclass
class Position:
    """Floor-plan coordinate in percent (0-100 on each axis)."""

    x: float = 50.0
    y: float = 50.0

    def __post_init__(self) -> None:
        self.x = _to_float(self.x, "position.x")
        self.y = _to_float(self.y, "position.y")
        for name, value in (("x", self.x), ("y", self.y)):
            if not 0.0 <= value <= 100.0:
                raise ValueError(f"position.{name} must be between 0 and 100")

    @classmethod
    def centered(cls) -> Position:
        return cls(50.0, 50.0)

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass
class Breaker:
    """One row of the breaker detail table."""

    breaker_no: str = "0"
    category: str = "1차"
    capacity: float = 0.0
    load_name: str = ""
    type: str = "1P"
    kind: str = "MCCB"
    current_l1: float = 0.0
    current_l2: float = 0.0
    current_l3: float = 0.0
    load_r: float = 0.0
    load_s: float = 0.0
    load_t: float = 0.0
    load_n: float = 0.0

    def __post_init__(self) -> None:
        for name in BREAKER_TEXT_FIELDS:
            setattr(self, name, _to_str(getattr(self, name), f"breaker.{name}"))
        for name in BREAKER_NUMBER_FIELDS:
            setattr(self, name, _to_float(getattr(self, name), f"breaker.{name}"))

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in BREAKER_FIELDS}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Breaker:
        return cls(**{name: data[name] for name in BREAKER_FIELDS if name in data})


@dataclass
class ThermalImage:
    """Thermal-camera measurement attached to a panel."""

    image_url: str | None = None
    temperature: float = 0.0
    max_temp: float = 0.0
    min_temp: float = 0.0
    emissivity: float = 0.95
    equipment: str = "KT-352"
    measurement_time: str = ""

    def __post_init__(self) -> None:
        self.image_url = _to_optional_str(self.image_url, "thermal_image.image_url")
        for name in THERMAL_NUMBER_FIELDS:
            setattr(self, name, _to_float(getattr(self, name), f"thermal_image.{name}"))
        self.equipment = _to_str(self.equipment, "thermal_image.equipment")
        self.measurement_time = _to_str(self.measurement_time, "thermal_image.measurement_time")

    def to_dict(self) -> dict[str, Any]:
        return {
            "image_url": self.image_url,
            "temperature": self.temperature,
            "max_temp": self.max_temp,
            "min_temp": self.min_temp,
            "emissivity": self.emissivity,
            "equipment": self.equipment,
            "measurement_time": self.measurement_time,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ThermalImage:
        known = ("image_url", *THERMAL_NUMBER_FIELDS, "equipment", "measurement_time")
        return cls(**{name: data[name] for name in known if name in data})


@dataclass
class LoadSummary:
    """Per-phase load sums (VA) and their share of the total (percent)."""

    phase_sum_a: float = 0.0
    phase_sum_b: float = 0.0
    phase_sum_c: float = 0.0
    total: float = 0.0
    share_a: float = 0.0
    share_b: float = 0.0
    share_c: float = 0.0

    def __post_init__(self) -> None:
        for name in LOAD_SUMMARY_FIELDS:
            setattr(self, name, _to_float(getattr(self, name), f"load_summary.{name}"))

    def to_dict(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in LOAD_SUMMARY_FIELDS}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LoadSummary:
        return cls(**{name: data[name] for name in LOAD_SUMMARY_FIELDS if name in data})


# ── Records ──────────────────────────────────────────────────────


@dataclass
class InspectionRecord:
    """One physical panel, keyed by ``panel_no``."""

    panel_no: str
    status: Status = Status.pending
    last_inspection_date: str = UNSET_DATE
    loads: Loads = field(default_factory=Loads)
    photo_url: str | None = None
    memo: str = ""
    position: Position | None = None
    breakers: list[Breaker] = field(default_factory=list)
    thermal_image: ThermalImage | None = None
    load_summary: LoadSummary | None = None
    project_name: str = ""
    contractor: str = ""
    management_number: str = ""
    inspectors: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.panel_no = _to_key(self.panel_no, "panel_no")
        self.status = _to_status(self.status)
        self.last_inspection_date = _to_str(self.last_inspection_date, "last_inspection_date")
        _check_type(self.loads, Loads, "loads")
        self.photo_url = _to_optional_str(self.photo_url, "photo_url")
        self.memo = _to_str(self.memo, "memo")
        if self.position is not None:
            _check_type(self.position, Position, "position")
        self.breakers = list(self.breakers or [])
        for breaker in self.breakers:
            _check_type(breaker, Breaker, "breakers items")
        if self.thermal_image is not None:
            _check_type(self.thermal_image, ThermalImage, "thermal_image")
        if self.load_summary is not None:
            _check_type(self.load_summary, LoadSummary, "load_summary")
        self.project_name = _to_str(self.project_name, "project_name")
        self.contractor = _to_str(self.contractor, "contractor")
        self.management_number = _to_str(self.management_number, "management_number")
        self.inspectors = _to_string_list(self.inspectors, "inspectors")

    def to_dict(self) -> dict[str, Any]:
        return {
            "panel_no": self.panel_no,
            "status": self.status.value,
            "last_inspection_date": self.last_inspection_date,
            "loads": self.loads.to_dict(),
            "photo_url": self.photo_url,
            "memo": self.memo,
            "position": self.position.to_dict() if self.position else None,
            "breakers": [b.to_dict() for b in self.breakers],
            "thermal_image": self.thermal_image.to_dict() if self.thermal_image else None,
            "load_summary": self.load_summary.to_dict() if self.load_summary else None,
            "project_name": self.project_name,
            "contractor": self.contractor,
            "management_number": self.management_number,
            "inspectors": list(self.inspectors),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InspectionRecord:
        position = data.get("position")
        thermal = data.get("thermal_image")
        summary = data.get("load_summary")
        return cls(
            panel_no=data["panel_no"],
            status=data.get("status", Status.pending.value),
            last_inspection_date=data.get("last_inspection_date", UNSET_DATE),
            loads=Loads.from_dict(data.get("loads") or {}),
            photo_url=data.get("photo_url"),
            memo=data.get("memo", ""),
            position=Position(position["x"], position["y"]) if position else None,
            breakers=[Breaker.from_dict(b) for b in data.get("breakers") or []],
            thermal_image=ThermalImage.from_dict(thermal) if thermal else None,
            load_summary=LoadSummary.from_dict(summary) if summary else None,
            project_name=data.get("project_name", ""),
            contractor=data.get("contractor", ""),
            management_number=data.get("management_number", ""),
            inspectors=data.get("inspectors") or [],
        )


@dataclass
class ReportRecord:
    """A generated inspection report, referencing its panel by ``board_id``."""

    report_id: str
    board_id: str
    generated_at: str
    status: Status = Status.complete
    html_content: str = ""

    def __post_init__(self) -> None:
        self.report_id = _to_key(self.report_id, "report_id")
        self.board_id = _to_key(self.board_id, "board_id")
        self.generated_at = _to_str(self.generated_at, "generated_at")
        self.status = _to_status(self.status)
        self.html_content = _to_str(self.html_content, "html_content")

    def to_dict(self) -> dict[str, Any]:
        return {
            "report_id": self.report_id,
            "board_id": self.board_id,
            "generated_at": self.generated_at,
            "status": self.status.value,
            "html_content": self.html_content,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ReportRecord:
        return cls(
            report_id=data["report_id"],
            board_id=data["board_id"],
            generated_at=data.get("generated_at", ""),
            status=data.get("status", Status.complete.value),
            html_content=data.get("html_content", ""),
        )


# ── Transient parsing types ──────────────────────────────────────


@dataclass(frozen=True)
class RowFailure:
    """A data row that was skipped; ``row_number`` is the 1-based sheet row."""

    row_number: int
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"row_number": self.row_number, "reason": self.reason}


@dataclass(frozen=True)
class ImageAnchor:
    """An embedded image and the zero-based, inclusive cell range it sits on."""

    top: int
    bottom: int
    left: int
    right: int
    data: bytes = field(repr=False)
    extension: str = "png"

    def __post_init__(self) -> None:
        for name in ("top", "bottom", "left", "right"):
            _to_non_negative_int(getattr(self, name), name)
        if self.bottom < self.top:
            raise ValueError("bottom must be >= top")
        if self.right < self.left:
            raise ValueError("right must be >= left")

    def overlaps_row(self, row: int, tolerance: int = 0) -> bool:
        return self.top - tolerance <= row <= self.bottom + tolerance

    def starts_in_columns(self, first: int, last: int) -> bool:
        return first <= self.left <= last

    def row_distance(self, row: int) -> int:
        if self.top <= row <= self.bottom:
            return 0
        return min(abs(self.top - row), abs(self.bottom - row))


# ── Results ──────────────────────────────────────────────────────


@dataclass
class ImportSummary:
    """Consolidated outcome of one import, shown to the user once.

    Contract invariant: ``rows_in == imported + len(failures)``.
    """

    rows_in: int = 0
    imported: int = 0
    failures: list[RowFailure] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    reports_imported: int = 0
    images_bound: int = 0
    format_version: str | None = None

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.imported = _to_non_negative_int(self.imported, "imported")
        self.reports_imported = _to_non_negative_int(self.reports_imported, "reports_imported")
        self.images_bound = _to_non_negative_int(self.images_bound, "images_bound")
        self.failures = list(self.failures or [])
        self.warnings = _to_string_list(self.warnings, "warnings")
        if self.imported + len(self.failures) != self.rows_in:
            raise ValueError("rows_in must equal imported + failures")

    @property
    def skipped(self) -> int:
        return len(self.failures)

    @property
    def failed_rows(self) -> list[int]:
        return [f.row_number for f in self.failures]

    def message(self, max_rows: int = 10) -> str:
        """Return the single user-facing summary for this import."""
        lines = [f"Imported {self.imported} panel record(s)."]
        if self.failures:
            shown = ", ".join(str(n) for n in self.failed_rows[:max_rows])
            if self.skipped > max_rows:
                shown += f" +{self.skipped - max_rows} more"
            lines.append(f"Warning: {self.skipped} row(s) had errors and were skipped.")
            lines.append(f"Error rows: {shown}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_in": self.rows_in,
            "imported": self.imported,
            "skipped": self.skipped,
            "failures": [f.to_dict() for f in self.failures],
            "warnings": list(self.warnings),
            "reports_imported": self.reports_imported,
            "images_bound": self.images_bound,
            "format_version": self.format_version,
        }


@dataclass
class ImportResult:
    records: list[InspectionRecord]
    reports: list[ReportRecord]
    summary: ImportSummary


@dataclass
class ExportResult:
    content: bytes = field(repr=False)
    embedded_photo_panels: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
