"""Dataset aggregates: derived phase-load summary and status counts."""

from __future__ import annotations

from collections.abc import Sequence

import pandas as pd

from panelbook.models import Breaker, InspectionRecord, LoadSummary, Status

_PHASE_COLUMNS = {"a": "load_r", "b": "load_s", "c": "load_t"}


def compute_load_summary(breakers: Sequence[Breaker]) -> LoadSummary:
    """Sum per-phase load capacity (R/S/T → A/B/C) and each phase's share in percent.

    The neutral column is not a phase and does not count toward the total.
    """
    if not breakers:
        return LoadSummary()

    df = pd.DataFrame([b.to_dict() for b in breakers], columns=list(_PHASE_COLUMNS.values()))
    sums = df.sum(numeric_only=True)
    phase = {key: float(sums[col]) for key, col in _PHASE_COLUMNS.items()}
    total = sum(phase.values())

    def share(value: float) -> float:
        return round(value / total * 100.0, 2) if total else 0.0

    return LoadSummary(
        phase_sum_a=phase["a"],
        phase_sum_b=phase["b"],
        phase_sum_c=phase["c"],
        total=total,
        share_a=share(phase["a"]),
        share_b=share(phase["b"]),
        share_c=share(phase["c"]),
    )


def status_counts(records: Sequence[InspectionRecord]) -> dict[str, int]:
    """Return ``{status label: count}`` for every status, zeros included."""
    counts = pd.Series([r.status.value for r in records], dtype="object").value_counts()
    return {status.value: int(counts.get(status.value, 0)) for status in Status}
