"""Weight normalization, progress aggregation and status derivation.

Pure functions with no store access; the recalculation orchestrator feeds them
a sibling group and persists what they return.
"""
from __future__ import annotations

import math
from typing import Iterable, Sequence

from teamtrack.errors import DegenerateWeightError, ValidationError
from teamtrack.models import COMPLETED, PROCESSING

_SNAP_TOLERANCE = 1e-9


def normalize_weights(weights: Sequence[int]) -> list[float]:
    """Turn raw sibling weights into percentages that sum to 1.

    A single member always gets 1.0, whatever its weight (including 0).
    Several members whose weights sum to 0 raise ``DegenerateWeightError``.
    """
    if not weights:
        return []
    if any(w < 0 for w in weights):
        raise ValidationError(f"Weights must be non-negative, got {list(weights)}")
    if len(weights) == 1:
        return [1.0]
    total = sum(weights)
    if total == 0:
        raise DegenerateWeightError(
            f"{len(weights)} siblings have a combined weight of 0 days"
        )
    return [w / total for w in weights]


def _snap(value: float) -> float:
    if math.isclose(value, 1.0, abs_tol=_SNAP_TOLERANCE):
        return 1.0
    if math.isclose(value, 0.0, abs_tol=_SNAP_TOLERANCE):
        return 0.0
    return value


def aggregate_progress(pairs: Iterable[tuple[float, float]]) -> float:
    """Fold (percent, progress) pairs into a parent progress in [0, 1]."""
    total = math.fsum(percent * progress for percent, progress in pairs)
    return _snap(min(1.0, max(0.0, total)))


def task_progress(status: str) -> float:
    return 1.0 if status == "Done" else 0.0


def derive_status(progress: float, current: str | None = None) -> str:
    """Completed iff progress == 1. ``current`` is accepted so callers can
    compare, but never pins the result: a Completed project re-opens."""
    return COMPLETED if progress >= 1.0 else PROCESSING
