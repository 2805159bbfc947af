"""Adaptive adjustment of dosing coefficients from glucose history."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import tzinfo
from enum import Enum
from statistics import fmean
from typing import Iterable, Sequence

from ..models import GlucoseReading
from .quadrants import Quadrant, QuadrantCoefficients, quadrant_for_hour

logger = logging.getLogger(__name__)

MIN_READINGS = 5
MIN_BUCKET_READINGS = 3
# mmol/L; averages closer than this to target leave the coefficient alone.
ACCEPTABLE_DEVIATION = 1.0
MIN_FACTOR = 0.8
MAX_FACTOR = 1.2


class TuningOutcome(str, Enum):
    INSUFFICIENT_DATA = "insufficient_data"
    UNCHANGED = "unchanged"
    ADJUSTED = "adjusted"


@dataclass(frozen=True)
class BucketReport:
    quadrant: Quadrant
    count: int
    average: float | None
    factor: float
    adjusted: bool


@dataclass(frozen=True)
class TuningResult:
    outcome: TuningOutcome
    coefficients: QuadrantCoefficients
    buckets: tuple[BucketReport, ...] = ()

    @property
    def adjusted(self) -> bool:
        return self.outcome is TuningOutcome.ADJUSTED


def bucket_readings(
    readings: Iterable[GlucoseReading], tz: tzinfo | None = None
) -> dict[Quadrant, list[float]]:
    """Group reading values by the quadrant of their local hour."""

    buckets: dict[Quadrant, list[float]] = {q: [] for q in Quadrant}
    for reading in readings:
        ts = reading.timestamp
        if tz is not None and ts.tzinfo is not None:
            ts = ts.astimezone(tz)
        buckets[quadrant_for_hour(ts.hour)].append(reading.value)
    return buckets


def adjustment_factor(average: float, target_bg: float) -> float:
    """Return the multiplier for a bucket, ``1.0`` when close to target."""

    if abs(average - target_bg) < ACCEPTABLE_DEVIATION:
        return 1.0
    return max(MIN_FACTOR, min(MAX_FACTOR, target_bg / average))


def tune(
    readings: Sequence[GlucoseReading],
    target_bg: float,
    coefficients: QuadrantCoefficients,
    *,
    tz: tzinfo | None = None,
) -> TuningResult:
    """Propose new quadrant coefficients from ``readings``.

    At least :data:`MIN_READINGS` readings are needed overall and
    :data:`MIN_BUCKET_READINGS` per quadrant. Each qualifying quadrant whose
    average misses ``target_bg`` by :data:`ACCEPTABLE_DEVIATION` or more is
    scaled by ``target_bg / average``, clamped to ``[0.8, 1.2]``.
    """

    if len(readings) < MIN_READINGS:
        logger.debug("Skipping tuning: %s readings, need %s", len(readings), MIN_READINGS)
        return TuningResult(TuningOutcome.INSUFFICIENT_DATA, coefficients)

    result = coefficients
    reports: list[BucketReport] = []
    for quadrant, values in bucket_readings(readings, tz).items():
        if len(values) < MIN_BUCKET_READINGS:
            reports.append(BucketReport(quadrant, len(values), None, 1.0, False))
            continue
        average = fmean(values)
        factor = adjustment_factor(average, target_bg)
        changed = factor != 1.0
        if changed:
            result = result.with_value(quadrant, coefficients.get(quadrant) * factor)
        reports.append(BucketReport(quadrant, len(values), average, factor, changed))

    outcome = TuningOutcome.ADJUSTED if result != coefficients else TuningOutcome.UNCHANGED
    return TuningResult(outcome, result, tuple(reports))


__all__ = [
    "ACCEPTABLE_DEVIATION",
    "BucketReport",
    "MAX_FACTOR",
    "MIN_BUCKET_READINGS",
    "MIN_FACTOR",
    "MIN_READINGS",
    "TuningOutcome",
    "TuningResult",
    "adjustment_factor",
    "bucket_readings",
    "tune",
]
