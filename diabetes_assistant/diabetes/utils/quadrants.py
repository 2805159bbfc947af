"""Conversion between fixed day quadrants and user-defined periods.

The adaptive tuner works on four fixed buckets (morning, afternoon, evening
and night) while users configure arbitrary periods. The two
representations are joined by the functions here. The conversion is lossy
whenever a user period straddles a quadrant boundary, which is reported
through the ``exact`` flag of each function's result.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Sequence

from .periods import HOURS_PER_DAY, Period, sort_periods
from .time_resolver import DEFAULT_COEFFICIENT


class Quadrant(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


# [start, end) in hours; night wraps past midnight.
QUADRANT_SPANS: dict[Quadrant, tuple[float, float]] = {
    Quadrant.MORNING: (6.0, 12.0),
    Quadrant.AFTERNOON: (12.0, 18.0),
    Quadrant.EVENING: (18.0, 22.0),
    Quadrant.NIGHT: (22.0, 22.0 + 8.0),
}


def quadrant_for_hour(hour: int) -> Quadrant:
    if 6 <= hour < 12:
        return Quadrant.MORNING
    if 12 <= hour < 18:
        return Quadrant.AFTERNOON
    if 18 <= hour < 22:
        return Quadrant.EVENING
    return Quadrant.NIGHT


@dataclass(frozen=True)
class QuadrantCoefficients:
    morning: float = DEFAULT_COEFFICIENT
    afternoon: float = DEFAULT_COEFFICIENT
    evening: float = DEFAULT_COEFFICIENT
    night: float = DEFAULT_COEFFICIENT

    def get(self, quadrant: Quadrant) -> float:
        return float(getattr(self, quadrant.value))

    def with_value(self, quadrant: Quadrant, value: float) -> "QuadrantCoefficients":
        return replace(self, **{quadrant.value: value})

    def as_dict(self) -> dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_periods(cls, periods: Sequence[Period]) -> tuple["QuadrantCoefficients", bool]:
        """Collapse ``periods`` into quadrant coefficients.

        Each quadrant gets the hour-weighted mean of the coefficients
        covering it. ``exact`` is ``False`` when a quadrant is covered by
        more than one distinct coefficient or not covered at all.
        """

        values: dict[str, float] = {}
        exact = True
        for quadrant, (start, end) in QUADRANT_SPANS.items():
            covered = 0.0
            weighted = 0.0
            distinct: set[float] = set()
            for period in periods:
                hours = period.overlap_hours(start, end)
                if hours > 0:
                    covered += hours
                    weighted += hours * period.coefficient
                    distinct.add(period.coefficient)
            if covered <= 0:
                values[quadrant.value] = DEFAULT_COEFFICIENT
                exact = False
                continue
            values[quadrant.value] = weighted / covered
            if len(distinct) > 1:
                exact = False
        return cls(**values), exact

    def to_periods(self) -> tuple[Period, ...]:
        """Expand into a period set following the quadrant boundaries."""

        periods = [
            Period(
                start_hour=start % HOURS_PER_DAY,
                duration_hours=end - start,
                coefficient=self.get(quadrant),
                label=quadrant.value,
            )
            for quadrant, (start, end) in QUADRANT_SPANS.items()
        ]
        return tuple(sort_periods(periods))


def rescale_periods(
    periods: Sequence[Period],
    before: QuadrantCoefficients,
    after: QuadrantCoefficients,
) -> tuple[tuple[Period, ...], bool]:
    """Apply the change from ``before`` to ``after`` onto ``periods``.

    Boundaries of the user's periods are kept. Each period is scaled by the
    hour-weighted mean of ``after / before`` over the quadrants it overlaps.
    ``exact`` is ``False`` if some period straddles quadrants whose factors
    differ, in which case the quadrant change is only approximated.
    """

    exact = True
    result: list[Period] = []
    for period in periods:
        covered = 0.0
        weighted = 0.0
        factors: set[float] = set()
        for quadrant, (start, end) in QUADRANT_SPANS.items():
            hours = period.overlap_hours(start, end)
            if hours <= 0:
                continue
            factor = after.get(quadrant) / before.get(quadrant)
            covered += hours
            weighted += hours * factor
            factors.add(factor)
        if covered <= 0:
            result.append(period)
            continue
        if len(factors) > 1:
            exact = False
        factor = weighted / covered
        if factor == 1.0:
            result.append(period)
        else:
            result.append(replace(period, coefficient=period.coefficient * factor))
    return tuple(result), exact


__all__ = [
    "QUADRANT_SPANS",
    "Quadrant",
    "QuadrantCoefficients",
    "quadrant_for_hour",
    "rescale_periods",
]
