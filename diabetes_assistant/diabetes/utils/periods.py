"""Day-partitioned dosing parameters.

A *period set* is a collection of :class:`Period` objects which, ordered by
start hour, tiles the 24-hour day. Three independent sets exist per user:
dosing coefficients, insulin sensitivity and carb ratios. They share the
same structure and differ only in the name of the value field on the wire.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

HOURS_PER_DAY = 24.0
# Absolute tolerance when comparing accumulated durations with 24 hours.
TOTAL_HOURS_TOLERANCE = 1e-9

_START_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


class PeriodSetError(ValueError):
    """Raised when a period or a period set is malformed."""


class PeriodKind(str, Enum):
    INSULIN = "insulin"
    SENSITIVITY = "sensitivity"
    CARB_RATIO = "carb_ratio"

    @property
    def value_field(self) -> str:
        """Name of the coefficient field in the JSON representation."""

        return _VALUE_FIELDS[self]


_VALUE_FIELDS: dict[PeriodKind, str] = {
    PeriodKind.INSULIN: "coefficient",
    PeriodKind.SENSITIVITY: "sensitivity",
    PeriodKind.CARB_RATIO: "ratio",
}


@dataclass(frozen=True)
class Period:
    """One segment of the day with a scalar coefficient.

    Attributes:
        start_hour: Start of the segment in hours, ``0 <= start_hour < 24``.
        duration_hours: Length of the segment in hours. May run past
            midnight, e.g. ``22:00`` for 8 hours.
        coefficient: Value active during the segment. Must be positive.
        label: Optional display name such as ``"Morning"``.
    """

    start_hour: float
    duration_hours: float
    coefficient: float
    label: str | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.start_hour < HOURS_PER_DAY:
            raise PeriodSetError(f"start hour must be in [0, 24), got {self.start_hour}")
        if self.duration_hours <= 0:
            raise PeriodSetError(f"duration must be positive, got {self.duration_hours}")
        if self.coefficient <= 0:
            raise PeriodSetError(f"coefficient must be positive, got {self.coefficient}")

    @property
    def end_hour(self) -> float:
        return self.start_hour + self.duration_hours

    @property
    def start_time(self) -> str:
        return format_start_time(self.start_hour)

    def contains(self, hour: float) -> bool:
        """Return whether ``hour`` falls in this period, including past midnight."""

        if self.start_hour <= hour < self.end_hour:
            return True
        return self.start_hour <= hour + HOURS_PER_DAY < self.end_hour

    def overlap_hours(self, start: float, end: float) -> float:
        """Return how many hours of ``[start, end)`` this period covers.

        ``start`` and ``end`` describe a span within one day; ``end`` may
        exceed 24 for spans that wrap past midnight.
        """

        total = 0.0
        for shift in (-HOURS_PER_DAY, 0.0, HOURS_PER_DAY):
            lo = max(self.start_hour + shift, start)
            hi = min(self.end_hour + shift, end)
            if hi > lo:
                total += hi - lo
        return total


@dataclass(frozen=True)
class PeriodSetValidation:
    ok: bool
    total_hours: float
    message: str


@dataclass(frozen=True)
class PeriodSetEdit:
    """Result of a structural edit: the new set and its validation."""

    periods: tuple[Period, ...]
    validation: PeriodSetValidation


def parse_start_time(value: str) -> float:
    """Convert an ``HH:MM`` string into fractional hours."""

    match = _START_TIME_RE.match(value.strip())
    if match is None:
        raise PeriodSetError(f"start time must be in HH:MM format, got {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours >= 24 or minutes >= 60:
        raise PeriodSetError(f"start time out of range: {value!r}")
    return hours + minutes / 60


def format_start_time(hour: float) -> str:
    total_minutes = int(round(hour * 60))
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def period_from_dict(data: Mapping[str, Any], kind: PeriodKind) -> Period:
    """Build a :class:`Period` from its JSON representation.

    Accepts either ``startTime`` (``HH:MM``) or ``startHour`` and either
    ``hours`` or ``durationHours``. The value is read from the field named
    by ``kind``.
    """

    if data.get("startHour") is not None:
        start = float(data["startHour"])
    elif data.get("startTime") is not None:
        start = parse_start_time(str(data["startTime"]))
    else:
        raise PeriodSetError("period requires startTime or startHour")

    duration = data.get("hours", data.get("durationHours"))
    if duration is None:
        raise PeriodSetError("period requires hours or durationHours")

    value = data.get(kind.value_field)
    if value is None:
        raise PeriodSetError(f"period requires {kind.value_field}")

    label = data.get("label")
    return Period(
        start_hour=start,
        duration_hours=float(duration),
        coefficient=float(value),
        label=str(label) if label is not None else None,
    )


def period_to_dict(period: Period, kind: PeriodKind) -> dict[str, Any]:
    data: dict[str, Any] = {
        "startTime": period.start_time,
        "startHour": period.start_hour,
        "hours": period.duration_hours,
        kind.value_field: period.coefficient,
    }
    if period.label is not None:
        data["label"] = period.label
    return data


def periods_from_dicts(items: Iterable[Mapping[str, Any]], kind: PeriodKind) -> tuple[Period, ...]:
    return tuple(period_from_dict(item, kind) for item in items)


def periods_to_dicts(periods: Iterable[Period], kind: PeriodKind) -> list[dict[str, Any]]:
    return [period_to_dict(p, kind) for p in periods]


def sort_periods(periods: Iterable[Period]) -> list[Period]:
    """Order periods by start hour; equal starts keep their input order."""

    return sorted(periods, key=lambda p: p.start_hour)


def validate_periods(periods: Sequence[Period], *, strict: bool = False) -> PeriodSetValidation:
    """Check that ``periods`` partition the day.

    The durations must add up to 24 hours. With ``strict`` the boundaries
    must also chain: every period ends where the next one (by start hour)
    begins, and the last one ends 24 hours after the first one starts.
    """

    total = sum(p.duration_hours for p in periods)
    if not periods:
        return PeriodSetValidation(False, total, "at least one period is required")

    gap = HOURS_PER_DAY - total
    if abs(gap) > TOTAL_HOURS_TOLERANCE:
        if gap > 0:
            message = f"periods cover {total:g} hours, {gap:g} hours short of 24"
        else:
            message = f"periods cover {total:g} hours, {-gap:g} hours more than 24"
        return PeriodSetValidation(False, total, message)

    if strict:
        ordered = sort_periods(periods)
        last = len(ordered) - 1
        for idx, current in enumerate(ordered):
            following = ordered[(idx + 1) % len(ordered)]
            expected = following.start_hour + (HOURS_PER_DAY if idx == last else 0.0)
            if abs(current.end_hour - expected) > TOTAL_HOURS_TOLERANCE:
                kind = "overlaps" if current.end_hour > expected else "leaves a gap before"
                message = (
                    f"period starting {current.start_time} {kind} "
                    f"the period starting {following.start_time}"
                )
                return PeriodSetValidation(False, total, message)

    return PeriodSetValidation(True, total, "periods cover 24 hours")


def ensure_valid(periods: Sequence[Period], kind: PeriodKind, *, strict: bool = True) -> None:
    """Raise :class:`PeriodSetError` unless ``periods`` is a valid set."""

    result = validate_periods(periods, strict=strict)
    if not result.ok:
        raise PeriodSetError(f"{kind.value} periods: {result.message}")


def add_period(periods: Sequence[Period], period: Period) -> PeriodSetEdit:
    updated = tuple(sort_periods([*periods, period]))
    return PeriodSetEdit(updated, validate_periods(updated))


def remove_period(periods: Sequence[Period], index: int) -> PeriodSetEdit:
    if not 0 <= index < len(periods):
        raise IndexError(f"no period at index {index}")
    updated = tuple(p for i, p in enumerate(periods) if i != index)
    return PeriodSetEdit(updated, validate_periods(updated))


def edit_period(periods: Sequence[Period], index: int, **changes: Any) -> PeriodSetEdit:
    """Replace fields of the period at ``index`` (e.g. its boundaries)."""

    if not 0 <= index < len(periods):
        raise IndexError(f"no period at index {index}")
    updated = list(periods)
    updated[index] = replace(updated[index], **changes)
    result = tuple(sort_periods(updated))
    return PeriodSetEdit(result, validate_periods(result))


def uniform_quarters(values: Sequence[float], labels: Sequence[str] | None = None) -> tuple[Period, ...]:
    """Build four 6-hour periods starting at midnight."""

    if len(values) != 4:
        raise PeriodSetError("exactly four values are required")
    names = list(labels) if labels is not None else [None] * 4
    return tuple(
        Period(start_hour=6.0 * i, duration_hours=6.0, coefficient=float(v), label=names[i])
        for i, v in enumerate(values)
    )


__all__ = [
    "HOURS_PER_DAY",
    "Period",
    "PeriodKind",
    "PeriodSetEdit",
    "PeriodSetError",
    "PeriodSetValidation",
    "add_period",
    "edit_period",
    "ensure_valid",
    "format_start_time",
    "parse_start_time",
    "period_from_dict",
    "period_to_dict",
    "periods_from_dicts",
    "periods_to_dicts",
    "remove_period",
    "sort_periods",
    "uniform_quarters",
    "validate_periods",
]
