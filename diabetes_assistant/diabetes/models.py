"""Domain objects shared by the dosing engine, storage and API layers."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from .utils.periods import Period, PeriodKind, ensure_valid, uniform_quarters

DEFAULT_TARGET_MIN = 4.0
DEFAULT_TARGET_MAX = 8.0
DEFAULT_IOB_DURATION = 4.0

QUARTER_LABELS = ("Night", "Morning", "Afternoon", "Evening")
DEFAULT_INSULIN_COEFFICIENTS = (1.0, 1.2, 1.0, 0.8)
DEFAULT_SENSITIVITY = 2.0
DEFAULT_CARB_RATIO = 10.0


@dataclass(frozen=True)
class GlucoseReading:
    """Blood glucose measurement in mmol/L."""

    value: float
    timestamp: datetime
    source: str | None = None


@dataclass(frozen=True)
class UserSettings:
    """Per-user dosing configuration, always replaced as a whole."""

    target_min: float
    target_max: float
    iob_duration: float
    insulin_periods: tuple[Period, ...]
    sensitivity_periods: tuple[Period, ...]
    carb_ratio_periods: tuple[Period, ...]
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def target_bg(self) -> float:
        """Glucose level aimed at by corrections and tuning."""

        return self.target_min

    def periods(self, kind: PeriodKind) -> tuple[Period, ...]:
        if kind is PeriodKind.INSULIN:
            return self.insulin_periods
        if kind is PeriodKind.SENSITIVITY:
            return self.sensitivity_periods
        return self.carb_ratio_periods

    def validate(self) -> None:
        """Raise :class:`PeriodSetError` if any period set is not a full day."""

        for kind in PeriodKind:
            ensure_valid(self.periods(kind), kind)

    def with_insulin_periods(self, periods: tuple[Period, ...]) -> "UserSettings":
        return replace(
            self,
            insulin_periods=periods,
            updated_at=datetime.now(timezone.utc),
        )


def default_settings() -> UserSettings:
    """Settings assigned to a user seen for the first time."""

    return UserSettings(
        target_min=DEFAULT_TARGET_MIN,
        target_max=DEFAULT_TARGET_MAX,
        iob_duration=DEFAULT_IOB_DURATION,
        insulin_periods=uniform_quarters(DEFAULT_INSULIN_COEFFICIENTS, QUARTER_LABELS),
        sensitivity_periods=uniform_quarters([DEFAULT_SENSITIVITY] * 4, QUARTER_LABELS),
        carb_ratio_periods=uniform_quarters([DEFAULT_CARB_RATIO] * 4, QUARTER_LABELS),
    )
