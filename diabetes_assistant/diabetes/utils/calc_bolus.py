"""Utilities for calculating insulin doses.

The building blocks are plain functions without hidden state. Denominators
(carb ratio, sensitivity, total daily dose) are the caller's responsibility:
a zero value raises :class:`ZeroDivisionError` instead of being masked.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .periods import Period
from .time_resolver import Resolution, resolve

# "1800 rule" expressed in mmol/L: 100 / TDD, divided by mg/dL per mmol/L.
SENSITIVITY_RULE_NUMERATOR = 100.0
MGDL_PER_MMOL = 18.0


def meal_insulin(carb_grams: float, carb_ratio: float, dosing_coefficient: float) -> float:
    """Insulin covering ``carb_grams`` scaled by the time-of-day coefficient."""

    return carb_grams / carb_ratio * dosing_coefficient


def correction_insulin(current_bg: float, target_bg: float, sensitivity: float) -> float:
    """Insulin bringing ``current_bg`` down to ``target_bg``; never negative."""

    return max(0.0, (current_bg - target_bg) / sensitivity)


def total_insulin(meal: float, correction: float, insulin_on_board: float) -> float:
    """Meal plus correction minus insulin on board, floored at zero."""

    return max(0.0, meal + correction - insulin_on_board)


def sensitivity_from_total_daily_dose(total_daily_insulin: float) -> float:
    """Estimate a sensitivity factor in mmol/L per unit from the daily dose.

    Only meant to seed a value when none is configured.
    """

    return SENSITIVITY_RULE_NUMERATOR / total_daily_insulin / MGDL_PER_MMOL


@dataclass(frozen=True)
class DoseRequest:
    """Inputs for a dose calculation at a given hour.

    Attributes:
        carb_grams: Carbohydrates to cover, in grams.
        now_hour: Wall-clock hour used to pick the active periods.
        insulin_periods: Dosing-coefficient period set.
        sensitivity_periods: Sensitivity period set.
        carb_ratio_periods: Carb-ratio period set.
        target_bg: Target glucose in mmol/L.
        current_bg: Current glucose; ``None`` skips the correction.
        insulin_on_board: Active insulin from earlier doses.
    """

    carb_grams: float
    now_hour: int
    insulin_periods: Sequence[Period]
    sensitivity_periods: Sequence[Period]
    carb_ratio_periods: Sequence[Period]
    target_bg: float
    current_bg: float | None = None
    insulin_on_board: float = 0.0


@dataclass(frozen=True)
class DoseResult:
    meal_insulin: float
    correction_insulin: float
    total_insulin: float
    dosing: Resolution
    sensitivity: Resolution
    carb_ratio: Resolution
    target_bg: float

    @property
    def active_dosing_coefficient(self) -> float:
        return self.dosing.coefficient


def calculate_dose(request: DoseRequest) -> DoseResult:
    """Compose meal, correction and total insulin for ``request``."""

    dosing = resolve(request.insulin_periods, request.now_hour)
    sensitivity = resolve(request.sensitivity_periods, request.now_hour)
    carb_ratio = resolve(request.carb_ratio_periods, request.now_hour)

    meal = meal_insulin(request.carb_grams, carb_ratio.coefficient, dosing.coefficient)
    correction = 0.0
    if request.current_bg is not None:
        correction = correction_insulin(
            request.current_bg, request.target_bg, sensitivity.coefficient
        )
    total = total_insulin(meal, correction, request.insulin_on_board)

    return DoseResult(
        meal_insulin=meal,
        correction_insulin=correction,
        total_insulin=total,
        dosing=dosing,
        sensitivity=sensitivity,
        carb_ratio=carb_ratio,
        target_bg=request.target_bg,
    )


__all__ = [
    "DoseRequest",
    "DoseResult",
    "calculate_dose",
    "correction_insulin",
    "meal_insulin",
    "sensitivity_from_total_daily_dose",
    "total_insulin",
]
