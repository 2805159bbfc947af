from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from ..services.dose import DoseContext


class DoseIn(BaseModel):
    userId: str = Field(min_length=1)
    carbGrams: float = Field(ge=0, description="Carbohydrates to cover in grams")
    currentBG: Optional[float] = Field(
        default=None, gt=0, description="Current glucose; the latest reading is used if omitted"
    )
    insulinOnBoard: float = Field(default=0.0, ge=0)


class DoseOut(BaseModel):
    mealInsulin: float
    correctionInsulin: float
    totalInsulin: float
    activeDosingCoefficient: float
    activeSensitivity: float
    activeCarbRatio: float
    coefficientDefaulted: bool
    targetBG: float
    currentBG: Optional[float] = None
    hour: int

    @classmethod
    def from_context(cls, ctx: DoseContext) -> "DoseOut":
        result = ctx.result
        return cls(
            mealInsulin=round(result.meal_insulin, 2),
            correctionInsulin=round(result.correction_insulin, 2),
            totalInsulin=round(result.total_insulin, 2),
            activeDosingCoefficient=result.dosing.coefficient,
            activeSensitivity=result.sensitivity.coefficient,
            activeCarbRatio=result.carb_ratio.coefficient,
            coefficientDefaulted=result.dosing.defaulted,
            targetBG=result.target_bg,
            currentBG=ctx.current_bg,
            hour=ctx.hour,
        )
