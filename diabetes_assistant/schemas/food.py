from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class FoodAnalysisSchema(BaseModel):
    dish: str
    carbs: float
    confidence: str
    reasoning: str
    provider: str
    mealInsulin: float
    correctionInsulin: float
    totalInsulin: float
    periodCoefficient: float


class FoodAnalysisOut(BaseModel):
    success: bool = True
    detectedFood: str
    carbs: float
    insulinDose: float
    reasoning: str
    photoProvided: bool = True
    photoPath: Optional[str] = None
    analysis: FoodAnalysisSchema
