"""Food photo analysis endpoint."""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from ..config import Settings
from ..dependencies import FoodAnalyzerDep, SettingsDep, StorageDep
from ..diabetes.services.food_analysis import FoodAnalyzer
from ..diabetes.services.storage import Storage
from ..schemas.food import FoodAnalysisOut, FoodAnalysisSchema
from ..services.dose import compute_dose


logger = logging.getLogger(__name__)

router = APIRouter()

MAX_PHOTO_BYTES = 10 << 20


def _parse_weight(value: Optional[str]) -> float | None:
    if not value:
        return None
    try:
        weight = float(value)
    except ValueError:
        logger.warning("Ignoring invalid food weight %r", value)
        return None
    return weight if weight > 0 else None


async def _save_photo(uploads_dir: str, filename: str | None, content: bytes) -> Path:
    directory = Path(uploads_dir)
    suffix = Path(filename or "").suffix.lower()
    path = directory / f"food_{uuid.uuid4()}{suffix}"

    def _write() -> None:
        directory.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

    try:
        await asyncio.to_thread(_write)
    except OSError as exc:
        logger.exception("Failed to save food photo to %s", path)
        raise HTTPException(status_code=500, detail="Error saving file") from exc
    return path


@router.post("/analyze-food", operation_id="analyzeFood", tags=["Food"])
async def analyze_food(
    userId: str = Form(..., min_length=1),
    foodWeight: Optional[str] = Form(None),
    foodPhoto: Optional[UploadFile] = File(None),
    storage: Storage = StorageDep,
    analyzer: FoodAnalyzer = FoodAnalyzerDep,
    settings: Settings = SettingsDep,
) -> FoodAnalysisOut:
    """Estimate the carbohydrates on a photo and the insulin to cover them."""

    if foodPhoto is None:
        raise HTTPException(status_code=400, detail="Food photo is required for analysis")
    content = await foodPhoto.read(MAX_PHOTO_BYTES + 1)
    if len(content) > MAX_PHOTO_BYTES:
        raise HTTPException(status_code=413, detail="Food photo exceeds 10 MB")
    if not content:
        raise HTTPException(status_code=400, detail="Food photo is empty")

    weight = _parse_weight(foodWeight)
    path = await _save_photo(settings.uploads_dir, foodPhoto.filename, content)
    logger.info("Saved food photo of %s to %s (%d bytes)", userId, path, len(content))

    estimate = await analyzer.analyze_bytes(
        content,
        content_type=foodPhoto.content_type or "image/jpeg",
        food_weight=weight,
    )
    ctx = await compute_dose(
        storage,
        userId,
        estimate.carbs,
        tz=settings.tzinfo,
        window_days=settings.tuning_window_days,
    )
    result = ctx.result
    return FoodAnalysisOut(
        detectedFood=estimate.name,
        carbs=estimate.carbs,
        insulinDose=round(result.total_insulin, 2),
        reasoning=estimate.reasoning,
        photoPath=path.name,
        analysis=FoodAnalysisSchema(
            dish=estimate.name,
            carbs=estimate.carbs,
            confidence=estimate.confidence,
            reasoning=estimate.reasoning,
            provider=analyzer.provider_name,
            mealInsulin=round(result.meal_insulin, 2),
            correctionInsulin=round(result.correction_insulin, 2),
            totalInsulin=round(result.total_insulin, 2),
            periodCoefficient=result.dosing.coefficient,
        ),
    )
