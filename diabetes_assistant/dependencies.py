"""FastAPI dependencies resolving the objects created at application start."""

from __future__ import annotations

from typing import cast

from fastapi import Depends, HTTPException, Request

from .config import Settings, get_settings
from .diabetes.services.food_analysis import FoodAnalyzer
from .diabetes.services.storage import Storage


def get_app_settings() -> Settings:
    return get_settings()


def get_storage(request: Request) -> Storage:
    storage = getattr(request.app.state, "storage", None)
    if storage is None:  # pragma: no cover - lifespan not run
        raise HTTPException(status_code=503, detail="storage is not initialized")
    return cast(Storage, storage)


def get_food_analyzer(request: Request) -> FoodAnalyzer:
    analyzer = getattr(request.app.state, "food_analyzer", None)
    if analyzer is None:  # pragma: no cover - lifespan not run
        raise HTTPException(status_code=503, detail="food analysis is not initialized")
    return cast(FoodAnalyzer, analyzer)


StorageDep = Depends(get_storage)
SettingsDep = Depends(get_app_settings)
FoodAnalyzerDep = Depends(get_food_analyzer)
