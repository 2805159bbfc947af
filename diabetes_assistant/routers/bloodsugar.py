"""Blood glucose reading endpoints."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from ..config import Settings
from ..dependencies import SettingsDep, StorageDep
from ..diabetes.services.storage import ReadingNotFoundError, Storage, UserNotFoundError
from ..schemas.bloodsugar import (
    BloodSugarDelete,
    BloodSugarIn,
    BloodSugarSaved,
    ReadingSchema,
    ReadingsOut,
    SavedReadingSchema,
    SyncLibreIn,
    SyncLibreOut,
)
from ..services.readings import ingest_reading, record_reading


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/bloodsugar", operation_id="bloodSugarPost", tags=["BloodSugar"])
async def post_bloodsugar(
    data: BloodSugarIn,
    storage: Storage = StorageDep,
    settings: Settings = SettingsDep,
) -> BloodSugarSaved:
    """Store a reading and re-tune the user's dosing coefficients."""

    result = await ingest_reading(
        storage,
        data.userId,
        data.value,
        source=data.source,
        tz=settings.tzinfo,
        window_days=settings.tuning_window_days,
    )
    reading = SavedReadingSchema(
        value=result.reading.value,
        timestamp=result.reading.timestamp,
        source=result.reading.source,
        status=result.status,
    )
    return BloodSugarSaved(
        reading=reading,
        coefficientsAdjusted=result.coefficients_adjusted,
        targetLevel=result.settings.target_bg,
    )


@router.get("/bloodsugar/{user_id}", operation_id="bloodSugarGet", tags=["BloodSugar"])
async def get_bloodsugar(
    user_id: str,
    limit: int | None = Query(None, ge=1),
    startDate: Optional[datetime] = Query(None),
    storage: Storage = StorageDep,
    settings: Settings = SettingsDep,
) -> ReadingsOut:
    """Return readings newest first, by default those of the tuning window."""

    since = startDate or datetime.now(timezone.utc) - timedelta(days=settings.tuning_window_days)
    try:
        readings = await storage.get_readings(user_id, since, limit=limit)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    return ReadingsOut(readings=[ReadingSchema.from_reading(r) for r in readings])


@router.delete("/bloodsugar", operation_id="bloodSugarDelete", tags=["BloodSugar"])
async def delete_bloodsugar(data: BloodSugarDelete, storage: Storage = StorageDep) -> dict[str, object]:
    """Delete the first reading of the user taken exactly at ``timestamp``."""

    try:
        async with storage.locked(data.userId):
            await storage.delete_reading(data.userId, data.timestamp)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    except ReadingNotFoundError:
        raise HTTPException(status_code=404, detail="Blood sugar reading not found")
    logger.info("Deleted reading of %s taken at %s", data.userId, data.timestamp.isoformat())
    return {"success": True, "message": "Blood sugar reading deleted successfully"}


@router.post("/sync-libre", operation_id="syncLibre", tags=["BloodSugar"])
async def sync_libre(data: SyncLibreIn, storage: Storage = StorageDep) -> SyncLibreOut:
    """Import a sensor reading. Only manual entry is available."""

    if await storage.get_settings(data.userId) is None:
        raise HTTPException(status_code=404, detail="User not found")
    if data.method != "manual":
        raise HTTPException(status_code=400, detail="Only manual entry is supported")
    if data.value is None:
        raise HTTPException(
            status_code=400, detail="Blood sugar value is required for manual entry"
        )

    async with storage.locked(data.userId):
        reading = await record_reading(storage, data.userId, data.value, source="libre-manual")
    return SyncLibreOut(
        message="Reading imported",
        reading=ReadingSchema.from_reading(reading),
    )
