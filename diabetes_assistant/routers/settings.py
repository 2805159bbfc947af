"""User dosing settings endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException

from ..dependencies import StorageDep
from ..diabetes.services.storage import Storage
from ..schemas.settings import SettingsOut, SettingsSaved, SettingsSchema


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/settings/{user_id}", operation_id="settingsGet", tags=["Settings"])
async def get_settings(user_id: str, storage: Storage = StorageDep) -> SettingsOut:
    """Return the dosing settings of ``user_id``."""

    settings = await storage.get_settings(user_id)
    if settings is None:
        raise HTTPException(status_code=404, detail="User not found")
    return SettingsOut(settings=SettingsSchema.from_settings(settings))


@router.post("/settings/{user_id}", operation_id="settingsPost", tags=["Settings"])
async def post_settings(
    user_id: str, data: SettingsSchema, storage: Storage = StorageDep
) -> SettingsSaved:
    """Replace the dosing settings of ``user_id``, creating the user if needed.

    Period lists that do not cover the day exactly are rejected with 422
    before anything is stored.
    """

    settings = data.to_settings()
    async with storage.locked(user_id):
        await storage.save_settings(user_id, settings)
    logger.info("Saved settings for %s", user_id)
    return SettingsSaved(message="Settings updated successfully")
