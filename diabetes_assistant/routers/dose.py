"""Insulin dose calculation endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from ..config import Settings
from ..dependencies import SettingsDep, StorageDep
from ..diabetes.services.storage import Storage
from ..schemas.dose import DoseIn, DoseOut
from ..services.dose import compute_dose


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/dose", operation_id="dosePost", tags=["Dose"])
async def post_dose(
    data: DoseIn,
    storage: Storage = StorageDep,
    settings: Settings = SettingsDep,
) -> DoseOut:
    """Return the insulin dose for a meal at the current hour."""

    ctx = await compute_dose(
        storage,
        data.userId,
        data.carbGrams,
        current_bg=data.currentBG,
        insulin_on_board=data.insulinOnBoard,
        tz=settings.tzinfo,
        window_days=settings.tuning_window_days,
    )
    return DoseOut.from_context(ctx)
