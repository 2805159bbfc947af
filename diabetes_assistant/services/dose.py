from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo

from ..diabetes.models import UserSettings, default_settings
from ..diabetes.services.storage import Storage
from ..diabetes.utils.calc_bolus import DoseRequest, DoseResult, calculate_dose
from ..diabetes.utils.time_resolver import current_hour
from .readings import latest_reading

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DoseContext:
    """A computed dose together with the inputs that produced it."""

    result: DoseResult
    settings: UserSettings
    hour: int
    current_bg: float | None


def dose_for_settings(
    settings: UserSettings,
    carb_grams: float,
    *,
    hour: int,
    current_bg: float | None = None,
    insulin_on_board: float = 0.0,
) -> DoseResult:
    return calculate_dose(
        DoseRequest(
            carb_grams=carb_grams,
            now_hour=hour,
            insulin_periods=settings.insulin_periods,
            sensitivity_periods=settings.sensitivity_periods,
            carb_ratio_periods=settings.carb_ratio_periods,
            target_bg=settings.target_bg,
            current_bg=current_bg,
            insulin_on_board=insulin_on_board,
        )
    )


async def compute_dose(
    storage: Storage,
    user_id: str,
    carb_grams: float,
    *,
    current_bg: float | None = None,
    insulin_on_board: float = 0.0,
    now: datetime | None = None,
    tz: tzinfo | None = None,
    window_days: int = 7,
) -> DoseContext:
    """Compute a dose for ``user_id`` at the current wall-clock hour.

    Unknown users get the default settings without being stored. Without an
    explicit ``current_bg`` the latest reading of the window is used.
    """

    moment = now or datetime.now(timezone.utc)
    settings = await storage.get_settings(user_id)
    if settings is None:
        settings = default_settings()
    elif current_bg is None:
        reading = await latest_reading(storage, user_id, now=moment, window_days=window_days)
        if reading is not None:
            current_bg = reading.value

    hour = current_hour(tz, moment)
    result = dose_for_settings(
        settings,
        carb_grams,
        hour=hour,
        current_bg=current_bg,
        insulin_on_board=insulin_on_board,
    )
    if result.dosing.defaulted:
        logger.warning("No dosing period covers hour %s for %s, using 1.0", hour, user_id)
    return DoseContext(result=result, settings=settings, hour=hour, current_bg=current_bg)
