from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Sequence

from ..diabetes.models import GlucoseReading, UserSettings, default_settings
from ..diabetes.services.storage import Storage
from ..diabetes.utils.quadrants import QuadrantCoefficients, rescale_periods
from ..diabetes.utils.tuner import TuningResult, tune

logger = logging.getLogger(__name__)

LOW_THRESHOLD = 3.9
ELEVATED_THRESHOLD = 7.0
HIGH_THRESHOLD = 10.0


__all__ = [
    "IngestResult",
    "classify_reading",
    "ensure_user",
    "ingest_reading",
    "latest_reading",
    "record_reading",
    "retune_settings",
]


def classify_reading(value: float) -> str:
    """Return a human-readable status for a glucose value in mmol/L."""

    if value < LOW_THRESHOLD:
        return "Low blood sugar (hypoglycemia)"
    if value > HIGH_THRESHOLD:
        return "High blood sugar (hyperglycemia)"
    if value > ELEVATED_THRESHOLD:
        return "Slightly elevated"
    return "Normal range"


@dataclass(frozen=True)
class IngestResult:
    reading: GlucoseReading
    status: str
    settings: UserSettings
    tuning: TuningResult
    coefficients_adjusted: bool


def retune_settings(
    settings: UserSettings,
    readings: Sequence[GlucoseReading],
    tz: tzinfo | None = None,
) -> tuple[UserSettings | None, TuningResult]:
    """Run the tuner and map its quadrants back onto the user's periods.

    Returns the replacement settings, or ``None`` when the dosing periods
    would not change.
    """

    before, exact_in = QuadrantCoefficients.from_periods(settings.insulin_periods)
    result = tune(readings, settings.target_bg, before, tz=tz)
    if not result.adjusted:
        return None, result

    periods, exact_out = rescale_periods(settings.insulin_periods, before, result.coefficients)
    if not (exact_in and exact_out):
        logger.warning(
            "Dosing periods do not align with tuning quadrants; adjustment is approximate"
        )
    if periods == settings.insulin_periods:
        return None, result
    return settings.with_insulin_periods(periods), result


async def ensure_user(storage: Storage, user_id: str) -> UserSettings:
    """Return the user's settings, creating the user with defaults if unknown."""

    settings = await storage.get_settings(user_id)
    if settings is None:
        settings = default_settings()
        await storage.save_settings(user_id, settings)
        logger.info("Created user %s with default settings", user_id)
    return settings


async def ingest_reading(
    storage: Storage,
    user_id: str,
    value: float,
    *,
    source: str | None = None,
    now: datetime | None = None,
    tz: tzinfo | None = None,
    window_days: int = 7,
) -> IngestResult:
    """Store a reading and adapt the user's dosing coefficients.

    The whole read-modify-write happens under the user's storage lock.
    """

    moment = now or datetime.now(timezone.utc)
    async with storage.locked(user_id):
        settings = await ensure_user(storage, user_id)
        reading = GlucoseReading(value=value, timestamp=moment, source=source)
        await storage.add_reading(user_id, reading)

        recent = await storage.get_readings(user_id, moment - timedelta(days=window_days))
        updated, tuning = retune_settings(settings, recent, tz)
        if updated is not None:
            await storage.save_settings(user_id, updated)
            settings = updated
            logger.info(
                "Adjusted dosing coefficients for %s: %s",
                user_id,
                tuning.coefficients.as_dict(),
            )

    return IngestResult(
        reading=reading,
        status=classify_reading(value),
        settings=settings,
        tuning=tuning,
        coefficients_adjusted=updated is not None,
    )


async def record_reading(
    storage: Storage,
    user_id: str,
    value: float,
    *,
    source: str | None = None,
    now: datetime | None = None,
) -> GlucoseReading:
    """Append a reading for an existing user without tuning."""

    reading = GlucoseReading(
        value=value,
        timestamp=now or datetime.now(timezone.utc),
        source=source,
    )
    await storage.add_reading(user_id, reading)
    return reading


async def latest_reading(
    storage: Storage,
    user_id: str,
    *,
    now: datetime | None = None,
    window_days: int = 7,
) -> GlucoseReading | None:
    moment = now or datetime.now(timezone.utc)
    readings = await storage.get_readings(user_id, moment - timedelta(days=window_days), limit=1)
    return readings[0] if readings else None
