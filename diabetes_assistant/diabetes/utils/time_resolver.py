"""Lookup of the period active at a given hour."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from enum import Enum
from typing import Sequence

from .periods import Period, sort_periods

logger = logging.getLogger(__name__)

DEFAULT_COEFFICIENT = 1.0


class ResolutionStatus(str, Enum):
    RESOLVED = "resolved"
    DEFAULTED = "defaulted"


@dataclass(frozen=True)
class Resolution:
    """Coefficient active at an hour and how it was obtained.

    ``period`` is ``None`` when no period matched and the default
    coefficient was used instead.
    """

    coefficient: float
    status: ResolutionStatus
    period: Period | None = None

    @property
    def defaulted(self) -> bool:
        return self.status is ResolutionStatus.DEFAULTED


def resolve(periods: Sequence[Period], hour: int) -> Resolution:
    """Return the coefficient of the first period containing ``hour``.

    Periods are scanned by ascending start hour; for equal starts the
    caller's order decides. When nothing matches (an invalid or gapped set)
    the result falls back to :data:`DEFAULT_COEFFICIENT` so that dose
    calculation always receives a usable value.
    """

    for period in sort_periods(periods):
        if period.contains(hour):
            return Resolution(period.coefficient, ResolutionStatus.RESOLVED, period)

    logger.debug("No period covers hour %s, using default coefficient", hour)
    return Resolution(DEFAULT_COEFFICIENT, ResolutionStatus.DEFAULTED)


def current_hour(tz: tzinfo | None = None, now: datetime | None = None) -> int:
    """Return the wall-clock hour in ``tz``."""

    moment = now or datetime.now(tz)
    if tz is not None and moment.tzinfo is not None:
        moment = moment.astimezone(tz)
    return moment.hour


__all__ = [
    "DEFAULT_COEFFICIENT",
    "Resolution",
    "ResolutionStatus",
    "current_hour",
    "resolve",
]
