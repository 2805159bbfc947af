from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from ..diabetes.models import UserSettings
from ..diabetes.utils.periods import (
    Period,
    PeriodKind,
    period_from_dict,
    period_to_dict,
)


class _PeriodSchema(BaseModel):
    """A period of the day as exchanged with the web application.

    The start is given either as ``startTime`` (``HH:MM``) or ``startHour``.
    """

    kind: ClassVar[PeriodKind]

    startTime: Optional[str] = Field(default=None, pattern=r"^\d{1,2}:\d{2}$")
    startHour: Optional[float] = Field(default=None, ge=0, lt=24)
    hours: float = Field(
        gt=0, le=24, validation_alias=AliasChoices("hours", "durationHours")
    )
    label: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def require_start(self) -> "_PeriodSchema":
        if self.startTime is None and self.startHour is None:
            raise ValueError("startTime or startHour is required")
        return self

    def to_period(self) -> Period:
        return period_from_dict(self.model_dump(exclude_none=True), self.kind)

    @classmethod
    def from_period(cls, period: Period) -> "_PeriodSchema":
        return cls.model_validate(period_to_dict(period, cls.kind))


class InsulinPeriodSchema(_PeriodSchema):
    kind: ClassVar[PeriodKind] = PeriodKind.INSULIN

    coefficient: float = Field(gt=0, description="Dosing multiplier for this period")


class SensitivityPeriodSchema(_PeriodSchema):
    kind: ClassVar[PeriodKind] = PeriodKind.SENSITIVITY

    sensitivity: float = Field(gt=0, description="mmol/L lowered by one unit of insulin")


class CarbRatioPeriodSchema(_PeriodSchema):
    kind: ClassVar[PeriodKind] = PeriodKind.CARB_RATIO

    ratio: float = Field(gt=0, description="Grams of carbohydrate covered by one unit")


class SettingsSchema(BaseModel):
    """User dosing settings.

    Every period list must tile the day exactly; the validation message
    names the list and the size of the gap or excess.
    """

    targetMin: float = Field(gt=0)
    targetMax: float = Field(gt=0)
    iobDuration: float = Field(
        gt=0, validation_alias=AliasChoices("iobDuration", "insulinOnBoardDuration")
    )
    insulinPeriods: list[InsulinPeriodSchema]
    sensitivityPeriods: list[SensitivityPeriodSchema]
    carbRatioPeriods: list[CarbRatioPeriodSchema]
    updatedAt: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def check_consistency(self) -> "SettingsSchema":
        if self.targetMin > self.targetMax:
            raise ValueError("targetMin must not exceed targetMax")
        self.to_settings().validate()
        return self

    def to_settings(self) -> UserSettings:
        return UserSettings(
            target_min=self.targetMin,
            target_max=self.targetMax,
            iob_duration=self.iobDuration,
            insulin_periods=tuple(p.to_period() for p in self.insulinPeriods),
            sensitivity_periods=tuple(p.to_period() for p in self.sensitivityPeriods),
            carb_ratio_periods=tuple(p.to_period() for p in self.carbRatioPeriods),
        )

    @classmethod
    def from_settings(cls, settings: UserSettings) -> "SettingsSchema":
        return cls(
            targetMin=settings.target_min,
            targetMax=settings.target_max,
            iobDuration=settings.iob_duration,
            insulinPeriods=[
                InsulinPeriodSchema.from_period(p) for p in settings.insulin_periods
            ],
            sensitivityPeriods=[
                SensitivityPeriodSchema.from_period(p) for p in settings.sensitivity_periods
            ],
            carbRatioPeriods=[
                CarbRatioPeriodSchema.from_period(p) for p in settings.carb_ratio_periods
            ],
            updatedAt=settings.updated_at,
        )


class SettingsOut(BaseModel):
    settings: SettingsSchema


class SettingsSaved(BaseModel):
    success: bool = True
    message: str
