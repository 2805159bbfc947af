from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..diabetes.models import GlucoseReading


class BloodSugarIn(BaseModel):
    userId: str = Field(min_length=1)
    value: float = Field(gt=0, description="Blood glucose in mmol/L")
    source: Optional[str] = None


class ReadingSchema(BaseModel):
    value: float
    timestamp: datetime
    source: Optional[str] = None

    @classmethod
    def from_reading(cls, reading: GlucoseReading) -> "ReadingSchema":
        return cls(value=reading.value, timestamp=reading.timestamp, source=reading.source)


class SavedReadingSchema(ReadingSchema):
    status: str


class BloodSugarSaved(BaseModel):
    success: bool = True
    reading: SavedReadingSchema
    coefficientsAdjusted: bool = Field(
        description="Whether the dosing coefficients were re-tuned by this reading"
    )
    targetLevel: float


class ReadingsOut(BaseModel):
    readings: list[ReadingSchema]


class BloodSugarDelete(BaseModel):
    userId: str = Field(min_length=1)
    timestamp: datetime


class SyncLibreIn(BaseModel):
    """Request to import readings from a glucose sensor.

    Only manual entry is available; ``value`` carries the reading.
    """

    userId: str = Field(min_length=1)
    method: str = Field(min_length=1)
    value: Optional[float] = Field(default=None, gt=0)


class SyncLibreOut(BaseModel):
    success: bool = True
    message: str
    reading: Optional[ReadingSchema] = None
