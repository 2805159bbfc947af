from .bloodsugar import (
    BloodSugarDelete,
    BloodSugarIn,
    BloodSugarSaved,
    ReadingSchema,
    ReadingsOut,
    SavedReadingSchema,
    SyncLibreIn,
    SyncLibreOut,
)
from .dose import DoseIn, DoseOut
from .food import FoodAnalysisOut, FoodAnalysisSchema
from .settings import (
    CarbRatioPeriodSchema,
    InsulinPeriodSchema,
    SensitivityPeriodSchema,
    SettingsOut,
    SettingsSaved,
    SettingsSchema,
)

__all__ = [
    "BloodSugarDelete",
    "BloodSugarIn",
    "BloodSugarSaved",
    "CarbRatioPeriodSchema",
    "DoseIn",
    "DoseOut",
    "FoodAnalysisOut",
    "FoodAnalysisSchema",
    "InsulinPeriodSchema",
    "ReadingSchema",
    "ReadingsOut",
    "SavedReadingSchema",
    "SensitivityPeriodSchema",
    "SettingsOut",
    "SettingsSaved",
    "SettingsSchema",
    "SyncLibreIn",
    "SyncLibreOut",
]
