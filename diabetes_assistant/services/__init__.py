from .dose import DoseContext, compute_dose, dose_for_settings
from .readings import (
    IngestResult,
    classify_reading,
    ensure_user,
    ingest_reading,
    latest_reading,
    record_reading,
    retune_settings,
)

__all__ = [
    "DoseContext",
    "IngestResult",
    "classify_reading",
    "compute_dose",
    "dose_for_settings",
    "ensure_user",
    "ingest_reading",
    "latest_reading",
    "record_reading",
    "retune_settings",
]
