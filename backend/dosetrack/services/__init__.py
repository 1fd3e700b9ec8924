"""Service layer exports."""
from dosetrack.services import (
    adherence_service,
    day_status_service,
    dose_event_service,
    dosing_template_service,
    medication_service,
    recurrence_service,
    versioning_service,
)

__all__ = [
    "adherence_service",
    "day_status_service",
    "dose_event_service",
    "dosing_template_service",
    "medication_service",
    "recurrence_service",
    "versioning_service",
]
