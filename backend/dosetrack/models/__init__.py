"""ORM models package export."""

from dosetrack.models.day_status import DayStatus, DayStatusType
from dosetrack.models.dose_event import DoseEvent, DoseEventStatus
from dosetrack.models.dosing_template import DosingTemplate, MealTiming
from dosetrack.models.medication import Medication

__all__ = [
    "DayStatus",
    "DayStatusType",
    "DoseEvent",
    "DoseEventStatus",
    "DosingTemplate",
    "MealTiming",
    "Medication",
]
