"""Business errors raised by the scheduling services."""

from __future__ import annotations


class ScheduleValidationError(ValueError):
    """Recurrence input that must never reach the expander."""


class NotFoundError(LookupError):
    """Referenced record is missing, owned by someone else, or tombstoned."""


class InvalidStatusTransitionError(ValueError):
    """Requested dose event status change is not allowed."""


__all__ = [
    "InvalidStatusTransitionError",
    "NotFoundError",
    "ScheduleValidationError",
]
