"""SM-2 flashcard scheduling and study helpers."""

from .srs import (
    ScheduleResult,
    compute_next_schedule,
    format_interval,
    preview_intervals,
    project_review_date,
)

__all__ = [
    "ScheduleResult",
    "compute_next_schedule",
    "format_interval",
    "preview_intervals",
    "project_review_date",
]
