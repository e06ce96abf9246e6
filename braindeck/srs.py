"""SM-2 spaced repetition scheduler.

This module implements the four-button variant of the SM-2 algorithm used by
the study screens.  The user facing grades (Again / Hard / Good / Easy) are
mapped onto the classic 0-5 quality scale so that the ease factor update reads
exactly like the published SM-2 formula.  Everything in here is a pure
function of its arguments: no clock is read unless the caller leaves ``now``
empty, and nothing is persisted.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

__all__ = [
    "DEFAULT_EASE_FACTOR",
    "GRADE_MAP",
    "MASTERED_INTERVAL_DAYS",
    "MIN_EASE_FACTOR",
    "QUALITY_MAP",
    "ScheduleResult",
    "compute_next_schedule",
    "format_interval",
    "is_success",
    "normalise_grade",
    "preview_intervals",
    "project_review_date",
]

DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
PASSING_QUALITY = 3
MASTERED_INTERVAL_DAYS = 30

GRADE_MAP = {"again": 1, "hard": 2, "good": 3, "easy": 4}
# Hard/Good/Easy skip qualities 1-2 on purpose: only four buttons are exposed.
QUALITY_MAP = {1: 0, 2: 3, 3: 4, 4: 5}


@dataclass(frozen=True)
class ScheduleResult:
    """Scheduling fields produced by a single review."""

    interval: int
    ease_factor: float
    repetitions: int


def _round_half_up(value: float) -> int:
    # Only ever called with non-negative values.
    return int(math.floor(value + 0.5))


def _require_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    return value


def normalise_grade(grade: Any) -> int:
    """Return the 1-4 grade for *grade* or raise :class:`ValueError`.

    Integers 1-4 and the names ``again``, ``hard``, ``good`` and ``easy`` are
    accepted.  Unknown values are rejected rather than silently treated as a
    failed review.
    """

    if isinstance(grade, str):
        key = grade.strip().lower()
        if key in GRADE_MAP:
            return GRADE_MAP[key]
    elif isinstance(grade, int) and not isinstance(grade, bool):
        if grade in QUALITY_MAP:
            return grade
    raise ValueError(f"grade must be one of 1-4 or {sorted(GRADE_MAP)}, got {grade!r}")


def is_success(grade: Any) -> bool:
    return QUALITY_MAP[normalise_grade(grade)] >= PASSING_QUALITY


def compute_next_schedule(
    grade: Any,
    repetitions: int = 0,
    interval: int = 0,
    ease_factor: float = DEFAULT_EASE_FACTOR,
) -> ScheduleResult:
    """Compute the next scheduling state of a card.

    Parameters
    ----------
    grade:
        Review grade, 1 (Again) to 4 (Easy) or its name.
    repetitions:
        Consecutive successful reviews before this one.
    interval:
        Current interval in days.
    ease_factor:
        Current ease factor, never below ``MIN_EASE_FACTOR``.

    Returns
    -------
    ScheduleResult
        The new interval, ease factor and repetition count.  The arguments are
        left untouched.
    """

    value = normalise_grade(grade)
    repetitions = _require_int("repetitions", repetitions)
    interval = _require_int("interval", interval)
    if isinstance(ease_factor, bool) or not isinstance(ease_factor, (int, float)):
        raise TypeError(f"ease_factor must be a number, got {ease_factor!r}")
    if math.isnan(ease_factor) or ease_factor < MIN_EASE_FACTOR:
        raise ValueError(f"ease_factor must be at least {MIN_EASE_FACTOR}, got {ease_factor}")

    quality = QUALITY_MAP[value]
    penalty = 5 - quality
    new_ease = ease_factor + (0.1 - penalty * (0.08 + penalty * 0.02))
    if new_ease < MIN_EASE_FACTOR:
        new_ease = MIN_EASE_FACTOR

    if quality < PASSING_QUALITY:
        return ScheduleResult(interval=1, ease_factor=new_ease, repetitions=0)

    new_repetitions = repetitions + 1
    if new_repetitions == 1:
        new_interval = 1
    elif new_repetitions == 2:
        new_interval = 6
    else:
        # The prior interval grows by the updated ease factor.
        new_interval = max(1, _round_half_up(interval * new_ease))

    return ScheduleResult(
        interval=new_interval,
        ease_factor=new_ease,
        repetitions=new_repetitions,
    )


def _utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.now(tz=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def project_review_date(interval_days: int, now: Optional[datetime] = None) -> str:
    """Return ``now + interval_days`` as an ISO-8601 UTC string.

    Due dates are plain UTC instants; a card becomes due exactly
    ``interval_days * 24`` hours after it was graded.  Naive datetimes are
    taken to be UTC already.
    """

    interval_days = _require_int("interval_days", interval_days)
    due = _utc(now) + timedelta(days=interval_days)
    return due.isoformat().replace("+00:00", "Z")


def format_interval(days: int) -> str:
    """Short label for an interval, e.g. ``6d``, ``2mo`` or ``1y``."""

    days = _require_int("days", days)
    if days == 1:
        return "1d"
    if days < 30:
        return f"{days}d"
    if days < 365:
        return f"{_round_half_up(days / 30)}mo"
    return f"{_round_half_up(days / 365)}y"


def preview_intervals(
    repetitions: int = 0,
    interval: int = 0,
    ease_factor: float = DEFAULT_EASE_FACTOR,
) -> Dict[int, str]:
    """Formatted interval each grade would produce for the given state."""

    return {
        grade: format_interval(
            compute_next_schedule(grade, repetitions, interval, ease_factor).interval
        )
        for grade in sorted(QUALITY_MAP)
    }
