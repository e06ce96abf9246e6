import math
from datetime import datetime, timezone

import pytest

from braindeck.srs import (
    MIN_EASE_FACTOR,
    ScheduleResult,
    compute_next_schedule,
    format_interval,
    is_success,
    normalise_grade,
    preview_intervals,
    project_review_date,
)


def almost_equal(a: float, b: float, tol: float = 1e-9) -> bool:
    return math.isclose(a, b, rel_tol=tol, abs_tol=tol)


def test_first_good_review_of_new_card():
    result = compute_next_schedule(3, 0, 0, 2.5)

    assert result.interval == 1
    assert result.repetitions == 1
    assert almost_equal(result.ease_factor, 2.5)


def test_second_good_review_jumps_to_six_days():
    result = compute_next_schedule(3, 1, 1, 2.5)

    assert result.interval == 6
    assert result.repetitions == 2


def test_third_good_review_multiplies_prior_interval():
    result = compute_next_schedule(3, 2, 6, 2.5)

    assert result.interval == 15
    assert result.repetitions == 3


def test_defaults_describe_a_new_card():
    assert compute_next_schedule(3) == compute_next_schedule(3, 0, 0, 2.5)


def test_interval_uses_updated_ease_factor():
    # Easy lifts the ease to 2.6 before it is applied: round(10 * 2.6) = 26.
    result = compute_next_schedule(4, 2, 10, 2.5)

    assert almost_equal(result.ease_factor, 2.6)
    assert result.interval == 26

    # Hard drops it to 2.36: round(6 * 2.36) = 14.
    result = compute_next_schedule(2, 2, 6, 2.5)
    assert almost_equal(result.ease_factor, 2.36)
    assert result.interval == 14


@pytest.mark.parametrize(
    "repetitions, interval, ease_factor",
    [(0, 0, 2.5), (1, 1, 2.5), (7, 120, 3.1), (3, 20, 1.3)],
)
def test_again_resets_progress(repetitions, interval, ease_factor):
    result = compute_next_schedule(1, repetitions, interval, ease_factor)

    assert result.repetitions == 0
    assert result.interval == 1
    assert almost_equal(result.ease_factor, max(MIN_EASE_FACTOR, ease_factor - 0.8))


@pytest.mark.parametrize("grade, delta", [(1, -0.8), (2, -0.14), (3, 0.0), (4, 0.1)])
def test_ease_factor_update_per_grade(grade, delta):
    result = compute_next_schedule(grade, 4, 30, 2.5)
    assert almost_equal(result.ease_factor, 2.5 + delta)


def test_ease_factor_never_drops_below_floor():
    ease = 2.5
    for _ in range(10):
        ease = compute_next_schedule(2, 3, 10, ease).ease_factor
        assert ease >= MIN_EASE_FACTOR
    assert ease == MIN_EASE_FACTOR


def test_invariants_hold_across_priors():
    for grade in (1, 2, 3, 4):
        for repetitions in range(6):
            for interval in (0, 1, 6, 15, 100):
                for ease in (1.3, 1.7, 2.5, 3.2):
                    result = compute_next_schedule(grade, repetitions, interval, ease)
                    assert result.ease_factor >= MIN_EASE_FACTOR
                    assert result.interval >= 1
                    assert isinstance(result.interval, int)


def test_inconsistent_zero_interval_still_schedules_a_day():
    result = compute_next_schedule(3, 2, 0, 2.5)
    assert result.interval == 1
    assert result.repetitions == 3


def test_repeated_easy_keeps_growing():
    result = ScheduleResult(interval=0, ease_factor=2.5, repetitions=0)
    for _ in range(8):
        updated = compute_next_schedule(4, result.repetitions, result.interval, result.ease_factor)
        assert updated.ease_factor > result.ease_factor
        assert updated.repetitions > result.repetitions
        assert updated.interval >= result.interval
        result = updated


def test_same_inputs_same_outputs():
    first = compute_next_schedule(2, 5, 40, 2.1)
    second = compute_next_schedule(2, 5, 40, 2.1)
    assert first == second
    assert first.ease_factor == second.ease_factor


@pytest.mark.parametrize("grade", [0, 5, -1, "meh", None, True, 3.0])
def test_invalid_grades_are_rejected(grade):
    with pytest.raises(ValueError):
        compute_next_schedule(grade)


@pytest.mark.parametrize(
    "kwargs, error",
    [
        ({"repetitions": -1}, ValueError),
        ({"interval": -3}, ValueError),
        ({"ease_factor": 1.2}, ValueError),
        ({"ease_factor": float("nan")}, ValueError),
        ({"repetitions": 1.0}, TypeError),
        ({"ease_factor": "2.5"}, TypeError),
    ],
)
def test_invalid_prior_state_is_rejected(kwargs, error):
    with pytest.raises(error):
        compute_next_schedule(3, **kwargs)


@pytest.mark.parametrize(
    "grade, expected",
    [("again", 1), ("Hard", 2), ("  good ", 3), ("EASY", 4), (4, 4)],
)
def test_normalise_grade_accepts_names(grade, expected):
    assert normalise_grade(grade) == expected


def test_is_success():
    assert not is_success(1)
    assert all(is_success(grade) for grade in (2, 3, 4))


def test_project_review_date_is_utc():
    now = datetime(2024, 1, 1, 9, 30, tzinfo=timezone.utc)
    assert project_review_date(6, now) == "2024-01-07T09:30:00Z"
    assert project_review_date(0, datetime(2024, 2, 28)) == "2024-02-28T00:00:00Z"


def test_project_review_date_rejects_negative_days():
    with pytest.raises(ValueError):
        project_review_date(-1)


@pytest.mark.parametrize(
    "days, label",
    [
        (0, "0d"),
        (1, "1d"),
        (6, "6d"),
        (29, "29d"),
        (30, "1mo"),
        (45, "2mo"),
        (75, "3mo"),
        (364, "12mo"),
        (365, "1y"),
        (547, "1y"),
        (548, "2y"),
    ],
)
def test_format_interval(days, label):
    assert format_interval(days) == label


def test_preview_intervals_for_new_card():
    assert preview_intervals() == {1: "1d", 2: "1d", 3: "1d", 4: "1d"}
    assert preview_intervals(2, 6, 2.5) == {1: "1d", 2: "14d", 3: "15d", 4: "16d"}
