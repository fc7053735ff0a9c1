"""Schedule resolution: due days, descriptions and weekly targets."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from frequency import (
    configs_equal, day_of_week, describe, due_weekdays, is_due, validate_for_creation,
    weekly_target,
)
from schemas import (
    ALL_DAYS, DailyFrequency, DayOfWeek, Habit, IntervalFrequency, Period,
    SpecificDaysFrequency, TimesPerPeriodFrequency,
)
from tests.conftest import FRIDAY, MONDAY, SATURDAY, SUNDAY, TUESDAY, WEDNESDAY

D = DayOfWeek


# ============================================================================
# is_due
# ============================================================================


def test_day_of_week_is_monday_first():
    assert day_of_week(MONDAY) == D.mon
    assert day_of_week(SUNDAY) == D.sun


def test_daily_is_due_except_listed_weekdays():
    config = DailyFrequency(exceptions=[D.sat, D.sun])
    assert is_due(config, FRIDAY)
    assert not is_due(config, SATURDAY)
    assert not is_due(config, SUNDAY)


def test_specific_days_due_only_on_listed_days():
    config = SpecificDaysFrequency(days=[D.mon, D.wed, D.fri])
    assert is_due(config, WEDNESDAY)
    assert not is_due(config, TUESDAY)


def test_empty_specific_days_is_never_due():
    config = SpecificDaysFrequency(days=[])
    assert not any(is_due(config, MONDAY + timedelta(days=i)) for i in range(7))


def test_times_per_period_is_always_available():
    config = TimesPerPeriodFrequency(times=3, period=Period.week)
    assert all(is_due(config, MONDAY + timedelta(days=i)) for i in range(7))


def test_interval_without_anchor_is_always_due():
    assert is_due(IntervalFrequency(n=3), TUESDAY)


def test_interval_counts_from_anchor():
    config = IntervalFrequency(n=3)
    assert is_due(config, MONDAY, anchor=MONDAY)
    assert not is_due(config, TUESDAY, anchor=MONDAY)
    assert is_due(config, MONDAY + timedelta(days=3), anchor=MONDAY)
    assert not is_due(config, MONDAY - timedelta(days=3), anchor=MONDAY)


def test_is_due_is_deterministic():
    config = DailyFrequency(exceptions=[D.wed])
    assert [is_due(config, WEDNESDAY) for _ in range(5)] == [False] * 5


def test_unknown_variant_raises_type_error():
    with pytest.raises(TypeError):
        is_due(object(), MONDAY)


def test_unknown_type_tag_is_rejected_by_validation():
    with pytest.raises(ValidationError):
        Habit.model_validate({
            "id": "h1", "title": "Read", "created_at": "2026-10-01T06:00:00",
            "frequency_config": {"type": "yearly"},
        })


def test_frequency_parses_from_tagged_dict():
    habit = Habit.model_validate({
        "id": "h1", "title": "Read", "created_at": "2026-10-01T06:00:00",
        "frequency_config": {"type": "interval", "n": 3},
    })
    assert habit.frequency_config == IntervalFrequency(n=3)


def test_day_sets_are_deduplicated_and_ordered():
    config = SpecificDaysFrequency(days=["Wed", "Mon", "Wed"])
    assert config.days == [D.mon, D.wed]


# ============================================================================
# describe
# ============================================================================


@pytest.mark.parametrize(
    ("config", "expected"),
    [
        (DailyFrequency(), "Every day"),
        (DailyFrequency(exceptions=[D.mon]), "Daily except Mon"),
        (DailyFrequency(exceptions=[D.sat, D.sun]), "Daily except Sat & Sun"),
        (DailyFrequency(exceptions=[D.mon, D.tue, D.wed, D.thu, D.fri]), "Weekends only"),
        (DailyFrequency(exceptions=ALL_DAYS[1:]), "Only on Mon"),
        (DailyFrequency(exceptions=[D.mon, D.tue, D.wed]), "Thu · Fri · Sat · Sun"),
        (DailyFrequency(exceptions=ALL_DAYS), "No days selected"),
        (SpecificDaysFrequency(days=[]), "No days selected"),
        (SpecificDaysFrequency(days=ALL_DAYS), "Every day"),
        (SpecificDaysFrequency(days=ALL_DAYS[:5]), "Weekdays"),
        (SpecificDaysFrequency(days=[D.sat, D.sun]), "Weekends"),
        (SpecificDaysFrequency(days=[D.mon, D.wed]), "Only on Mon, Wed"),
        (SpecificDaysFrequency(days=[D.mon, D.tue, D.wed, D.thu]), "Mon · Tue · Wed · Thu"),
        (TimesPerPeriodFrequency(times=3), "3x per week"),
        (TimesPerPeriodFrequency(times=10, period=Period.month), "10x per month"),
        (IntervalFrequency(n=1), "Every day"),
        (IntervalFrequency(n=2), "Every other day"),
        (IntervalFrequency(n=5), "Every 5 days"),
    ],
)
def test_describe(config, expected):
    assert describe(config) == expected


# ============================================================================
# weekly_target / due_weekdays / helpers
# ============================================================================


@pytest.mark.parametrize(
    ("config", "expected"),
    [
        (DailyFrequency(exceptions=[D.sat, D.sun]), 5),
        (SpecificDaysFrequency(days=[D.mon, D.wed, D.fri]), 3),
        (TimesPerPeriodFrequency(times=3), 3),
        (TimesPerPeriodFrequency(times=10, period=Period.month), 3),
        (IntervalFrequency(n=2), 3),
        (IntervalFrequency(n=10), 0),
    ],
)
def test_weekly_target(config, expected):
    assert weekly_target(config) == expected


def test_due_weekdays_for_reminders():
    assert due_weekdays(DailyFrequency(exceptions=[D.sun])) == ALL_DAYS[:6]
    assert due_weekdays(SpecificDaysFrequency(days=[D.fri])) == [D.fri]
    assert due_weekdays(IntervalFrequency(n=4)) == ALL_DAYS


def test_configs_equal_ignores_day_order():
    a = SpecificDaysFrequency(days=[D.fri, D.mon])
    b = SpecificDaysFrequency(days=[D.mon, D.fri])
    assert configs_equal(a, b)
    assert not configs_equal(a, DailyFrequency())


def test_validate_for_creation_flags_useless_configs():
    assert validate_for_creation(SpecificDaysFrequency(days=[]))
    assert validate_for_creation(DailyFrequency(exceptions=ALL_DAYS))
    assert validate_for_creation(SpecificDaysFrequency(days=[D.mon])) == []
