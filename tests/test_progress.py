"""Progress calculator: daily ratios, streaks, perfect days and special days."""

from datetime import date, datetime, timedelta, timezone

from progress import (
    best_streak, current_streak, daily_progress, habits_due_on, is_comeback,
    is_early_bird_day, is_night_owl_day, is_perfect_day, lagging_habit, longest_streak,
    perfect_weekends, refresh_habit_stats, weekly_stats,
)
from schemas import DailyProgress, DayOfWeek, SpecificDaysFrequency
from tests.conftest import (
    FRIDAY, MONDAY, SATURDAY, SUNDAY, THURSDAY, TUESDAY, WEDNESDAY,
    completed, make_habit, skipped,
)

D = DayOfWeek


# ============================================================================
# Daily progress
# ============================================================================


def test_specific_days_wednesday_without_logs():
    habit = make_habit(frequency=SpecificDaysFrequency(days=[D.mon, D.wed, D.fri]))
    assert daily_progress([habit], [], WEDNESDAY) == DailyProgress(completed=0, total=1, percentage=0)


def test_percentage_is_rounded():
    habits = [make_habit("a"), make_habit("b"), make_habit("c")]
    assert daily_progress(habits, [completed("a", MONDAY)], MONDAY).percentage == 33
    logs = [completed("a", MONDAY), completed("b", MONDAY)]
    assert daily_progress(habits, logs, MONDAY).percentage == 67


def test_nothing_due_gives_zero_percent():
    habit = make_habit(frequency=SpecificDaysFrequency(days=[D.mon]))
    assert daily_progress([habit], [], SUNDAY) == DailyProgress(completed=0, total=0, percentage=0)
    assert not is_perfect_day([habit], [], SUNDAY)


def test_habit_created_later_is_not_due_before_creation():
    habit = make_habit(created=THURSDAY)
    assert habits_due_on([habit], WEDNESDAY) == []
    assert habits_due_on([habit], THURSDAY) == [habit]


def test_skipped_log_does_not_count_as_completed():
    habit = make_habit()
    progress = daily_progress([habit], [skipped("h1", MONDAY)], MONDAY)
    assert progress.completed == 0
    assert progress.total == 1


def test_perfect_day_requires_every_due_habit():
    habits = [make_habit("a"), make_habit("b")]
    assert not is_perfect_day(habits, [completed("a", MONDAY)], MONDAY)
    assert is_perfect_day(habits, [completed("a", MONDAY), completed("b", MONDAY)], MONDAY)


# ============================================================================
# Streaks
# ============================================================================


def test_open_today_does_not_break_streak():
    habit = make_habit()
    logs = [completed("h1", WEDNESDAY), completed("h1", THURSDAY), completed("h1", FRIDAY)]
    assert current_streak(habit, logs, SATURDAY) == 3
    assert current_streak(habit, logs + [completed("h1", SATURDAY)], SATURDAY) == 4


def test_gap_breaks_streak():
    habit = make_habit()
    logs = [completed("h1", MONDAY), completed("h1", WEDNESDAY), completed("h1", THURSDAY),
            completed("h1", FRIDAY)]
    assert current_streak(habit, logs, FRIDAY) == 3


def test_missed_yesterday_resets_to_zero():
    habit = make_habit()
    assert current_streak(habit, [completed("h1", WEDNESDAY)], FRIDAY) == 0


def test_non_due_days_neither_count_nor_break():
    habit = make_habit(frequency=SpecificDaysFrequency(days=[D.mon, D.wed, D.fri]))
    logs = [completed("h1", MONDAY), completed("h1", WEDNESDAY), completed("h1", FRIDAY)]
    assert current_streak(habit, logs, SATURDAY) == 3


def test_frozen_day_bridges_gap_without_counting():
    habit = make_habit()
    logs = [completed("h1", TUESDAY), completed("h1", THURSDAY)]
    assert current_streak(habit, logs, FRIDAY) == 1
    assert current_streak(habit, logs, FRIDAY, frozen_days=[WEDNESDAY.isoformat()]) == 2


def test_skipped_day_breaks_streak():
    habit = make_habit()
    logs = [completed("h1", TUESDAY), skipped("h1", WEDNESDAY), completed("h1", THURSDAY)]
    assert current_streak(habit, logs, THURSDAY) == 1


def test_longest_streak_over_history():
    habit = make_habit()
    first_run = [completed("h1", date(2026, 10, d)) for d in range(1, 6)]
    second_run = [completed("h1", date(2026, 10, d)) for d in (10, 11)]
    assert longest_streak(habit, first_run + second_run) == 5


def test_refresh_keeps_longest_streak_monotonic():
    habit = make_habit(longest_streak=9)
    logs = [completed("h1", THURSDAY), completed("h1", FRIDAY)]
    refreshed = refresh_habit_stats(habit, logs, FRIDAY)
    assert refreshed.current_streak == 2
    assert refreshed.longest_streak == 9
    assert refreshed.total_completions == 2
    assert habit.current_streak == 0


def test_best_streak_uses_overall_when_larger():
    a = make_habit("a", longest_streak=2)
    b = make_habit("b", longest_streak=1)
    logs = [completed("a", MONDAY), completed("b", TUESDAY), completed("a", WEDNESDAY)]
    assert best_streak([a, b], logs) == 3


# ============================================================================
# Special days
# ============================================================================


def test_early_bird_when_everything_done_before_nine():
    habits = [make_habit("a"), make_habit("b")]
    logs = [completed("a", MONDAY, hour=7), completed("b", MONDAY, hour=8, minute=59)]
    assert is_early_bird_day(habits, logs, MONDAY)
    logs[1] = completed("b", MONDAY, hour=9)
    assert not is_early_bird_day(habits, logs, MONDAY)


def test_early_bird_uses_local_timezone_for_aware_timestamps():
    habit = make_habit()
    log = completed("h1", MONDAY).model_copy(update={
        "completed_at": datetime(2026, 10, 12, 6, 30, tzinfo=timezone.utc),
    })
    # 06:30 UTC is 08:30 in Madrid (summer time)
    assert is_early_bird_day([habit], [log], MONDAY, tz_name="Europe/Madrid")
    assert not is_early_bird_day([habit], [log], MONDAY, tz_name="Asia/Tokyo")


def test_night_owl_from_nine_pm():
    habit = make_habit()
    assert is_night_owl_day([habit], [completed("h1", MONDAY, hour=21)], MONDAY)
    assert not is_night_owl_day([habit], [completed("h1", MONDAY, hour=20, minute=59)], MONDAY)


def test_comeback_after_three_idle_days():
    assert is_comeback([completed("h1", date(2026, 10, 10)), completed("h1", WEDNESDAY)], WEDNESDAY)
    assert not is_comeback([completed("h1", MONDAY), completed("h1", WEDNESDAY)], WEDNESDAY)
    assert not is_comeback([completed("h1", WEDNESDAY)], WEDNESDAY)


def test_perfect_weekend_needs_both_days():
    habit = make_habit()
    assert perfect_weekends([habit], [completed("h1", SATURDAY)]) == 0
    assert perfect_weekends([habit], [completed("h1", SATURDAY), completed("h1", SUNDAY)]) == 1


# ============================================================================
# Analytics
# ============================================================================


def test_weekly_stats_covers_last_seven_days():
    habit = make_habit()
    stats = weekly_stats([habit], [completed("h1", SUNDAY)], SUNDAY)
    assert [s.date for s in stats] == [MONDAY + timedelta(days=i) for i in range(7)]
    assert stats[0].day == D.mon
    assert stats[-1].percentage == 100
    assert stats[0].percentage == 0


def test_lagging_habit_is_lowest_weekly_rate():
    a = make_habit("a")
    b = make_habit("b")
    logs = [completed("a", SUNDAY - timedelta(days=i)) for i in range(7)]
    logs.append(completed("b", SUNDAY))
    assert lagging_habit([a, b], logs, SUNDAY) == b


def test_no_lagging_habit_when_all_complete():
    a = make_habit("a")
    logs = [completed("a", SUNDAY - timedelta(days=i)) for i in range(7)]
    assert lagging_habit([a], logs, SUNDAY) is None
