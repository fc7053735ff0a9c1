"""Remote document shape and paths."""

from datetime import date, datetime, timezone

import documents
from gamification import unlock_badge, use_streak_freeze
from schemas import GamificationState, HabitLog, IntervalFrequency, LogStatus, ReminderConfig
from tests.conftest import make_habit


def test_paths():
    assert documents.habit_path("acc", "h1") == "accounts/acc/habits/h1"
    assert documents.log_path("acc", "h1-2026-10-14") == "accounts/acc/logs/h1-2026-10-14"
    assert documents.badge_path("acc", "streak_3") == "accounts/acc/badges/streak_3"
    assert documents.gamification_path("acc") == "accounts/acc/gamification/data"
    assert documents.collection_path("acc", documents.HABITS) == "accounts/acc/habits"


def test_habit_round_trip():
    habit = make_habit(
        "h1",
        frequency=IntervalFrequency(n=3),
        reminders=ReminderConfig(enabled=True, times=["08:00"]),
        current_streak=4,
        longest_streak=9,
        total_completions=30,
    )
    doc = documents.habit_to_document(habit)
    assert "id" not in doc
    assert doc["frequency_config"] == {"type": "interval", "n": 3}
    assert documents.habit_from_document("h1", doc) == habit


def test_log_round_trip():
    log = HabitLog(
        id="h1-2026-10-14",
        habit_id="h1",
        date=date(2026, 10, 14),
        status=LogStatus.completed,
        completed_at=datetime(2026, 10, 14, 7, 30, tzinfo=timezone.utc),
    )
    doc = documents.log_to_document(log)
    assert doc["date"] == "2026-10-14"
    assert documents.log_from_document(log.id, doc) == log


def test_gamification_round_trip_with_badges():
    state = GamificationState(total_points=40, perfect_days=2, last_perfect_day="2026-10-13")
    state, _ = unlock_badge(state, "first_step", now=datetime(2026, 10, 1, tzinfo=timezone.utc))
    state, _ = unlock_badge(state, "streak_3", now=datetime(2026, 10, 3, tzinfo=timezone.utc))
    state, _ = use_streak_freeze(state, date(2026, 10, 14))

    doc = documents.gamification_to_document(state)
    assert "unlocked_badges" not in doc
    badges = {b.badge_id: documents.badge_to_document(b) for b in state.unlocked_badges}

    assert documents.gamification_from_document(doc, badges) == state
