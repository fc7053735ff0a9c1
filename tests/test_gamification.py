"""Gamification state transitions: points, badges, freezes, special-day counters."""

from datetime import datetime, timezone

from badges import get_badge
from gamification import (
    POINT_REWARDS, add_points, add_streak_freezes, is_badge_unlocked, mark_badge_notified,
    record_day, unlock_badge, unnotified_badges, use_streak_freeze,
)
from schemas import GamificationState
from tests.conftest import FRIDAY, MONDAY, SATURDAY, THURSDAY, TUESDAY, completed, make_habit

NOW = datetime(2026, 10, 14, 9, 0, tzinfo=timezone.utc)


# ============================================================================
# Points
# ============================================================================


def test_award_120_points_reaches_level_two():
    state = add_points(GamificationState(), 120)
    assert state.total_points == 120
    assert state.level == 2


def test_non_positive_points_are_ignored():
    state = GamificationState(total_points=50)
    assert add_points(state, 0) is state
    assert add_points(state, -10).total_points == 50


def test_state_is_not_mutated():
    state = GamificationState()
    add_points(state, 500)
    assert state.total_points == 0


# ============================================================================
# Badges
# ============================================================================


def test_unlocking_twice_rewards_once():
    badge = get_badge("first_step")
    state, first = unlock_badge(GamificationState(), "first_step", now=NOW)
    again, second = unlock_badge(state, "first_step", now=NOW)

    assert first is True
    assert second is False
    assert again is state
    assert len(again.unlocked_badges) == 1
    assert again.total_points == badge.points


def test_unknown_badge_is_not_unlocked():
    state = GamificationState()
    new_state, unlocked = unlock_badge(state, "does_not_exist")
    assert not unlocked
    assert new_state is state


def test_notification_flag():
    state, _ = unlock_badge(GamificationState(), "streak_3", now=NOW)
    assert [b.id for b in unnotified_badges(state)] == ["streak_3"]
    state = mark_badge_notified(state, "streak_3")
    assert unnotified_badges(state) == []
    assert is_badge_unlocked(state, "streak_3")


# ============================================================================
# Streak freezes
# ============================================================================


def test_one_freeze_two_uses_same_day():
    state = GamificationState()
    assert state.streak_freezes == 1

    state, first = use_streak_freeze(state, MONDAY)
    state, second = use_streak_freeze(state, MONDAY)

    assert first is True
    assert second is False
    assert state.streak_freezes == 0
    assert state.last_streak_freeze_used == MONDAY.isoformat()
    assert state.frozen_days == [MONDAY.isoformat()]


def test_no_freezes_left_is_not_an_error():
    state = GamificationState(streak_freezes=0)
    new_state, used = use_streak_freeze(state, TUESDAY)
    assert not used
    assert new_state.streak_freezes == 0


def test_freeze_can_cover_another_day():
    state = add_streak_freezes(GamificationState(), 2)
    assert state.streak_freezes == 3
    state, used = use_streak_freeze(state, TUESDAY, covers=MONDAY)
    assert used
    assert state.frozen_days == [MONDAY.isoformat()]
    state, used = use_streak_freeze(state, THURSDAY)
    assert used
    assert state.streak_freezes == 1


# ============================================================================
# Special-day counters
# ============================================================================


def test_record_day_counts_once():
    habit = make_habit()
    logs = [completed("h1", MONDAY, hour=7)]

    state = record_day(GamificationState(), [habit], logs, MONDAY)
    assert state.perfect_days == 1
    assert state.consecutive_perfect_days == 1
    assert state.early_bird_count == 1
    assert state.night_owl_count == 0
    assert state.total_points == POINT_REWARDS["perfect_day"]

    again = record_day(state, [habit], logs, MONDAY)
    assert again == state


def test_consecutive_perfect_days_chain_and_reset():
    habit = make_habit()
    logs = [completed("h1", MONDAY), completed("h1", TUESDAY)]
    state = record_day(GamificationState(), [habit], logs, MONDAY)
    state = record_day(state, [habit], logs, TUESDAY)
    assert state.consecutive_perfect_days == 2

    # Thursday open, Wednesday missed: the chain is already broken
    state = record_day(state, [habit], logs, THURSDAY)
    assert state.consecutive_perfect_days == 0
    assert state.perfect_days == 2


def test_open_day_after_perfect_yesterday_keeps_chain():
    habit = make_habit()
    logs = [completed("h1", THURSDAY)]
    state = record_day(GamificationState(), [habit], logs, THURSDAY)
    state = record_day(state, [habit], logs, FRIDAY)
    assert state.consecutive_perfect_days == 1


def test_comeback_counted():
    habit = make_habit()
    logs = [completed("h1", MONDAY), completed("h1", SATURDAY)]
    state = record_day(GamificationState(), [habit], logs, SATURDAY)
    assert state.comeback_count == 1
    assert record_day(state, [habit], logs, SATURDAY).comeback_count == 1
