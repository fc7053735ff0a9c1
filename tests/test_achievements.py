"""Achievement evaluation against the static badge catalog."""

from datetime import date, datetime, timezone

from achievements import AchievementStats, apply_unlocks, badge_progress, check_all, collect_stats, evaluate
from badges import BADGE_CATALOG_VERSION, BADGES, get_badge, sort_by_rarity
from schemas import BadgeRarity, GamificationState
from tests.conftest import SATURDAY, SUNDAY, completed, make_habit

NOW = datetime(2026, 10, 18, 20, 0, tzinfo=timezone.utc)


def _run(days: int, habit_id: str = "h1"):
    return [completed(habit_id, date(2026, 10, d)) for d in range(1, days + 1)]


# ============================================================================
# Catalog
# ============================================================================


def test_catalog_has_unique_ids():
    ids = [b.id for b in BADGES]
    assert len(ids) == 23
    assert len(set(ids)) == len(ids)
    assert BADGE_CATALOG_VERSION >= 1


def test_sort_by_rarity_common_first():
    ordered = sort_by_rarity([get_badge("streak_365"), get_badge("first_step")])
    assert [b.rarity for b in ordered] == [BadgeRarity.common, BadgeRarity.legendary]


# ============================================================================
# Evaluation
# ============================================================================


def test_first_habit_unlocks_first_step_only():
    assert evaluate([make_habit()], [], GamificationState()) == ["first_step"]


def test_unlocked_badges_are_skipped():
    state, _ = apply_unlocks(GamificationState(), ["first_step"], now=NOW)
    assert evaluate([make_habit()], [], state) == []


def test_completions_and_streak_badges():
    fired = set(evaluate([make_habit()], _run(10), GamificationState()))
    assert {"first_step", "first_completion", "completions_10", "streak_3", "streak_7"} <= fired
    assert "streak_14" not in fired
    assert "completions_50" not in fired


def test_counter_based_badges_read_state():
    state = GamificationState(perfect_days=1, consecutive_perfect_days=7,
                              early_bird_count=1, night_owl_count=1, comeback_count=1)
    fired = set(evaluate([make_habit()], [], state))
    assert {"perfect_day", "perfect_week", "early_bird", "night_owl", "comeback_kid"} <= fired
    assert "perfect_month" not in fired


def test_perfect_week_needs_seven_in_a_row():
    state = GamificationState(perfect_days=20, consecutive_perfect_days=6)
    assert "perfect_week" not in evaluate([make_habit()], [], state)


def test_weekend_warrior_from_logs():
    logs = [completed("h1", SATURDAY), completed("h1", SUNDAY)]
    assert "weekend_warrior" in evaluate([make_habit()], logs, GamificationState())


def test_check_all_awards_badge_points():
    state, fresh = check_all([make_habit()], _run(1), GamificationState(), now=NOW)
    assert {b.id for b in fresh} == {"first_step", "first_completion"}
    assert state.total_points == get_badge("first_step").points + get_badge("first_completion").points

    state, fresh = check_all([make_habit()], _run(1), state, now=NOW)
    assert fresh == []


# ============================================================================
# Progress toward badges
# ============================================================================


def test_badge_progress():
    stats = AchievementStats(best_streak=3)
    progress = badge_progress("streak_7", stats)
    assert progress.current == 3
    assert progress.target == 7
    assert progress.percentage == 42.9


def test_badge_progress_caps_and_unknowns():
    stats = collect_stats([make_habit("a"), make_habit("b")], [], GamificationState())
    assert badge_progress("first_step", stats).percentage == 100.0
    assert badge_progress("nope", stats) is None
