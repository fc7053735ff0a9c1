"""
=============================================================================
BADGES.PY — Catálogo de logros
=============================================================================
Tabla ESTÁTICA y versionada: id → requisito, umbral, puntos, rareza.
No se edita en tiempo de ejecución. Si cambia, se sube BADGE_CATALOG_VERSION.
"""

from typing import Optional

from schemas import (
    BadgeCategory, BadgeDefinition, BadgeRarity, BadgeRequirement, RequirementKind,
)

BADGE_CATALOG_VERSION = 1


def _badge(id, name, description, icon, category, rarity, kind, value, points):
    return BadgeDefinition(
        id=id, name=name, description=description, icon=icon,
        category=category, rarity=rarity,
        requirement=BadgeRequirement(kind=kind, value=value),
        points=points,
    )


C, U, R, E, L = (BadgeRarity.common, BadgeRarity.uncommon, BadgeRarity.rare,
                 BadgeRarity.epic, BadgeRarity.legendary)
K = RequirementKind

BADGES = [
    # ── Primeros pasos ──
    _badge("first_step", "First Step", "Create your first habit", "🌱",
           BadgeCategory.starter, C, K.habit_count, 1, 10),
    _badge("habit_builder", "Habit Builder", "Create 5 habits", "🏗️",
           BadgeCategory.starter, U, K.habit_count, 5, 25),
    _badge("habit_master", "Habit Master", "Create 10 habits", "👑",
           BadgeCategory.starter, R, K.habit_count, 10, 50),
    _badge("first_completion", "Getting Started", "Complete your first habit", "✅",
           BadgeCategory.starter, C, K.completions, 1, 10),

    # ── Rachas ──
    _badge("streak_3", "On Fire", "3-day streak", "🔥",
           BadgeCategory.streak, C, K.streak, 3, 15),
    _badge("streak_7", "Week Warrior", "7-day streak", "⚔️",
           BadgeCategory.streak, U, K.streak, 7, 30),
    _badge("streak_14", "Two Week Champion", "14-day streak", "🥇",
           BadgeCategory.streak, R, K.streak, 14, 50),
    _badge("streak_30", "Monthly Master", "30-day streak", "🏆",
           BadgeCategory.streak, E, K.streak, 30, 100),
    _badge("streak_60", "Unstoppable", "60-day streak", "💪",
           BadgeCategory.streak, E, K.streak, 60, 150),
    _badge("streak_100", "Century Legend", "100-day streak", "💯",
           BadgeCategory.streak, L, K.streak, 100, 250),
    _badge("streak_365", "Year of Greatness", "365-day streak", "🌟",
           BadgeCategory.streak, L, K.streak, 365, 1000),

    # ── Constancia ──
    _badge("perfect_day", "Perfect Day", "Complete all habits in a day", "⭐",
           BadgeCategory.consistency, C, K.perfect_days, 1, 15),
    _badge("perfect_week", "Perfect Week", "7 perfect days in a row", "🌈",
           BadgeCategory.consistency, R, K.perfect_week, 1, 75),
    _badge("perfect_month", "Perfect Month", "30 perfect days", "💎",
           BadgeCategory.consistency, E, K.perfect_days, 30, 200),

    # ── Hitos ──
    _badge("completions_10", "Getting Consistent", "Complete 10 habit check-ins", "📈",
           BadgeCategory.milestone, C, K.completions, 10, 20),
    _badge("completions_50", "Habit Hero", "Complete 50 habit check-ins", "🦸",
           BadgeCategory.milestone, U, K.completions, 50, 50),
    _badge("completions_100", "Centurion", "Complete 100 habit check-ins", "🛡️",
           BadgeCategory.milestone, R, K.completions, 100, 100),
    _badge("completions_500", "Dedication", "Complete 500 habit check-ins", "🎖️",
           BadgeCategory.milestone, E, K.completions, 500, 250),
    _badge("completions_1000", "Thousand Strong", "Complete 1000 habit check-ins", "🏅",
           BadgeCategory.milestone, L, K.completions, 1000, 500),

    # ── Especiales ──
    _badge("early_bird", "Early Bird", "Complete all habits before 9 AM", "🌅",
           BadgeCategory.special, U, K.early_bird, 1, 25),
    _badge("night_owl", "Night Owl", "Complete all habits after 9 PM", "🦉",
           BadgeCategory.special, U, K.night_owl, 1, 25),
    _badge("comeback_kid", "Comeback Kid", "Resume after missing 3+ days", "🔄",
           BadgeCategory.special, R, K.custom, 1, 40),
    _badge("weekend_warrior", "Weekend Warrior", "Complete all habits on Saturday & Sunday", "🏖️",
           BadgeCategory.special, U, K.custom, 1, 30),
]

_BY_ID = {badge.id: badge for badge in BADGES}

RARITY_ORDER = {C: 0, U: 1, R: 2, E: 3, L: 4}


def get_badge(badge_id: str) -> Optional[BadgeDefinition]:
    return _BY_ID.get(badge_id)


def badges_by_rarity(rarity: BadgeRarity) -> list[BadgeDefinition]:
    return [b for b in BADGES if b.rarity == rarity]


def sort_by_rarity(badges: list[BadgeDefinition]) -> list[BadgeDefinition]:
    """Para mostrar: de común a legendario"""
    return sorted(badges, key=lambda b: RARITY_ORDER[b.rarity])
