"""
=============================================================================
ACHIEVEMENTS.PY — Evaluador de logros
=============================================================================
Mira el progreso derivado (hábitos, registros, contadores del estado de
gamificación) y decide qué logros del catálogo se cumplen.

  collect_stats()   → junta en un solo objeto todo lo que miden los logros
  evaluate()        → ids de logros NO desbloqueados cuyo requisito se cumple
  apply_unlocks()   → los desbloquea (con sus puntos) en un estado nuevo
  badge_progress()  → cuánto falta para un logro (para la pantalla de logros)
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from badges import BADGES, get_badge
from gamification import is_badge_unlocked, unlock_badge
from progress import best_streak, perfect_weekends
from schemas import (
    BadgeDefinition, BadgeProgress, GamificationState, Habit, HabitLog, LogStatus,
    RequirementKind,
)

logger = logging.getLogger("habitloop.achievements")


@dataclass
class AchievementStats:
    """Foto de lo que miden los logros en un momento dado"""
    habit_count: int = 0
    best_streak: int = 0
    total_completions: int = 0
    perfect_days: int = 0
    consecutive_perfect_days: int = 0
    early_bird_count: int = 0
    night_owl_count: int = 0
    comeback_count: int = 0
    perfect_weekends: int = 0


def collect_stats(
    habits: list[Habit],
    logs: list[HabitLog],
    state: GamificationState,
) -> AchievementStats:
    return AchievementStats(
        habit_count=len(habits),
        best_streak=best_streak(habits, logs),
        total_completions=sum(1 for log in logs if log.status == LogStatus.completed),
        perfect_days=state.perfect_days,
        consecutive_perfect_days=state.consecutive_perfect_days,
        early_bird_count=state.early_bird_count,
        night_owl_count=state.night_owl_count,
        comeback_count=state.comeback_count,
        perfect_weekends=perfect_weekends(habits, logs),
    )


# =============================================================================
# ===================== REQUISITOS ============================================
# =============================================================================

# Valor actual que se compara con requirement.value
_MEASURES: dict[RequirementKind, Callable[[AchievementStats], int]] = {
    RequirementKind.habit_count: lambda s: s.habit_count,
    RequirementKind.streak: lambda s: s.best_streak,
    RequirementKind.completions: lambda s: s.total_completions,
    RequirementKind.perfect_days: lambda s: s.perfect_days,
    RequirementKind.early_bird: lambda s: s.early_bird_count,
    RequirementKind.night_owl: lambda s: s.night_owl_count,
}

# Logros "custom": cada uno trae su propia medida
_CUSTOM_MEASURES: dict[str, Callable[[AchievementStats], int]] = {
    "comeback_kid": lambda s: s.comeback_count,
    "weekend_warrior": lambda s: s.perfect_weekends,
}


def _progress_values(badge: BadgeDefinition, stats: AchievementStats) -> Optional[tuple[int, int]]:
    """(actual, objetivo) del requisito, o None si es un custom sin regla"""
    req = badge.requirement

    if req.kind == RequirementKind.perfect_week:
        # value semanas perfectas = 7 * value días perfectos seguidos
        return stats.consecutive_perfect_days, 7 * req.value

    if req.kind == RequirementKind.custom:
        measure = _CUSTOM_MEASURES.get(badge.id)
        if measure is None:
            return None
        return measure(stats), req.value

    measure = _MEASURES.get(req.kind)
    if measure is None:
        raise TypeError(f"Requisito desconocido: {req.kind!r}")
    return measure(stats), req.value


def requirement_met(badge: BadgeDefinition, stats: AchievementStats) -> bool:
    values = _progress_values(badge, stats)
    if values is None:
        logger.debug(f"Logro custom sin regla: {badge.id}")
        return False
    current, target = values
    return current >= target


# =============================================================================
# ===================== EVALUACIÓN ============================================
# =============================================================================

def evaluate(
    habits: list[Habit],
    logs: list[HabitLog],
    state: GamificationState,
) -> list[str]:
    """Ids de los logros que se acaban de ganar (en el orden del catálogo)"""
    stats = collect_stats(habits, logs, state)
    return [
        badge.id for badge in BADGES
        if not is_badge_unlocked(state, badge.id) and requirement_met(badge, stats)
    ]


def apply_unlocks(
    state: GamificationState,
    badge_ids: list[str],
    now: Optional[datetime] = None,
) -> tuple[GamificationState, list[BadgeDefinition]]:
    """Desbloquea los logros indicados. Devuelve el estado y los que eran nuevos."""
    fresh = []
    for badge_id in badge_ids:
        state, unlocked = unlock_badge(state, badge_id, now=now)
        if unlocked:
            fresh.append(get_badge(badge_id))
    return state, fresh


def check_all(
    habits: list[Habit],
    logs: list[HabitLog],
    state: GamificationState,
    now: Optional[datetime] = None,
) -> tuple[GamificationState, list[BadgeDefinition]]:
    """evaluate() + apply_unlocks() en un paso"""
    return apply_unlocks(state, evaluate(habits, logs, state), now=now)


def badge_progress(badge_id: str, stats: AchievementStats) -> Optional[BadgeProgress]:
    badge = get_badge(badge_id)
    if badge is None:
        return None
    values = _progress_values(badge, stats)
    if values is None:
        return None
    current, target = values
    if target <= 0:
        percentage = 100.0
    else:
        percentage = min(100.0, current / target * 100)
    return BadgeProgress(current=current, target=target, percentage=round(percentage, 1))
