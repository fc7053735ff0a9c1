"""
=============================================================================
GAMIFICATION.PY — Sistema de Gamificación
=============================================================================
Gestiona el estado de gamificación de UNA cuenta:
  - Puntos y nivel (el nivel se recalcula con leveling.py en cada cambio)
  - Logros desbloqueados (una sola vez por logro)
  - Congeladores de racha (como mucho uno por día)
  - Contadores de días especiales (perfectos, madrugador, búho, regreso)

Todas las funciones reciben un GamificationState y devuelven uno NUEVO.
Nunca se modifica el estado recibido: quien llama sustituye su referencia de
golpe, así nadie ve un estado a medias (por ejemplo, el logro apuntado pero
sus puntos todavía sin sumar).

Las "violaciones" esperables (segundo congelador del día, logro ya
desbloqueado) se devuelven como False, no como excepción: son decisiones
normales del usuario, no errores.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from badges import get_badge
from frequency import TIMEZONE
from leveling import level_for_points, level_progress
from progress import (
    is_comeback, is_early_bird_day, is_night_owl_day, is_perfect_day,
)
from schemas import BadgeDefinition, GamificationState, LevelProgress, UnlockedBadge

logger = logging.getLogger("habitloop.gamification")


# =============================================================================
# ===================== SISTEMA DE PUNTOS =====================================
# =============================================================================

# Puntos base por acción
POINT_REWARDS = {
    "habit_complete": 10,   # Completar un hábito (la primera vez ese día)
    "perfect_day": 25,      # Completar TODOS los hábitos del día
}


def add_points(state: GamificationState, points: int) -> GamificationState:
    """
    Suma puntos y recalcula el nivel.
    Los puntos solo crecen: cantidades <= 0 no hacen nada.
    """
    if points <= 0:
        return state

    old_level = state.level
    total = state.total_points + points
    level = level_for_points(total)
    if level > old_level:
        logger.info(f"⬆️ Subida de nivel: {old_level} → {level}")
    return state.model_copy(update={"total_points": total, "level": level})


def award(state: GamificationState, action: str) -> GamificationState:
    """Otorga los puntos de una acción de POINT_REWARDS"""
    return add_points(state, POINT_REWARDS.get(action, 0))


def get_progress(state: GamificationState) -> LevelProgress:
    return level_progress(state.total_points, state.level)


# =============================================================================
# ===================== LOGROS ================================================
# =============================================================================

def is_badge_unlocked(state: GamificationState, badge_id: str) -> bool:
    return any(b.badge_id == badge_id for b in state.unlocked_badges)


def unlock_badge(
    state: GamificationState,
    badge_id: str,
    now: Optional[datetime] = None,
) -> tuple[GamificationState, bool]:
    """
    Desbloquea un logro y suma su recompensa en el MISMO paso.

    Retorna (nuevo_estado, True) si se desbloqueó ahora.
    Si ya estaba desbloqueado o no existe → (mismo estado, False).
    """
    if is_badge_unlocked(state, badge_id):
        return state, False

    badge = get_badge(badge_id)
    if badge is None:
        logger.warning(f"⚠️ Logro desconocido: {badge_id}")
        return state, False

    unlocked = UnlockedBadge(
        badge_id=badge_id,
        unlocked_at=now or datetime.now(timezone.utc),
        notified=False,
    )
    new_state = add_points(state, badge.points)
    new_state = new_state.model_copy(update={
        "unlocked_badges": [*state.unlocked_badges, unlocked],
    })

    logger.info(f"🏆 Logro desbloqueado: {badge.name} (+{badge.points} pts)")
    return new_state, True


def mark_badge_notified(state: GamificationState, badge_id: str) -> GamificationState:
    """La celebración del logro ya se mostró"""
    badges = [
        b.model_copy(update={"notified": True}) if b.badge_id == badge_id else b
        for b in state.unlocked_badges
    ]
    return state.model_copy(update={"unlocked_badges": badges})


def unnotified_badges(state: GamificationState) -> list[BadgeDefinition]:
    """Logros desbloqueados cuya celebración aún no se ha enseñado"""
    pending = []
    for unlocked in state.unlocked_badges:
        if unlocked.notified:
            continue
        badge = get_badge(unlocked.badge_id)
        if badge:
            pending.append(badge)
    return pending


# =============================================================================
# ===================== CONGELADORES DE RACHA =================================
# =============================================================================

def use_streak_freeze(
    state: GamificationState,
    today: date,
    covers: Optional[date] = None,
) -> tuple[GamificationState, bool]:
    """
    Gasta un congelador.

      - Como mucho UNO por día (se compara con last_streak_freeze_used)
      - Sin congeladores disponibles → False, sin tocar nada

    `covers` es el día que queda protegido (por defecto, hoy). Ese día
    no romperá la racha aunque no se complete.
    """
    today_str = today.isoformat()

    if state.last_streak_freeze_used == today_str:
        logger.info("🧊 Congelador ya usado hoy")
        return state, False

    if state.streak_freezes <= 0:
        logger.info("🧊 No quedan congeladores")
        return state, False

    covered = (covers or today).isoformat()
    frozen = state.frozen_days if covered in state.frozen_days else [*state.frozen_days, covered]
    new_state = state.model_copy(update={
        "streak_freezes": state.streak_freezes - 1,
        "last_streak_freeze_used": today_str,
        "frozen_days": frozen,
    })
    logger.info(f"🧊 Congelador usado ({new_state.streak_freezes} restantes)")
    return new_state, True


def add_streak_freezes(state: GamificationState, count: int = 1) -> GamificationState:
    if count <= 0:
        return state
    return state.model_copy(update={"streak_freezes": state.streak_freezes + count})


# =============================================================================
# ===================== DÍAS ESPECIALES =======================================
# =============================================================================

def record_day(
    state: GamificationState,
    habits,
    logs,
    day: date,
    tz_name: str = TIMEZONE,
) -> GamificationState:
    """
    Actualiza los contadores de un día (perfecto, madrugador, búho, regreso).

    Es idempotente: cada contador recuerda el último día que contó, así
    evaluar el mismo día dos veces no suma dos veces. Los contadores solo
    crecen; lo único que vuelve a 0 es consecutive_perfect_days cuando la
    cadena de días perfectos ya está rota.
    """
    day_str = day.isoformat()
    yesterday_str = (day - timedelta(days=1)).isoformat()
    updates = {}

    # ── Día perfecto ──
    if is_perfect_day(habits, logs, day):
        if state.last_perfect_day != day_str:
            chained = state.last_perfect_day == yesterday_str
            updates["perfect_days"] = state.perfect_days + 1
            updates["consecutive_perfect_days"] = state.consecutive_perfect_days + 1 if chained else 1
            updates["last_perfect_day"] = day_str
            logger.info(f"💎 Día perfecto: {day_str}")
    elif state.last_perfect_day is None or state.last_perfect_day < yesterday_str:
        updates["consecutive_perfect_days"] = 0

    # ── Madrugador ──
    if state.last_early_bird_day != day_str and is_early_bird_day(habits, logs, day, tz_name=tz_name):
        updates["early_bird_count"] = state.early_bird_count + 1
        updates["last_early_bird_day"] = day_str

    # ── Búho nocturno ──
    if state.last_night_owl_day != day_str and is_night_owl_day(habits, logs, day, tz_name=tz_name):
        updates["night_owl_count"] = state.night_owl_count + 1
        updates["last_night_owl_day"] = day_str

    # ── Regreso tras varios días ──
    if state.last_comeback_day != day_str and is_comeback(logs, day):
        updates["comeback_count"] = state.comeback_count + 1
        updates["last_comeback_day"] = day_str
        logger.info(f"🔄 Regreso tras una pausa: {day_str}")

    new_state = state.model_copy(update=updates) if updates else state

    # Bonus la PRIMERA vez que el día pasa a ser perfecto
    if updates.get("last_perfect_day") == day_str:
        new_state = award(new_state, "perfect_day")

    return new_state
