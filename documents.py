"""
=============================================================================
DOCUMENTS.PY — Rutas y forma de los documentos remotos
=============================================================================
Cómo se guarda cada entidad en el almacén remoto:

  accounts/{cuenta}/habits/{id}          → Habit (sin el id)
  accounts/{cuenta}/logs/{id}            → HabitLog (sin el id)
  accounts/{cuenta}/gamification/data    → GamificationState (sin los logros)
  accounts/{cuenta}/badges/{id}          → UnlockedBadge (sin el id)

El id va en la ruta, no dentro del documento. Las fechas viajan como texto
ISO (model_dump(mode="json")) y Pydantic las vuelve a convertir al leer.

Ida y vuelta sin pérdidas:  from_document(id, to_document(x)) == x
"""

from schemas import GamificationState, Habit, HabitLog, UnlockedBadge

HABITS = "habits"
LOGS = "logs"
BADGES = "badges"
GAMIFICATION_DOC = "gamification/data"


# =============================================================================
# ===================== RUTAS =================================================
# =============================================================================

def account_root(account_id: str) -> str:
    return f"accounts/{account_id}"


def collection_path(account_id: str, collection: str) -> str:
    return f"{account_root(account_id)}/{collection}"


def habit_path(account_id: str, habit_id: str) -> str:
    return f"{collection_path(account_id, HABITS)}/{habit_id}"


def log_path(account_id: str, log_id: str) -> str:
    return f"{collection_path(account_id, LOGS)}/{log_id}"


def badge_path(account_id: str, badge_id: str) -> str:
    return f"{collection_path(account_id, BADGES)}/{badge_id}"


def gamification_path(account_id: str) -> str:
    return f"{account_root(account_id)}/{GAMIFICATION_DOC}"


# =============================================================================
# ===================== CODEC =================================================
# =============================================================================

def habit_to_document(habit: Habit) -> dict:
    return habit.model_dump(mode="json", exclude={"id"})


def habit_from_document(habit_id: str, data: dict) -> Habit:
    return Habit.model_validate({**data, "id": habit_id})


def log_to_document(log: HabitLog) -> dict:
    return log.model_dump(mode="json", exclude={"id"})


def log_from_document(log_id: str, data: dict) -> HabitLog:
    return HabitLog.model_validate({**data, "id": log_id})


def badge_to_document(badge: UnlockedBadge) -> dict:
    return badge.model_dump(mode="json", exclude={"badge_id"})


def badge_from_document(badge_id: str, data: dict) -> UnlockedBadge:
    return UnlockedBadge.model_validate({**data, "badge_id": badge_id})


def gamification_to_document(state: GamificationState) -> dict:
    """Los logros van aparte, uno por documento en badges/"""
    return state.model_dump(mode="json", exclude={"unlocked_badges"})


def gamification_from_document(data: dict, badges: dict[str, dict] = None) -> GamificationState:
    unlocked = [badge_from_document(badge_id, doc) for badge_id, doc in (badges or {}).items()]
    unlocked.sort(key=lambda b: b.unlocked_at)
    return GamificationState.model_validate({**data, "unlocked_badges": unlocked})
