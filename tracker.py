"""
=============================================================================
TRACKER.PY — El estado de la cuenta (HabitTracker)
=============================================================================
HabitTracker es el DUEÑO del estado de una cuenta: hábitos, registros,
gamificación y plan. No hay singletons de módulo: se crea, se hace
init(cuenta) y al cerrar sesión teardown().

Cada acción del usuario sigue siempre el mismo camino:

  1. Cambio local (inmediato, síncrono)
  2. Recalcular lo derivado: estadísticas del hábito, puntos, días
     especiales, logros
  3. Guardar en el almacén local
  4. Encolar la escritura remota (best-effort, no se espera)

Si la escritura remota falla, el cambio local NO se deshace.

Cambio de cuenta: teardown() de la anterior (se cancela la sync, se borran
recordatorios y estado local) y SOLO después se carga la nueva.
"""

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Callable, Optional

import pytz
from pydantic import ValidationError

import achievements
import documents
import gamification
import premium
from frequency import TIMEZONE, local_today
from leveling import level_progress
from local_store import STORAGE_KEYS, LocalStore
from progress import (
    daily_progress, habit_is_due, lagging_habit, refresh_habit_stats, weekly_stats,
)
from reminders import NotificationScheduler, apply_reminders, cancel_reminders
from remote import DocumentStore, WriteOp
from retry import RetryPolicy
from schemas import (
    BadgeDefinition, BadgeProgress, DailyProgress, GamificationState, Habit, HabitLog,
    LevelProgress, LogStatus, PremiumState, ReminderConfig, WeekDayStats, log_id,
)
from sync import Snapshot, SyncCoordinator, SyncResult

logger = logging.getLogger("habitloop.tracker")

# Campos de Habit que no se tocan desde update_habit()
PROTECTED_FIELDS = {"id", "created_at", "current_streak", "longest_streak", "total_completions"}


class HabitTracker:

    def __init__(
        self,
        store: DocumentStore,
        local: LocalStore = None,
        notifier: NotificationScheduler = None,
        policy: RetryPolicy = None,
        tz_name: str = TIMEZONE,
        today: Callable[[], date] = None,
        now: Callable[[], datetime] = None,
        **sync_options,
    ):
        self.local = local or LocalStore()
        self.notifier = notifier
        self.tz_name = tz_name
        self._today = today or (lambda: local_today(tz_name))
        self._now = now or (lambda: datetime.now(timezone.utc))
        self.sync = SyncCoordinator(store, self.local, on_snapshot=self.apply_snapshot,
                                    policy=policy, **sync_options)

        self.account_id: Optional[str] = None
        self.habits: list[Habit] = []
        self.logs: list[HabitLog] = []
        self.gamification = GamificationState()
        self.premium = PremiumState()

    # =========================================================================
    # ===================== CICLO DE VIDA =====================================
    # =========================================================================

    async def init(self, account_id: str) -> SyncResult:
        """
        Login:
          1. Si había otra cuenta → teardown() primero
          2. Se carga la caché local (la app ya puede pintar)
          3. Sincronización completa con el servidor
        """
        if self.account_id and self.account_id != account_id:
            await self.teardown()

        stored_account = self.local.get(STORAGE_KEYS["account"])
        if stored_account and stored_account != account_id:
            # Restos de otra cuenta en el dispositivo
            self.local.clear_all()
        self.local.set(STORAGE_KEYS["account"], account_id)

        self.account_id = account_id
        self._load_local()
        self.premium, _ = premium.refresh_expiry(self.premium, self._now())
        self.refresh_stats()
        logger.info(f"👤 Cuenta cargada: {account_id} ({len(self.habits)} hábitos en caché)")

        result = await self.sync.start_session(account_id)
        if not result.ok:
            # Sin red: se sigue con la caché local
            self._schedule_all_reminders()
        return result

    async def teardown(self):
        """Logout: se para la sync, se cancelan recordatorios y se borra todo"""
        await self.sync.teardown()
        if self.notifier:
            for habit in self.habits:
                cancel_reminders(self.notifier, habit.id)

        previous = self.account_id
        self.account_id = None
        self.habits = []
        self.logs = []
        self.gamification = GamificationState()
        self.premium = PremiumState()
        self.local.clear_all()
        if previous:
            logger.info(f"👋 Cuenta descargada: {previous}")

    # =========================================================================
    # ===================== PERSISTENCIA LOCAL ================================
    # =========================================================================

    def _load_local(self):
        self.habits = self._load_list(STORAGE_KEYS["habits"], Habit)
        self.logs = self._load_list(STORAGE_KEYS["logs"], HabitLog)
        self.gamification = self._load_one(STORAGE_KEYS["gamification"], GamificationState)
        self.premium = self._load_one(STORAGE_KEYS["premium"], PremiumState)

    def _load_list(self, key, model):
        items = []
        for raw in self.local.get(key, []):
            try:
                items.append(model.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"⚠️ Dato local inválido en {key}: {e.error_count()} errores")
        return items

    def _load_one(self, key, model):
        raw = self.local.get(key)
        if raw is None:
            return model()
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"⚠️ Dato local inválido en {key}: {e.error_count()} errores")
            return model()

    def _save(self):
        self.local.set(STORAGE_KEYS["habits"], [h.model_dump(mode="json") for h in self.habits])
        self.local.set(STORAGE_KEYS["logs"], [l.model_dump(mode="json") for l in self.logs])
        self.local.set(STORAGE_KEYS["gamification"], self.gamification.model_dump(mode="json"))
        self.local.set(STORAGE_KEYS["premium"], self.premium.model_dump(mode="json"))

    # =========================================================================
    # ===================== ESCRITURAS REMOTAS ================================
    # =========================================================================

    def _push(self, op: WriteOp):
        """Best-effort: sin sesión no se encola nada"""
        if self.account_id is None:
            return None
        return self.sync.enqueue(op)

    def _push_habit(self, habit: Habit):
        self._push(WriteOp("set", documents.habit_path(self.account_id, habit.id),
                           documents.habit_to_document(habit)))

    def _push_log(self, log: HabitLog):
        self._push(WriteOp("set", documents.log_path(self.account_id, log.id),
                           documents.log_to_document(log)))

    def _push_gamification(self, badge_ids=()):
        """
        Los puntos y los logros que los dieron viajan en UN batch: o llegan
        los dos o ninguno, y un logro nunca se paga dos veces.
        """
        if self.account_id is None:
            return None
        path = documents.gamification_path(self.account_id)
        op = WriteOp("set", path, documents.gamification_to_document(self.gamification))
        badges = [
            WriteOp("set", documents.badge_path(self.account_id, unlocked.badge_id),
                    documents.badge_to_document(unlocked))
            for unlocked in self.gamification.unlocked_badges
            if unlocked.badge_id in badge_ids
        ]
        if badges:
            op = WriteOp("batch", path, ops=[*badges, op])
        return self._push(op)

    # =========================================================================
    # ===================== SNAPSHOT REMOTO ===================================
    # =========================================================================

    def apply_snapshot(self, snapshot: Snapshot):
        """
        Lo remoto (ya con la cola pendiente aplicada encima) sustituye a lo local.
        Lo llama SyncCoordinator al terminar un pull.
        """
        if snapshot.account_id != self.account_id:
            logger.info(f"🗑️ Snapshot de otra cuenta descartado: {snapshot.account_id}")
            return

        old_ids = {h.id for h in self.habits}
        self.habits = snapshot.habits
        self.logs = snapshot.logs
        if snapshot.gamification is not None:
            self.gamification = snapshot.gamification
        elif self.account_id:
            # Cuenta nueva en el servidor: se sube lo que hay en local
            self._push_gamification([b.badge_id for b in self.gamification.unlocked_badges])

        self.refresh_stats()
        if self.notifier:
            for removed in old_ids - {h.id for h in self.habits}:
                cancel_reminders(self.notifier, removed)
        self._schedule_all_reminders()
        self._save()

    def _schedule_all_reminders(self):
        if not self.notifier:
            return
        for habit in self.habits:
            apply_reminders(self.notifier, habit)

    # =========================================================================
    # ===================== DERIVADOS =========================================
    # =========================================================================

    def today(self) -> date:
        return self._today()

    def refresh_stats(self):
        """Recalcula las estadísticas en caché de TODOS los hábitos"""
        today = self.today()
        self.habits = [
            refresh_habit_stats(h, self.logs, today, self.gamification.frozen_days)
            for h in self.habits
        ]

    def _refresh_habit(self, habit_id: str) -> Optional[Habit]:
        today = self.today()
        updated = None
        habits = []
        for habit in self.habits:
            if habit.id == habit_id:
                habit = refresh_habit_stats(habit, self.logs, today, self.gamification.frozen_days)
                updated = habit
            habits.append(habit)
        self.habits = habits
        return updated

    def _check_achievements(self) -> list[BadgeDefinition]:
        self.gamification, fresh = achievements.check_all(
            self.habits, self.logs, self.gamification, now=self._now()
        )
        return fresh

    def _after_log_change(self, habit_id: str, day: date, new_completion: bool):
        """Paso común de complete/skip/undo: estadísticas, puntos, días, logros"""
        habit = self._refresh_habit(habit_id)
        if new_completion:
            self.gamification = gamification.award(self.gamification, "habit_complete")
        self.gamification = gamification.record_day(
            self.gamification, self.habits, self.logs, day, tz_name=self.tz_name
        )
        fresh = self._check_achievements()
        self._save()

        if habit:
            self._push_habit(habit)
        self._push_gamification([b.id for b in fresh])

    # =========================================================================
    # ===================== HÁBITOS ===========================================
    # =========================================================================

    def get_habit(self, habit_id: str) -> Optional[Habit]:
        for habit in self.habits:
            if habit.id == habit_id:
                return habit
        return None

    def add_habit(self, title: str, frequency_config=None, icon: str = "✅",
                  color: str = "#00FF9D", reminders: ReminderConfig = None,
                  habit_id: str = None) -> Habit:
        """
        Crea el hábito. created_at se guarda en la hora local del usuario: su
        fecha es el día de creación y el ancla de "cada N días".

        Los límites del plan (premium.can_create_habit, max_reminders) se
        comprueban en la interfaz antes de llamar aquí.
        """
        data = {
            "id": habit_id or f"habit-{uuid.uuid4().hex[:12]}",
            "title": title,
            "icon": icon,
            "color": color,
            "created_at": self._now().astimezone(pytz.timezone(self.tz_name)),
        }
        if frequency_config is not None:
            data["frequency_config"] = frequency_config
        if reminders is not None:
            data["reminders"] = reminders
        habit = Habit.model_validate(data)

        self.habits = [*self.habits, habit]
        self.premium = premium.increment_habits_created(self.premium)
        fresh = self._check_achievements()
        self._save()

        self._push_habit(habit)
        self._push_gamification([b.id for b in fresh])
        if self.notifier:
            apply_reminders(self.notifier, habit)

        logger.info(f"➕ Hábito creado: {habit.title}")
        return habit

    def update_habit(self, habit_id: str, **changes) -> Optional[Habit]:
        """Edita título, icono, color, frecuencia o recordatorios"""
        habit = self.get_habit(habit_id)
        if habit is None:
            logger.warning(f"Hábito no encontrado: {habit_id}")
            return None

        ignored = PROTECTED_FIELDS & changes.keys()
        if ignored:
            logger.warning(f"Campos no editables ignorados: {sorted(ignored)}")
        allowed = {k: v for k, v in changes.items() if k not in PROTECTED_FIELDS}

        updated = Habit.model_validate({**habit.model_dump(), **allowed})
        self.habits = [updated if h.id == habit_id else h for h in self.habits]
        updated = self._refresh_habit(habit_id)
        self._save()

        self._push_habit(updated)
        if self.notifier:
            apply_reminders(self.notifier, updated)
        return updated

    def delete_habit(self, habit_id: str) -> bool:
        """Borra el hábito, TODOS sus registros y sus recordatorios"""
        habit = self.get_habit(habit_id)
        if habit is None:
            return False

        removed_logs = [l for l in self.logs if l.habit_id == habit_id]
        self.habits = [h for h in self.habits if h.id != habit_id]
        self.logs = [l for l in self.logs if l.habit_id != habit_id]
        self.premium = premium.decrement_habits_created(self.premium)
        self._save()

        if self.notifier:
            cancel_reminders(self.notifier, habit_id)
        if self.account_id:
            self._push(WriteOp("delete", documents.habit_path(self.account_id, habit_id)))
            for log in removed_logs:
                self._push(WriteOp("delete", documents.log_path(self.account_id, log.id)))

        logger.info(f"🗑️ Hábito borrado: {habit.title} ({len(removed_logs)} registros)")
        return True

    # =========================================================================
    # ===================== REGISTROS =========================================
    # =========================================================================

    def get_log(self, habit_id: str, day: date) -> Optional[HabitLog]:
        wanted = log_id(habit_id, day)
        for log in self.logs:
            if log.id == wanted:
                return log
        return None

    def _write_log(self, log: HabitLog):
        """Un registro por hábito y día: si ya existe, se sobrescribe"""
        self.logs = [l for l in self.logs if l.id != log.id] + [log]

    def complete_habit(self, habit_id: str, day: date = None) -> Optional[HabitLog]:
        if self.get_habit(habit_id) is None:
            logger.warning(f"Hábito no encontrado: {habit_id}")
            return None
        day = day or self.today()
        previous = self.get_log(habit_id, day)
        was_completed = previous is not None and previous.status == LogStatus.completed

        log = HabitLog(
            id=log_id(habit_id, day),
            habit_id=habit_id,
            date=day,
            status=LogStatus.completed,
            completed_at=self._now(),
        )
        self._write_log(log)
        self._push_log(log)
        self._after_log_change(habit_id, day, new_completion=not was_completed)
        return log

    def skip_habit(self, habit_id: str, day: date = None) -> Optional[HabitLog]:
        if self.get_habit(habit_id) is None:
            logger.warning(f"Hábito no encontrado: {habit_id}")
            return None
        day = day or self.today()
        log = HabitLog(id=log_id(habit_id, day), habit_id=habit_id, date=day,
                       status=LogStatus.skipped)
        self._write_log(log)
        self._push_log(log)
        self._after_log_change(habit_id, day, new_completion=False)
        return log

    def undo_habit_log(self, habit_id: str, day: date = None) -> bool:
        day = day or self.today()
        log = self.get_log(habit_id, day)
        if log is None:
            return False
        self.logs = [l for l in self.logs if l.id != log.id]
        if self.account_id:
            self._push(WriteOp("delete", documents.log_path(self.account_id, log.id)))
        self._after_log_change(habit_id, day, new_completion=False)
        return True

    # =========================================================================
    # ===================== GAMIFICACIÓN ======================================
    # =========================================================================

    def use_streak_freeze(self, covers: date = None) -> bool:
        """Un congelador al día como mucho. Protege `covers` (por defecto, hoy)."""
        self.gamification, used = gamification.use_streak_freeze(
            self.gamification, self.today(), covers=covers
        )
        if not used:
            return False
        self.refresh_stats()
        self._save()
        self._push_gamification()
        for habit in self.habits:
            self._push_habit(habit)
        return True

    def mark_badge_notified(self, badge_id: str):
        self.gamification = gamification.mark_badge_notified(self.gamification, badge_id)
        self._save()
        self._push_gamification([badge_id])

    def unnotified_badges(self) -> list[BadgeDefinition]:
        return gamification.unnotified_badges(self.gamification)

    def level_progress(self) -> LevelProgress:
        return level_progress(self.gamification.total_points, self.gamification.level)

    def badge_progress(self, badge_id: str) -> Optional[BadgeProgress]:
        stats = achievements.collect_stats(self.habits, self.logs, self.gamification)
        return achievements.badge_progress(badge_id, stats)

    # =========================================================================
    # ===================== CONSULTAS =========================================
    # =========================================================================

    def habits_for_date(self, day: date = None) -> list[Habit]:
        day = day or self.today()
        return [h for h in self.habits if habit_is_due(h, day)]

    def daily_progress(self, day: date = None) -> DailyProgress:
        return daily_progress(self.habits, self.logs, day or self.today())

    def weekly_stats(self) -> list[WeekDayStats]:
        return weekly_stats(self.habits, self.logs, self.today())

    def lagging_habit(self) -> Optional[Habit]:
        return lagging_habit(self.habits, self.logs, self.today())

    def can_create_habit(self) -> bool:
        return premium.can_create_habit(self.premium, self._now())
