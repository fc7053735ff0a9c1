"""
=============================================================================
REMINDERS.PY — Recordatorios de hábitos
=============================================================================
De un hábito sacamos el conjunto de disparadores semanales:

    días en los que toca  ×  horas de recordatorio  →  {(día, hora, minuto)}

El núcleo NO envía notificaciones: se las pasa a un "notificador" que sabe
programar disparadores semanales y cancelarlos por hábito.

Cada cambio es un REEMPLAZO COMPLETO: se cancela todo lo del hábito y se
vuelve a programar el conjunto entero. Nunca se hacen diffs.

ApschedulerNotifier es el notificador de referencia: cada disparador es un
job de APScheduler con CronTrigger en la zona horaria del usuario.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from frequency import TIMEZONE, due_weekdays
from schemas import ALL_DAYS, DayOfWeek, Habit, ReminderTrigger

logger = logging.getLogger("habitloop.reminders")

REMINDER_BODY = "Tap to mark as complete"


def _parse_time(raw: str) -> tuple[int, int]:
    hour, _, minute = raw.partition(":")
    return int(hour), int(minute)


def derive_triggers(habit: Habit) -> set[ReminderTrigger]:
    """Disparadores semanales del hábito. Vacío si los recordatorios están apagados."""
    if not habit.reminders.enabled or not habit.reminders.times:
        return set()

    triggers = set()
    for raw in habit.reminders.times:
        hour, minute = _parse_time(raw)
        for day in due_weekdays(habit.frequency_config):
            triggers.add(ReminderTrigger(weekday=day, hour=hour, minute=minute))
    return triggers


def _sorted(triggers: set[ReminderTrigger]) -> list[ReminderTrigger]:
    return sorted(triggers, key=lambda t: (ALL_DAYS.index(t.weekday), t.hour, t.minute))


def reminder_title(habit: Habit) -> str:
    return f"Time for: {habit.icon} {habit.title}"


# =============================================================================
# ===================== NOTIFICADOR ===========================================
# =============================================================================

class NotificationScheduler(ABC):
    """Lo que el núcleo necesita de quien entrega las notificaciones"""

    @abstractmethod
    def schedule_weekly(self, habit_id: str, title: str, body: str,
                        weekday: DayOfWeek, hour: int, minute: int) -> str:
        """Programa un disparador semanal y devuelve su id"""

    @abstractmethod
    def cancel_all_for(self, habit_id: str) -> None:
        """Cancela TODOS los disparadores del hábito"""


def apply_reminders(notifier: NotificationScheduler, habit: Habit) -> list[str]:
    """
    Cancela todo lo del hábito y programa el conjunto completo.
    Retorna los ids de los disparadores programados.
    """
    notifier.cancel_all_for(habit.id)

    ids = []
    title = reminder_title(habit)
    for trigger in _sorted(derive_triggers(habit)):
        ids.append(notifier.schedule_weekly(
            habit.id, title, REMINDER_BODY,
            trigger.weekday, trigger.hour, trigger.minute,
        ))

    if ids:
        logger.info(f"🔔 {len(ids)} recordatorios programados → {habit.title}")
    return ids


def cancel_reminders(notifier: NotificationScheduler, habit_id: str) -> None:
    notifier.cancel_all_for(habit_id)
    logger.info(f"🔕 Recordatorios cancelados → {habit_id}")


# =============================================================================
# ===================== NOTIFICADOR CON APSCHEDULER ===========================
# =============================================================================

class ApschedulerNotifier(NotificationScheduler):
    """
    Cada disparador → un job con CronTrigger(day_of_week, hour, minute).

    deliver(habit_id, title, body) es quien de verdad entrega el mensaje
    (push, Telegram, lo que sea). Puede ser síncrono o async.

    Ids de job: "reminder:{habit_id}:{día}:{HHMM}". El prefijo
    "reminder:{habit_id}:" permite cancelar todo lo de un hábito.
    """

    def __init__(self, deliver: Callable, scheduler: AsyncIOScheduler = None,
                 tz_name: str = TIMEZONE):
        self.tz = pytz.timezone(tz_name)
        self.scheduler = scheduler or AsyncIOScheduler(timezone=self.tz)
        self.deliver = deliver

    @staticmethod
    def _prefix(habit_id: str) -> str:
        return f"reminder:{habit_id}:"

    def schedule_weekly(self, habit_id, title, body, weekday, hour, minute) -> str:
        weekday = DayOfWeek(weekday)
        job_id = f"{self._prefix(habit_id)}{weekday.value}:{hour:02d}{minute:02d}"
        self.scheduler.add_job(
            self.deliver,
            CronTrigger(day_of_week=weekday.value.lower(), hour=hour, minute=minute,
                        timezone=self.tz),
            args=[habit_id, title, body],
            id=job_id,
            name=title,
            replace_existing=True,
        )
        return job_id

    def cancel_all_for(self, habit_id) -> None:
        prefix = self._prefix(habit_id)
        for job in self.scheduler.get_jobs():
            if job.id.startswith(prefix):
                self.scheduler.remove_job(job.id)

    def job_ids(self, habit_id: str = None) -> list[str]:
        prefix = self._prefix(habit_id) if habit_id else "reminder:"
        return sorted(job.id for job in self.scheduler.get_jobs() if job.id.startswith(prefix))

    def start(self):
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("⏰ Scheduler de recordatorios arrancado")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("⏰ Scheduler de recordatorios parado")
