"""
=============================================================================
PROGRESS.PY — Progreso diario, rachas y días perfectos
=============================================================================
Funciones PURAS sobre (hábitos, registros). Se recalcula TODO en cada cambio
en vez de mantener contadores incrementales: hay pocas decenas de hábitos y
unos miles de registros como mucho, y recalcular no deja estados a medias.

Reglas:
  - Un hábito solo cuenta para un día si TOCA (frequency.is_due) y ya existía
    ese día (fecha de creación).
  - Racha = días que tocan, seguidos, con registro "completed".
    Los días que no tocan ni suman ni rompen.
    Un día "congelado" (se gastó un congelador) no rompe, pero tampoco suma.
    Hoy sin completar todavía no rompe: el día no ha terminado.
  - Día perfecto = completados == total y total > 0.

refresh_habit_stats() es el ÚNICO sitio que escribe current_streak,
longest_streak y total_completions de un Habit.
"""

from datetime import date, datetime, timedelta
from typing import Iterable, Optional

import pytz

from frequency import TIMEZONE, day_of_week, is_due
from schemas import DailyProgress, Habit, HabitLog, LogStatus, WeekDayStats

ONE_DAY = timedelta(days=1)

EARLY_BIRD_HOUR = 9
NIGHT_OWL_HOUR = 21
COMEBACK_MIN_GAP = 3


# =============================================================================
# ===================== AYUDANTES =============================================
# =============================================================================

def created_on(habit: Habit) -> date:
    """Día de creación. created_at se guarda con la zona horaria del usuario (tracker.add_habit)."""
    return habit.created_at.date()


def habit_is_due(habit: Habit, day: date) -> bool:
    """¿Toca el hábito ese día? El ancla de "cada N días" es la fecha de creación."""
    if day < created_on(habit):
        return False
    return is_due(habit.frequency_config, day, anchor=created_on(habit))


def habits_due_on(habits: Iterable[Habit], day: date) -> list[Habit]:
    return [h for h in habits if habit_is_due(h, day)]


def completed_dates(logs: Iterable[HabitLog], habit_id: Optional[str] = None) -> set[date]:
    """Fechas con registro completado (de un hábito, o de cualquiera si habit_id es None)"""
    return {
        log.date for log in logs
        if log.status == LogStatus.completed and (habit_id is None or log.habit_id == habit_id)
    }


def _completed_pairs(logs: Iterable[HabitLog]) -> set[tuple[str, date]]:
    return {(log.habit_id, log.date) for log in logs if log.status == LogStatus.completed}


def _parse_days(days: Iterable) -> set[date]:
    parsed = set()
    for value in days:
        parsed.add(value if isinstance(value, date) else date.fromisoformat(value))
    return parsed


# =============================================================================
# ===================== PROGRESO DIARIO =======================================
# =============================================================================

def daily_progress(habits: list[Habit], logs: list[HabitLog], day: date) -> DailyProgress:
    """
    {completed, total, percentage} de un día.
    percentage = round(completed / total * 100), y 0 si no toca nada (día libre).
    """
    due = habits_due_on(habits, day)
    total = len(due)
    if total == 0:
        return DailyProgress(completed=0, total=0, percentage=0)

    done = _completed_pairs(logs)
    completed = sum(1 for h in due if (h.id, day) in done)
    return DailyProgress(
        completed=completed,
        total=total,
        percentage=round(completed / total * 100),
    )


def is_perfect_day(habits: list[Habit], logs: list[HabitLog], day: date) -> bool:
    progress = daily_progress(habits, logs, day)
    return progress.total > 0 and progress.completed == progress.total


# =============================================================================
# ===================== RACHAS ================================================
# =============================================================================

def current_streak(
    habit: Habit,
    logs: list[HabitLog],
    today: date,
    frozen_days: Iterable = (),
) -> int:
    """
    Racha actual: se camina hacia atrás desde hoy hasta el primer hueco.
    Si hoy aún no está completado, se empieza desde ayer.
    """
    done = completed_dates(logs, habit.id)
    if not done:
        return 0
    frozen = _parse_days(frozen_days)
    anchor = created_on(habit)
    earliest = min(done)

    day = today if today in done else today - ONE_DAY
    streak = 0
    while day >= earliest:
        if not is_due(habit.frequency_config, day, anchor=anchor):
            day -= ONE_DAY
            continue
        if day in done:
            streak += 1
        elif day not in frozen:
            break
        day -= ONE_DAY
    return streak


def longest_streak(habit: Habit, logs: list[HabitLog], frozen_days: Iterable = ()) -> int:
    """Mayor racha en todo el historial (mismas reglas que current_streak)"""
    done = completed_dates(logs, habit.id)
    if not done:
        return 0
    frozen = _parse_days(frozen_days)
    anchor = created_on(habit)

    best = 0
    run = 0
    day = min(done)
    last = max(done)
    while day <= last:
        if is_due(habit.frequency_config, day, anchor=anchor):
            if day in done:
                run += 1
                best = max(best, run)
            elif day not in frozen:
                run = 0
        day += ONE_DAY
    return best


def total_completions(habit: Habit, logs: list[HabitLog]) -> int:
    return sum(1 for log in logs if log.habit_id == habit.id and log.status == LogStatus.completed)


def refresh_habit_stats(
    habit: Habit,
    logs: list[HabitLog],
    today: date,
    frozen_days: Iterable = (),
) -> Habit:
    """
    Recalcula las estadísticas en caché del hábito y devuelve una copia.
    longest_streak nunca baja: se queda con el máximo visto.
    """
    frozen = list(frozen_days)
    current = current_streak(habit, logs, today, frozen)
    longest = max(habit.longest_streak, longest_streak(habit, logs, frozen), current)
    return habit.model_copy(update={
        "current_streak": current,
        "longest_streak": longest,
        "total_completions": total_completions(habit, logs),
    })


def overall_streak(logs: list[HabitLog]) -> int:
    """Mayor número de días seguidos con AL MENOS un completado (de cualquier hábito)"""
    days = sorted(completed_dates(logs))
    if not days:
        return 0
    best = run = 1
    for prev, curr in zip(days, days[1:]):
        if curr - prev == ONE_DAY:
            run += 1
            best = max(best, run)
        else:
            run = 1
    return best


def best_streak(habits: list[Habit], logs: list[HabitLog]) -> int:
    """La mejor racha: la de cualquier hábito o la global, la que sea mayor"""
    per_habit = max((h.longest_streak for h in habits), default=0)
    return max(per_habit, overall_streak(logs))


# =============================================================================
# ===================== DÍAS ESPECIALES =======================================
# =============================================================================

def _local_hour(moment: datetime, tz_name: str) -> int:
    # Sin zona → ya es hora local
    if moment.tzinfo is None:
        return moment.hour
    return moment.astimezone(pytz.timezone(tz_name)).hour


def _all_done_when(habits, logs, day, tz_name, accept) -> bool:
    due = habits_due_on(habits, day)
    if not due:
        return False
    by_habit = {
        log.habit_id: log for log in logs
        if log.date == day and log.status == LogStatus.completed
    }
    for habit in due:
        log = by_habit.get(habit.id)
        if log is None or log.completed_at is None:
            return False
        if not accept(_local_hour(log.completed_at, tz_name)):
            return False
    return True


def is_early_bird_day(habits, logs, day: date, before_hour: int = EARLY_BIRD_HOUR,
                      tz_name: str = TIMEZONE) -> bool:
    """Todos los hábitos del día completados antes de las 9:00"""
    return _all_done_when(habits, logs, day, tz_name, lambda hour: hour < before_hour)


def is_night_owl_day(habits, logs, day: date, after_hour: int = NIGHT_OWL_HOUR,
                     tz_name: str = TIMEZONE) -> bool:
    """Todos los hábitos del día completados a partir de las 21:00"""
    return _all_done_when(habits, logs, day, tz_name, lambda hour: hour >= after_hour)


def is_comeback(logs: list[HabitLog], day: date, min_gap: int = COMEBACK_MIN_GAP) -> bool:
    """
    ¿Vuelve tras 3+ días sin completar nada?
    Hace falta un completado ese día y uno anterior con el hueco en medio.
    """
    days = completed_dates(logs)
    if day not in days:
        return False
    earlier = [d for d in days if d < day]
    if not earlier:
        return False
    return (day - max(earlier)).days > min_gap


def perfect_weekends(habits: list[Habit], logs: list[HabitLog]) -> int:
    """Fines de semana (sábado + domingo) con los dos días perfectos"""
    saturdays = {d for d in completed_dates(logs) if d.weekday() == 5}
    return sum(
        1 for saturday in saturdays
        if is_perfect_day(habits, logs, saturday) and is_perfect_day(habits, logs, saturday + ONE_DAY)
    )


# =============================================================================
# ===================== ANALÍTICA =============================================
# =============================================================================

def weekly_stats(habits: list[Habit], logs: list[HabitLog], today: date) -> list[WeekDayStats]:
    """Los últimos 7 días (de más antiguo a hoy), para el gráfico de barras"""
    result = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        progress = daily_progress(habits, logs, day)
        result.append(WeekDayStats(
            day=day_of_week(day),
            date=day,
            completed=progress.completed,
            total=progress.total,
            percentage=progress.percentage,
        ))
    return result


def lagging_habit(habits: list[Habit], logs: list[HabitLog], today: date) -> Optional[Habit]:
    """
    El hábito con peor porcentaje en los últimos 7 días.
    None si no hay ninguno que tocara o si todos van al 100%.
    """
    done = _completed_pairs(logs)
    worst = None
    worst_rate = None
    for habit in habits:
        due_days = [today - timedelta(days=i) for i in range(7)]
        due_days = [d for d in due_days if habit_is_due(habit, d)]
        if not due_days:
            continue
        rate = sum(1 for d in due_days if (habit.id, d) in done) / len(due_days)
        if worst_rate is None or rate < worst_rate:
            worst, worst_rate = habit, rate

    if worst_rate is None or worst_rate >= 1:
        return None
    return worst
