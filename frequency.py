"""
=============================================================================
FREQUENCY.PY — ¿Toca hoy este hábito?
=============================================================================
Funciones PURAS sobre la configuración de frecuencia:

  is_due(config, día)      → ¿el hábito toca ese día?
  describe(config)         → "Only on Mon, Wed", "Weekdays", "3x per week"...
  weekly_target(config)    → cuántas veces por semana, aproximadamente
  due_weekdays(config)     → qué días de la semana (para los recordatorios)

Nada aquí lanza excepciones con datos bien formados: los campos opcionales
ausentes se tratan de forma permisiva (sin excepciones = todos los días).
Las variantes x_times_per_period e interval están "siempre disponibles";
el cupo lo controla el recuento de completados, no este módulo.
"""

import math
import os
from datetime import date, datetime
from typing import Optional

import pytz

from schemas import (
    ALL_DAYS, DayOfWeek, Period, DailyFrequency, SpecificDaysFrequency,
    TimesPerPeriodFrequency, IntervalFrequency,
)

TIMEZONE = os.getenv("HABITLOOP_TIMEZONE", "Europe/Madrid")

WEEKDAY_PRESET = [DayOfWeek.mon, DayOfWeek.tue, DayOfWeek.wed, DayOfWeek.thu, DayOfWeek.fri]
WEEKEND_PRESET = [DayOfWeek.sat, DayOfWeek.sun]


def _unknown(config):
    return TypeError(f"Frecuencia desconocida: {config!r}")


# =============================================================================
# ===================== FECHAS ================================================
# =============================================================================

def day_of_week(day: date) -> DayOfWeek:
    """date.weekday() → lunes = 0, igual que ALL_DAYS"""
    return ALL_DAYS[day.weekday()]


def local_today(tz_name: str = TIMEZONE) -> date:
    """La fecha de HOY en la zona horaria del usuario (no la del servidor)"""
    return datetime.now(pytz.timezone(tz_name)).date()


# =============================================================================
# ===================== ¿TOCA HOY? ============================================
# =============================================================================

def is_due(config, day: date, anchor: Optional[date] = None) -> bool:
    """
    ¿El hábito toca en `day`?

      daily              → sí, salvo que el día esté en exceptions
      specific_days      → solo si el día está en days
      x_times_per_period → siempre (el usuario decide cuándo)
      interval           → siempre sin ancla; con ancla, cada n días desde ella
    """
    if isinstance(config, DailyFrequency):
        return day_of_week(day) not in config.exceptions

    if isinstance(config, SpecificDaysFrequency):
        return day_of_week(day) in config.days

    if isinstance(config, TimesPerPeriodFrequency):
        return True

    if isinstance(config, IntervalFrequency):
        if anchor is None:
            return True
        if day < anchor:
            return False
        return (day - anchor).days % config.n == 0

    raise _unknown(config)


def due_weekdays(config) -> list[DayOfWeek]:
    """
    Días de la semana en los que toca el hábito.
    Para las variantes "siempre disponibles" devuelve los 7 días.
    """
    if isinstance(config, DailyFrequency):
        return [d for d in ALL_DAYS if d not in config.exceptions]

    if isinstance(config, SpecificDaysFrequency):
        return list(config.days)

    if isinstance(config, (TimesPerPeriodFrequency, IntervalFrequency)):
        return list(ALL_DAYS)

    raise _unknown(config)


# =============================================================================
# ===================== DESCRIPCIÓN ===========================================
# =============================================================================

def _is_weekend_only(days: list[DayOfWeek]) -> bool:
    return len(days) == 2 and DayOfWeek.sat in days and DayOfWeek.sun in days


def _is_weekdays_only(days: list[DayOfWeek]) -> bool:
    return len(days) == 5 and DayOfWeek.sat not in days and DayOfWeek.sun not in days


def _names(days: list[DayOfWeek]) -> list[str]:
    return [d.value for d in days]


def describe(config) -> str:
    """Resumen legible de la frecuencia (es lo que ve el usuario)"""
    if isinstance(config, DailyFrequency):
        if not config.exceptions:
            return "Every day"

        active = [d for d in ALL_DAYS if d not in config.exceptions]
        if not active:
            return "No days selected"

        # Pocos días activos (3 o menos) → "Only on Mon, Tue"
        if len(active) <= 3:
            if _is_weekend_only(active):
                return "Weekends only"
            return f"Only on {', '.join(_names(active))}"

        # 1-2 excepciones → "Daily except Mon & Tue"
        if len(config.exceptions) <= 2:
            return f"Daily except {' & '.join(_names(config.exceptions))}"

        if _is_weekdays_only(active):
            return "Weekdays"

        return " · ".join(_names(active))

    if isinstance(config, SpecificDaysFrequency):
        days = config.days
        if not days:
            return "No days selected"
        if len(days) == 7:
            return "Every day"
        if _is_weekdays_only(days):
            return "Weekdays"
        if _is_weekend_only(days):
            return "Weekends"
        if len(days) <= 3:
            return f"Only on {', '.join(_names(days))}"
        return " · ".join(_names(days))

    if isinstance(config, TimesPerPeriodFrequency):
        return f"{config.times}x per {config.period.value}"

    if isinstance(config, IntervalFrequency):
        if config.n == 1:
            return "Every day"
        if config.n == 2:
            return "Every other day"
        return f"Every {config.n} days"

    raise _unknown(config)


# =============================================================================
# ===================== OBJETIVO SEMANAL ======================================
# =============================================================================

def weekly_target(config) -> int:
    """Cuántas veces por semana debería completarse (estimación de 7 días)"""
    if isinstance(config, DailyFrequency):
        return 7 - len(config.exceptions)

    if isinstance(config, SpecificDaysFrequency):
        return len(config.days)

    if isinstance(config, TimesPerPeriodFrequency):
        if config.period == Period.week:
            return config.times
        # Mensual → aproximamos a semanas (4 por mes)
        return math.ceil(config.times / 4)

    if isinstance(config, IntervalFrequency):
        return 7 // config.n

    raise _unknown(config)


# =============================================================================
# ===================== UTILIDADES ============================================
# =============================================================================

def configs_equal(a, b) -> bool:
    """Los días ya vienen normalizados (sin duplicados, en orden)"""
    return a == b


def validate_for_creation(config) -> list[str]:
    """
    Validación para la frontera de la UI (al crear/editar un hábito).
    El resolver acepta cualquier config; la UI no debería guardar estas.
    """
    errors = []
    if isinstance(config, SpecificDaysFrequency) and not config.days:
        errors.append("Selecciona al menos un día")
    if isinstance(config, DailyFrequency) and len(config.exceptions) == 7:
        errors.append("No puede excluir todos los días")
    return errors
