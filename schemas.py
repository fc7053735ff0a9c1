"""
=============================================================================
SCHEMAS.PY — Modelos de datos (Pydantic)
=============================================================================
Aquí viven TODAS las formas de datos del núcleo:

  - Habit, HabitLog          → lo que crea y marca el usuario
  - FrequencyConfig          → cuándo "toca" un hábito (unión etiquetada)
  - GamificationState        → puntos, nivel, congeladores, contadores
  - UnlockedBadge, BadgeDefinition
  - Resultados derivados     → DailyProgress, LevelProgress, ReminderTrigger...
  - Peticiones del servicio de documentos (main.py)

¿Por qué Pydantic?
  Valida al construir y serializa a JSON con model_dump(mode="json").
  Esa forma JSON es la que viaja al almacén remoto y al almacén local.

FrequencyConfig es una unión CERRADA: el campo "type" decide la variante.
Si llega un "type" desconocido, Pydantic lo rechaza al validar; no hay un
"default" silencioso que lo trate como diario.
"""

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# ===================== ENUMS =================================================
# =============================================================================

class DayOfWeek(str, Enum):
    """Día de la semana, en el orden lunes → domingo"""
    mon = "Mon"
    tue = "Tue"
    wed = "Wed"
    thu = "Thu"
    fri = "Fri"
    sat = "Sat"
    sun = "Sun"


# Orden canónico (coincide con date.weekday(): lunes = 0)
ALL_DAYS = [DayOfWeek.mon, DayOfWeek.tue, DayOfWeek.wed, DayOfWeek.thu,
            DayOfWeek.fri, DayOfWeek.sat, DayOfWeek.sun]


class Period(str, Enum):
    week = "week"
    month = "month"


class LogStatus(str, Enum):
    completed = "completed"
    skipped = "skipped"


class BadgeRarity(str, Enum):
    common = "common"
    uncommon = "uncommon"
    rare = "rare"
    epic = "epic"
    legendary = "legendary"


class BadgeCategory(str, Enum):
    starter = "starter"
    streak = "streak"
    consistency = "consistency"
    milestone = "milestone"
    special = "special"


class RequirementKind(str, Enum):
    """Qué mide un logro para desbloquearse"""
    habit_count = "habit_count"      # hábitos creados
    streak = "streak"                # mejor racha
    completions = "completions"      # completados totales
    perfect_days = "perfect_days"    # días perfectos
    perfect_week = "perfect_week"    # días perfectos seguidos / 7
    early_bird = "early_bird"        # días completados antes de las 9
    night_owl = "night_owl"          # días completados después de las 21
    custom = "custom"                # regla propia por id de logro


class SubscriptionTier(str, Enum):
    free = "free"
    pro = "pro"
    lifetime = "lifetime"


def _canonical_days(days: list) -> list:
    """Quita duplicados y ordena lunes → domingo (los días son un conjunto)"""
    wanted = {DayOfWeek(d) for d in days}
    return [d for d in ALL_DAYS if d in wanted]


# =============================================================================
# ===================== FRECUENCIA ============================================
# =============================================================================

class DailyFrequency(BaseModel):
    """Todos los días, menos los de exceptions"""
    type: Literal["daily"] = "daily"
    exceptions: list[DayOfWeek] = []

    @field_validator("exceptions")
    @classmethod
    def _dedupe(cls, value):
        return _canonical_days(value)


class SpecificDaysFrequency(BaseModel):
    """Solo los días listados. Un conjunto vacío es válido, pero nunca toca."""
    type: Literal["specific_days"] = "specific_days"
    days: list[DayOfWeek] = []

    @field_validator("days")
    @classmethod
    def _dedupe(cls, value):
        return _canonical_days(value)


class TimesPerPeriodFrequency(BaseModel):
    """X veces por semana/mes: disponible cada día, el cupo lo lleva el usuario"""
    type: Literal["x_times_per_period"] = "x_times_per_period"
    times: int = Field(default=1, ge=1)
    period: Period = Period.week


class IntervalFrequency(BaseModel):
    """Cada N días contando desde un ancla (la fecha de creación del hábito)"""
    type: Literal["interval"] = "interval"
    n: int = Field(default=1, ge=1)


FrequencyConfig = Annotated[
    Union[DailyFrequency, SpecificDaysFrequency, TimesPerPeriodFrequency, IntervalFrequency],
    Field(discriminator="type"),
]


# =============================================================================
# ===================== HABITS ================================================
# =============================================================================

class ReminderConfig(BaseModel):
    enabled: bool = False
    times: list[str] = []
    # times → ["08:00", "20:00"] (hora local, en orden)

    @field_validator("times")
    @classmethod
    def _check_times(cls, value):
        for raw in value:
            hour, _, minute = raw.partition(":")
            if not (hour.isdigit() and minute.isdigit()
                    and 0 <= int(hour) < 24 and 0 <= int(minute) < 60):
                raise ValueError(f"Hora de recordatorio inválida: {raw!r}")
        return value


class Habit(BaseModel):
    id: str
    title: str = Field(min_length=1, max_length=100)
    icon: str = "✅"
    color: str = "#00FF9D"
    frequency_config: FrequencyConfig = Field(default_factory=DailyFrequency)
    reminders: ReminderConfig = Field(default_factory=ReminderConfig)
    created_at: datetime

    # ── Estadísticas en caché ──
    # Las escribe SOLO progress.refresh_habit_stats(), nunca a mano.
    current_streak: int = 0
    longest_streak: int = 0
    total_completions: int = 0


def log_id(habit_id: str, day: date) -> str:
    """Id determinista: un registro por hábito y día"""
    return f"{habit_id}-{day.isoformat()}"


class HabitLog(BaseModel):
    id: str
    habit_id: str
    date: date
    status: LogStatus
    completed_at: Optional[datetime] = None


# =============================================================================
# ===================== GAMIFICACIÓN ==========================================
# =============================================================================

class BadgeRequirement(BaseModel):
    kind: RequirementKind
    value: int = Field(ge=0)


class BadgeDefinition(BaseModel):
    id: str
    name: str
    description: str
    icon: str
    category: BadgeCategory
    rarity: BadgeRarity
    requirement: BadgeRequirement
    points: int = Field(ge=0)


class UnlockedBadge(BaseModel):
    badge_id: str
    unlocked_at: datetime
    notified: bool = False
    # notified → ¿ya se mostró la celebración del desbloqueo?


class GamificationState(BaseModel):
    total_points: int = Field(default=0, ge=0)
    level: int = Field(default=1, ge=1)
    unlocked_badges: list[UnlockedBadge] = []

    # ── Congeladores de racha ──
    streak_freezes: int = Field(default=1, ge=0)
    # Se empieza con 1 gratis
    last_streak_freeze_used: Optional[str] = None
    # last_streak_freeze_used → "YYYY-MM-DD", como mucho uno por día
    frozen_days: list[str] = []
    # frozen_days → días en los que se gastó un congelador (no rompen la racha)

    # ── Contadores para logros (solo crecen) ──
    perfect_days: int = 0
    consecutive_perfect_days: int = 0
    early_bird_count: int = 0
    night_owl_count: int = 0
    comeback_count: int = 0

    # ── Último día contado por cada contador ──
    # Evaluar dos veces el mismo día no suma dos veces.
    last_perfect_day: Optional[str] = None
    last_early_bird_day: Optional[str] = None
    last_night_owl_day: Optional[str] = None
    last_comeback_day: Optional[str] = None


# =============================================================================
# ===================== RESULTADOS DERIVADOS ==================================
# =============================================================================

class DailyProgress(BaseModel):
    completed: int
    total: int
    percentage: int


class LevelProgress(BaseModel):
    level: int
    current_xp: int
    next_level_xp: int
    percentage: float


class BadgeProgress(BaseModel):
    current: int
    target: int
    percentage: float


class WeekDayStats(BaseModel):
    day: DayOfWeek
    date: date
    completed: int
    total: int
    percentage: int


class ReminderTrigger(BaseModel):
    """Un disparador semanal: (día, hora, minuto). Hashable para usar en sets."""
    model_config = {"frozen": True}

    weekday: DayOfWeek
    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)


# =============================================================================
# ===================== PREMIUM ===============================================
# =============================================================================

class PremiumState(BaseModel):
    tier: SubscriptionTier = SubscriptionTier.free
    is_subscribed: bool = False
    subscription_expiry: Optional[datetime] = None
    purchase_date: Optional[datetime] = None
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    has_used_trial: bool = False
    habits_created: int = Field(default=0, ge=0)


# =============================================================================
# ===================== SERVICIO DE DOCUMENTOS ================================
# =============================================================================

class DocumentWrite(BaseModel):
    data: dict


class BatchOperation(BaseModel):
    op: Literal["set", "update", "delete"]
    path: str = Field(min_length=1)
    # path → relativo a la cuenta: "habits/abc", "gamification/data"
    data: Optional[dict] = None


class BatchRequest(BaseModel):
    operations: list[BatchOperation] = Field(max_length=500)


class DocumentResponse(BaseModel):
    path: str
    data: dict
    updated_at: datetime
