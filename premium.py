"""
=============================================================================
PREMIUM.PY — Suscripción y límites por plan
=============================================================================
Planes: free → pro → lifetime.

  - Prueba gratuita de 7 días (una sola vez por cuenta): durante la prueba
    se es "pro" a todos los efectos.
  - Límites por plan (FEATURE_LIMITS): free = 5 hábitos y 1 recordatorio
    por hábito.
  - La caducidad NO se comprueba sola: refresh_expiry() la mira y, si toca,
    baja a free.
  - cancel_subscription() no cambia nada a propósito: la suscripción sigue
    activa hasta que caduca, y la bajada la hace refresh_expiry().

Como gamification.py: funciones sobre PremiumState que devuelven uno nuevo.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from schemas import PremiumState, SubscriptionTier

logger = logging.getLogger("habitloop.premium")

TRIAL_DURATION_DAYS = 7

FEATURE_LIMITS = {
    SubscriptionTier.free: {
        "max_habits": 5,
        "max_reminders_per_habit": 1,
        "max_streak_freezes": 3,
        "history_days": 7,
    },
    SubscriptionTier.pro: {
        "max_habits": math.inf,
        "max_reminders_per_habit": 5,
        "max_streak_freezes": math.inf,
        "history_days": math.inf,
    },
    SubscriptionTier.lifetime: {
        "max_habits": math.inf,
        "max_reminders_per_habit": 5,
        "max_streak_freezes": math.inf,
        "history_days": math.inf,
    },
}

# Funcionalidad → plan mínimo
FEATURES = {
    "basic_habits": SubscriptionTier.free,
    "basic_streaks": SubscriptionTier.free,
    "weekly_stats": SubscriptionTier.free,
    "basic_reminders": SubscriptionTier.free,
    "unlimited_habits": SubscriptionTier.pro,
    "advanced_frequency": SubscriptionTier.pro,
    "multiple_reminders": SubscriptionTier.pro,
    "full_history": SubscriptionTier.pro,
    "monthly_reports": SubscriptionTier.pro,
    "export_data": SubscriptionTier.pro,
    "cloud_sync": SubscriptionTier.pro,
    "unlimited_freezes": SubscriptionTier.pro,
    "exclusive_badges": SubscriptionTier.pro,
    "lifetime_badge": SubscriptionTier.lifetime,
    "early_access": SubscriptionTier.lifetime,
    "priority_support": SubscriptionTier.lifetime,
}

TIER_ORDER = [SubscriptionTier.free, SubscriptionTier.pro, SubscriptionTier.lifetime]


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def _days_left(until: datetime, now: datetime) -> int:
    seconds = (until - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


# =============================================================================
# ===================== CONSULTAS =============================================
# =============================================================================

def is_trial_active(state: PremiumState, now: Optional[datetime] = None) -> bool:
    if state.trial_end is None:
        return False
    if state.tier != SubscriptionTier.pro or not state.is_subscribed:
        return False
    return _now(now) < state.trial_end


def effective_tier(state: PremiumState, now: Optional[datetime] = None) -> SubscriptionTier:
    return SubscriptionTier.pro if is_trial_active(state, now) else state.tier


def is_pro(state: PremiumState, now: Optional[datetime] = None) -> bool:
    return effective_tier(state, now) in (SubscriptionTier.pro, SubscriptionTier.lifetime)


def max_habits(state: PremiumState, now: Optional[datetime] = None):
    return FEATURE_LIMITS[effective_tier(state, now)]["max_habits"]


def max_reminders(state: PremiumState, now: Optional[datetime] = None) -> int:
    return FEATURE_LIMITS[effective_tier(state, now)]["max_reminders_per_habit"]


def can_create_habit(state: PremiumState, now: Optional[datetime] = None) -> bool:
    return state.habits_created < max_habits(state, now)


def can_use_feature(state: PremiumState, feature_id: str, now: Optional[datetime] = None) -> bool:
    """Funcionalidad desconocida → False"""
    required = FEATURES.get(feature_id)
    if required is None:
        return False
    return TIER_ORDER.index(effective_tier(state, now)) >= TIER_ORDER.index(required)


def days_until_expiry(state: PremiumState, now: Optional[datetime] = None) -> Optional[int]:
    """None para free y lifetime (no caducan) o si no hay fecha"""
    if state.tier in (SubscriptionTier.free, SubscriptionTier.lifetime):
        return None
    if state.subscription_expiry is None:
        return None
    return _days_left(state.subscription_expiry, _now(now))


def trial_days_remaining(state: PremiumState, now: Optional[datetime] = None) -> int:
    if not is_trial_active(state, now):
        return 0
    return _days_left(state.trial_end, _now(now))


# =============================================================================
# ===================== ACCIONES ==============================================
# =============================================================================

def start_trial(state: PremiumState, now: Optional[datetime] = None) -> tuple[PremiumState, bool]:
    """La prueba solo se puede usar una vez"""
    if state.has_used_trial:
        return state, False
    start = _now(now)
    logger.info("🎁 Prueba pro iniciada")
    return state.model_copy(update={
        "tier": SubscriptionTier.pro,
        "is_subscribed": True,
        "trial_start": start,
        "trial_end": start + timedelta(days=TRIAL_DURATION_DAYS),
        "has_used_trial": True,
    }), True


def end_trial(state: PremiumState) -> PremiumState:
    return state.model_copy(update={
        "tier": SubscriptionTier.free,
        "is_subscribed": False,
        "trial_start": None,
        "trial_end": None,
    })


def subscribe(
    state: PremiumState,
    tier: SubscriptionTier,
    expiry: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> PremiumState:
    """Al suscribirse se limpia la prueba. Lifetime no tiene caducidad."""
    logger.info(f"💳 Suscripción: {tier.value}")
    return state.model_copy(update={
        "tier": tier,
        "is_subscribed": tier != SubscriptionTier.free,
        "purchase_date": _now(now),
        "subscription_expiry": None if tier == SubscriptionTier.lifetime else expiry,
        "trial_start": None,
        "trial_end": None,
    })


def cancel_subscription(state: PremiumState) -> PremiumState:
    """
    Sin efecto inmediato: se mantiene el plan hasta la fecha de caducidad.
    La bajada a free la hace refresh_expiry() cuando esa fecha pasa.
    """
    logger.info("💳 Cancelación registrada: el plan sigue activo hasta que caduque")
    return state


def refresh_expiry(state: PremiumState, now: Optional[datetime] = None) -> tuple[PremiumState, bool]:
    """
    Baja a free si la prueba o la suscripción han caducado.
    Retorna (estado, True) si hubo bajada.
    """
    if state.tier == SubscriptionTier.lifetime:
        return state, False
    if state.tier == SubscriptionTier.free or not state.is_subscribed:
        return state, False

    current = _now(now)
    if state.trial_end is not None:
        if current > state.trial_end:
            logger.info("⌛ Prueba caducada, bajando a free")
            return end_trial(state), True
        return state, False

    if state.subscription_expiry is not None and current > state.subscription_expiry:
        logger.info("⌛ Suscripción caducada, bajando a free")
        return state.model_copy(update={
            "tier": SubscriptionTier.free,
            "is_subscribed": False,
        }), True
    return state, False


def increment_habits_created(state: PremiumState) -> PremiumState:
    return state.model_copy(update={"habits_created": state.habits_created + 1})


def decrement_habits_created(state: PremiumState) -> PremiumState:
    return state.model_copy(update={"habits_created": max(0, state.habits_created - 1)})
