"""
=============================================================================
LEVELING.PY — Sistema de Niveles
=============================================================================
Cada nivel necesita 50 puntos más que el anterior (progresión aritmética).
Fórmula: puntos del nivel k = 100 + (k - 1) * 50

  Nivel 1 → 100    (acumulado 100)
  Nivel 2 → 150    (acumulado 250)
  Nivel 3 → 200    (acumulado 450)
  ...

Todo aquí es PURO: mismas entradas → mismo resultado. Es necesario para poder
repetir el cálculo al reconciliar con el servidor sin miedo.
"""

from typing import Optional

from schemas import LevelProgress

BASE_LEVEL_XP = 100
LEVEL_XP_STEP = 50


def xp_for_level(level: int) -> int:
    """Puntos necesarios para completar el nivel `level`"""
    return BASE_LEVEL_XP + (level - 1) * LEVEL_XP_STEP


def total_xp_for_level(level: int) -> int:
    """Puntos acumulados necesarios para EMPEZAR el nivel `level`"""
    total = 0
    for lvl in range(1, level):
        total += xp_for_level(lvl)
    return total


def level_for_points(points: int) -> int:
    """
    Nivel correspondiente a un total de puntos.

    Recorre los umbrales acumulados desde el nivel 1 mientras el total
    acumulado no supere los puntos. Siempre >= 1, también con 0 puntos.
    """
    level = 1
    accumulated = 0
    while accumulated + xp_for_level(level) <= points:
        accumulated += xp_for_level(level)
        level += 1
    return level


def level_progress(points: int, level: Optional[int] = None) -> LevelProgress:
    """
    Progreso dentro del nivel actual.

      current_xp     → puntos ganados desde que empezó el nivel
      next_level_xp  → tamaño del nivel (puntos para pasar al siguiente)
      percentage     → min(100, current / next * 100)
    """
    if level is None:
        level = level_for_points(points)

    level_start = total_xp_for_level(level)
    next_start = total_xp_for_level(level + 1)
    current_xp = points - level_start
    next_level_xp = next_start - level_start
    percentage = min(100.0, current_xp / next_level_xp * 100) if next_level_xp > 0 else 100.0

    return LevelProgress(
        level=level,
        current_xp=current_xp,
        next_level_xp=next_level_xp,
        percentage=round(percentage, 1),
    )
