"""
=============================================================================
RETRY.PY — Reintentos con espera exponencial
=============================================================================
Solo se reintentan los fallos TRANSITORIOS (servicio caído, timeout).
Un fallo permanente (validación, permisos) no se arregla reintentando:
se propaga a la primera.

Espera antes del intento k+1:  base_delay * 2^(k-1)  (+ jitter aleatorio)

  base 0.5 s → 0.5, 1, 2, 4...
"""

import asyncio
import logging
import random
from dataclasses import dataclass

from remote import TransientRemoteError

logger = logging.getLogger("habitloop.retry")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.5
    jitter: float = 0.0
    # jitter → fracción máxima de la espera que se suma al azar (0.1 = hasta +10%)

    def delay_for(self, attempt: int) -> float:
        """Espera tras el intento fallido número `attempt` (empezando en 1)"""
        delay = self.base_delay * (2 ** (attempt - 1))
        if self.jitter > 0:
            delay += delay * random.uniform(0, self.jitter)
        return delay


async def run_with_retry(fn, policy: RetryPolicy, sleep=asyncio.sleep, label: str = ""):
    """
    Ejecuta `await fn()` hasta policy.max_attempts veces.

    Retorna lo que devuelva fn. Si se agotan los intentos, relanza el último
    TransientRemoteError. Cualquier otra excepción sale sin reintentar.
    """
    attempt = 1
    while True:
        try:
            return await fn()
        except TransientRemoteError as e:
            if attempt >= policy.max_attempts:
                logger.warning(f"❌ {label or 'operación'}: {attempt} intentos agotados ({e})")
                raise
            delay = policy.delay_for(attempt)
            logger.info(f"🔁 {label or 'operación'}: intento {attempt} fallido, reintento en {delay:.2f}s")
            await sleep(delay)
            attempt += 1
