"""
=============================================================================
SYNC.PY — Coordinador de sincronización (offline-first)
=============================================================================
El estado local SIEMPRE manda para el usuario: cada acción se aplica en local
al momento y la escritura remota se encola para después.

Dos piezas:

  1. COLA DE ESCRITURAS
     - enqueue(op) devuelve un asyncio.Future (True si llegó al servidor,
       False si no). Nadie está obligado a esperarlo.
     - Por documento (ruta) se guarda solo la ÚLTIMA escritura que todavía
       no está en vuelo. La última escritura gana.
     - Un batch (varios documentos que van juntos) se encola por una sola
       ruta y el servidor lo aplica entero o nada.
     - Cada ruta tiene su propia tarea: las escrituras a documentos distintos
       pueden terminar en cualquier orden.
     - Fallo transitorio → reintentos con espera exponencial (retry.py).
       Si se agotan, la escritura se queda en la cola y se reenvía en la
       próxima sincronización completa.
     - Fallo permanente → se registra, se descarta y sale como aviso en el
       siguiente SyncResult.
     - La cola se guarda en el almacén local: sobrevive a un reinicio.

  2. SINCRONIZACIÓN COMPLETA
     - Al iniciar sesión, o al volver del segundo plano tras más de
       SYNC_STALE_AFTER segundos.
     - Pull de TODO lo remoto → encima se aplican las escrituras que seguían
       en cola al empezar y las hechas durante el pull, aunque ya estén
       confirmadas (son más nuevas) → se entrega a quien posee el estado
       (on_snapshot) → se reenvían las escrituras pendientes.
     - Como mucho una a la vez (flag de ocupado).
     - Si la cuenta cambió durante el pull, el resultado se descarta.

Estados: IDLE ↔ SYNCING. Cambio de cuenta / logout → teardown(): IDLE,
se cancela todo lo que estaba en vuelo y se borra el estado de sync.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from pydantic import ValidationError

import documents
from local_store import STORAGE_KEYS, LocalStore
from remote import DocumentStore, PermanentRemoteError, RemoteStoreError, TransientRemoteError, WriteOp
from retry import RetryPolicy, run_with_retry
from schemas import GamificationState, Habit, HabitLog

logger = logging.getLogger("habitloop.sync")

SYNC_MAX_ATTEMPTS = int(os.getenv("SYNC_MAX_ATTEMPTS", "3"))
SYNC_BASE_DELAY = float(os.getenv("SYNC_BASE_DELAY", "0.5"))
SYNC_JITTER = float(os.getenv("SYNC_JITTER", "0.0"))
SYNC_STALE_AFTER = float(os.getenv("SYNC_STALE_AFTER", "300"))


def default_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=SYNC_MAX_ATTEMPTS, base_delay=SYNC_BASE_DELAY, jitter=SYNC_JITTER)


class SyncStatus(str, Enum):
    idle = "idle"
    syncing = "syncing"


@dataclass
class Snapshot:
    """Estado remoto completo de una cuenta, ya decodificado"""
    account_id: str
    habits: list[Habit] = field(default_factory=list)
    logs: list[HabitLog] = field(default_factory=list)
    gamification: Optional[GamificationState] = None


@dataclass
class SyncResult:
    ok: bool
    skipped: bool = False
    habits: int = 0
    logs: int = 0
    replayed: int = 0
    warnings: list[str] = field(default_factory=list)


@dataclass
class _QueuedWrite:
    op: WriteOp
    seq: int
    futures: list = field(default_factory=list)


def _merge(older: WriteOp, newer: WriteOp) -> WriteOp:
    """
    Dos escrituras a la misma ruta → una sola con el resultado final.
    Si alguna es un batch, se mezcla documento a documento y sigue siendo batch.
    """
    if older.kind == "batch" or newer.kind == "batch":
        merged: dict[str, WriteOp] = {op.path: op for op in older.parts()}
        for op in newer.parts():
            merged[op.path] = _merge(merged[op.path], op) if op.path in merged else op
        return WriteOp("batch", newer.path, ops=list(merged.values()))
    if newer.kind == "update" and older.kind in ("set", "update"):
        return WriteOp(older.kind, older.path, {**(older.data or {}), **(newer.data or {})})
    return newer


def _op_to_dict(op: WriteOp) -> dict:
    item = {"kind": op.kind, "path": op.path, "data": op.data}
    if op.kind == "batch":
        item["ops"] = [_op_to_dict(sub) for sub in op.ops]
    return item


def _op_from_dict(item: dict) -> WriteOp:
    return WriteOp(item["kind"], item["path"], item.get("data"),
                   ops=[_op_from_dict(sub) for sub in item.get("ops", [])])


def _resolve(entry: _QueuedWrite, outcome: bool):
    for fut in entry.futures:
        if not fut.done():
            fut.set_result(outcome)
    entry.futures = []


class SyncCoordinator:

    def __init__(
        self,
        store: DocumentStore,
        local: LocalStore,
        on_snapshot: Callable[[Snapshot], None] = None,
        policy: RetryPolicy = None,
        stale_after: float = SYNC_STALE_AFTER,
        sleep=asyncio.sleep,
        clock=time.monotonic,
    ):
        self.store = store
        self.local = local
        self.on_snapshot = on_snapshot
        self.policy = policy or default_policy()
        self.stale_after = stale_after
        self._sleep = sleep
        self._clock = clock

        self.account_id: Optional[str] = None
        self.status = SyncStatus.idle
        self.last_sync_at: Optional[str] = None

        self._busy = False
        self._generation = 0
        self._seq = 0
        self._pending: dict[str, _QueuedWrite] = {}
        self._in_flight: dict[str, _QueuedWrite] = {}
        self._stalled: dict[str, _QueuedWrite] = {}
        self._workers: dict[str, asyncio.Task] = {}
        self._warnings: list[str] = []
        self._listeners: list[Callable] = []
        self._backgrounded_at: Optional[float] = None
        # Escrituras encoladas desde que empezó el pull en curso (confirmadas o no)
        self._pull_ops: Optional[dict[str, WriteOp]] = None

    # ─────────────────────────────────────────────────────────────────────────
    # OBSERVADORES
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def pending_count(self) -> int:
        """Escrituras que el servidor todavía no ha confirmado"""
        return len(self._pending) + len(self._in_flight) + len(self._stalled)

    @property
    def is_syncing(self) -> bool:
        return self.status == SyncStatus.syncing

    def add_listener(self, listener: Callable) -> Callable:
        """listener(status, pending_count). Devuelve la función para darse de baja."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _notify(self):
        for listener in list(self._listeners):
            try:
                listener(self.status, self.pending_count)
            except Exception as e:
                logger.error(f"Error en listener de sync: {e}")

    def _set_status(self, status: SyncStatus):
        if self.status != status:
            self.status = status
            self._notify()

    # ─────────────────────────────────────────────────────────────────────────
    # SESIÓN
    # ─────────────────────────────────────────────────────────────────────────

    async def start_session(self, account_id: str) -> SyncResult:
        """
        Login: si había otra cuenta se desmonta primero. Luego se recupera la
        cola guardada y se hace una sincronización completa.
        """
        if self.account_id == account_id:
            return await self.full_sync()
        if self.account_id:
            await self.teardown()

        self.account_id = account_id
        self._load_state()
        logger.info(f"🔐 Sesión de sync iniciada: {account_id}")
        return await self.full_sync()

    init = start_session

    async def teardown(self):
        """
        Logout / cambio de cuenta: IDLE, se cancela lo que estaba en vuelo y se
        borra el estado de sync guardado. Las escrituras sin confirmar se pierden.
        """
        previous = self.account_id
        self._generation += 1
        self.account_id = None
        self._busy = False
        self._backgrounded_at = None

        workers = list(self._workers.values())
        for task in workers:
            task.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
        self._workers.clear()

        for entry in [*self._pending.values(), *self._in_flight.values(), *self._stalled.values()]:
            _resolve(entry, False)
        self._pending.clear()
        self._in_flight.clear()
        self._stalled.clear()
        self._pull_ops = None
        self._warnings = []
        self.last_sync_at = None

        self.local.remove(STORAGE_KEYS["sync_queue"])
        self.local.remove(STORAGE_KEYS["last_sync_at"])

        self.status = SyncStatus.idle
        self._notify()
        if previous:
            logger.info(f"👋 Sesión de sync cerrada: {previous}")

    def _is_current(self, generation: int, account_id: str) -> bool:
        return generation == self._generation and self.account_id == account_id

    # ─────────────────────────────────────────────────────────────────────────
    # PERSISTENCIA DE LA COLA
    # ─────────────────────────────────────────────────────────────────────────

    def _queued(self) -> list[_QueuedWrite]:
        entries = [*self._stalled.values(), *self._in_flight.values(), *self._pending.values()]
        return sorted(entries, key=lambda e: e.seq)

    def _persist_queue(self):
        self.local.set(STORAGE_KEYS["sync_queue"], [
            {**_op_to_dict(e.op), "seq": e.seq}
            for e in self._queued()
        ])

    def _load_state(self):
        self.last_sync_at = self.local.get(STORAGE_KEYS["last_sync_at"])
        prefix = documents.account_root(self.account_id) + "/"
        stored = self.local.get(STORAGE_KEYS["sync_queue"], [])
        for item in sorted(stored, key=lambda i: i.get("seq", 0)):
            if not item["path"].startswith(prefix):
                continue
            op = _op_from_dict(item)
            self._seq += 1
            previous = self._stalled.get(op.path)
            if previous:
                op = _merge(previous.op, op)
            self._stalled[op.path] = _QueuedWrite(op=op, seq=self._seq)
        if self._stalled:
            logger.info(f"📥 {len(self._stalled)} escrituras pendientes recuperadas")

    # ─────────────────────────────────────────────────────────────────────────
    # COLA DE ESCRITURAS
    # ─────────────────────────────────────────────────────────────────────────

    def enqueue(self, op: WriteOp) -> asyncio.Future:
        """
        Encola una escritura y la lanza en segundo plano.
        Hay que llamarla desde el bucle de asyncio.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._seq += 1

        entry = self._pending.get(op.path)
        if entry is None:
            entry = _QueuedWrite(op=op, seq=self._seq, futures=[future])
            self._pending[op.path] = entry
        else:
            # Todavía no ha salido: se fusiona con la nueva
            entry.op = _merge(entry.op, op)
            entry.seq = self._seq
            entry.futures.append(future)

        if self._pull_ops is not None:
            previous = self._pull_ops.get(op.path)
            self._pull_ops[op.path] = _merge(previous, op) if previous else op

        self._persist_queue()
        self._notify()
        self._kick(op.path)
        return future

    def _kick(self, path: str):
        if self.account_id is None:
            return
        worker = self._workers.get(path)
        if worker is not None and not worker.done():
            return
        self._workers[path] = asyncio.get_running_loop().create_task(
            self._drain(path, self._generation, self.account_id)
        )

    async def _drain(self, path: str, generation: int, account_id: str):
        """Envía, una detrás de otra, las escrituras pendientes de una ruta"""
        try:
            while path in self._pending and self._is_current(generation, account_id):
                entry = self._pending.pop(path)
                self._in_flight[path] = entry
                self._persist_queue()
                await self._send(entry, generation, account_id)
        finally:
            if self._workers.get(path) is asyncio.current_task():
                del self._workers[path]

    async def _send(self, entry: _QueuedWrite, generation: int, account_id: str):
        path = entry.op.path
        outcome = False
        try:
            await run_with_retry(lambda: self.store.apply(entry.op), self.policy,
                                 sleep=self._sleep, label=path)
            outcome = True
        except TransientRemoteError as e:
            # Se queda en cola para la próxima sincronización completa
            if self._is_current(generation, account_id):
                newer = self._pending.get(path)
                if newer is not None:
                    newer.op = _merge(entry.op, newer.op)
                else:
                    self._stalled[path] = _QueuedWrite(op=entry.op, seq=entry.seq)
            logger.warning(f"⏳ Escritura aplazada {path}: {e}")
        except PermanentRemoteError as e:
            message = f"Escritura rechazada {path}: {e}"
            self._warnings.append(message)
            logger.error(f"❌ {message}")
        finally:
            if self._in_flight.get(path) is entry:
                del self._in_flight[path]
            _resolve(entry, outcome)
            if self._is_current(generation, account_id):
                self._persist_queue()
                self._notify()

    async def flush(self):
        """Espera a que terminen todas las escrituras en vuelo (útil en tests y al cerrar)"""
        while self._workers:
            await asyncio.gather(*list(self._workers.values()), return_exceptions=True)

    def _replay(self) -> int:
        """Las escrituras aplazadas vuelven a la cola y se lanzan otra vez"""
        count = 0
        for path, stalled in list(self._stalled.items()):
            del self._stalled[path]
            newer = self._pending.get(path)
            if newer is not None:
                newer.op = _merge(stalled.op, newer.op)
            else:
                self._pending[path] = stalled
            count += 1
        for path in list(self._pending):
            self._kick(path)
        if count:
            self._persist_queue()
            logger.info(f"🔁 {count} escrituras reenviadas")
        return count

    # ─────────────────────────────────────────────────────────────────────────
    # SINCRONIZACIÓN COMPLETA
    # ─────────────────────────────────────────────────────────────────────────

    async def _pull(self, account_id: str) -> dict[str, dict]:
        """Todos los documentos de la cuenta: {ruta: datos}"""
        col = documents.collection_path
        habits, logs, badges, gamification = await asyncio.gather(
            self.store.list(col(account_id, documents.HABITS)),
            self.store.list(col(account_id, documents.LOGS)),
            self.store.list(col(account_id, documents.BADGES)),
            self.store.get(documents.gamification_path(account_id)),
        )
        raw = {}
        for doc_id, data in habits.items():
            raw[documents.habit_path(account_id, doc_id)] = data
        for doc_id, data in logs.items():
            raw[documents.log_path(account_id, doc_id)] = data
        for doc_id, data in badges.items():
            raw[documents.badge_path(account_id, doc_id)] = data
        if gamification is not None:
            raw[documents.gamification_path(account_id)] = gamification
        return raw

    def _overlay(self, raw: dict[str, dict], ops: list[WriteOp]) -> dict[str, dict]:
        """
        Lo que estaba en cola al empezar el pull y todo lo encolado durante el
        pull (aunque ya esté confirmado) es más nuevo que lo remoto: va encima.
        """
        merged = dict(raw)
        for op in (part for queued in ops for part in queued.parts()):
            if op.kind == "delete":
                merged.pop(op.path, None)
            elif op.kind == "update":
                merged[op.path] = {**merged.get(op.path, {}), **(op.data or {})}
            else:
                merged[op.path] = dict(op.data or {})
        return merged

    def _decode(self, account_id: str, raw: dict[str, dict]) -> tuple[Snapshot, list[str]]:
        snapshot = Snapshot(account_id=account_id)
        warnings = []
        gamification_doc = None
        badge_docs = {}
        col = documents.collection_path

        for path, data in sorted(raw.items()):
            parent, _, doc_id = path.rpartition("/")
            try:
                if parent == col(account_id, documents.HABITS):
                    snapshot.habits.append(documents.habit_from_document(doc_id, data))
                elif parent == col(account_id, documents.LOGS):
                    snapshot.logs.append(documents.log_from_document(doc_id, data))
                elif parent == col(account_id, documents.BADGES):
                    badge_docs[doc_id] = data
                elif path == documents.gamification_path(account_id):
                    gamification_doc = data
            except ValidationError as e:
                warnings.append(f"Documento inválido ignorado {path}: {e.error_count()} errores")

        if gamification_doc is not None or badge_docs:
            try:
                snapshot.gamification = documents.gamification_from_document(gamification_doc or {}, badge_docs)
            except ValidationError as e:
                warnings.append(f"Gamificación inválida ignorada: {e.error_count()} errores")

        for warning in warnings:
            logger.warning(f"⚠️ {warning}")
        return snapshot, warnings

    async def full_sync(self) -> SyncResult:
        """
        Pull completo + cola encima + reenvío de lo pendiente.
        Si ya hay una en curso, o no hay sesión, no hace nada (skipped).
        """
        account_id = self.account_id
        if account_id is None:
            return SyncResult(ok=False, skipped=True, warnings=["Sin sesión activa"])
        if self._busy:
            return SyncResult(ok=False, skipped=True, warnings=["Sincronización ya en curso"])

        generation = self._generation
        self._busy = True
        self._pull_ops = {}
        for entry in self._queued():
            previous = self._pull_ops.get(entry.op.path)
            self._pull_ops[entry.op.path] = _merge(previous, entry.op) if previous else entry.op
        self._set_status(SyncStatus.syncing)
        logger.info(f"🔄 Sincronización completa: {account_id}")

        try:
            try:
                raw = await run_with_retry(lambda: self._pull(account_id), self.policy,
                                           sleep=self._sleep, label="pull")
            except RemoteStoreError as e:
                logger.error(f"❌ Error en el pull de {account_id}: {e}")
                return SyncResult(ok=False, warnings=[str(e)])

            if not self._is_current(generation, account_id):
                logger.info(f"🗑️ Resultado de sync descartado (la cuenta {account_id} ya no está activa)")
                return SyncResult(ok=False, skipped=True, warnings=["Cuenta cambiada durante el pull"])

            snapshot, warnings = self._decode(account_id, self._overlay(raw, list(self._pull_ops.values())))
            self._pull_ops = None
            if self.on_snapshot:
                self.on_snapshot(snapshot)

            replayed = self._replay()
            self.last_sync_at = datetime.now(timezone.utc).isoformat()
            self.local.set(STORAGE_KEYS["last_sync_at"], self.last_sync_at)

            warnings = self._warnings + warnings
            self._warnings = []
            logger.info(f"✅ Sync completa: {len(snapshot.habits)} hábitos, {len(snapshot.logs)} registros")
            return SyncResult(
                ok=True,
                habits=len(snapshot.habits),
                logs=len(snapshot.logs),
                replayed=replayed,
                warnings=warnings,
            )
        finally:
            if generation == self._generation:
                self._busy = False
                self._pull_ops = None
                self._set_status(SyncStatus.idle)

    # ─────────────────────────────────────────────────────────────────────────
    # CICLO DE VIDA DE LA APP
    # ─────────────────────────────────────────────────────────────────────────

    def on_background(self):
        self._backgrounded_at = self._clock()

    async def on_foreground(self) -> Optional[SyncResult]:
        """Si estuvo en segundo plano más de stale_after segundos → sync completa"""
        since = self._backgrounded_at
        self._backgrounded_at = None
        if self.account_id is None or since is None:
            return None
        if self._clock() - since <= self.stale_after:
            return None
        return await self.full_sync()
