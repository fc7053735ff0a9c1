"""Shared fixtures: in-memory document store, in-memory local store, habit factories."""

# pylint: disable=redefined-outer-name

import asyncio
from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Optional

import pytest
from sqlalchemy.orm import sessionmaker

from database import init_db, make_engine
from local_store import LocalStore
from remote import DocumentStore, TransientRemoteError, WriteOp
from schemas import DailyFrequency, Habit, HabitLog, LogStatus, log_id

# Sunday 2026-10-18 is "today" in most tests; the week starts Monday 2026-10-12.
MONDAY = date(2026, 10, 12)
TUESDAY = date(2026, 10, 13)
WEDNESDAY = date(2026, 10, 14)
THURSDAY = date(2026, 10, 15)
FRIDAY = date(2026, 10, 16)
SATURDAY = date(2026, 10, 17)
SUNDAY = date(2026, 10, 18)


class FakeDocumentStore(DocumentStore):
    """Dict-backed document store with failure injection and optional gates."""

    def __init__(self):
        self.docs: dict[str, dict] = {}
        self.attempts: dict[str, int] = defaultdict(int)
        self.failures: dict[str, list] = defaultdict(list)
        self.write_gate: Optional[asyncio.Event] = None
        self.read_gate: Optional[asyncio.Event] = None
        self.write_started = asyncio.Event()
        self.read_started = asyncio.Event()

    def fail(self, path: str, times: int = 1, error=TransientRemoteError):
        """The next `times` writes to `path` raise `error`."""
        self.failures[path].extend([error] * times)

    async def _before_write(self, path: str):
        self.attempts[path] += 1
        self.write_started.set()
        if self.write_gate is not None:
            await self.write_gate.wait()
        if self.failures[path]:
            error = self.failures[path].pop(0)
            raise error(f"injected failure for {path}")

    async def _before_read(self):
        self.read_started.set()
        if self.read_gate is not None:
            await self.read_gate.wait()

    def _write(self, op: WriteOp):
        if op.kind == "set":
            self.docs[op.path] = dict(op.data or {})
        elif op.kind == "update":
            self.docs[op.path] = {**self.docs.get(op.path, {}), **(op.data or {})}
        else:
            self.docs.pop(op.path, None)

    # Reads capture the data first and then wait, like a server answering a
    # request that is still on its way back.

    async def get(self, path):
        doc = self.docs.get(path)
        await self._before_read()
        return dict(doc) if doc is not None else None

    async def set(self, path, doc):
        await self._before_write(path)
        self._write(WriteOp("set", path, doc))

    async def update(self, path, partial):
        await self._before_write(path)
        self._write(WriteOp("update", path, partial))

    async def delete(self, path):
        await self._before_write(path)
        self._write(WriteOp("delete", path))

    async def batch(self, ops):
        # All or nothing: every injected failure fires before anything is written
        for op in ops:
            await self._before_write(op.path)
        for op in ops:
            self._write(op)

    async def list(self, collection):
        prefix = collection.rstrip("/") + "/"
        found = {
            path[len(prefix):]: dict(data)
            for path, data in self.docs.items()
            if path.startswith(prefix) and "/" not in path[len(prefix):]
        }
        await self._before_read()
        return found


class FakeNotifier:
    """Records scheduled weekly triggers per habit."""

    def __init__(self):
        self.scheduled: dict[str, list[tuple]] = defaultdict(list)
        self.calls: list[tuple] = []

    def schedule_weekly(self, habit_id, title, body, weekday, hour, minute):
        self.calls.append(("schedule", habit_id))
        self.scheduled[habit_id].append((weekday, hour, minute))
        return f"{habit_id}:{weekday.value}:{hour:02d}{minute:02d}"

    def cancel_all_for(self, habit_id):
        self.calls.append(("cancel", habit_id))
        self.scheduled.pop(habit_id, None)


class SleepRecorder:
    """Stand-in for asyncio.sleep that records the requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay):
        self.delays.append(delay)


# ============================================================================
# Factories
# ============================================================================


def make_habit(habit_id="h1", created=date(2026, 10, 1), frequency=None, **fields) -> Habit:
    return Habit(
        id=habit_id,
        title=fields.pop("title", f"Habit {habit_id}"),
        frequency_config=frequency or DailyFrequency(),
        created_at=datetime(created.year, created.month, created.day, 6, 0),
        **fields,
    )


def completed(habit_id: str, day: date, hour: int = 12, minute: int = 0) -> HabitLog:
    return HabitLog(
        id=log_id(habit_id, day),
        habit_id=habit_id,
        date=day,
        status=LogStatus.completed,
        completed_at=datetime(day.year, day.month, day.day, hour, minute),
    )


def skipped(habit_id: str, day: date) -> HabitLog:
    return HabitLog(id=log_id(habit_id, day), habit_id=habit_id, date=day, status=LogStatus.skipped)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def local_store(session_factory) -> LocalStore:
    return LocalStore(session_factory)


@pytest.fixture
def fake_store() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def no_sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def utc_now():
    return datetime(2026, 10, 14, 18, 0, tzinfo=timezone.utc)
