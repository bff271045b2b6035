"""
Shared fixtures.

No test talks to a real Supabase project or to the Gemini API: cloud mode
runs against ``FakeSupabase``, an in-memory stand-in for the handful of
query-builder calls the cloud store makes, and extraction tests inject an
``httpx.MockTransport``.
"""

import copy
import logging
import threading
from pathlib import Path
from typing import Callable, Optional

import pytest

from trackexpense.auth import SessionManager
from trackexpense.database import DatabaseManager
from trackexpense.logger import StructuredLogger, configure_logging
from trackexpense.repositories.expense_repository import ExpenseRepository
from trackexpense.repositories.user_repository import UserRepository
from trackexpense.seed import demo_expenses, demo_users

STORAGE_KEYS = {"expenses": "track_expense_data", "users": "track_expense_users"}
SESSION_KEY = "billboard_user_id"


# ---------------------------------------------------------------------------
# Fake Supabase client
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """One ``client.table(name)...execute()`` chain."""

    def __init__(self, client: "FakeSupabase", table: str) -> None:
        self._client = client
        self._table = table
        self._op: Optional[str] = None
        self._payload: Optional[dict] = None
        self._filters: list[tuple[str, object]] = []

    def select(self, columns: str = "*") -> "FakeQuery":
        self._op = "select"
        return self

    def upsert(self, payload: dict) -> "FakeQuery":
        self._op, self._payload = "upsert", payload
        return self

    def update(self, payload: dict) -> "FakeQuery":
        self._op, self._payload = "update", payload
        return self

    def delete(self) -> "FakeQuery":
        self._op = "delete"
        return self

    def eq(self, field: str, value: object) -> "FakeQuery":
        self._filters.append((field, value))
        return self

    def execute(self) -> FakeResponse:
        return self._client.execute(self._table, self._op, self._payload, list(self._filters))


class FakeSupabase:
    """In-memory tables plus a log of every executed statement."""

    def __init__(self, tables: Optional[dict[str, list[dict]]] = None) -> None:
        self.tables: dict[str, list[dict]] = copy.deepcopy(tables or {})
        self.calls: list[tuple[str, str, list[tuple[str, object]]]] = []
        self.fail_writes = False
        self.fail_reads = False
        self._lock = threading.Lock()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def execute(self, table, op, payload, filters) -> FakeResponse:
        with self._lock:
            self.calls.append((table, op, filters))
            rows = self.tables.setdefault(table, [])

            if op == "select":
                if self.fail_reads:
                    raise ConnectionError("realtime channel closed")
                return FakeResponse(copy.deepcopy(rows))

            if self.fail_writes:
                raise PermissionError("permission denied for table " + table)

            def matches(row):
                return all(row.get(field) == value for field, value in filters)

            if op == "upsert":
                for index, row in enumerate(rows):
                    if row["id"] == payload["id"]:
                        rows[index] = copy.deepcopy(payload)
                        break
                else:
                    rows.append(copy.deepcopy(payload))
            elif op == "update":
                for row in rows:
                    if matches(row):
                        row.update(copy.deepcopy(payload))
            elif op == "delete":
                rows[:] = [row for row in rows if not matches(row)]
            return FakeResponse([])

    def statements(self, table: str, op: str) -> list[list[tuple[str, object]]]:
        with self._lock:
            return [filters for t, o, filters in self.calls if t == table and o == op]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session", autouse=True)
def _log_to_tmp(tmp_path_factory):
    """Send every component's log output to a temporary file."""
    log_dir = tmp_path_factory.mktemp("logs")
    configure_logging(level=logging.DEBUG, log_file=str(log_dir / "tests.log"))


@pytest.fixture(scope="session")
def logger() -> StructuredLogger:
    return StructuredLogger(name="tests")


@pytest.fixture
def alerts() -> list[str]:
    return []


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "local.db"


@pytest.fixture
def make_db(db_path, logger, alerts):
    """Factory for DatabaseManager instances; all are closed at teardown."""
    created: list[DatabaseManager] = []

    def _make(
        cloud: Optional[FakeSupabase] = None,
        quota: int = 5_000_000,
        path: Optional[Path] = None,
    ) -> DatabaseManager:
        db = DatabaseManager(
            supabase_url="",
            supabase_key="",
            sqlite_path=path or db_path,
            logger=logger,
            storage_quota_bytes=quota,
            storage_keys=STORAGE_KEYS,
            alert=alerts.append,
            poll_interval_s=0,
            supabase_client=cloud,
        )
        created.append(db)
        return db

    yield _make
    for db in created:
        db.close()


@pytest.fixture
def local_db(make_db) -> DatabaseManager:
    return make_db()


@pytest.fixture
def fake_cloud() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def cloud_db(make_db, fake_cloud) -> DatabaseManager:
    return make_db(cloud=fake_cloud)


@pytest.fixture
def make_session(logger):
    def _make(db: DatabaseManager) -> SessionManager:
        return SessionManager(storage=db.storage, storage_key=SESSION_KEY, logger=logger)

    return _make


@pytest.fixture
def make_repos(logger, alerts, make_session, make_db):
    """Build (users, expenses, session) over *db* with the demo seeds."""
    created: list = []

    def _make(db: DatabaseManager, seeded: bool = True):
        session = make_session(db)
        users = UserRepository(
            db=db,
            session=session,
            logger=logger,
            seed=demo_users if seeded else None,
            alert=alerts.append,
        )
        expenses = ExpenseRepository(
            db=db, logger=logger, seed=demo_expenses if seeded else None,
        )
        created.extend([users, expenses])
        return users, expenses, session

    yield _make
    for repo in created:
        repo.close()


def flush(db: DatabaseManager, rounds: int = 3) -> None:
    """Wait for queued cloud work; no-op in local mode.

    Deliveries can queue follow-up writes (demo account seeding), so the
    writer is drained a few times.
    """
    flusher: Optional[Callable[..., None]] = getattr(db.store, "flush", None)
    if flusher is None:
        return
    for _ in range(rounds):
        flusher(timeout=5.0)
