"""Shared fixtures: bundled reference data, an in-memory Supabase stand-in, and an API client.

The fake client implements the PostgREST builder subset the repository uses
(table/select/eq/ilike/in_/or_/order/limit/update/upsert/execute) over plain
lists of dicts, with hooks to make individual operations fail.
"""

import itertools
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from buildpass.core.config import Settings, get_settings
from buildpass.core.dependencies import get_reference_data, get_supabase
from buildpass.db.repository import LegalityRepository
from buildpass.services.reference_data import ReferenceData

DATA_DIR = Path(__file__).resolve().parent.parent / "buildpass" / "data"
ADMIN_KEY = "test-admin-key"
FIXED_NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Fake Supabase
# =============================================================================


def _same(a: Any, b: Any) -> bool:
    if a is None or b is None:
        return a is b
    return a == b or str(a) == str(b)


def _like_to_regex(pattern: str) -> re.Pattern[str]:
    out = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            out.append(re.escape(next(chars, "\\")))
        elif ch == "%":
            out.append(".*")
        elif ch == "_":
            out.append(".")
        else:
            out.append(re.escape(ch))
    return re.compile("".join(out), re.IGNORECASE | re.DOTALL)


def _sort_key(col: str) -> Callable[[dict[str, Any]], tuple]:
    def key(row: dict[str, Any]) -> tuple:
        value = row.get(col)
        return (value is None, "" if value is None else value)

    return key


class FakeResult:
    def __init__(self, data: list[dict[str, Any]]):
        self.data = data


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.op = "select"
        self.payload: Any = None
        self.on_conflict: str | None = None
        self.filters: list[Callable[[dict[str, Any]], bool]] = []
        self.orders: list[tuple[str, bool]] = []
        self.max_rows: int | None = None

    def select(self, columns: str = "*") -> "FakeQuery":
        self.op = "select"
        return self

    def eq(self, col: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda r: _same(r.get(col), value))
        return self

    def ilike(self, col: str, pattern: str) -> "FakeQuery":
        regex = _like_to_regex(pattern)
        self.filters.append(
            lambda r: r.get(col) is not None and regex.fullmatch(str(r.get(col))) is not None
        )
        return self

    def in_(self, col: str, values: list[Any]) -> "FakeQuery":
        wanted = {str(v) for v in values}
        self.filters.append(lambda r: r.get(col) is not None and str(r.get(col)) in wanted)
        return self

    def or_(self, filters: str) -> "FakeQuery":
        """PostgREST ``or`` filter; supports ``col.eq.value`` and ``col.is.null``."""
        conditions = []
        for part in filters.split(","):
            col, op, value = part.split(".", 2)
            if op == "is" and value == "null":
                conditions.append(lambda r, c=col: r.get(c) is None)
            elif op == "eq":
                conditions.append(lambda r, c=col, v=value: _same(r.get(c), v))
            else:
                raise NotImplementedError(f"or_ operator {op!r}")
        self.filters.append(lambda r: any(cond(r) for cond in conditions))
        return self

    def order(self, col: str, desc: bool = False) -> "FakeQuery":
        self.orders.append((col, desc))
        return self

    def limit(self, n: int) -> "FakeQuery":
        self.max_rows = n
        return self

    def update(self, row: dict[str, Any]) -> "FakeQuery":
        self.op = "update"
        self.payload = row
        return self

    def upsert(self, rows: list[dict[str, Any]], on_conflict: str = "id") -> "FakeQuery":
        self.op = "upsert"
        self.payload = rows
        self.on_conflict = on_conflict
        return self

    def _matching(self) -> list[dict[str, Any]]:
        rows = [r for r in self.db.rows(self.table_name) if all(f(r) for f in self.filters)]
        for col, desc in reversed(self.orders):
            rows.sort(key=_sort_key(col), reverse=desc)
        if self.max_rows is not None:
            rows = rows[: self.max_rows]
        return rows

    def execute(self) -> FakeResult:
        self.db.calls.append((self.table_name, self.op))
        failure = self.db.failures.get((self.table_name, self.op))
        if failure is not None:
            raise failure

        if self.op == "select":
            return FakeResult([dict(r) for r in self._matching()])

        if self.op == "update":
            matched = self._matching()
            for row in matched:
                if str(row.get("id")) in self.db.failing_row_ids.get(self.table_name, set()):
                    raise RuntimeError(f"update rejected for {self.table_name}/{row.get('id')}")
            for row in matched:
                row.update(self.payload)
            return FakeResult([dict(r) for r in matched])

        # upsert
        table = self.db.rows(self.table_name)
        key = self.on_conflict or "id"
        written = []
        for incoming in self.payload:
            existing = next((r for r in table if _same(r.get(key), incoming.get(key))), None)
            if existing is not None:
                existing.update(incoming)
                written.append(dict(existing))
            else:
                row = {"id": self.db.next_id(), **incoming}
                table.append(row)
                written.append(dict(row))
        return FakeResult(written)


class FakeSupabase:
    """In-memory stand-in for ``supabase.Client``."""

    def __init__(self, tables: dict[str, list[dict[str, Any]]] | None = None):
        self.tables: dict[str, list[dict[str, Any]]] = tables or {}
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[tuple[str, str], Exception] = {}
        self.failing_row_ids: dict[str, set[str]] = {}
        self._ids = itertools.count(1000)

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def next_id(self) -> str:
        return str(next(self._ids))

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def fail(self, table: str, op: str, exc: Exception | None = None) -> None:
        self.failures[(table, op)] = exc or RuntimeError(f"{table}.{op} unavailable")

    def fail_row_update(self, table: str, row_id: str) -> None:
        self.failing_row_ids.setdefault(table, set()).add(str(row_id))


# =============================================================================
# Seed helpers
# =============================================================================


def seed_modification(
    db: FakeSupabase,
    mod_id: str,
    part_name: str,
    brand: str | None = None,
    category: str | None = None,
    tuv_status: str = "YELLOW_ABE",
    user_parameters: dict[str, Any] | str | None = None,
    documents: list[dict[str, Any]] | None = None,
    approvals: list[dict[str, Any]] | None = None,
    state_id: str | None = None,
    car_id: str = "car-1",
    listing_ids: list[str] | None = None,
) -> None:
    """Insert a modification with its evidence, car/log entry and listings."""
    log_entry_id = f"log-{mod_id}"
    db.rows("cars")
    if not any(c["id"] == car_id for c in db.rows("cars")):
        db.rows("cars").append({"id": car_id, "state_id": state_id})
    db.rows("log_entries").append({"id": log_entry_id, "car_id": car_id})

    params_json = user_parameters
    if isinstance(user_parameters, dict):
        import json

        params_json = json.dumps(user_parameters)

    db.rows("modifications").append(
        {
            "id": mod_id,
            "part_name": part_name,
            "brand": brand,
            "category": category,
            "tuv_status": tuv_status,
            "user_parameters_json": params_json,
            "log_entry_id": log_entry_id,
        }
    )
    for doc in documents or []:
        db.rows("modification_documents").append({"modification_id": mod_id, **doc})
    for approval in approvals or []:
        db.rows("approval_documents").append({"modification_id": mod_id, **approval})
    for listing_id in listing_ids or []:
        db.rows("part_listings").append({"id": listing_id, "modification_id": mod_id})


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def reference_data() -> ReferenceData:
    return ReferenceData.load(DATA_DIR)


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def repo(fake_db: FakeSupabase) -> LegalityRepository:
    return LegalityRepository(fake_db)  # type: ignore[arg-type]


@pytest.fixture
def client(reference_data: ReferenceData, fake_db: FakeSupabase):
    from buildpass.api.routes import limiter
    from buildpass.main import app

    limiter.reset()
    app.dependency_overrides[get_reference_data] = lambda: reference_data
    app.dependency_overrides[get_supabase] = lambda: fake_db
    app.dependency_overrides[get_settings] = lambda: Settings(API_ADMIN_KEY=ADMIN_KEY)
    yield TestClient(app)
    app.dependency_overrides.clear()
