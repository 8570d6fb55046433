# tests/fakesupabase.py
"""In-memory stand-in for the async Supabase client used by repositories."""

from __future__ import annotations

import copy
import itertools
from typing import Any, Callable, Dict, List, Optional


class FakeResult:
    def __init__(self, data, count=None):
        self.data = data
        self.count = len(data) if count is None and isinstance(data, list) else count


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._filters: List[Callable[[dict], bool]] = []
        self._op = "select"
        self._payload: Any = None
        self._on_conflict: Optional[str] = None
        self._order: Optional[tuple] = None
        self._limit: Optional[int] = None

    # builders
    def select(self, *args, **kwargs):
        self._op = "select"
        return self

    def insert(self, payload):
        self._op, self._payload = "insert", payload
        return self

    def update(self, patch):
        self._op, self._payload = "update", patch
        return self

    def upsert(self, payload, on_conflict: Optional[str] = None):
        self._op, self._payload, self._on_conflict = "upsert", payload, on_conflict
        return self

    def eq(self, field, value):
        self._filters.append(lambda r: r.get(field) == value)
        return self

    def in_(self, field, values):
        values_set = set(values or [])
        self._db.in_calls.append((self._table, field, list(values or [])))
        self._filters.append(lambda r: r.get(field) in values_set)
        return self

    def is_(self, field, value):
        expected = None if value in (None, "null") else value
        self._filters.append(lambda r: r.get(field) is expected)
        return self

    def order(self, field, desc: bool = False):
        self._order = (field, desc)
        return self

    def limit(self, n):
        self._limit = n
        return self

    # execution
    def _rows(self) -> List[dict]:
        return self._db.tables.setdefault(self._table, [])

    def _matching(self) -> List[dict]:
        return [row for row in self._rows() if all(f(row) for f in self._filters)]

    async def execute(self):
        self._db.calls.append((self._table, self._op))
        failure = self._db.failures.get(self._table)
        if failure is not None:
            raise failure
        if self._op == "select":
            rows = [copy.deepcopy(r) for r in self._matching()]
            if self._order:
                field, desc = self._order
                rows.sort(key=lambda r: (r.get(field) is None, r.get(field) or ""), reverse=desc)
            if self._limit is not None:
                rows = rows[: self._limit]
            return FakeResult(rows)
        if self._op == "insert":
            items = self._payload if isinstance(self._payload, list) else [self._payload]
            out = [self._db.add(self._table, item) for item in items]
            return FakeResult(copy.deepcopy(out))
        if self._op == "update":
            out = []
            for row in self._matching():
                row.update(copy.deepcopy(self._payload))
                out.append(copy.deepcopy(row))
            return FakeResult(out)
        if self._op == "upsert":
            keys = [k.strip() for k in (self._on_conflict or "id").split(",")]
            items = self._payload if isinstance(self._payload, list) else [self._payload]
            out = []
            for item in items:
                existing = next(
                    (r for r in self._rows() if all(r.get(k) == item.get(k) for k in keys)),
                    None,
                )
                if existing is not None:
                    existing.update(copy.deepcopy(item))
                    out.append(copy.deepcopy(existing))
                else:
                    out.append(copy.deepcopy(self._db.add(self._table, item)))
            return FakeResult(out)
        raise AssertionError(f"unsupported op {self._op}")


class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: dict):
        self._db = db
        self._name = name
        self._params = params

    async def execute(self):
        self._db.calls.append((self._name, "rpc"))
        handler = self._db.functions.get(self._name)
        if handler is None:
            raise AssertionError(f"no fake rpc registered for {self._name}")
        return FakeResult(handler(self._db, **self._params))


class FakeSupabase:
    def __init__(self, tables: Optional[Dict[str, List[dict]]] = None):
        self.tables: Dict[str, List[dict]] = copy.deepcopy(tables or {})
        self.functions: Dict[str, Callable[..., Any]] = {}
        self.failures: Dict[str, Exception] = {}
        self.calls: List[tuple] = []
        self.in_calls: List[tuple] = []
        self._ids = itertools.count(1)

    def add(self, table: str, item: dict) -> dict:
        row = copy.deepcopy(item)
        row.setdefault("id", f"{table}-{next(self._ids)}")
        self.tables.setdefault(table, []).append(row)
        return row

    def table(self, name: str):
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Optional[dict] = None):
        return FakeRpc(self, name, params or {})

    def queried(self, table: str) -> bool:
        return any(t == table for t, _ in self.calls)


def install(monkeypatch, fake: FakeSupabase, *modules) -> FakeSupabase:
    """Point each module's ``get_supabase`` (and repository factories) at ``fake``."""

    async def _get():
        return fake

    for module in modules:
        if hasattr(module, "get_supabase"):
            monkeypatch.setattr(module, "get_supabase", _get)
    return fake
