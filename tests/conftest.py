"""
Shared fixtures: an in-memory stand-in for the Supabase client.

FakeSupabase implements the slice of the PostgREST query builder the repository
uses (select/insert/update with eq, neq, lt, gte, in_, order, limit, range) plus
``functions.invoke``. Timestamps are compared as datetimes.
"""

import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
from jose import jwt

# Keep the module-level client unconfigured during tests
os.environ.pop("SUPABASE_URL", None)
os.environ["ENVIRONMENT"] = "test"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"

from safety_audit.escalation_engine import EscalationEngine
from safety_audit.notification_service import FunctionEmailClient, NotificationDispatcher
from safety_audit.repository import AuditRepository
from safety_audit.settings import get_settings


NOW = datetime(2025, 3, 10, 12, 0, 0, tzinfo=timezone.utc)
TEST_JWT_SECRET = os.environ["SUPABASE_JWT_SECRET"]


def make_token(secret: str = TEST_JWT_SECRET, **claims) -> str:
    """HS256 bearer token as Supabase Auth issues them."""
    return jwt.encode(claims, secret, algorithm="HS256")


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str, action: str, payload: Any = None):
        self.db = db
        self.table_name = table
        self.action = action
        self.payload = payload
        self.filters = []
        self._limit: Optional[int] = None
        self._range: Optional[tuple] = None
        self._orders: List[tuple] = []

    def _filter(self, predicate):
        self.filters.append(predicate)
        return self

    def eq(self, column, value):
        return self._filter(lambda row: row.get(column) == value)

    def neq(self, column, value):
        return self._filter(lambda row: row.get(column) != value)

    def lt(self, column, value):
        return self._filter(
            lambda row: row.get(column) is not None and _comparable(row.get(column)) < _comparable(value)
        )

    def gte(self, column, value):
        return self._filter(
            lambda row: row.get(column) is not None and _comparable(row.get(column)) >= _comparable(value)
        )

    def in_(self, column, values):
        values = list(values)
        return self._filter(lambda row: row.get(column) in values)

    def order(self, column, desc=False):
        self._orders.append((column, desc))
        return self

    def limit(self, count):
        self._limit = count
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def execute(self):
        self.db.queries.append((self.table_name, self.action))
        failure = self.db.failures.get((self.table_name, self.action))
        if failure is not None:
            raise failure

        rows = self.db.tables.setdefault(self.table_name, [])

        if self.action == "insert":
            payloads = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for payload in payloads:
                row = dict(payload)
                row.setdefault("id", str(uuid.uuid4()))
                if self.table_name == "notifications":
                    row.setdefault("sent_at", self.db.now.isoformat())
                rows.append(row)
                inserted.append(dict(row))
            return FakeResponse(inserted)

        matched = [row for row in rows if all(f(row) for f in self.filters)]

        if self.action == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse([dict(row) for row in matched])

        # Later keys are tie-breakers: apply them first, then stable-sort by earlier ones
        for column, desc in reversed(self._orders):
            matched = sorted(matched, key=lambda row: _comparable(row.get(column)), reverse=desc)
        if self._range is not None:
            start, end = self._range
            matched = matched[start : end + 1]
        if self._limit is not None:
            matched = matched[: self._limit]
        if self.db.max_rows is not None:
            matched = matched[: self.db.max_rows]
        return FakeResponse([dict(row) for row in matched])


class FakeTable:
    def __init__(self, db: "FakeSupabase", name: str):
        self.db = db
        self.name = name

    def select(self, *columns):
        return FakeQuery(self.db, self.name, "select")

    def insert(self, payload):
        return FakeQuery(self.db, self.name, "insert", payload)

    def update(self, payload):
        return FakeQuery(self.db, self.name, "update", payload)


class FakeFunctions:
    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None

    def invoke(self, function_name, invoke_options=None):
        self.calls.append({"name": function_name, "body": (invoke_options or {}).get("body")})
        if self.error is not None:
            raise self.error
        return b'{"success": true}'


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.failures: Dict[tuple, Exception] = {}
        self.queries: List[tuple] = []
        self.functions = FakeFunctions()
        self.now = NOW
        # PostgREST server-side cap on rows per response
        self.max_rows: Optional[int] = None

    def table(self, name):
        return FakeTable(self, name)

    # -- seeding helpers ------------------------------------------------------

    def add_project(self, project_id="proj-1", name="Tower Crane Site"):
        self.tables.setdefault("projects", []).append({"id": project_id, "name": name})
        return project_id

    def add_member(self, project_id, user_id, role, email=None, first_name="Alex", last_name="Doe"):
        self.tables.setdefault("profiles", []).append({
            "id": user_id,
            "first_name": first_name,
            "last_name": last_name,
            "email": email or f"{user_id}@example.com",
            "role": role,
        })
        self.tables.setdefault("project_assignments", []).append({"project_id": project_id, "user_id": user_id})

    def add_finding(self, finding_id, hours_overdue, project_id="proj-1", status="open",
                    title="Missing guardrail", severity="high", now=None, **extra):
        now = now or self.now
        row = {
            "id": finding_id,
            "title": title,
            "severity": severity,
            "status": status,
            "project_id": project_id,
            "due_date": (now - timedelta(hours=hours_overdue)).isoformat(),
        }
        row.update(extra)
        self.tables.setdefault("findings", []).append(row)
        return row

    @property
    def notifications(self):
        return self.tables.get("notifications", [])


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def repository(fake_db):
    return AuditRepository(fake_db)


@pytest.fixture
def dispatcher(fake_db, repository):
    return NotificationDispatcher(repository, FunctionEmailClient(fake_db))


@pytest.fixture
def engine(repository, dispatcher):
    return EscalationEngine(repository, dispatcher)
