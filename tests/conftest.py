"""
Shared test fixtures.

The Supabase mock keeps rows in memory per table, so services can insert,
update and read back the same data within one test.
"""

import os
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings are loaded at import time; required values must exist first
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ["API_KEY"] = "test-api-key"
os.environ["SMTP_HOST"] = ""

import re
import pytest
from unittest.mock import patch
from datetime import datetime, timedelta, timezone
from typing import Generator, Optional
from uuid import uuid4

TEST_API_KEY = "test-api-key"


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data=None, count: int = None):
        self.data = data if data is not None else []
        if count is not None:
            self.count = count
        else:
            self.count = len(self.data) if isinstance(self.data, list) else int(bool(self.data))


def _like_to_regex(pattern: str) -> re.Pattern:
    parts = [re.escape(p) for p in pattern.split("%")]
    return re.compile("^" + ".*".join(parts) + "$", re.IGNORECASE | re.DOTALL)


class MockSupabaseQuery:
    """Chainable query over one in-memory table."""

    def __init__(self, client: "MockSupabaseClient", table_name: str):
        self._client = client
        self._table = table_name
        self._op = "select"
        self._columns = "*"
        self._payload = None
        self._filters = []
        self._order = []
        self._range = None
        self._is_single = False

    @property
    def _rows(self) -> list:
        return self._client._tables.setdefault(self._table, [])

    # Operations

    def select(self, columns: str = "*", count: Optional[str] = None, **kwargs):
        self._op = "select"
        self._columns = columns
        return self

    def insert(self, data):
        self._op = "insert"
        self._payload = [data] if isinstance(data, dict) else list(data)
        return self

    def update(self, data: dict):
        self._op = "update"
        self._payload = data
        return self

    def delete(self):
        self._op = "delete"
        return self

    # Filters

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def is_(self, column, value):
        if value in ("null", None):
            self._filters.append(lambda row: row.get(column) is None)
        else:
            self._filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        values = list(values)
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def ilike(self, column, pattern):
        regex = _like_to_regex(pattern)
        self._filters.append(lambda row: regex.match(str(row.get(column) or "")) is not None)
        return self

    # Modifiers

    def order(self, column, desc: bool = False, **kwargs):
        self._order.append((column, desc))
        return self

    def range(self, start, end):
        self._range = (start, end + 1)
        return self

    def limit(self, count):
        self._range = (0, count)
        return self

    def single(self):
        self._is_single = True
        return self

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self._filters)

    def execute(self) -> MockSupabaseResponse:
        if self._op == "insert":
            inserted = [self._client._store(self._table, item) for item in self._payload]
            return MockSupabaseResponse(data=[dict(r) for r in inserted])

        if self._op == "update":
            self._client._run_update_hook(self._table, self._payload)
            updated = []
            for row in self._rows:
                if self._matches(row):
                    row.update(self._payload)
                    updated.append(dict(row))
            return MockSupabaseResponse(data=updated)

        if self._op == "delete":
            deleted = [r for r in self._rows if self._matches(r)]
            self._client._tables[self._table] = [r for r in self._rows if not self._matches(r)]
            return MockSupabaseResponse(data=deleted)

        rows = [dict(r) for r in self._rows if self._matches(r)]
        for column, desc in reversed(self._order):
            rows.sort(key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
        total = len(rows)
        if self._range:
            rows = rows[self._range[0]:self._range[1]]
        rows = [self._client._embed(self._table, row, self._columns) for row in rows]

        if self._is_single:
            return MockSupabaseResponse(data=rows[0] if rows else None)
        return MockSupabaseResponse(data=rows, count=total)


class MockSupabaseClient:
    """
    In-memory Supabase client.

    Resolves the embedded resources the bulk import queries ask for:
    created_by:employees, pending_import_balances(count) and
    import_job:bulk_import_jobs.
    """

    def __init__(self):
        self._tables: dict[str, list] = {}
        self._clock = datetime(2025, 1, 1, tzinfo=timezone.utc)
        self._update_hooks = []

    def set_table_data(self, table_name: str, data: list, count: int = None):
        """Configure rows for a table (count is ignored, kept for compatibility)."""
        self._tables[table_name] = [dict(row) for row in data]

    def rows(self, table_name: str) -> list:
        """Current rows of a table, for assertions."""
        return self._tables.get(table_name, [])

    def table(self, name: str) -> MockSupabaseQuery:
        return MockSupabaseQuery(self, name)

    def on_next_update(self, table_name: str, action, **payload_match):
        """
        Run action once, before the next update on table_name whose payload
        contains payload_match. The action may raise to simulate a failed write.
        """
        self._update_hooks.append((table_name, payload_match, action))

    def fail_next_update(self, table_name: str, **payload_match):
        """Make the next matching update raise."""
        def fail():
            raise RuntimeError("connection reset")
        self.on_next_update(table_name, fail, **payload_match)

    def _run_update_hook(self, table_name: str, payload: dict):
        for hook in self._update_hooks:
            name, match, action = hook
            if name == table_name and all(k in payload and payload[k] == v for k, v in match.items()):
                self._update_hooks.remove(hook)
                action()
                return

    def _store(self, table_name: str, item: dict) -> dict:
        # Strictly increasing timestamps keep "newest first" deterministic
        self._clock += timedelta(seconds=1)
        row = {"id": str(uuid4()), "created_at": self._clock.isoformat(), **item}
        self._tables.setdefault(table_name, []).append(row)
        return row

    def _embed(self, table_name: str, row: dict, columns: str) -> dict:
        if "created_by:employees" in columns:
            creator = next(
                (e for e in self.rows("employees") if e["id"] == row.get("created_by_id")),
                None
            )
            row["created_by"] = (
                {k: creator.get(k) for k in ("id", "name", "email")} if creator else None
            )
        if "pending_import_balances(count)" in columns:
            count = sum(
                1 for p in self.rows("pending_import_balances")
                if p.get("import_job_id") == row["id"]
            )
            row["pending_import_balances"] = [{"count": count}]
        if "import_job:bulk_import_jobs" in columns:
            job = next(
                (j for j in self.rows("bulk_import_jobs") if j["id"] == row.get("import_job_id")),
                None
            )
            row["import_job"] = {"id": job["id"], "name": job["name"]} if job else None
        return row


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("employees", [
                {"id": "emp-1", "email": "ana@example.com", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Usage:
        def test_something(mock_db, mock_supabase):
            mock_supabase.set_table_data("employees", [...])
            # Now any code using get_supabase_client() gets the mock
    """
    import services.bulk_import_service as bulk_import_module
    import services.transaction_service as transaction_module

    bulk_import_module._bulk_import_service = None
    transaction_module._transaction_service = None

    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.bulk_import_service.get_supabase_client", return_value=mock_supabase):
            with patch("services.transaction_service.get_supabase_client", return_value=mock_supabase):
                yield mock_supabase

    bulk_import_module._bulk_import_service = None
    transaction_module._transaction_service = None


@pytest.fixture
def no_invitation_delay() -> Generator:
    """Skip the pause between bulk invitation emails."""
    with patch("services.bulk_import_service.time.sleep") as sleep:
        yield sleep


@pytest.fixture
def sent_emails() -> Generator:
    """
    Capture outgoing invitation emails instead of sending them.

    Yields the patched send_email mock; each call is (to, subject, text, html).
    """
    with patch("services.bulk_import_service.send_email", return_value=True) as send:
        yield send


@pytest.fixture
def directory(mock_supabase) -> dict:
    """
    Two registered employees and one employee without an account yet.

    Returns:
        dict with the employee and account rows
    """
    from tests.factories import AccountFactory, EmployeeFactory

    ana = EmployeeFactory.create(id="emp-ana", name="Ana Lopez", email="ana.lopez@example.com")
    ben = EmployeeFactory.create(id="emp-ben", name="Ben Ortiz", email="ben.ortiz@example.com")
    cara = EmployeeFactory.create(id="emp-cara", name="Cara Diaz", email="cara.diaz@example.com")
    admin = EmployeeFactory.create(id="emp-admin", name="Admin User", email="admin@example.com")

    accounts = [
        AccountFactory.create(id="acct-ana", employee_id="emp-ana", balance=100),
        AccountFactory.create(id="acct-ben", employee_id="emp-ben", balance=0),
        AccountFactory.create(id="acct-admin", employee_id="emp-admin", balance=0),
    ]

    mock_supabase.set_table_data("employees", [ana, ben, cara, admin])
    mock_supabase.set_table_data("accounts", accounts)

    return {"employees": [ana, ben, cara, admin], "accounts": accounts}


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_mock_db(mock_db):
    """
    Create FastAPI test client with mocked database.

    Sends the admin API key on every request.

    Usage:
        def test_endpoint(test_client_with_mock_db, mock_supabase):
            mock_supabase.set_table_data("employees", [...])
            response = test_client_with_mock_db.get("/api/admin/bulk-import/jobs")
    """
    from fastapi.testclient import TestClient
    from main import app

    yield TestClient(app, headers={"X-API-Key": TEST_API_KEY})
