"""
Shared test fixtures.

Settings need Supabase credentials at import time, so defaults are set
here before any application module is imported.
"""

import os
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import pytest
from unittest.mock import MagicMock, patch
from typing import Generator, Optional
from uuid import uuid4

from models.import_run import ImportConfig
from tests.factories import MockAPIError, make_http_session


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """Chainable select / insert against one mock table."""

    def __init__(self, client: "MockSupabaseClient", table: str):
        self._client = client
        self._table = table
        self._filters: list[tuple[str, object]] = []
        self._limit: Optional[int] = None
        self._insert: Optional[list[dict]] = None

    def select(self, *args, **kwargs):
        return self

    def insert(self, data):
        rows = [data] if isinstance(data, dict) else list(data)
        self._insert = [dict(row) for row in rows]
        return self

    def eq(self, column, value):
        self._filters.append((column, value))
        return self

    def limit(self, count):
        self._limit = count
        return self

    def order(self, column, **kwargs):
        return self

    def execute(self) -> MockSupabaseResponse:
        if self._insert is not None:
            return self._client._do_insert(self._table, self._insert)

        error = self._client._select_errors.get(self._table)
        if error is not None:
            raise error

        rows = [
            dict(row)
            for row in self._client.rows(self._table)
            if all(row.get(column) == value for column, value in self._filters)
        ]
        total = len(rows)
        if self._limit is not None:
            rows = rows[:self._limit]
        return MockSupabaseResponse(data=rows, count=total)


class MockSupabaseTable:
    """Entry point for queries on one table."""

    def __init__(self, client: "MockSupabaseClient", name: str):
        self._client = client
        self._name = name

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self._client, self._name).select(*args, **kwargs)

    def insert(self, data):
        return MockSupabaseQuery(self._client, self._name).insert(data)


class MockStorageBucket:
    """One storage bucket; uploads are kept by path."""

    def __init__(self, storage: "MockStorage", name: str):
        self._storage = storage
        self.name = name

    def upload(self, path: str, file: bytes, file_options: Optional[dict] = None):
        if self._storage.fail_uploads:
            raise MockAPIError("Storage quota exceeded")
        self._storage.uploads[path] = {
            "bucket": self.name,
            "content": file,
            "content_type": (file_options or {}).get("content-type"),
        }
        return {"path": path}

    def get_public_url(self, path: str) -> str:
        # Real clients may append an empty query string
        return f"https://storage.test/{self.name}/{path}?"


class MockStorage:
    def __init__(self):
        self.uploads: dict[str, dict] = {}
        self.fail_uploads = False

    def from_(self, bucket: str) -> MockStorageBucket:
        return MockStorageBucket(self, bucket)


class MockSupabaseClient:
    """
    In-memory Supabase client.

    Inserted rows are kept, so later selects see them. Inserts can be made
    to fail per table, optionally only on given call numbers (1-based).
    """

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}
        self._insert_errors: dict[str, tuple[Exception, Optional[set[int]]]] = {}
        self._select_errors: dict[str, Exception] = {}
        self.insert_calls: dict[str, list[list[dict]]] = {}
        self.storage = MockStorage()

    def set_table_data(self, table_name: str, data: list, count: int = None):
        """Configure rows for a table."""
        self._tables[table_name] = [dict(row) for row in data]

    def rows(self, table_name: str) -> list[dict]:
        return self._tables.setdefault(table_name, [])

    def fail_inserts(self, table_name: str, error: Exception, calls: Optional[set[int]] = None):
        """Make inserts into table_name raise error (on every call, or only on calls)."""
        self._insert_errors[table_name] = (error, calls)

    def fail_selects(self, table_name: str, error: Exception):
        self._select_errors[table_name] = error

    def table(self, name: str) -> MockSupabaseTable:
        return MockSupabaseTable(self, name)

    def _do_insert(self, table_name: str, rows: list[dict]) -> MockSupabaseResponse:
        calls = self.insert_calls.setdefault(table_name, [])
        calls.append(rows)

        failure = self._insert_errors.get(table_name)
        if failure is not None:
            error, only_calls = failure
            if only_calls is None or len(calls) in only_calls:
                raise error

        for row in rows:
            row.setdefault("id", str(uuid4()))
        self.rows(table_name).extend(rows)
        return MockSupabaseResponse(data=[dict(row) for row in rows])


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("categories", [
                {"id": "cat-1", "name": "Drills"}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Any store or storage adapter built without an explicit client gets
    the mock. Service singletons start empty so they pick it up.
    """
    with patch("config.database.get_supabase_client", return_value=mock_supabase), \
            patch("integrations.supabase_store.get_supabase_client", return_value=mock_supabase), \
            patch("services.reference_service._reference_service", None), \
            patch("services.import_service._import_service", None):
        yield mock_supabase


@pytest.fixture
def catalog_store(mock_supabase):
    from integrations.supabase_store import CatalogStore
    return CatalogStore(client=mock_supabase)


@pytest.fixture
def object_storage(mock_supabase):
    from integrations.supabase_store import ObjectStorage
    return ObjectStorage(client=mock_supabase, bucket="equipment-images")


@pytest.fixture
def http_session() -> MagicMock:
    """HTTP session with no routes; add them via http_session.routes[url] = ..."""
    return make_http_session()


@pytest.fixture
def import_config() -> ImportConfig:
    """Config with no network fallbacks beyond the direct fetch."""
    return ImportConfig(
        batch_size=5,
        use_content_api=False,
        use_relays=False,
        relays=[],
        use_placeholder=False,
    )


@pytest.fixture
def known_categories() -> list[dict]:
    return [
        {"id": "cat-drills", "name": "Drills"},
        {"id": "cat-scaffolding", "name": "Scaffolding"},
    ]


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_mock_db(mock_db):
    """
    FastAPI test client backed by the mock Supabase client.

    Sessions created during the test are dropped afterwards.
    """
    from fastapi.testclient import TestClient
    from main import app
    from services import session_store

    yield TestClient(app)

    with session_store._lock:
        session_store._sessions.clear()
