"""
Shared fixtures: an in-memory record store standing in for Postgres, and a TestClient over the app.
"""
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient

from storefront.config import Settings
from storefront.db import DatastoreError
from storefront.main import create_app

ADMIN_USERNAME = "baker"
ADMIN_PASSWORD = "s3cret-dough"
JWT_SECRET = "test-signing-secret-for-storefront-suite"

BASE_TIME = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)


class FakeStore:
    """Implements the Datastore contract over dicts. Set `error` to make every call fail."""

    def __init__(self):
        self.tables: dict[str, list[dict[str, Any]]] = {"products": [], "orders": []}
        self._next_id = {"products": 1, "orders": 1}
        self.calls: list[tuple[str, str]] = []
        self.error: dict[str, Any] | None = None

    def _enter(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        if table not in self.tables:
            raise ValueError(f"unknown table {table!r}")
        if self.error is not None:
            raise DatastoreError(dict(self.error))

    def seed(self, table: str, **row: Any) -> dict[str, Any]:
        if "id" not in row:
            row["id"] = self._next_id[table]
        self._next_id[table] = max(self._next_id[table], int(row["id"])) + 1
        row.setdefault("created_at", BASE_TIME + timedelta(minutes=len(self.tables[table])))
        self.tables[table].append(row)
        return row

    def _matching(self, table: str, record_id: str) -> list[dict[str, Any]]:
        return [r for r in self.tables[table] if str(r["id"]) == record_id]

    async def select_all(self, table, order_by=None, descending=False):
        self._enter("select", table)
        rows = [dict(r) for r in self.tables[table]]
        if order_by:
            rows.sort(key=lambda r: r[order_by], reverse=descending)
        return rows

    async def insert(self, table, rows):
        self._enter("insert", table)
        return [dict(self.seed(table, **dict(row))) for row in rows]

    async def update(self, table, record_id, values):
        self._enter("update", table)
        matched = self._matching(table, record_id)
        for r in matched:
            r.update(values)
        return [dict(r) for r in matched]

    async def delete(self, table, record_id):
        self._enter("delete", table)
        matched = self._matching(table, record_id)
        self.tables[table] = [r for r in self.tables[table] if r not in matched]
        return [dict(r) for r in matched]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        admin_username=ADMIN_USERNAME,
        admin_password=ADMIN_PASSWORD,
        jwt_secret=JWT_SECRET,
        static_dir=None,
        display_timezone="UTC",
    )


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def client(settings: Settings, store: FakeStore):
    with TestClient(create_app(settings=settings, store=store)) as c:
        yield c


@pytest.fixture
def token(client: TestClient) -> str:
    resp = client.post("/api/admin/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return resp.json()["token"]


@pytest.fixture
def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
