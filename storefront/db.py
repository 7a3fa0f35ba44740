"""
Async Postgres datastore: products (catalog) + orders (checkout payloads and their lifecycle status).
Each call is a single round trip; there is no transaction spanning an update and a later read,
so concurrent writes to the same row are last-write-wins.
"""
import asyncio
import json
import logging
from typing import Any

import asyncpg
from asyncpg.exceptions import InterfaceError, PostgresError
from fastapi import Request

from storefront.config import Settings
from storefront.metrics import datastore_errors_total

logger = logging.getLogger(__name__)

TABLES = ("products", "orders")

# driver errors, lost connections, command_timeout expiry
STORE_FAILURES = (PostgresError, InterfaceError, OSError, asyncio.TimeoutError)

_pool: asyncpg.Pool | None = None


class DatastoreError(Exception):
    """Raised for any failure reported by the store. Carries the store's own error payload."""
    def __init__(self, payload: dict[str, Any]):
        self.payload = payload
        super().__init__(payload.get("message"))

    @property
    def message(self) -> str | None:
        return self.payload.get("message")

    @classmethod
    def from_exception(cls, exc: Exception) -> "DatastoreError":
        return cls({
            "message": str(exc),
            "code": getattr(exc, "sqlstate", None),
            "details": getattr(exc, "detail", None),
            "hint": getattr(exc, "hint", None),
        })


async def _init_connection(conn: asyncpg.Connection) -> None:
    # items arrive as plain lists/dicts; let asyncpg (de)serialize json columns
    for typename in ("json", "jsonb"):
        await conn.set_type_codec(typename, encoder=json.dumps, decoder=json.loads, schema="pg_catalog")


async def get_pool(settings: Settings) -> asyncpg.Pool:
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=settings.db_command_timeout,
            init=_init_connection,
        )
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


async def init_schema(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS products (
                id BIGSERIAL PRIMARY KEY,
                name TEXT,
                price NUMERIC(10, 2),
                category TEXT,
                image TEXT,
                description TEXT,
                available BOOLEAN NOT NULL DEFAULT TRUE,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS orders (
                id BIGSERIAL PRIMARY KEY,
                items JSONB,
                customer_name TEXT,
                order_status TEXT NOT NULL DEFAULT 'pending',
                total NUMERIC(10, 2),
                delivery_address TEXT,
                verification_code TEXT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_orders_created_at
            ON orders(created_at DESC);
        """)


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _table(name: str) -> str:
    if name not in TABLES:
        raise ValueError(f"unknown table {name!r}")
    return quote_ident(name)


# ids arrive as path strings; cast on the server so a non-numeric id is a store error, not a client crash
_ID_MATCH = "id = $%d::text::bigint"


def build_select_all(table: str, order_by: str | None = None, descending: bool = False) -> str:
    sql = f"SELECT * FROM {_table(table)}"
    if order_by:
        sql += f" ORDER BY {quote_ident(order_by)} {'DESC' if descending else 'ASC'}"
    return sql


def build_insert(table: str, row: dict[str, Any]) -> tuple[str, list[Any]]:
    if not row:
        return f"INSERT INTO {_table(table)} DEFAULT VALUES RETURNING *", []
    columns = ", ".join(quote_ident(c) for c in row)
    placeholders = ", ".join(f"${i}" for i in range(1, len(row) + 1))
    return (
        f"INSERT INTO {_table(table)} ({columns}) VALUES ({placeholders}) RETURNING *",
        list(row.values()),
    )


def build_update(table: str, record_id: str, values: dict[str, Any]) -> tuple[str, list[Any]]:
    if not values:
        # nothing to write; behave like a filtered select
        return f"SELECT * FROM {_table(table)} WHERE {_ID_MATCH % 1}", [record_id]
    assignments = ", ".join(f"{quote_ident(c)} = ${i}" for i, c in enumerate(values, start=1))
    return (
        f"UPDATE {_table(table)} SET {assignments} WHERE {_ID_MATCH % (len(values) + 1)} RETURNING *",
        [*values.values(), record_id],
    )


def build_delete(table: str, record_id: str) -> tuple[str, list[Any]]:
    return f"DELETE FROM {_table(table)} WHERE {_ID_MATCH % 1} RETURNING *", [record_id]


class Datastore:
    """
    Record store over a connection pool. Every method returns the affected rows as dicts
    or raises DatastoreError with the store's error payload. The pool connects with the
    service's own role, so inserts are not subject to per-caller row policies.
    """

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def _fetch(self, operation: str, table: str, sql: str, args: list[Any]) -> list[dict[str, Any]]:
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(sql, *args)
        except STORE_FAILURES as e:
            err = DatastoreError.from_exception(e)
            datastore_errors_total.labels(table=table, operation=operation).inc()
            logger.error("Datastore %s on %s failed: %s", operation, table, err.payload)
            raise err from e
        return [dict(r) for r in rows]

    async def select_all(
        self, table: str, order_by: str | None = None, descending: bool = False
    ) -> list[dict[str, Any]]:
        return await self._fetch("select", table, build_select_all(table, order_by, descending), [])

    async def insert(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        inserted: list[dict[str, Any]] = []
        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    for row in rows:
                        sql, args = build_insert(table, row)
                        record = await conn.fetchrow(sql, *args)
                        inserted.append(dict(record))
        except STORE_FAILURES as e:
            err = DatastoreError.from_exception(e)
            datastore_errors_total.labels(table=table, operation="insert").inc()
            logger.error("Datastore insert on %s failed: %s", table, err.payload)
            raise err from e
        return inserted

    async def update(self, table: str, record_id: str, values: dict[str, Any]) -> list[dict[str, Any]]:
        sql, args = build_update(table, record_id, values)
        return await self._fetch("update", table, sql, args)

    async def delete(self, table: str, record_id: str) -> list[dict[str, Any]]:
        sql, args = build_delete(table, record_id)
        return await self._fetch("delete", table, sql, args)


def get_store(request: Request) -> Datastore:
    return request.app.state.store
