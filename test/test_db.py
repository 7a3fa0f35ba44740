import asyncio

import pytest
from fastapi.testclient import TestClient

from storefront.db import (
    Datastore,
    DatastoreError,
    build_delete,
    build_insert,
    build_select_all,
    build_update,
    quote_ident,
)
from storefront.main import create_app


def test_select_all_ordering():
    assert build_select_all("products") == 'SELECT * FROM "products"'
    assert build_select_all("orders", order_by="created_at", descending=True) == (
        'SELECT * FROM "orders" ORDER BY "created_at" DESC'
    )


def test_insert_binds_every_value():
    sql, args = build_insert("orders", {"items": [{"name": "Croissant", "quantity": 2}], "total": 7.5})
    assert sql == 'INSERT INTO "orders" ("items", "total") VALUES ($1, $2) RETURNING *'
    assert args == [[{"name": "Croissant", "quantity": 2}], 7.5]


def test_insert_empty_row_uses_defaults():
    assert build_insert("orders", {}) == ('INSERT INTO "orders" DEFAULT VALUES RETURNING *', [])


def test_update_places_id_after_values():
    sql, args = build_update("orders", "42", {"order_status": "on_delivery", "verification_code": "42"})
    assert sql == (
        'UPDATE "orders" SET "order_status" = $1, "verification_code" = $2 '
        "WHERE id = $3::text::bigint RETURNING *"
    )
    assert args == ["on_delivery", "42", "42"]


def test_update_without_values_selects_the_row():
    assert build_update("products", "3", {}) == ('SELECT * FROM "products" WHERE id = $1::text::bigint', ["3"])


def test_delete():
    assert build_delete("products", "3") == ('DELETE FROM "products" WHERE id = $1::text::bigint RETURNING *', ["3"])


def test_column_names_are_quoted():
    assert quote_ident('total"; DROP TABLE orders; --') == '"total""; DROP TABLE orders; --"'


def test_unknown_table_is_refused():
    with pytest.raises(ValueError):
        build_select_all("users")


def test_error_payload_from_driver_exception():
    class FakePgError(Exception):
        sqlstate = "42703"
        detail = None
        hint = "Perhaps you meant to reference the column \"orders.total\"."

    err = DatastoreError.from_exception(FakePgError('column "totl" of relation "orders" does not exist'))
    assert err.payload == {
        "message": 'column "totl" of relation "orders" does not exist',
        "code": "42703",
        "details": None,
        "hint": "Perhaps you meant to reference the column \"orders.total\".",
    }
    assert err.message == err.payload["message"]


class BrokenPool:
    """Pool whose every acquire() fails the way a dead or overloaded server does."""

    def __init__(self, exc: BaseException):
        self.exc = exc

    def acquire(self):
        raise self.exc


STORE_OUTAGES = [ConnectionRefusedError("refused"), asyncio.TimeoutError(), OSError("connection reset")]


@pytest.mark.parametrize("exc", STORE_OUTAGES)
def test_outage_becomes_datastore_error(exc):
    store = Datastore(BrokenPool(exc))
    for call in (
        store.select_all("orders", order_by="created_at", descending=True),
        store.insert("orders", [{"items": []}]),
        store.update("orders", "1", {"order_status": "cancelled"}),
        store.delete("products", "1"),
    ):
        with pytest.raises(DatastoreError) as info:
            asyncio.run(call)
        assert info.value.message == str(exc)
        assert info.value.__cause__ is exc


@pytest.mark.parametrize("exc", STORE_OUTAGES)
def test_outage_reaches_clients_with_store_payload(settings, exc):
    expected = DatastoreError.from_exception(exc).payload
    with TestClient(create_app(settings=settings, store=Datastore(BrokenPool(exc)))) as client:
        resp = client.get("/products")
        assert resp.status_code == 400
        assert resp.json() == expected

        resp = client.post("/api/checkout", json={"items": [{"name": "Croissant", "quantity": 2}]})
        assert resp.status_code == 500
        assert resp.json() == {"error": str(exc) or "Failed to place order"}
