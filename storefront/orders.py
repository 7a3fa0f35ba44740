"""
Order operations on top of the datastore: admin listing, admin status updates, public checkout.
"""
import logging
from datetime import tzinfo
from typing import Any

from storefront.db import Datastore
from storefront.metrics import order_status_updates_total
from storefront.order_state import OrderSummary, status_update, summarize

logger = logging.getLogger(__name__)

ORDERS_TABLE = "orders"


async def list_orders(store: Datastore, tz: tzinfo | None = None) -> list[OrderSummary]:
    """Newest first. A malformed row degrades to defaults instead of failing the listing."""
    records = await store.select_all(ORDERS_TABLE, order_by="created_at", descending=True)
    return [summarize(r, tz) for r in records]


async def update_status(
    store: Datastore, order_id: str, directive: Any, reason: str | None = None
) -> dict[str, Any]:
    update = status_update(order_id, directive)
    await store.update(ORDERS_TABLE, order_id, update)
    order_status_updates_total.labels(status=update["order_status"]).inc()
    logger.info("Order %s -> %s (directive=%r)", order_id, update["order_status"], directive)
    return {
        "id": order_id,
        "status": directive,
        "declineReason": reason,
        "verificationCode": update.get("verification_code"),
    }


async def create_order(store: Datastore, payload: dict[str, Any]) -> dict[str, Any]:
    """Persist a checkout payload as-is and return the inserted row."""
    rows = await store.insert(ORDERS_TABLE, [payload])
    order = rows[0]
    logger.info("Checkout created order %s", order.get("id"))
    return order
