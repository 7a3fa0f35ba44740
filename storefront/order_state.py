"""
Order lifecycle: admin status directives -> stored status codes, and the read-side normalization
that turns raw order rows into display summaries.

Transitions are unconditional. Any directive may be applied to an order in any state
(a cancelled order can be dispatched again); nothing here enforces a transition graph.
"""
import json
import logging
import math
import re
from datetime import datetime, tzinfo
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

PENDING = "pending"
ACCEPTED = "accepted"
CANCELLED = "cancelled"
ON_DELIVERY = "on_delivery"

# Admin directive (display label) -> stored status code; unknown directives fall back to pending
DIRECTIVE_TO_STATUS: dict[str, str] = {
    "Received": ACCEPTED,
    "Cancel": CANCELLED,
    "Dispatched": ON_DELIVERY,
}

# Stored code -> display label; anything else (accepted, missing, unknown) shows as Received
STATUS_TO_DISPLAY: dict[str, str] = {
    PENDING: "Pending",
    CANCELLED: "Cancel",
    "dispatched": "Dispatched",
    ON_DELIVERY: "Dispatched",
}
DEFAULT_DISPLAY = "Received"

UNKNOWN_ORDER_NAME = "Unknown Order"
GUEST_NAME = "Guest"
NO_ADDRESS = "No Address Provided"

_LEADING_NUMBER = re.compile(r"\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


class MalformedRecord(ValueError):
    """An order's item payload could not be read. Recovered per record, never surfaced."""


def status_update(order_id: Any, directive: Any) -> dict[str, Any]:
    """
    Column values to write for a directive. Only "Dispatched" touches verification_code,
    so a code assigned once survives every later transition.
    """
    # non-string directives (numbers, lists, null) are "anything else"
    status = DIRECTIVE_TO_STATUS.get(directive, PENDING) if isinstance(directive, str) else PENDING
    update: dict[str, Any] = {"order_status": status}
    if status == ON_DELIVERY:
        update["verification_code"] = str(order_id)
    return update


def display_status(order_status: Any) -> str:
    if not isinstance(order_status, str):
        return DEFAULT_DISPLAY
    return STATUS_TO_DISPLAY.get(order_status, DEFAULT_DISPLAY)


def parse_items(raw: Any) -> list[Any]:
    """Items may be stored as a JSON string or already structured. Raises MalformedRecord."""
    if raw is None:
        return []
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise MalformedRecord(f"items is not valid JSON: {e}") from e
    if not isinstance(raw, list):
        raise MalformedRecord(f"items is {type(raw).__name__}, expected a list")
    return raw


def order_name(items: list[Any]) -> str:
    parts = [
        f"{item.get('quantity')}x {item.get('name')}"
        for item in items
        if isinstance(item, dict)
    ]
    return ", ".join(parts) or UNKNOWN_ORDER_NAME


def format_delivery_time(created_at: Any, tz: tzinfo | None = None) -> str | None:
    """hh:mm AM/PM in tz (server local time when tz is None); None when the timestamp is unusable."""
    if isinstance(created_at, str):
        try:
            created_at = datetime.fromisoformat(created_at)
        except ValueError:
            return None
    if not isinstance(created_at, datetime):
        return None
    return created_at.astimezone(tz).strftime("%I:%M %p")


def coerce_price(total: Any) -> float:
    """Numeric total, reading a leading number from text ("7.50 USD" -> 7.5); 0 when there is none."""
    if isinstance(total, str):
        match = _LEADING_NUMBER.match(total)
        if match is None:
            return 0
        total = match.group(0)
    try:
        price = float(total)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(price):
        return 0
    return price


def _text(value: Any, default: str | None) -> str | None:
    return str(value) if value else default


class OrderSummary(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: Any
    order_name: str
    customer_name: str
    status: str
    delivery_time: str | None
    price: float
    decline_reason: str | None = None
    verification_code: str | None = None
    delivery_address: str


def summarize(record: dict[str, Any], tz: tzinfo | None = None) -> OrderSummary:
    try:
        items = parse_items(record.get("items"))
    except MalformedRecord as e:
        logger.debug("Order %s: %s", record.get("id"), e)
        items = []
    return OrderSummary(
        id=record.get("id"),
        order_name=order_name(items),
        customer_name=_text(record.get("customer_name"), GUEST_NAME),
        status=display_status(record.get("order_status")),
        delivery_time=format_delivery_time(record.get("created_at"), tz),
        price=coerce_price(record.get("total")),
        decline_reason=None,
        verification_code=_text(record.get("verification_code"), None),
        delivery_address=_text(record.get("delivery_address"), NO_ADDRESS),
    )
