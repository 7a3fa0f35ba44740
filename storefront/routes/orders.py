from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from storefront import orders
from storefront.auth import require_admin
from storefront.db import Datastore, DatastoreError, get_store
from storefront.metrics import checkouts_total
from storefront.order_state import OrderSummary

router = APIRouter(tags=["orders"])


class StatusUpdateBody(BaseModel):
    status: Any = Field(default=None, description="Display label: Received, Cancel, Dispatched; anything else resets to pending")
    reason: str | None = Field(default=None, description="Decline reason, echoed back")


@router.get(
    "/api/admin/orders",
    response_model=list[OrderSummary],
    dependencies=[Depends(require_admin)],
)
async def list_orders(request: Request, store: Datastore = Depends(get_store)):
    try:
        return await orders.list_orders(store, request.app.state.display_tz)
    except DatastoreError as e:
        return JSONResponse(status_code=500, content=e.payload)


@router.patch("/api/admin/orders/{order_id}/status", dependencies=[Depends(require_admin)])
async def update_order_status(
    order_id: str,
    body: StatusUpdateBody,
    store: Datastore = Depends(get_store),
):
    """
    Apply an admin directive. No transition guard: any directive is accepted in any state,
    and concurrent updates to one order are last-write-wins.
    """
    try:
        return await orders.update_status(store, order_id, body.status, body.reason)
    except DatastoreError as e:
        return JSONResponse(status_code=500, content=e.payload)


@router.post("/api/checkout")
async def checkout(
    payload: dict[str, Any] = Body(..., description="Order payload, stored as-is"),
    store: Datastore = Depends(get_store),
):
    """Public: no token. The payload is inserted with the service's own store credentials."""
    try:
        order = await orders.create_order(store, payload)
    except DatastoreError as e:
        checkouts_total.labels(outcome="failed").inc()
        return JSONResponse(
            status_code=500,
            content={"error": e.message or "Failed to place order"},
        )
    checkouts_total.labels(outcome="ok").inc()
    return {"success": True, "order": order}
