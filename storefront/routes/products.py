"""
Catalog routes: straight pass-through to the products table. Store errors come back as 400 with the store's payload.
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from storefront.auth import require_admin
from storefront.db import Datastore, DatastoreError, get_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["products"])

PRODUCTS_TABLE = "products"


class ProductBody(BaseModel):
    name: str | None = None
    price: float | None = None
    category: str | None = None
    image: str | None = None  # inline payload, usually a data URL
    description: str | None = None
    available: bool | None = None


class StockBody(BaseModel):
    available: bool | None = None


def _store_error(e: DatastoreError) -> JSONResponse:
    return JSONResponse(status_code=400, content=e.payload)


@router.get("/products")
async def list_products(store: Datastore = Depends(get_store)):
    try:
        return await store.select_all(PRODUCTS_TABLE)
    except DatastoreError as e:
        return _store_error(e)


@router.post("/add-product", dependencies=[Depends(require_admin)])
async def add_product(body: ProductBody, store: Datastore = Depends(get_store)):
    row = body.model_dump()
    if row["available"] is None:
        row["available"] = True
    logger.info("Adding product: %s Image size: %d", body.name, len(body.image) if body.image else 0)
    try:
        return await store.insert(PRODUCTS_TABLE, [row])
    except DatastoreError as e:
        return _store_error(e)


@router.put("/update-product/{product_id}", dependencies=[Depends(require_admin)])
async def update_product(product_id: str, body: ProductBody, store: Datastore = Depends(get_store)):
    # fields absent from the body are left untouched
    try:
        return await store.update(PRODUCTS_TABLE, product_id, body.model_dump(exclude_unset=True))
    except DatastoreError as e:
        return _store_error(e)


@router.delete("/delete-product/{product_id}", dependencies=[Depends(require_admin)])
async def delete_product(product_id: str, store: Datastore = Depends(get_store)):
    try:
        return await store.delete(PRODUCTS_TABLE, product_id)
    except DatastoreError as e:
        return _store_error(e)


@router.patch("/api/admin/products/{product_id}/stock", dependencies=[Depends(require_admin)])
async def toggle_stock(product_id: str, body: StockBody, store: Datastore = Depends(get_store)):
    try:
        return await store.update(PRODUCTS_TABLE, product_id, body.model_dump(exclude_unset=True))
    except DatastoreError as e:
        return _store_error(e)
