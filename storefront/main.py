"""
Storefront API: admin login + catalog + order lifecycle.
Run: storefront-api  (or: uvicorn storefront.main:app --port 5000)
"""
import logging
import os
import sys
from contextlib import asynccontextmanager
from datetime import timedelta
from zoneinfo import ZoneInfo

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles

from storefront.auth import Forbidden, TokenService, Unauthenticated
from storefront.config import Settings, settings as default_settings
from storefront.db import Datastore, close_pool, get_pool, init_schema
from storefront.metrics import get_metrics_bytes, get_metrics_content_type
from storefront.routes import admin, orders, products

logging.basicConfig(
    level=default_settings.log_level,
    format="%(asctime)s [%(levelname)s] %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, store: Datastore | None = None) -> FastAPI:
    """
    Build the app. When no store is given, the lifespan opens the Postgres pool,
    creates missing tables, and closes the pool on shutdown.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_pool = app.state.store is None
        if owns_pool:
            pool = await get_pool(settings)
            await init_schema(pool)
            app.state.store = Datastore(pool)
        if settings.uses_default_credentials():
            logger.warning("Using built-in admin credentials or signing secret; set ADMIN_USERNAME, ADMIN_PASSWORD and JWT_SECRET")
        yield
        if owns_pool:
            await close_pool()
            app.state.store = None

    app = FastAPI(title="Storefront API", lifespan=lifespan)
    app.state.store = store
    app.state.token_service = TokenService(
        secret=settings.jwt_secret,
        admin_username=settings.admin_username,
        admin_password=settings.admin_password,
        ttl=timedelta(hours=settings.token_ttl_hours),
        algorithm=settings.jwt_algorithm,
    )
    app.state.display_tz = ZoneInfo(settings.display_timezone) if settings.display_timezone else None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Forbidden)
    async def forbidden_handler(request: Request, exc: Forbidden) -> JSONResponse:
        return JSONResponse(status_code=403, content={"message": "No token provided, unauthorized."})

    @app.exception_handler(Unauthenticated)
    async def unauthenticated_handler(request: Request, exc: Unauthenticated) -> JSONResponse:
        return JSONResponse(status_code=401, content={"message": "Invalid or expired token."})

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Internal error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal error"})

    app.include_router(admin.router)
    app.include_router(products.router)
    app.include_router(orders.router)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.get("/metrics")
    async def metrics() -> Response:
        """Prometheus scrape endpoint."""
        return Response(
            content=get_metrics_bytes(),
            media_type=get_metrics_content_type(),
        )

    # last: "/" would otherwise shadow the API routes
    if settings.static_dir and os.path.isdir(settings.static_dir):
        app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")

    return app


app = create_app()


def run() -> None:
    logger.info("Server running on http://%s:%s", default_settings.host, default_settings.port)
    uvicorn.run(app, host=default_settings.host, port=default_settings.port)


if __name__ == "__main__":
    run()
