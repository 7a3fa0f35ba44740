import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from storefront.auth import InvalidCredentials, TokenService, get_token_service, require_admin
from storefront.metrics import admin_logins_total

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


class LoginBody(BaseModel):
    username: str | None = Field(default=None, description="Admin username")
    password: str | None = Field(default=None, description="Admin password")


@router.post("/login")
async def login(body: LoginBody, tokens: TokenService = Depends(get_token_service)) -> JSONResponse:
    """Exchange the admin credentials for a bearer token valid for 24 hours."""
    try:
        token = tokens.issue(body.username, body.password)
    except InvalidCredentials:
        admin_logins_total.labels(outcome="rejected").inc()
        logger.warning("Admin login rejected for username=%r", body.username)
        return JSONResponse(
            status_code=401,
            content={"message": "Invalid username or password"},
        )
    admin_logins_total.labels(outcome="ok").inc()
    return JSONResponse(
        status_code=200,
        content={"token": token, "message": "Login successful!"},
    )


@router.get("/verify")
async def verify(user: dict[str, Any] = Depends(require_admin)) -> dict:
    return {"valid": True, "user": user}
