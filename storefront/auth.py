"""
Admin session tokens and the authorization gate for admin routes.
Tokens are stateless HS256 JWTs: validity is decided by signature and expiry only, there is no revocation list.
"""
import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import jwt
from fastapi import Request

from storefront.metrics import auth_rejections_total

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


class InvalidCredentials(Exception):
    """Login username/password did not match the configured admin principal."""


class Unauthenticated(Exception):
    """Bearer token is malformed, has a bad signature, or has expired."""


class Forbidden(Exception):
    """No bearer token was supplied."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    def __init__(
        self,
        secret: str,
        admin_username: str,
        admin_password: str,
        ttl: timedelta = timedelta(hours=24),
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._secret = secret
        self._admin_username = admin_username
        self._admin_password = admin_password
        self._ttl = ttl
        self._algorithm = algorithm
        self._clock = clock

    def issue(self, username: str | None, password: str | None) -> str:
        """Return a signed token for the admin principal, or raise InvalidCredentials."""
        # evaluate both comparisons so timing does not reveal which field was wrong
        user_ok = hmac.compare_digest((username or "").encode(), self._admin_username.encode())
        pass_ok = hmac.compare_digest((password or "").encode(), self._admin_password.encode())
        if not (user_ok and pass_ok):
            raise InvalidCredentials()

        now = self._clock()
        payload = {
            "sub": username,
            "username": username,
            "role": ADMIN_ROLE,
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str | None) -> dict[str, Any]:
        """Return the decoded claims. Every kind of failure raises the same Unauthenticated."""
        if not token:
            raise Unauthenticated()
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "iat", "exp"]},
            )
        except jwt.InvalidTokenError as e:
            logger.debug("Token rejected: %s", e)
            raise Unauthenticated() from e


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization")
    if not header:
        return None
    parts = header.split(" ")
    if len(parts) < 2 or not parts[1]:
        return None
    return parts[1]


async def require_admin(request: Request) -> dict[str, Any]:
    """
    FastAPI dependency guarding admin routes. Runs before the route body, so a rejected
    request never reaches the datastore. Decoded claims are also left on request.state.user.
    """
    token = _bearer_token(request)
    if token is None:
        auth_rejections_total.labels(reason="forbidden").inc()
        logger.info("Rejected %s %s: no bearer token", request.method, request.url.path)
        raise Forbidden()
    try:
        claims = get_token_service(request).verify(token)
    except Unauthenticated:
        auth_rejections_total.labels(reason="unauthenticated").inc()
        logger.info("Rejected %s %s: invalid or expired token", request.method, request.url.path)
        raise
    request.state.user = claims
    return claims
