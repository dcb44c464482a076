"""FastAPI dependencies: engine lookup and admin credential check."""

from __future__ import annotations

import hmac
import logging

from fastapi import Header, Request

from bookmark_sync.api.exceptions import AuthenticationError, ConfigurationError
from bookmark_sync.di.container import BookmarkEngine

logger = logging.getLogger(__name__)


def get_engine(request: Request) -> BookmarkEngine:
    engine = getattr(request.app.state, "engine", None)
    if not isinstance(engine, BookmarkEngine):
        msg = "Bookmark engine is not initialized"
        raise ConfigurationError(msg)
    return engine


def _presented_secret(x_admin_secret: str | None, authorization: str | None) -> str | None:
    if x_admin_secret:
        return x_admin_secret.strip()
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
    return None


def require_admin(
    request: Request,
    x_admin_secret: str | None = Header(default=None, alias="X-Admin-Secret"),
    authorization: str | None = Header(default=None),
) -> BookmarkEngine:
    """Validate the admin credential and return the engine.

    Runs before the endpoint body, so a rejected caller never reaches the engine.
    """
    engine = get_engine(request)
    expected = engine.cfg.admin.secret
    if not expected:
        msg = "Admin secret is not configured"
        raise ConfigurationError(msg)

    presented = _presented_secret(x_admin_secret, authorization)
    if presented is None or not hmac.compare_digest(
        presented.encode("utf-8"), expected.encode("utf-8")
    ):
        logger.warning(
            "admin_auth_rejected",
            extra={"path": request.url.path, "credential_present": presented is not None},
        )
        msg = "Invalid admin credential"
        raise AuthenticationError(msg)
    return engine
