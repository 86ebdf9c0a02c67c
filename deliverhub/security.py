"""Security dependencies: freelancer API keys and client access tokens."""
from __future__ import annotations

from typing import Callable, Set

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from deliverhub.core.actors import Actor
from deliverhub.db import get_db
from deliverhub.models.api_key import ApiKey, ApiScope
from deliverhub.models.project import Project
from deliverhub.utils.apikey import find_valid_key
from deliverhub.utils.audit import log_audit
from deliverhub.utils.errors import error_response
from deliverhub.utils.time import utcnow


def _extract_key(
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> str | None:
    """Read the key from ``Authorization: Bearer ...`` or ``X-API-Key``."""
    if x_api_key:
        return x_api_key.strip()
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip()
    return None


def require_api_key(
    db: Session = Depends(get_db),
    token: str | None = Depends(_extract_key),
) -> ApiKey:
    """Validate API key tokens and return the corresponding row."""
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("NO_API_KEY", "API key required."),
        )

    key = find_valid_key(db, token)
    if key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("UNAUTHORIZED", "Invalid or expired API key"),
        )

    key.last_used_at = utcnow()
    log_audit(
        db,
        actor=f"apikey:{key.id}",
        action="API_KEY_USED",
        entity="ApiKey",
        entity_id=key.id,
        data={"scope": key.scope.value, "prefix": key.prefix},
    )
    db.commit()
    return key


def require_scope(allowed: Set[ApiScope]) -> Callable:
    """Enforce that a key holds one of the allowed scopes (admin always passes)."""

    if not allowed:
        raise RuntimeError("require_scope needs a non-empty set of ApiScope")

    def _dep(key: ApiKey = Depends(require_api_key)) -> ApiKey:
        if key.scope == ApiScope.admin or key.scope in allowed:
            return key
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=error_response(
                "INSUFFICIENT_SCOPE",
                f"Requires one of: {[scope.value for scope in allowed]}",
            ),
        )

    return _dep


def require_freelancer(key: ApiKey = Depends(require_scope({ApiScope.freelancer}))) -> Actor:
    """Resolve the freelancer behind the API key."""

    user = key.user
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=error_response("FREELANCER_NOT_FOUND", "API key is not linked to an active freelancer."),
        )
    return Actor.freelancer(user.id)


def require_client(
    db: Session = Depends(get_db),
    token: str | None = Header(default=None, alias="X-Client-Token"),
) -> Actor:
    """Resolve the client from the project access token they were given."""

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("NO_CLIENT_TOKEN", "Client access token required."),
        )
    project_id = db.scalar(select(Project.id).where(Project.client_access_token == token.strip()))
    if project_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("UNAUTHORIZED", "Invalid client access token."),
        )
    return Actor.client(project_id)


__all__ = ["require_api_key", "require_client", "require_freelancer", "require_scope"]
