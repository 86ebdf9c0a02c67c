"""API key generation and validation helpers."""
from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import Optional

from sqlalchemy.orm import Session

from deliverhub.config import settings
from deliverhub.models.api_key import ApiKey
from deliverhub.utils.time import as_utc, utcnow


def hash_key(raw: str) -> str:
    """Return an HMAC-SHA256 hash for the provided API key."""

    return hmac.new(settings.SECRET_KEY.encode(), raw.encode(), hashlib.sha256).hexdigest()


def gen_key(prefix_len: int = 6) -> tuple[str, str, str]:
    """Generate a user-facing API key, its prefix, and the stored hash."""

    prefix = "dh_" + secrets.token_hex(prefix_len)[:prefix_len]
    suffix = secrets.token_urlsafe(32)
    raw = f"{prefix}.{suffix}"
    return raw, prefix, hash_key(raw)


def gen_client_token() -> str:
    """Opaque secret a project's client presents to reach its milestones."""

    return "dhc_" + secrets.token_urlsafe(32)


def find_valid_key(db: Session, raw: str) -> Optional[ApiKey]:
    """Return the matching active, unexpired API key."""

    key = (
        db.query(ApiKey)
        .filter(ApiKey.key_hash == hash_key(raw), ApiKey.is_active.is_(True))
        .first()
    )
    if key and (not key.expires_at or as_utc(key.expires_at) > utcnow()):
        return key
    return None


__all__ = ["find_valid_key", "gen_client_token", "gen_key", "hash_key"]
