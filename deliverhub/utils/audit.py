"""Audit logging helper utilities."""
from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy.orm import Session

from deliverhub.models.audit import AuditLog
from deliverhub.utils.time import utcnow


SENSITIVE_KEYS = {
    "email",
    "client_email",
    "client_access_token",
    "payment_proof_url",
    "deliverable_url",
    "signed_url",
    "url",
}


def _mask_value(key: str, value: Any) -> Any:
    if value is None:
        return None

    if key in {"email", "client_email"}:
        text = str(value)
        if "@" in text:
            _, domain = text.split("@", 1)
            return f"***@{domain}"
        return "***"

    if key == "client_access_token":
        return "***"

    # URLs: keep the directory so an operator can find the object, drop the
    # object name and any query string (signatures).
    text = str(value)
    base = text.split("?", 1)[0]
    if "/" in base:
        prefix = base.rsplit("/", 1)[0]
        return f"{prefix}/***"
    return "***/***"


def sanitize_payload_for_audit(data: Any) -> Any:
    """Return a copy of ``data`` with URLs, tokens and emails masked."""

    if isinstance(data, Mapping):
        sanitized: dict[str, Any] = {}
        for key, value in data.items():
            masked_value = _mask_value(key, value) if key in SENSITIVE_KEYS else value
            sanitized[key] = sanitize_payload_for_audit(masked_value)
        return sanitized

    if isinstance(data, list):
        return [sanitize_payload_for_audit(item) for item in data]

    return data


def log_audit(
    db: Session,
    *,
    actor: str,
    action: str,
    entity: str,
    entity_id: int | None,
    data: dict | None = None,
) -> None:
    """Persist an audit entry in the shared AuditLog table."""

    db.add(
        AuditLog(
            actor=actor,
            action=action,
            entity=entity,
            entity_id=entity_id if entity_id is not None else 0,
            data_json=sanitize_payload_for_audit(data or {}),
            at=utcnow(),
        )
    )


__all__ = ["SENSITIVE_KEYS", "sanitize_payload_for_audit", "log_audit"]
