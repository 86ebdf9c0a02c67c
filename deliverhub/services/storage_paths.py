"""Object paths of milestone files, including rows written before paths were stored.

Older rows only carry the public URL of their object. The path is recovered
from the URL shapes the storage service has used over time, so signing,
previews and the orphan sweep all agree on which object a row points at.
"""
from __future__ import annotations

from urllib.parse import unquote

from deliverhub.config import DELIVERABLES_BUCKET, PAYMENT_PROOFS_BUCKET
from deliverhub.models.milestone import Milestone


def legacy_url_markers(bucket: str) -> tuple[str, ...]:
    """URL fragments that precede an object path in ``bucket``; checked in order."""

    return (
        f"/object/public/{bucket}/",
        f"/storage/v1/object/public/{bucket}/",
        f"/storage/v1/object/{bucket}/",
    )


def path_from_legacy_url(url: str | None, bucket: str = DELIVERABLES_BUCKET) -> str | None:
    """Recover a storage path in ``bucket`` from a URL written before paths were stored."""

    if not url:
        return None
    for marker in legacy_url_markers(bucket):
        if marker in url:
            tail = url.split(marker, 1)[1].split("?", 1)[0]
            return unquote(tail) or None
    if "://" in url:
        return None
    # Bare storage path.
    return url.lstrip("/") or None


def resolve_deliverable_path(milestone: Milestone) -> str | None:
    return milestone.deliverable_path or path_from_legacy_url(milestone.deliverable_url, DELIVERABLES_BUCKET)


def resolve_payment_proof_path(milestone: Milestone) -> str | None:
    return milestone.payment_proof_path or path_from_legacy_url(milestone.payment_proof_url, PAYMENT_PROOFS_BUCKET)


__all__ = [
    "legacy_url_markers",
    "path_from_legacy_url",
    "resolve_deliverable_path",
    "resolve_payment_proof_path",
]
