"""Background cleanup of storage objects no milestone points at."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from deliverhub import db as db_module
from deliverhub.config import DELIVERABLES_BUCKET, PAYMENT_PROOFS_BUCKET, get_settings
from deliverhub.core.runtime_state import record_sweep
from deliverhub.services.milestones import referenced_object_paths
from deliverhub.services.object_store import ObjectStore
from deliverhub.utils.errors import StorageError
from deliverhub.utils.time import utcnow

logger = logging.getLogger(__name__)

SWEPT_BUCKETS = (PAYMENT_PROOFS_BUCKET, DELIVERABLES_BUCKET)


def sweep_orphans_once(
    db: Session,
    store: ObjectStore,
    *,
    grace_seconds: int,
    now: datetime | None = None,
) -> dict[str, object]:
    """Delete unreferenced objects older than ``grace_seconds``.

    The grace period keeps objects whose workflow is still between upload and
    record update.
    """

    now = now or utcnow()
    cutoff = now - timedelta(seconds=grace_seconds)
    referenced = referenced_object_paths(db)
    scanned = deleted = failed = 0

    for bucket in SWEPT_BUCKETS:
        keep = referenced.get(bucket, set())
        for item in store.list_objects(bucket):
            scanned += 1
            if item.path in keep or item.modified_at > cutoff:
                continue
            try:
                store.delete(bucket, item.path)
            except StorageError as exc:
                failed += 1
                logger.warning(
                    "Orphan delete failed",
                    extra={"bucket": bucket, "path": item.path, "error_code": exc.code},
                )
                continue
            deleted += 1
            logger.info("Orphan deleted", extra={"bucket": bucket, "path": item.path, "size": item.size})

    summary: dict[str, object] = {
        "scanned": scanned,
        "deleted": deleted,
        "failed": failed,
        "finished_at": now.isoformat(),
    }
    record_sweep(summary)
    logger.info("Orphan sweep finished", extra=summary)
    return summary


def run_orphan_sweep(store: ObjectStore) -> None:
    """Scheduler entry point: open a session, sweep, close."""

    with db_module.session_scope() as session:
        sweep_orphans_once(session, store, grace_seconds=get_settings().ORPHAN_GRACE_SECONDS)


__all__ = ["SWEPT_BUCKETS", "run_orphan_sweep", "sweep_orphans_once"]
