"""Compensating transaction helper shared by the upload workflows."""
from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


def run_with_compensation(
    action: Callable[[], T],
    compensate: Callable[[], Any],
    *,
    context: dict[str, Any] | None = None,
) -> T:
    """Run ``action``; if it raises, run ``compensate`` and re-raise.

    ``compensate`` undoes a step that already succeeded (typically deleting a
    just-uploaded object). A failing compensation is logged and does not mask
    the original error; the leftover object is then picked up by the orphan
    sweep.
    """

    try:
        return action()
    except Exception as exc:
        log_context = dict(context or {})
        log_context["error_type"] = type(exc).__name__
        logger.warning("Saga step failed; compensating", extra=log_context)
        try:
            compensate()
        except Exception as undo_exc:  # noqa: BLE001
            log_context["compensation_error"] = type(undo_exc).__name__
            logger.error("Compensation failed; object left for orphan sweep", extra=log_context)
        else:
            logger.info("Compensation completed", extra=log_context)
        raise


def discard_replaced_object(store, bucket: str, old_path: str | None, new_path: str) -> None:
    """Best-effort delete of an object superseded by ``new_path``.

    The row already points at the new object, so a failure here only leaves an
    orphan for the sweep; it never fails the workflow.
    """

    if not old_path or old_path == new_path:
        return
    try:
        store.delete(bucket, old_path)
    except Exception:  # noqa: BLE001
        logger.warning("Replaced object not deleted", extra={"bucket": bucket, "path": old_path})


__all__ = ["discard_replaced_object", "run_with_compensation"]
