"""Process-wide runtime flags shared across modules."""
from __future__ import annotations

from typing import Any

_scheduler_active = False
_last_sweep: dict[str, Any] | None = None


def set_scheduler_active(active: bool) -> None:
    global _scheduler_active
    _scheduler_active = active


def is_scheduler_active() -> bool:
    return _scheduler_active


def record_sweep(summary: dict[str, Any]) -> None:
    """Remember the outcome of the latest orphan sweep for the health endpoint."""

    global _last_sweep
    _last_sweep = dict(summary)


def last_sweep() -> dict[str, Any] | None:
    return dict(_last_sweep) if _last_sweep is not None else None
