"""Result type and error boundary shared by the milestone workflows."""
from __future__ import annotations

import functools
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from deliverhub.core.actors import Actor
from deliverhub.models.milestone import Milestone
from deliverhub.utils.errors import MilestoneError

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class WorkflowResult(Generic[T]):
    """Outcome of a workflow call: success flag plus either a value or an error."""

    ok: bool
    milestone: Milestone | None = None
    value: T | None = None
    error: MilestoneError | None = None

    @classmethod
    def success(cls, milestone: Milestone | None = None, value: T | None = None) -> "WorkflowResult[T]":
        return cls(ok=True, milestone=milestone, value=value)

    @classmethod
    def failure(cls, error: MilestoneError) -> "WorkflowResult[T]":
        return cls(ok=False, error=error)

    def __bool__(self) -> bool:
        return self.ok


def workflow_operation(operation: str) -> Callable[[Callable[..., Any]], Callable[..., WorkflowResult[Any]]]:
    """Turn domain errors raised by a workflow into a failed :class:`WorkflowResult`.

    The wrapped function names its milestone ``milestone_id`` and takes
    ``actor`` as a keyword argument.
    Anything that is not a :class:`MilestoneError` propagates unchanged.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., WorkflowResult[Any]]:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> WorkflowResult[Any]:
            bound = signature.bind_partial(*args, **kwargs).arguments
            actor: Actor | None = bound.get("actor")
            milestone_id = bound.get("milestone_id")
            try:
                return func(*args, **kwargs)
            except MilestoneError as exc:
                logger.warning(
                    "Workflow operation failed",
                    extra={
                        "operation": operation,
                        "milestone_id": milestone_id,
                        "actor": actor.label if actor else None,
                        "error_code": exc.code,
                        "error_type": type(exc).__name__,
                    },
                )
                return WorkflowResult.failure(exc)

        return wrapper

    return decorator


__all__ = ["WorkflowResult", "workflow_operation"]
