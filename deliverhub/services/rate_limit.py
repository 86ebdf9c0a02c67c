"""Per-actor upload rate limiting.

One :class:`RateLimiter` is built per application (see the lifespan in
``deliverhub.main``) and handed to the workflows by the routers; there is no
module-level instance.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass

from deliverhub.config import Settings
from deliverhub.utils.errors import RateLimitError

PROOF_UPLOAD = "payment_proof_upload"
DELIVERABLE_UPLOAD = "deliverable_upload"
REVISION_REQUEST = "revision_request"


@dataclass(frozen=True)
class RateLimitRule:
    limit: int
    per_seconds: int
    description: str


@dataclass
class _Bucket:
    tokens: float
    updated_at: float


class RateLimiter:
    """In-process token buckets keyed by ``action:actor``."""

    def __init__(self, rules: dict[str, RateLimitRule], *, clock=time.monotonic) -> None:
        self.rules = dict(rules)
        self._clock = clock
        self._buckets: dict[str, _Bucket] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimiter":
        return cls(
            {
                PROOF_UPLOAD: RateLimitRule(
                    settings.PROOF_UPLOAD_RATE_LIMIT,
                    settings.PROOF_UPLOAD_RATE_WINDOW_SECONDS,
                    "payment proof upload",
                ),
                DELIVERABLE_UPLOAD: RateLimitRule(
                    settings.DELIVERABLE_UPLOAD_RATE_LIMIT,
                    settings.DELIVERABLE_UPLOAD_RATE_WINDOW_SECONDS,
                    "deliverable upload",
                ),
                REVISION_REQUEST: RateLimitRule(
                    settings.REVISION_REQUEST_RATE_LIMIT,
                    settings.REVISION_REQUEST_RATE_WINDOW_SECONDS,
                    "revision request",
                ),
            }
        )

    def allow(self, action: str, identity: str) -> bool:
        rule = self.rules.get(action)
        if rule is None:
            return True

        key = f"{action}:{identity}"
        now = self._clock()
        rate = float(rule.limit) / float(rule.per_seconds)
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = _Bucket(tokens=float(rule.limit), updated_at=now)
                self._buckets[key] = bucket
            bucket.tokens = min(float(rule.limit), bucket.tokens + (now - bucket.updated_at) * rate)
            bucket.updated_at = now
            if bucket.tokens < 1.0:
                return False
            bucket.tokens -= 1.0
            return True

    def check(self, action: str, identity: str) -> None:
        """Consume one attempt or raise :class:`RateLimitError`."""

        if not self.allow(action, identity):
            rule = self.rules[action]
            minutes = max(1, -(-rule.per_seconds // 60))
            raise RateLimitError(
                f"Too many {rule.description} attempts. Please try again in up to {minutes} minutes.",
                details={"action": action},
            )

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


__all__ = ["DELIVERABLE_UPLOAD", "PROOF_UPLOAD", "REVISION_REQUEST", "RateLimitRule", "RateLimiter"]
