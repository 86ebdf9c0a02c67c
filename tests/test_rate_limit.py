import pytest

from deliverhub.services.rate_limit import DELIVERABLE_UPLOAD, PROOF_UPLOAD, RateLimiter, RateLimitRule
from deliverhub.utils.errors import RateLimitError


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_limit_is_per_actor_and_action():
    limiter = RateLimiter(
        {
            PROOF_UPLOAD: RateLimitRule(2, 60, "payment proof upload"),
            DELIVERABLE_UPLOAD: RateLimitRule(1, 60, "deliverable upload"),
        },
        clock=FakeClock(),
    )

    assert limiter.allow(PROOF_UPLOAD, "client:1")
    assert limiter.allow(PROOF_UPLOAD, "client:1")
    assert not limiter.allow(PROOF_UPLOAD, "client:1")
    assert limiter.allow(PROOF_UPLOAD, "client:2")
    assert limiter.allow(DELIVERABLE_UPLOAD, "client:1")


def test_tokens_refill_over_time():
    clock = FakeClock()
    limiter = RateLimiter({PROOF_UPLOAD: RateLimitRule(1, 60, "payment proof upload")}, clock=clock)

    assert limiter.allow(PROOF_UPLOAD, "client:1")
    assert not limiter.allow(PROOF_UPLOAD, "client:1")
    clock.now += 61
    assert limiter.allow(PROOF_UPLOAD, "client:1")


def test_check_raises_with_wait_hint():
    limiter = RateLimiter({PROOF_UPLOAD: RateLimitRule(1, 600, "payment proof upload")}, clock=FakeClock())
    limiter.check(PROOF_UPLOAD, "client:1")

    with pytest.raises(RateLimitError) as excinfo:
        limiter.check(PROOF_UPLOAD, "client:1")

    assert "10 minutes" in excinfo.value.message
    assert excinfo.value.details == {"action": PROOF_UPLOAD}


def test_unknown_action_is_not_limited():
    limiter = RateLimiter({}, clock=FakeClock())
    assert all(limiter.allow("anything", "client:1") for _ in range(50))


def test_reset_clears_buckets():
    limiter = RateLimiter({PROOF_UPLOAD: RateLimitRule(1, 60, "payment proof upload")}, clock=FakeClock())
    limiter.allow(PROOF_UPLOAD, "client:1")
    limiter.reset()
    assert limiter.allow(PROOF_UPLOAD, "client:1")


def test_limiters_do_not_share_state():
    rules = {PROOF_UPLOAD: RateLimitRule(1, 60, "payment proof upload")}
    first, second = RateLimiter(rules), RateLimiter(rules)

    assert first.allow(PROOF_UPLOAD, "client:1")
    assert second.allow(PROOF_UPLOAD, "client:1")
