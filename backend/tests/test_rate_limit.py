from tracker.utils import rate_limit
from tracker.utils.rate_limit import InMemoryRateLimiter


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_blocks_after_max_failures(monkeypatch):
    clock = _Clock()
    monkeypatch.setattr(rate_limit.time, "monotonic", clock)
    limiter = InMemoryRateLimiter(2, window_seconds=60)
    limiter.record_failure("10.0.0.1")
    assert limiter.retry_after("10.0.0.1") == 0
    limiter.record_failure("10.0.0.1")
    assert limiter.retry_after("10.0.0.1") == 60
    clock.now += 61
    assert limiter.retry_after("10.0.0.1") == 0


def test_disabled_limiter_never_blocks():
    limiter = InMemoryRateLimiter(0)
    for _ in range(5):
        limiter.record_failure("10.0.0.1")
    assert limiter.retry_after("10.0.0.1") == 0


def test_expired_keys_are_forgotten(monkeypatch):
    clock = _Clock()
    monkeypatch.setattr(rate_limit.time, "monotonic", clock)
    limiter = InMemoryRateLimiter(3, window_seconds=60)
    for i in range(100):
        limiter.record_failure(f"10.0.0.{i}")
    assert len(limiter._hits) == 100

    clock.now += 61
    assert limiter.retry_after("10.0.0.1") == 0
    assert "10.0.0.1" not in limiter._hits
    limiter.record_failure("192.168.1.1")
    assert list(limiter._hits) == ["192.168.1.1"]


def test_reset_forgets_key():
    limiter = InMemoryRateLimiter(1)
    limiter.record_failure("10.0.0.1")
    assert limiter.retry_after("10.0.0.1") > 0
    limiter.reset("10.0.0.1")
    assert limiter.retry_after("10.0.0.1") == 0
    assert limiter._hits == {}
