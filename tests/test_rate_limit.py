from services.rate_limit import RateLimiter


def test_allows_until_limit(clock):
    limiter = RateLimiter(max_requests=3, window_seconds=60, clock=clock)

    results = [limiter.check("10.0.0.1") for _ in range(4)]
    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]


def test_window_resets(clock):
    limiter = RateLimiter(max_requests=1, window_seconds=60, clock=clock)
    assert limiter.check("a").allowed
    assert not limiter.check("a").allowed

    clock.advance(61)
    assert limiter.check("a").allowed


def test_identifiers_are_independent(clock):
    limiter = RateLimiter(max_requests=1, window_seconds=60, clock=clock)
    assert limiter.check("a").allowed
    assert limiter.check("b").allowed


def test_cleanup_expired(clock):
    limiter = RateLimiter(max_requests=5, window_seconds=60, clock=clock)
    limiter.check("a")
    clock.advance(30)
    limiter.check("b")
    clock.advance(31)

    assert limiter.cleanup_expired() == 1
    assert len(limiter) == 1
