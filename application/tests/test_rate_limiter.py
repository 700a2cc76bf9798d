from starlette.requests import Request

from app.services.rate_limiter import RateLimiter, get_caller_key


def _request(headers=None, client=("10.0.0.9", 5555)):
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/auth/send-otp",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def test_redis_limiter_allows_then_blocks(rate_limiter):
    assert all(rate_limiter.allow_request("1.2.3.4") for _ in range(5))
    assert rate_limiter.allow_request("1.2.3.4") is False


def test_rejected_request_does_not_take_a_slot(rate_limiter, fake_redis, clock):
    for _ in range(5):
        rate_limiter.allow_request("1.2.3.4")
        clock.advance(1)
    for _ in range(3):
        assert rate_limiter.allow_request("1.2.3.4") is False

    key = rate_limiter._key("1.2.3.4")
    assert len(fake_redis.zsets[key]) == 5


def test_window_slides(rate_limiter, clock):
    for _ in range(5):
        assert rate_limiter.allow_request("1.2.3.4")
    assert rate_limiter.allow_request("1.2.3.4") is False

    clock.advance(900)
    assert rate_limiter.allow_request("1.2.3.4") is True


def test_keys_are_independent(rate_limiter):
    for _ in range(5):
        rate_limiter.allow_request("1.2.3.4")
    assert rate_limiter.allow_request("5.6.7.8") is True


def test_retry_after_counts_down(rate_limiter, clock):
    for _ in range(5):
        rate_limiter.allow_request("1.2.3.4")
    assert rate_limiter.retry_after("1.2.3.4") == 901
    clock.advance(600)
    assert rate_limiter.retry_after("1.2.3.4") == 301


def test_memory_limiter_allows_then_blocks(clock):
    limiter = RateLimiter(None, max_requests=2, window_seconds=60, clock=clock)
    assert limiter.allow_request("k1") is True
    assert limiter.allow_request("k1") is True
    assert limiter.allow_request("k1") is False
    clock.advance(60)
    assert limiter.allow_request("k1") is True


def test_redis_failure_falls_back_to_memory(rate_limiter, fake_redis):
    fake_redis.fail = True
    assert rate_limiter.allow_request("1.2.3.4") is True
    assert rate_limiter._redis is None


def test_caller_key_is_the_peer_by_default():
    request = _request({"X-Forwarded-For": "203.0.113.7", "X-Real-IP": "198.51.100.2"})
    assert get_caller_key(request) == "10.0.0.9"
    assert get_caller_key(_request(client=None)) == "unknown"


def test_caller_key_takes_hop_appended_by_trusted_proxy():
    # client spoofed 1.1.1.1; the proxy appended the address it saw
    request = _request({"X-Forwarded-For": "1.1.1.1, 203.0.113.7"})
    assert get_caller_key(request, trusted_proxies=1) == "203.0.113.7"
    assert get_caller_key(request, trusted_proxies=2) == "1.1.1.1"


def test_caller_key_falls_back_to_peer_when_hops_are_missing():
    assert get_caller_key(_request(), trusted_proxies=1) == "10.0.0.9"
    assert get_caller_key(_request({"X-Forwarded-For": "203.0.113.7"}), trusted_proxies=2) == "10.0.0.9"


def test_memory_limiter_forgets_idle_callers(clock):
    limiter = RateLimiter(None, max_requests=2, window_seconds=60, clock=clock)
    for i in range(50):
        limiter.allow_request(f"10.0.0.{i}")
    assert len(limiter._memory) == 50

    clock.advance(61)
    assert limiter.allow_request("10.0.1.1") is True
    assert list(limiter._memory) == [limiter._key("10.0.1.1")]
    assert limiter.retry_after("10.0.0.1") == 0


def test_memory_limiter_keeps_active_windows_on_sweep(clock):
    limiter = RateLimiter(None, max_requests=2, window_seconds=60, clock=clock)
    limiter.allow_request("busy")
    clock.advance(30)
    limiter.allow_request("busy")
    clock.advance(31)
    # first request left the window, the second still counts
    limiter.allow_request("other")
    assert limiter.allow_request("busy") is True
    assert limiter.allow_request("busy") is False
