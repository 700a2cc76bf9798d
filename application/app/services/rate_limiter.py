import threading
import time
import uuid
from collections import deque
from typing import Callable, Deque, Dict, Optional

import redis
from fastapi import Request

from app.connections.redis_wrapper import RedisJSONWrapper, safe_key_part
from app.logging.utils import get_app_logger

logger = get_app_logger(__name__)


def get_caller_key(request: Request, trusted_proxies: int = 0) -> str:
    """
    Caller identity for rate limiting.

    The socket peer unless the service runs behind trusted_proxies reverse
    proxies, in which case the X-Forwarded-For hop appended by the outermost
    trusted proxy is used. Hops to the left of it are client-supplied.
    """
    peer = request.client.host if request.client else "unknown"
    if trusted_proxies <= 0:
        return peer
    hops = [hop.strip() for hop in request.headers.get("x-forwarded-for", "").split(",") if hop.strip()]
    if len(hops) < trusted_proxies:
        return peer
    return hops[-trusted_proxies]


class RateLimiter:
    """
    Sliding-window request limiter keyed by caller.

    Redis keeps one sorted set per key (score = request time). The add and the
    count run in one MULTI transaction, so concurrent requests are counted
    atomically; a request that lands over the limit removes its own entry.
    Without redis the same window is kept per key in process memory.
    """

    CACHE_PREFIX = "rate_limit_"

    def __init__(self, redis_client: Optional[RedisJSONWrapper], max_requests: int = 5,
                 window_seconds: int = 900, scope: str = "send_otp",
                 clock: Callable[[], float] = time.time):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.scope = scope
        self.clock = clock
        self._redis = redis_client if redis_client is not None and getattr(redis_client, "connected", False) else None
        self._memory: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def _key(self, caller_key: str) -> str:
        return f"{self.CACHE_PREFIX}{self.scope}:{safe_key_part(caller_key)}"

    def allow_request(self, caller_key: str) -> bool:
        key = self._key(caller_key)
        if self._redis is not None:
            try:
                return self._redis_allow(key)
            except redis.exceptions.RedisError as e:
                logger.error(f"Redis error in rate limiter, switching to memory: {e}")
                self._redis = None
        return self._memory_allow(key)

    def retry_after(self, caller_key: str) -> int:
        """Seconds until the oldest request in the window expires."""
        key = self._key(caller_key)
        now = self.clock()
        oldest = None
        if self._redis is not None:
            try:
                entries = self._redis.zrange_withscores(key, 0, 0)
                oldest = entries[0][1] if entries else None
            except redis.exceptions.RedisError as e:
                logger.warning(f"Could not read rate limit window: {e}")
        else:
            with self._lock:
                window = self._memory.get(key)
                oldest = window[0] if window else None
        if oldest is None:
            return 0
        return max(0, int(oldest + self.window_seconds - now) + 1)

    def _redis_allow(self, key: str) -> bool:
        now = self.clock()
        member = f"{now}:{uuid.uuid4().hex}"
        pipe = self._redis.pipeline(transaction=True)
        pipe.zremrangebyscore(key, 0, now - self.window_seconds)
        pipe.zadd(key, {member: now})
        pipe.zcard(key)
        pipe.expire(key, self.window_seconds)
        _, _, count, _ = pipe.execute()
        if count > self.max_requests:
            self._redis.zrem(key, member)
            logger.warning(f"Rate limit exceeded | key={key} count={count - 1}")
            return False
        return True

    def _memory_allow(self, key: str) -> bool:
        now = self.clock()
        with self._lock:
            self._sweep_idle(now)
            window = self._memory.setdefault(key, deque())
            while window and window[0] <= now - self.window_seconds:
                window.popleft()
            if len(window) >= self.max_requests:
                logger.warning(f"Rate limit exceeded | key={key} count={len(window)}")
                return False
            window.append(now)
            return True

    def _sweep_idle(self, now: float) -> None:
        # drop callers whose window has emptied; at most once per window, caller holds the lock
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        cutoff = now - self.window_seconds
        for key in list(self._memory):
            window = self._memory[key]
            while window and window[0] <= cutoff:
                window.popleft()
            if not window:
                del self._memory[key]

