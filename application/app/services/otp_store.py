import hashlib
import threading
import time
from typing import Callable, Dict, Optional, Tuple

import redis

from app.config.sentry import capture_message
from app.connections.redis_wrapper import RedisJSONWrapper, safe_key_part
from app.logging.utils import get_app_logger

logger = get_app_logger(__name__)


class OTPStore:
    """
    Short-lived one-time code per phone number.

    - Redis-backed (SETEX) when the cache is reachable
    - In-process map with the same TTL contract otherwise
    - Codes are kept as SHA256 hashes, never in clear

    The in-memory fallback is local to this process: with several instances and
    redis down, a verify routed to another instance will not find the code.
    """

    CACHE_PREFIX = "auth_otp_"

    def __init__(self, redis_client: Optional[RedisJSONWrapper], ttl_seconds: int = 300,
                 clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._memory: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()
        self._redis = redis_client if redis_client is not None and getattr(redis_client, "connected", False) else None

        if self._redis is None:
            self._report_degraded("Redis unavailable at startup")
        else:
            logger.info(f"OTP store using redis | ttl={ttl_seconds}s")

    @property
    def backend(self) -> str:
        return "redis" if self._redis is not None else "memory"

    def hash_otp(self, otp: str) -> str:
        return hashlib.sha256(otp.encode()).hexdigest()

    def get_cache_key(self, phone: str) -> str:
        return f"{self.CACHE_PREFIX}{safe_key_part(phone)}"

    def _report_degraded(self, reason: str) -> None:
        message = (f"OTP store falling back to in-memory storage ({reason}); "
                   "codes are not shared across instances or restarts")
        logger.warning(message)
        capture_message(message, level="warning")

    def _fail_over(self, error: Exception) -> None:
        logger.error(f"Redis error in OTP store, switching to memory: {error}")
        self._redis = None
        self._report_degraded(type(error).__name__)

    def put(self, phone: str, code: str) -> None:
        """Store a code for phone, replacing any live code."""
        key = self.get_cache_key(phone)
        hashed = self.hash_otp(code)
        if self._redis is not None:
            try:
                self._redis.set_with_ttl(key, hashed, self.ttl_seconds)
                logger.info(f"OTP stored for {phone}")
                return
            except redis.exceptions.RedisError as e:
                self._fail_over(e)
        now = self.clock()
        with self._lock:
            self._sweep_expired(now)
            self._memory[key] = (hashed, now + self.ttl_seconds)
        logger.info(f"OTP stored in memory for {phone}")

    def _sweep_expired(self, now: float) -> None:
        # at most once per TTL; caller holds the lock
        if now - self._last_sweep < self.ttl_seconds:
            return
        self._last_sweep = now
        expired = [key for key, (_, expires_at) in self._memory.items() if expires_at <= now]
        for key in expired:
            del self._memory[key]
        if expired:
            logger.info(f"Swept {len(expired)} expired OTP entries from memory")

    def _memory_get(self, key: str) -> Optional[str]:
        # caller holds the lock
        entry = self._memory.get(key)
        if entry is None:
            return None
        hashed, expires_at = entry
        if expires_at <= self.clock():
            del self._memory[key]
            return None
        return hashed

    def get(self, phone: str) -> Optional[str]:
        """Hashed live code for phone, or None when absent or expired."""
        key = self.get_cache_key(phone)
        if self._redis is not None:
            try:
                return self._redis.get(key)
            except redis.exceptions.RedisError as e:
                self._fail_over(e)
        with self._lock:
            return self._memory_get(key)

    def matches(self, phone: str, code: str) -> Optional[bool]:
        """None when no live code exists, else whether code is the stored one."""
        stored = self.get(phone)
        if stored is None:
            return None
        return stored == self.hash_otp(code)

    def consume(self, phone: str, code: str) -> Optional[bool]:
        """
        Remove the live code for phone if it equals code.

        True only for the one call that removed it; False on a mismatch (the
        entry is kept); None when no live code exists, including when a
        concurrent call consumed it first.
        """
        key = self.get_cache_key(phone)
        hashed = self.hash_otp(code)
        if self._redis is not None:
            try:
                stored = self._redis.get(key)
                if stored is None:
                    return None
                if stored != hashed:
                    return False
                return True if self._redis.delete_if_equals(key, hashed) else None
            except redis.exceptions.RedisError as e:
                self._fail_over(e)
        with self._lock:
            stored = self._memory_get(key)
            if stored is None:
                return None
            if stored != hashed:
                return False
            del self._memory[key]
            return True

    def delete(self, phone: str) -> bool:
        """True when a live entry was removed by this call."""
        key = self.get_cache_key(phone)
        if self._redis is not None:
            try:
                return bool(self._redis.delete(key))
            except redis.exceptions.RedisError as e:
                self._fail_over(e)
        with self._lock:
            return self._memory.pop(key, None) is not None
