import json
import redis
from urllib.parse import quote_plus

# Logger
from app.logging.utils import get_app_logger
logger = get_app_logger("redis_wrapper")

# Settings
from app.config.settings import AuthConfigs
configs = AuthConfigs()

REDIS_URL = configs.REDIS_URL

# GET and DEL in one server-side step
DELETE_IF_EQUALS_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


def safe_key_part(part: str) -> str:
    """Encode dynamic key segments so Redis keys contain only URL-safe chars."""
    return quote_plus(str(part), safe='')


class RedisJSONWrapper:
    """Thin JSON-over-redis client.

    Construction pings the server; ``connected`` is False when the ping fails so
    callers can choose a fallback. Operations after construction let
    ``redis.exceptions.RedisError`` propagate.
    """

    def __init__(self, redis_uri=REDIS_URL, database=None):
        if database is not None:
            redis_uri = f"{redis_uri}/{database}"
        try:
            self.redis_client = redis.from_url(redis_uri, socket_connect_timeout=2)
            self.redis_client.ping()
            self.connected = True
        except redis.exceptions.RedisError as e:
            logger.error(f"Failed to connect to Redis at {redis_uri}: {e}")
            self.redis_client = None
            self.connected = False

    def set_with_ttl(self, key, data, ttl_seconds: int):
        """Set a key with a TTL (in seconds). Stores data as JSON string."""
        if not isinstance(ttl_seconds, int) or ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be a positive integer, got {ttl_seconds!r}")
        # SETEX attaches the expiry atomically with the value
        self.redis_client.setex(key, ttl_seconds, json.dumps(data))

    def get(self, key):
        data = self.redis_client.get(key)
        if data:
            return json.loads(data)
        return None

    def delete(self, key):
        return self.redis_client.delete(key) > 0

    def delete_if_equals(self, key, data) -> bool:
        """Delete key only while it still holds data; True when this call removed it."""
        return bool(self.redis_client.eval(DELETE_IF_EQUALS_SCRIPT, 1, key, json.dumps(data)))

    def pipeline(self, transaction: bool = True):
        return self.redis_client.pipeline(transaction=transaction)

    def zrem(self, key, member):
        return self.redis_client.zrem(key, member)

    def zrange_withscores(self, key, start: int = 0, end: int = 0):
        return self.redis_client.zrange(key, start, end, withscores=True)
