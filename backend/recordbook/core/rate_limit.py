import logging
import secrets
import threading
import time

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window attempt counter.

    Uses redis when ``redis_url`` is given and reachable so limits hold across
    workers; otherwise keeps the window in process memory.
    """

    _WINDOW_SCRIPT = """
local key = KEYS[1]
local now_ms = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]
local ttl = tonumber(ARGV[5])

redis.call("ZREMRANGEBYSCORE", key, 0, now_ms - window_ms)
if redis.call("ZCARD", key) >= limit then
  redis.call("EXPIRE", key, ttl)
  return 1
end
redis.call("ZADD", key, now_ms, member)
redis.call("EXPIRE", key, ttl)
return 0
"""

    def __init__(self, redis_url: str | None = None, key_prefix: str = "recordbook") -> None:
        self._attempts: dict[str, list[float]] = {}
        self._lock = threading.Lock()
        self._key_prefix = key_prefix
        self._redis: Redis | None = None
        if redis_url:
            try:
                client = Redis.from_url(redis_url, decode_responses=False)
                client.ping()
                self._redis = client
            except RedisError:
                logger.warning("Redis unavailable, rate limiting in process memory", exc_info=True)

    @property
    def shared(self) -> bool:
        return self._redis is not None

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}:ratelimit:{key}"

    def _hit_redis(self, key: str, limit: int, window_seconds: int) -> bool | None:
        if self._redis is None:
            return None
        now_ms = int(time.time() * 1000)
        try:
            result = self._redis.eval(
                self._WINDOW_SCRIPT,
                1,
                self._key(key),
                now_ms,
                window_seconds * 1000,
                limit,
                f"{now_ms}-{secrets.token_hex(6)}",
                window_seconds + 1,
            )
        except RedisError:
            logger.warning("Redis rate limit check failed", exc_info=True, extra={"key": key})
            return None
        return int(result or 0) == 1

    def exceeded(self, key: str, limit: int, window_seconds: int) -> bool:
        """Record an attempt under ``key`` and report whether the limit was already reached."""
        limit = max(1, int(limit))
        window_seconds = max(1, int(window_seconds))

        shared_result = self._hit_redis(key, limit, window_seconds)
        if shared_result is not None:
            return shared_result

        now = time.time()
        with self._lock:
            recent = [ts for ts in self._attempts.get(key, []) if ts >= now - window_seconds]
            if len(recent) >= limit:
                self._attempts[key] = recent
                return True
            recent.append(now)
            self._attempts[key] = recent
            return False

    def reset(self, key: str) -> None:
        if self._redis is not None:
            try:
                self._redis.delete(self._key(key))
            except RedisError:
                logger.warning("Redis rate limit reset failed", exc_info=True, extra={"key": key})
        with self._lock:
            self._attempts.pop(key, None)
