"""Redis-backed login/registration throttle shared by every service replica."""

from __future__ import annotations

import hashlib
import time
import uuid
from typing import Final

from redis import Redis


class RedisSlidingWindowRateLimiter:
    """Sliding window over a Redis sorted set per throttled subject.

    Keys look like ``<prefix>:<scope>:<sha256(subject)>`` (for example
    ``bcard:throttle:login:9f86d0...``) so login emails and client addresses
    are never written to Redis in clear text.
    """

    # Returns {allowed, retry_after_ms}. Denied requests are not recorded, so a
    # client hammering the endpoint does not extend its own window.
    _SCRIPT: Final[str] = """
    local key = KEYS[1]
    local window_ms = tonumber(ARGV[1])
    local max_requests = tonumber(ARGV[2])
    local now_ms = tonumber(ARGV[3])
    local member = ARGV[4]
    local record = ARGV[5] == '1'

    redis.call('ZREMRANGEBYSCORE', key, '-inf', now_ms - window_ms)
    local count = redis.call('ZCARD', key)
    if count < max_requests then
        if record then
            redis.call('ZADD', key, now_ms, member)
            redis.call('PEXPIRE', key, window_ms)
        end
        return {1, 0}
    end
    local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
    local wait_ms = window_ms - (now_ms - tonumber(oldest[2]))
    return {0, wait_ms}
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "bcard:throttle",
    ) -> None:
        self._max_requests = max_requests
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix
        self._script = client.register_script(self._SCRIPT)

    def allow(self, key: str) -> bool:
        """Record a request for ``key`` (``"<scope>:<subject>"``) if the window has room."""
        allowed, _ = self._run(key, record=True)
        return allowed

    def retry_after(self, key: str) -> int:
        """Whole seconds until ``key`` may be allowed again (0 when it already is)."""
        allowed, wait_ms = self._run(key, record=False)
        if allowed:
            return 0
        return max(1, -(-wait_ms // 1000))

    def _run(self, key: str, *, record: bool) -> tuple[bool, int]:
        allowed, wait_ms = self._script(
            keys=[self._redis_key(key)],
            args=[
                self._window_ms,
                self._max_requests,
                int(time.time() * 1000),
                uuid.uuid4().hex,
                "1" if record else "0",
            ],
        )
        return int(allowed) == 1, int(wait_ms)

    def _redis_key(self, key: str) -> str:
        scope, _, subject = key.partition(":")
        digest = hashlib.sha256(subject.encode("utf-8")).hexdigest()
        return f"{self._key_prefix}:{scope}:{digest}"
