"""
Password attempt throttling for public share links

Attempts are tracked per client IP over a trailing window. The default store
keeps timestamps in process memory, so each worker process enforces its own
ceiling. Setting PASSWORD_ATTEMPT_STORE=redis moves the attempts into a Redis
sorted set per IP, shared by every worker.
"""

import logging
import os
import time
import uuid
from threading import Lock
from typing import Callable, Optional

import redis
from fastapi import Request

from . import config

logger = logging.getLogger(__name__)

KEY_PREFIX = "share_password_attempts"

# Redis connection
redis_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client
    Supports REDIS_URL or individual host/port settings
    """
    global redis_client

    if redis_client is None:
        logger.info("🔄 Initializing Redis connection for password throttling...")

        redis_url = os.getenv("REDIS_URL")

        if redis_url:
            # Mask password in URL for logging
            if "@" in redis_url:
                url_parts = redis_url.split("@")
                protocol = url_parts[0].split(":")[0]
                masked_url = f"{protocol}:****@{url_parts[1]}"
            else:
                masked_url = "****"
            logger.info(f"📡 Using Redis URL connection: {masked_url}")

            client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=15,
                socket_timeout=30,
                retry_on_timeout=True,
                health_check_interval=30,
                max_connections=20,
            )
        else:
            redis_host = os.getenv("REDIS_HOST", "localhost")
            redis_port = int(os.getenv("REDIS_PORT", "6379"))
            redis_password = os.getenv("REDIS_PASSWORD", None)
            redis_db = int(os.getenv("REDIS_DB", "0"))
            redis_ssl = os.getenv("REDIS_SSL", "false").lower() == "true"

            logger.info(
                f"📡 Using Redis at {redis_host}:{redis_port} db={redis_db} "
                f"ssl={'on' if redis_ssl else 'off'} password={'set' if redis_password else 'not set'}"
            )

            client = redis.Redis(
                host=redis_host,
                port=redis_port,
                password=redis_password,
                db=redis_db,
                ssl=redis_ssl,
                decode_responses=True,
                socket_connect_timeout=15,
                socket_timeout=30,
                retry_on_timeout=True,
                health_check_interval=30,
                max_connections=20,
            )

        try:
            client.ping()
        except redis.RedisError as e:
            logger.error(f"❌ Failed to connect to Redis: {str(e)}")
            raise
        logger.info("Redis connected successfully")
        redis_client = client

    return redis_client


class MemoryAttemptStore:
    """Attempt timestamps per key, pruned lazily on read"""

    def __init__(self):
        self._attempts: dict[str, list[float]] = {}
        self._lock = Lock()

    def recent(self, key: str, now: float, window_seconds: int) -> list[float]:
        with self._lock:
            attempts = self._attempts.get(key)
            if not attempts:
                return []
            recent = [t for t in attempts if now - t < window_seconds]
            if len(recent) != len(attempts):
                if recent:
                    self._attempts[key] = recent
                else:
                    del self._attempts[key]
            return list(recent)

    def add(self, key: str, now: float, window_seconds: int) -> None:
        with self._lock:
            self._attempts.setdefault(key, []).append(now)

    def clear(self) -> None:
        with self._lock:
            self._attempts.clear()


class RedisAttemptStore:
    """Attempt timestamps in one sorted set per key, expiring with the window"""

    def __init__(self, client: redis.Redis):
        self.client = client

    def recent(self, key: str, now: float, window_seconds: int) -> list[float]:
        pipe = self.client.pipeline()
        pipe.zremrangebyscore(key, 0, now - window_seconds)
        pipe.zrange(key, 0, -1, withscores=True)
        _, members = pipe.execute()
        return [score for _, score in members]

    def add(self, key: str, now: float, window_seconds: int) -> None:
        pipe = self.client.pipeline()
        pipe.zadd(key, {f"{now}:{uuid.uuid4().hex}": now})
        pipe.expire(key, window_seconds)
        pipe.execute()

    def clear(self) -> None:
        keys = list(self.client.scan_iter(match=f"{KEY_PREFIX}:*"))
        if keys:
            self.client.delete(*keys)


class PasswordAttemptLimiter:
    """
    Trailing-window attempt ceiling per client IP.

    is_limited() must be called before record_attempt(): the gate rejects a
    limited IP without recording or checking anything else.
    """

    def __init__(
        self,
        max_attempts: int,
        window_seconds: int,
        store=None,
        clock: Callable[[], float] = time.time,
    ):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.store = store if store is not None else MemoryAttemptStore()
        self.clock = clock

    def _key(self, ip: str) -> str:
        return f"{KEY_PREFIX}:{ip or 'unknown'}"

    def _recent(self, ip: str) -> list[float]:
        try:
            return self.store.recent(self._key(ip), self.clock(), self.window_seconds)
        except redis.RedisError as e:
            logger.error(f"❌ Password attempt lookup failed: {str(e)}")
            # Fail closed: an unreadable store counts as a full window
            now = self.clock()
            return [now] * self.max_attempts

    def is_limited(self, ip: str) -> bool:
        limited = len(self._recent(ip)) >= self.max_attempts
        if limited:
            logger.warning(f"🚫 Password attempts EXCEEDED for {ip} - {self.max_attempts} per {self.window_seconds}s")
        return limited

    def record_attempt(self, ip: str) -> None:
        try:
            self.store.add(self._key(ip), self.clock(), self.window_seconds)
        except redis.RedisError as e:
            logger.error(f"❌ Failed to record password attempt for {ip}: {str(e)}")
            raise

    def retry_after(self, ip: str) -> int:
        """Seconds until the oldest attempt in the window expires"""
        recent = self._recent(ip)
        if not recent:
            return 0
        remaining = self.window_seconds - (self.clock() - min(recent))
        return max(1, int(remaining + 0.999))

    def reset(self) -> None:
        self.store.clear()


def create_password_limiter() -> PasswordAttemptLimiter:
    """Build the limiter configured for this process"""
    if config.PASSWORD_ATTEMPT_STORE == "redis":
        store = RedisAttemptStore(get_redis_client())
        logger.info("🔐 Password attempts tracked in Redis (shared across workers)")
    else:
        store = MemoryAttemptStore()
        logger.info("🔐 Password attempts tracked in process memory")

    return PasswordAttemptLimiter(
        max_attempts=config.PASSWORD_MAX_ATTEMPTS,
        window_seconds=config.PASSWORD_ATTEMPT_WINDOW_SECONDS,
        store=store,
    )


def get_password_limiter(request: Request) -> PasswordAttemptLimiter:
    """FastAPI dependency returning the limiter created with the application"""
    return request.app.state.password_limiter


def get_client_ip(request: Request) -> str:
    """
    Socket address of the client.

    X-Forwarded-For is never read here; behind a proxy listed in
    TRUSTED_PROXY_IPS, ProxyHeadersMiddleware has already rewritten the
    client address from it.
    """
    return request.client.host if request.client else "unknown"
