from functools import lru_cache

import redis

from app.core.config import get_settings, logger
from app.core.errors import TooManyRequests


@lru_cache
def get_redis() -> redis.Redis:
    settings = get_settings()
    return redis.Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=2,
        socket_connect_timeout=2,
    )


def rate_limit(client: redis.Redis, key: str, limit: int, expire_seconds: int) -> None:
    """Fixed-window counter. A redis outage lets the request through."""
    try:
        current = client.incr(key)
        if current == 1:
            client.expire(key, expire_seconds)
    except redis.RedisError as exc:
        logger.warning(f"[rate_limit] redis unavailable, skipping {key}: {exc}")
        return
    if current > limit:
        raise TooManyRequests(get_settings().MESSAGES.TOO_MANY_REQUESTS)
