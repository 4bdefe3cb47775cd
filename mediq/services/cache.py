"""Redis access for short-lived read models."""

from typing import Optional

import redis

from mediq.utils.config import get_settings

settings = get_settings()

KEY_PREFIX = "mediq"

redis_client = redis.Redis.from_url(settings.redis_url, decode_responses=True)


def cache_key(*parts: object) -> str:
    """Build a namespaced key, e.g. ``mediq:queue:<doctor>:<date>``."""

    return ":".join([KEY_PREFIX, *(str(part) for part in parts)])


def cache_set(key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
    """Store ``value`` under ``key``, expiring after ``ttl_seconds`` if given."""

    return bool(redis_client.set(name=key, value=value, ex=ttl_seconds))


def cache_get(key: str) -> Optional[str]:
    return redis_client.get(name=key)


def cache_delete(*keys: str) -> int:
    """Delete keys, returning how many existed."""

    if not keys:
        return 0
    return int(redis_client.delete(*keys))
