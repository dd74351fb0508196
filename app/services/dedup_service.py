"""Remember recently delivered Lark message ids.

Lark redelivers an event when the first 200 is slow or lost. Seen ids are kept
in redis (``SET NX EX``) when REDIS_URL is configured, otherwise, or when redis
is unreachable, in a process-local map with the same TTL.
"""

import threading
import time
from typing import Optional

import redis.asyncio as redis_async

from app.config import Settings, settings
from app.logging_config import get_logger

logger = get_logger("dedup_service")

DEDUP_KEY_PREFIX = "larkbot:dedup"
REDIS_SOCKET_TIMEOUT_SECONDS = 0.3

_local_seen: dict[str, float] = {}
_local_lock = threading.Lock()
_redis_client = None
_redis_url = None


def _get_redis(redis_url: str):
    global _redis_client, _redis_url
    if _redis_client is None or _redis_url != redis_url:
        _redis_url = redis_url
        _redis_client = redis_async.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
        )
    return _redis_client


def _purge_local(now_ts: float) -> None:
    expired = [key for key, expires_at in _local_seen.items() if expires_at <= now_ts]
    for key in expired:
        _local_seen.pop(key, None)


def _mark_seen_locally(key: str, ttl_seconds: int) -> bool:
    """Returns True if key was already present."""
    now_ts = time.monotonic()
    with _local_lock:
        _purge_local(now_ts)
        if key in _local_seen:
            return True
        _local_seen[key] = now_ts + ttl_seconds
        return False


def reset_local_cache() -> None:
    with _local_lock:
        _local_seen.clear()


async def is_duplicate_message_id(
    message_id: Optional[str],
    *,
    config: Settings = settings,
    redis_client=None,
) -> bool:
    if not message_id or not config.dedup_enabled:
        return False

    key = f"{DEDUP_KEY_PREFIX}:{message_id}"
    ttl_seconds = max(int(config.dedup_ttl_seconds), 1)

    if redis_client is None and config.redis_url:
        redis_client = _get_redis(config.redis_url)
    if redis_client is not None:
        try:
            was_set = await redis_client.set(key, "1", ex=ttl_seconds, nx=True)
            if not was_set:
                logger.info("Duplicate message_id (redis)", extra={"context": {"message_id": message_id}})
            return not was_set
        except Exception as e:
            logger.warning(f"Dedup redis unavailable, falling back to local cache: {e}")

    duplicate = _mark_seen_locally(key, ttl_seconds)
    if duplicate:
        logger.info("Duplicate message_id (local)", extra={"context": {"message_id": message_id}})
    return duplicate
