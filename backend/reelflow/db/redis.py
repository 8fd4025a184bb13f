"""Redis client for sessions and short-lived coordination locks"""
import logging
import secrets
from contextlib import contextmanager
from typing import Optional

import redis

from reelflow.core.config import settings

logger = logging.getLogger(__name__)

# Lazy initialization - no connection at import time
_client = None


def get_redis_client():
    """Get or create Redis client (lazy initialization)

    This prevents connection attempts during import, allowing mocks to be applied first.
    """
    global _client
    if _client is None:
        _client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


# Session TTL (30 days)
SESSION_TTL = 30 * 24 * 60 * 60


def set_session(session_id: str, user_id: int) -> None:
    """Store session in Redis"""
    key = f"session:{session_id}"
    get_redis_client().setex(key, SESSION_TTL, user_id)


def get_session(session_id: str) -> Optional[int]:
    """Get user_id from session"""
    key = f"session:{session_id}"
    user_id = get_redis_client().get(key)
    return int(user_id) if user_id else None


def acquire_lock(lock_key: str, timeout: int = 30) -> Optional[str]:
    """Acquire a distributed lock using Redis SET with NX and EX.

    Args:
        lock_key: The lock key to acquire
        timeout: Lock timeout in seconds (default 30)

    Returns:
        The owner token if the lock was acquired, None if it is already held
    """
    token = secrets.token_hex(16)
    # SET key value NX EX timeout - atomically set if not exists with expiration
    if get_redis_client().set(lock_key, token, nx=True, ex=timeout):
        return token
    return None


def _if_owner(lock_key: str, token: str, apply) -> bool:
    """Run apply(pipe) in a MULTI only while lock_key still holds token"""
    with get_redis_client().pipeline() as pipe:
        try:
            pipe.watch(lock_key)
            if pipe.get(lock_key) != token:
                pipe.unwatch()
                return False
            pipe.multi()
            apply(pipe)
            pipe.execute()
            return True
        except redis.WatchError:
            return False


def release_lock(lock_key: str, token: str) -> bool:
    """Release a lock only if it is still ours.

    After expiry another worker may hold the key; it is left alone.
    """
    return _if_owner(lock_key, token, lambda pipe: pipe.delete(lock_key))


def extend_lock(lock_key: str, token: str, timeout: int) -> bool:
    """Reset the TTL of a lock we still hold. False means it was lost."""
    return _if_owner(lock_key, token, lambda pipe: pipe.expire(lock_key, timeout))


@contextmanager
def distributed_lock(lock_key: str, timeout: int = 30):
    """Yield the owner token (None if the lock is held elsewhere); release it on exit"""
    token = acquire_lock(lock_key, timeout)
    try:
        yield token
    finally:
        if token is not None:
            try:
                if not release_lock(lock_key, token):
                    logger.warning(f"Lock {lock_key} expired before release")
            except redis.RedisError as e:
                logger.debug(f"Failed to release lock {lock_key}: {e}")


def raise_flag(flag_key: str, timeout: int = 60) -> None:
    get_redis_client().set(flag_key, "1", ex=timeout)


def take_flag(flag_key: str) -> bool:
    """Clear a flag, returning whether it was set"""
    return get_redis_client().delete(flag_key) == 1
