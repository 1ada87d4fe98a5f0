"""
Per-(video, profile) lease so that at most one job encodes a rendition at a time.
"""

import logging
from contextlib import contextmanager

import redis
from redis.exceptions import LockError

from .errors import RenditionLocked

logger = logging.getLogger(__name__)


def lock_name(video_id: str, profile_id: str) -> str:
    return f"rendition-lock:{video_id}:{profile_id}"


class RenditionLock:
    """Callable returning a context manager that holds the pair's Redis lock."""

    def __init__(self, client, timeout: int, wait: int):
        self.client = client
        self.timeout = timeout
        self.wait = wait

    @classmethod
    def from_url(cls, url: str, timeout: int, wait: int) -> "RenditionLock":
        return cls(redis.Redis.from_url(url), timeout, wait)

    @contextmanager
    def __call__(self, video_id: str, profile_id: str):
        lock = self.client.lock(
            lock_name(video_id, profile_id),
            timeout=self.timeout,
            blocking_timeout=self.wait,
        )
        if not lock.acquire():
            raise RenditionLocked(video_id, profile_id)
        logger.debug(f"Acquired {lock_name(video_id, profile_id)}")
        try:
            yield lock
        finally:
            try:
                lock.release()
            except LockError as e:
                # lease expired mid-job; another worker may already own it
                logger.warning(f"Could not release {lock_name(video_id, profile_id)}: {e}")


@contextmanager
def no_lock(video_id: str, profile_id: str):
    yield None
