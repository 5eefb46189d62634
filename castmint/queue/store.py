"""Redis-backed queue store: lists for pending/failed work, a set for dedup."""
from typing import List, Optional

import redis

from castmint.errors import StoreConnectionError
from castmint.logging_conf import logger


class QueueStore:
    """A single shared Redis connection used by ingestion and the worker.

    The client is created on first use and released by ``close()``. Every
    operation maps onto one atomic Redis command, so callers need no locking.
    """

    def __init__(self, url: str, socket_timeout: float = 10.0):
        self.url = url
        self.socket_timeout = socket_timeout
        self._client: Optional[redis.Redis] = None

    @property
    def client(self) -> redis.Redis:
        """Get or create the Redis client."""
        if self._client is None:
            self._client = redis.Redis.from_url(
                self.url,
                decode_responses=True,
                socket_timeout=self.socket_timeout,
                socket_connect_timeout=self.socket_timeout,
                health_check_interval=30,
            )
        return self._client

    def connect(self) -> None:
        """Open the connection eagerly and verify it with PING."""
        try:
            self.client.ping()
        except redis.RedisError as e:
            raise StoreConnectionError(f"Cannot connect to queue store: {e}") from e
        logger.info("Queue store connected")

    def close(self) -> None:
        """Release the connection."""
        if self._client is not None:
            try:
                self._client.close()
            except redis.RedisError as e:
                logger.warning(f"Error closing queue store: {e}")
            finally:
                self._client = None
            logger.info("Queue store closed")

    def push_front(self, list_name: str, value: str) -> int:
        """Insert at the head of a list; returns the new length."""
        return self._execute("LPUSH", lambda c: c.lpush(list_name, value))

    def push_back(self, list_name: str, value: str) -> int:
        """Insert at the tail of a list, where pop_back takes from next."""
        return self._execute("RPUSH", lambda c: c.rpush(list_name, value))

    def pop_back(self, list_name: str) -> Optional[str]:
        """Remove and return the tail of a list, or None when empty."""
        return self._execute("RPOP", lambda c: c.rpop(list_name))

    def pop_back_blocking(self, list_name: str, timeout: float) -> Optional[str]:
        """Like pop_back, but wait up to ``timeout`` seconds for an item."""
        # BRPOP blocks server-side; the socket must outlive the wait
        result = self._execute(
            "BRPOP",
            lambda c: c.brpop([list_name], timeout=max(timeout, 0.01)),
        )
        if not result:
            return None
        _, value = result
        return value

    def peek_range(self, list_name: str, start: int, end: int) -> List[str]:
        return self._execute("LRANGE", lambda c: c.lrange(list_name, start, end)) or []

    def length(self, list_name: str) -> int:
        return int(self._execute("LLEN", lambda c: c.llen(list_name)) or 0)

    def remove(self, list_name: str, value: str, count: int = 1) -> int:
        """Remove up to ``count`` occurrences of value from a list."""
        return int(self._execute("LREM", lambda c: c.lrem(list_name, count, value)) or 0)

    def add_to_set(self, set_name: str, value: str) -> None:
        self._execute("SADD", lambda c: c.sadd(set_name, value))

    def is_member(self, set_name: str, value: str) -> bool:
        return bool(self._execute("SISMEMBER", lambda c: c.sismember(set_name, value)))

    def _execute(self, command: str, fn):
        try:
            return fn(self.client)
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.error(f"Queue store {command} failed: {e}")
            raise StoreConnectionError(f"Queue store unavailable during {command}: {e}") from e
