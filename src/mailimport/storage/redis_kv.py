"""
Redis-based key-value storage for import state.

Cursors, count ledgers and progress survive process restarts, which is what
makes a paused import resumable from a fresh invocation.
"""

from __future__ import annotations
from typing import List, Optional
import redis
from mailimport.logging import logger


class RedisKVStorage:
    """
    Redis-backed implementation of the PropertyStore protocol.

    All keys are stored under `namespace` so several deployments can share
    one Redis database.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        namespace: str = "mailimport:",
        client: Optional[redis.Redis] = None,
    ) -> None:
        """
        Initialize Redis connection.

        Args:
            host: Redis server hostname
            port: Redis server port
            db: Redis database number
            namespace: Prefix applied to every key
            client: Pre-built client (skips connection setup)

        Raises:
            redis.ConnectionError: If connection to Redis fails
        """
        self.namespace = namespace
        if client is not None:
            self.client = client
            return
        try:
            self.client = redis.Redis(
                host=host,
                port=port,
                db=db,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
            self.client.ping()
            logger.info(f"Connected to Redis at {host}:{port}/{db}")
        except redis.ConnectionError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    def get(self, key: str) -> Optional[str]:
        """
        Get value by key.

        Raises:
            redis.RedisError: If the read fails (never reported as an absent key)
        """
        try:
            return self.client.get(self._key(key))
        except redis.RedisError as e:
            logger.error(f"Redis GET error for key '{key}': {e}")
            raise

    def set(self, key: str, value: str) -> None:
        """
        Set value by key.

        Raises:
            redis.RedisError: If Redis operation fails
        """
        try:
            self.client.set(self._key(key), value)
            logger.debug(f"Set Redis key '{key}' = '{value}'")
        except redis.RedisError as e:
            logger.error(f"Redis SET error for key '{key}': {e}")
            raise

    def delete(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
            logger.debug(f"Deleted Redis key '{key}'")
        except redis.RedisError as e:
            logger.error(f"Redis DELETE error for key '{key}': {e}")
            raise

    def list_keys(self, prefix: str = "") -> List[str]:
        """
        List keys (without namespace) that start with `prefix`.
        """
        pattern = f"{self._key(prefix)}*"
        try:
            keys = [k[len(self.namespace):] for k in self.client.scan_iter(match=pattern)]
        except redis.RedisError as e:
            logger.error(f"Redis SCAN error for prefix '{prefix}': {e}")
            raise
        return sorted(keys)
