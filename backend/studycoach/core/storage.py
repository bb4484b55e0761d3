"""
Repository abstraction over the key-value stores that hold student state.
Redis is the production backend; the in-memory backend serves tests and
single-process development.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import redis

from studycoach.core.errors import PersistenceError

logger = logging.getLogger(__name__)


class Repository(ABC):
    """
    Minimal get/put/delete contract. Values are JSON-compatible objects.
    Keys are namespaced strings such as ``memory:{student_id}``.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    def keys(self, prefix: str) -> List[str]:
        pass


class InMemoryRepository(Repository):
    """Process-local repository; values are stored as JSON text like Redis would"""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def put(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value, ensure_ascii=False)

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self, prefix: str) -> List[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


class RedisRepository(Repository):
    """
    Redis-backed repository.
    Every key is stored under ``{namespace}:{key}``; connection and command
    failures surface as PersistenceError.
    """

    def __init__(self, redis_client: redis.Redis, namespace: str = "studycoach",
                 ttl_seconds: Optional[int] = None):
        self.redis = redis_client
        self.prefix = namespace
        self.default_ttl = ttl_seconds

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def get(self, key: str) -> Optional[Any]:
        try:
            data = self.redis.get(self._key(key))
        except redis.RedisError as e:
            logger.error(f"Failed to read {key}: {e}")
            raise PersistenceError(f"Redis read failed for {key}") from e
        return json.loads(data) if data else None

    def put(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        try:
            if self.default_ttl:
                self.redis.setex(self._key(key), self.default_ttl, payload)
            else:
                self.redis.set(self._key(key), payload)
        except redis.RedisError as e:
            logger.error(f"Failed to write {key}: {e}")
            raise PersistenceError(f"Redis write failed for {key}") from e

    def delete(self, key: str) -> bool:
        try:
            return bool(self.redis.delete(self._key(key)))
        except redis.RedisError as e:
            logger.error(f"Failed to delete {key}: {e}")
            raise PersistenceError(f"Redis delete failed for {key}") from e

    def keys(self, prefix: str) -> List[str]:
        try:
            found = self.redis.keys(f"{self._key(prefix)}*")
        except redis.RedisError as e:
            logger.error(f"Failed to list keys under {prefix}: {e}")
            raise PersistenceError(f"Redis scan failed for {prefix}") from e
        strip = len(self.prefix) + 1
        return sorted(k[strip:] for k in found)


# ===== Redis Client Factory =====

def create_redis_client() -> redis.Redis:
    """Create a Redis client from the environment and verify the connection"""
    try:
        client = redis.Redis(
            host=os.getenv('REDIS_HOST', 'localhost'),
            port=int(os.getenv('REDIS_PORT', 6379)),
            db=int(os.getenv('REDIS_DB', 0)),
            password=os.getenv('REDIS_PASSWORD') or None,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5
        )
        # Test connection
        client.ping()
        logger.info("Redis connection successful")
        return client
    except redis.RedisError as e:
        logger.error(f"Redis connection failed: {e}")
        raise PersistenceError("Redis unavailable") from e


# Global Redis client (lazy initialization)
_redis_client = None


def get_redis_client() -> redis.Redis:
    """Get or create global Redis client"""
    global _redis_client
    if _redis_client is None:
        _redis_client = create_redis_client()
    return _redis_client


def build_repository(backend: str) -> Repository:
    if backend == "redis":
        return RedisRepository(get_redis_client())
    return InMemoryRepository()
