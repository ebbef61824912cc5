"""Redis Client Wrapper for the shared presence store.

Only hash commands are exposed. Every command logs and returns a neutral
value on RedisError so a Redis outage degrades presence instead of failing
requests.
"""

import logging
from typing import Any, Callable, List, Optional

import redis
from redis.exceptions import RedisError

from config import RedisConfig, get_redis_config

logger = logging.getLogger(__name__)


class RedisClient:
    _instance = None

    def __new__(cls, settings: Optional[RedisConfig] = None):
        if cls._instance is None:
            instance = super().__new__(cls)
            instance._connect(settings or get_redis_config())
            cls._instance = instance
        return cls._instance

    def _connect(self, settings: RedisConfig):
        self._pool = redis.ConnectionPool(
            host=settings.host,
            port=settings.port,
            db=settings.db,
            password=settings.password,
            socket_timeout=settings.socket_timeout,
            socket_connect_timeout=settings.socket_timeout,
            retry_on_timeout=True,
            decode_responses=True,
        )
        self._redis = redis.Redis(connection_pool=self._pool)
        logger.info(f"Redis pool configured for {settings.host}:{settings.port}/{settings.db}")

    def _run(self, command: str, target: str, call: Callable[[], Any], fallback: Any) -> Any:
        try:
            return call()
        except RedisError as e:
            logger.error(f"Redis {command} failed for {target}: {e}")
            return fallback

    def ping(self) -> bool:
        return bool(self._run("PING", "server", self._redis.ping, False))

    def hget(self, name: str, key: str) -> Optional[str]:
        return self._run("HGET", f"{name}:{key}", lambda: self._redis.hget(name, key), None)

    def hset(self, name: str, key: str, value: str) -> int:
        return self._run("HSET", f"{name}:{key}", lambda: self._redis.hset(name, key, value), 0)

    def hdel(self, name: str, *keys: str) -> int:
        return self._run("HDEL", name, lambda: self._redis.hdel(name, *keys), 0)

    def hkeys(self, name: str) -> List[str]:
        return self._run("HKEYS", name, lambda: self._redis.hkeys(name), [])

    def hexists(self, name: str, key: str) -> bool:
        return bool(self._run("HEXISTS", f"{name}:{key}", lambda: self._redis.hexists(name, key), False))

    def close(self):
        self._pool.disconnect()
        RedisClient._instance = None


def get_redis_client() -> RedisClient:
    return RedisClient()
