"""Cache Package for FinSphere's shared Redis state."""

from .redis_client import RedisClient, get_redis_client
from .cache_patterns import CacheKeyBuilder

__all__ = [
    'RedisClient',
    'get_redis_client',
    'CacheKeyBuilder',
]
