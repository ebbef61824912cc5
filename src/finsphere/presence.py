"""Who currently holds an open real-time connection.

The relay talks to a ``PresenceRegistry``; which backend it gets is decided
at startup by ``PRESENCE_BACKEND``. Each user maps to at most one connection.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from cache import CacheKeyBuilder, get_redis_client

logger = logging.getLogger(__name__)


class PresenceRegistry(ABC):

    @abstractmethod
    def add(self, user_id: int, connection_id: str):
        """Record user_id as connected through connection_id, replacing any previous one"""

    @abstractmethod
    def remove(self, user_id: int, connection_id: str) -> bool:
        """Forget user_id only if it is still mapped to connection_id"""

    @abstractmethod
    def lookup(self, user_id: int) -> Optional[str]:
        """Connection id for user_id if it is held by this process"""

    @abstractmethod
    def online_users(self) -> List[int]:
        pass

    @abstractmethod
    def is_online(self, user_id: int) -> bool:
        pass

    def ping(self) -> bool:
        return True

    def close(self):
        pass


class InMemoryPresenceRegistry(PresenceRegistry):
    def __init__(self):
        self._connections: Dict[int, str] = {}

    def add(self, user_id: int, connection_id: str):
        self._connections[user_id] = connection_id

    def remove(self, user_id: int, connection_id: str) -> bool:
        if self._connections.get(user_id) != connection_id:
            return False
        del self._connections[user_id]
        return True

    def lookup(self, user_id: int) -> Optional[str]:
        return self._connections.get(user_id)

    def online_users(self) -> List[int]:
        return list(self._connections)

    def is_online(self, user_id: int) -> bool:
        return user_id in self._connections


class RedisPresenceRegistry(PresenceRegistry):
    """Presence kept in a Redis hash so every API instance sees the same online set.

    Values are tagged ``<instance_id>|<connection_id>``; ``lookup`` only returns
    connections owned by this instance because delivery is same-process.
    """

    def __init__(self, client=None, key: Optional[str] = None, instance_id: Optional[str] = None):
        self.client = client or get_redis_client()
        self.key = key or CacheKeyBuilder.presence()
        self.instance_id = instance_id or uuid.uuid4().hex[:12]

    def _tag(self, connection_id: str) -> str:
        return f"{self.instance_id}|{connection_id}"

    def add(self, user_id: int, connection_id: str):
        self.client.hset(self.key, str(user_id), self._tag(connection_id))

    def remove(self, user_id: int, connection_id: str) -> bool:
        if self.client.hget(self.key, str(user_id)) != self._tag(connection_id):
            return False
        return bool(self.client.hdel(self.key, str(user_id)))

    def lookup(self, user_id: int) -> Optional[str]:
        value = self.client.hget(self.key, str(user_id))
        if not value:
            return None
        instance_id, _, connection_id = value.partition('|')
        if instance_id != self.instance_id:
            return None
        return connection_id

    def online_users(self) -> List[int]:
        return [int(user_id) for user_id in self.client.hkeys(self.key)]

    def is_online(self, user_id: int) -> bool:
        return self.client.hexists(self.key, str(user_id))

    def ping(self) -> bool:
        return self.client.ping()

    def close(self):
        self.client.close()


def build_registry(backend: str = 'memory') -> PresenceRegistry:
    if backend == 'redis':
        logger.info("Using Redis presence registry")
        return RedisPresenceRegistry()
    return InMemoryPresenceRegistry()
