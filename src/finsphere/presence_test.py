import pytest

from cache import CacheKeyBuilder
from finsphere.presence import InMemoryPresenceRegistry, RedisPresenceRegistry, build_registry


class FakeHashClient:
    """Just the hash commands the registry uses, shared like a real Redis server"""

    def __init__(self):
        self.hashes = {}

    def hset(self, name, key, value):
        bucket = self.hashes.setdefault(name, {})
        created = key not in bucket
        bucket[key] = value
        return int(created)

    def hget(self, name, key):
        return self.hashes.get(name, {}).get(key)

    def hdel(self, name, *keys):
        bucket = self.hashes.get(name, {})
        return sum(1 for key in keys if bucket.pop(key, None) is not None)

    def hkeys(self, name):
        return list(self.hashes.get(name, {}))

    def hexists(self, name, key):
        return key in self.hashes.get(name, {})


@pytest.fixture(params=["memory", "redis"])
def registry(request):
    if request.param == "memory":
        return InMemoryPresenceRegistry()
    return RedisPresenceRegistry(client=FakeHashClient(), instance_id="api-1")


class TestPresenceRegistry:
    """Behaviour shared by every backend"""

    def test_add_and_lookup(self, registry):
        registry.add(1, "conn-a")
        assert registry.lookup(1) == "conn-a"
        assert registry.is_online(1)
        assert registry.online_users() == [1]

    def test_reconnect_replaces_connection(self, registry):
        registry.add(1, "conn-a")
        registry.add(1, "conn-b")
        assert registry.lookup(1) == "conn-b"

    def test_stale_remove_is_ignored(self, registry):
        registry.add(1, "conn-a")
        registry.add(1, "conn-b")

        assert registry.remove(1, "conn-a") is False
        assert registry.is_online(1)

        assert registry.remove(1, "conn-b") is True
        assert not registry.is_online(1)
        assert registry.lookup(1) is None

    def test_unknown_user(self, registry):
        assert registry.lookup(99) is None
        assert registry.remove(99, "conn-x") is False
        assert registry.online_users() == []


class TestRedisPresenceRegistry:
    """Cross-instance visibility"""

    def test_presence_shared_but_delivery_local(self):
        shared = FakeHashClient()
        first = RedisPresenceRegistry(client=shared, instance_id="api-1")
        second = RedisPresenceRegistry(client=shared, instance_id="api-2")

        first.add(7, "conn-a")

        assert second.is_online(7)
        assert second.online_users() == [7]
        assert first.lookup(7) == "conn-a"
        assert second.lookup(7) is None
        assert second.remove(7, "conn-a") is False

    def test_uses_presence_key(self):
        client = FakeHashClient()
        RedisPresenceRegistry(client=client, instance_id="api-1").add(3, "conn-c")
        assert client.hashes == {CacheKeyBuilder.presence(): {"3": "api-1|conn-c"}}


def test_build_registry_defaults_to_memory():
    assert isinstance(build_registry("memory"), InMemoryPresenceRegistry)
