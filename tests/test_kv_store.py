import pytest
import redis

from cliptrail.database.kv_store import MemoryKeyValueStore, RedisConfig, RedisKeyValueStore


class FakeRedis:
    def __init__(self, reachable=True):
        self.reachable = reachable
        self.data = {}
        self.closed = False

    def ping(self):
        if not self.reachable:
            raise redis.ConnectionError("connection refused")
        return True

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def delete(self, key):
        self.data.pop(key, None)

    def close(self):
        self.closed = True


def test_memory_store_copies_values():
    kv = MemoryKeyValueStore()
    value = {"items": [1, 2]}
    kv.set("k", value)
    value["items"].append(3)
    assert kv.get("k") == {"items": [1, 2]}
    assert kv.get("missing", "fallback") == "fallback"
    kv.delete("k")
    kv.delete("k")
    assert kv.get("k") is None


def test_memory_store_rejects_unserializable_values():
    kv = MemoryKeyValueStore()
    with pytest.raises(TypeError):
        kv.set("k", object())


def test_redis_store_prefixes_keys():
    client = FakeRedis()
    with RedisKeyValueStore(client, key_prefix="test:") as kv:
        kv.set("settings", {"max_history": 5})
        assert client.data == {"test:settings": '{"max_history": 5}'}
        assert kv.get("settings") == {"max_history": 5}
        kv.delete("settings")
        assert kv.get("settings", {}) == {}
    assert client.closed


def test_redis_store_decodes_bytes():
    client = FakeRedis()
    client.data["cliptrail:clipboardHistory"] = b"[]"
    assert RedisKeyValueStore(client).get("clipboardHistory") == []


def test_unreachable_redis_raises():
    with pytest.raises(redis.ConnectionError):
        RedisKeyValueStore(FakeRedis(reachable=False))


def test_redis_config_from_uri():
    config = RedisConfig.from_uri("redis://:secret@cache.local:6380/2")
    assert (config.host, config.port, config.db, config.password) == \
        ("cache.local", 6380, 2, "secret")

    config = RedisConfig.from_uri("rediss://cache.local")
    assert (config.port, config.db, config.password) == (6379, 0, None)

    with pytest.raises(ValueError):
        RedisConfig.from_uri("http://cache.local")


def test_redis_config_from_env(monkeypatch):
    monkeypatch.delenv("REDIS_URI", raising=False)
    monkeypatch.setenv("REDIS_HOST", "db.internal")
    monkeypatch.setenv("REDIS_PORT", "7000")
    monkeypatch.setenv("CLIPTRAIL_KEY_PREFIX", "ct:")
    config = RedisConfig.from_env()
    assert (config.host, config.port, config.key_prefix) == ("db.internal", 7000, "ct:")

    monkeypatch.setenv("REDIS_URI", "redis://other:1234/1")
    assert RedisConfig.from_env().host == "other"
