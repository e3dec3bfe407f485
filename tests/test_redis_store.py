from datetime import timedelta
from unittest import mock

import pytest
import redis

from lauth.config import RedisConfig
from lauth.redis_store import KeyNotFound, RedisStore, RedisStoreError


class FakeClient:
    def __init__(self):
        self.data = {}
        self.options = {}

    def set(self, name, value, ex=None, px=None, keepttl=False):
        self.data[name] = str(value).encode("utf-8")
        self.options[name] = {"ex": ex, "px": px, "keepttl": keepttl}
        return True

    def get(self, name):
        return self.data.get(name)

    def delete(self, *names):
        removed = 0
        for name in names:
            if self.data.pop(name, None) is not None:
                removed += 1
        return removed

    def exists(self, *names):
        return sum(1 for name in names if name in self.data)


class BrokenClient:
    def _fail(self, *args, **kwargs):
        raise redis.ConnectionError("down")

    set = get = delete = exists = _fail


@pytest.fixture
def store():
    return RedisStore(FakeClient())


def test_set_get_round_trip(store):
    store.set("rules:app", "[1, 2]", 0)
    assert store.get("rules:app") == "[1, 2]"


def test_get_missing_raises_key_not_found(store):
    with pytest.raises(KeyNotFound):
        store.get("missing")


def test_key_not_found_is_store_error(store):
    with pytest.raises(RedisStoreError):
        store.get("missing")


def test_zero_expiration_has_no_ttl(store):
    store.set("k", "v", 0)
    assert store.client.options["k"] == {"ex": None, "px": None, "keepttl": False}


def test_whole_second_expiration(store):
    store.set("k", "v", timedelta(hours=24))
    assert store.client.options["k"]["ex"] == 86400


def test_fractional_expiration_uses_milliseconds(store):
    store.set("k", "v", 1.5)
    assert store.client.options["k"]["px"] == 1500


def test_negative_expiration_keeps_ttl(store):
    store.set("k", "v", -1)
    assert store.client.options["k"]["keepttl"] is True


def test_delete_and_exists(store):
    store.set("a", "1")
    store.set("b", "2")
    assert store.exists("a") is True
    store.delete("a", "b")
    assert store.exists("a") is False
    assert store.exists("b") is False


def test_errors_are_wrapped():
    store = RedisStore(BrokenClient())
    with pytest.raises(RedisStoreError):
        store.set("k", "v")
    with pytest.raises(RedisStoreError):
        store.get("k")
    with pytest.raises(RedisStoreError):
        store.delete("k")
    with pytest.raises(RedisStoreError):
        store.exists("k")


def test_connect_builds_client_from_config():
    password = "password"
    config = RedisConfig(host="localhost", port=6379, password=password, db=3)
    with mock.patch("redis.Redis") as redis_cls:
        store = RedisStore.connect(config)
    kwargs = redis_cls.call_args.kwargs
    assert kwargs["host"] == "localhost"
    assert kwargs["port"] == 6379
    assert kwargs["password"] == password
    assert kwargs["db"] == 3
    assert store.client is redis_cls.return_value
    redis_cls.return_value.ping.assert_called_once()


def test_connect_failure_raises():
    config = RedisConfig(host="localhost", port=6379)
    with mock.patch("redis.Redis") as redis_cls:
        redis_cls.return_value.ping.side_effect = redis.ConnectionError("refused")
        with pytest.raises(RedisStoreError, match="failed to connect to redis"):
            RedisStore.connect(config)