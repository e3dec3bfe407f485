"""Thin key/value store backed by a Redis server."""

from datetime import timedelta
from typing import Any

import redis

from lauth.config import RedisConfig


class RedisStoreError(Exception):
    """Raised when a Redis operation fails."""


class KeyNotFound(RedisStoreError, KeyError):
    """Raised when a requested key does not exist."""


def _seconds(expiration: float | timedelta | None) -> float:
    if expiration is None:
        return 0.0
    if isinstance(expiration, timedelta):
        return expiration.total_seconds()
    return float(expiration)


class RedisStore:
    """String key/value operations on a Redis client."""

    def __init__(self, client: Any) -> None:
        self.client = client

    @classmethod
    def connect(cls, config: RedisConfig) -> "RedisStore":
        """Create a client from ``config`` and check the server answers."""
        client = redis.Redis(
            host=config.host,
            port=config.port,
            password=config.password or None,
            db=config.db,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        try:
            client.ping()
        except redis.RedisError as exc:
            raise RedisStoreError(f"failed to connect to redis: {exc}") from exc
        return cls(client)

    def set(self, key: str, value: Any, expiration: float | timedelta | None = 0) -> None:
        """Store ``value`` under ``key``; a zero expiration means no expiry."""
        seconds = _seconds(expiration)
        options: dict[str, Any] = {}
        if seconds < 0:
            options["keepttl"] = True
        elif seconds > 0:
            if seconds == int(seconds):
                options["ex"] = int(seconds)
            else:
                options["px"] = max(1, int(seconds * 1000))
        try:
            self.client.set(key, value, **options)
        except redis.RedisError as exc:
            raise RedisStoreError(str(exc)) from exc

    def get(self, key: str) -> str:
        """Return the string stored under ``key``."""
        try:
            value = self.client.get(key)
        except redis.RedisError as exc:
            raise RedisStoreError(str(exc)) from exc
        if value is None:
            raise KeyNotFound(key)
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)

    def delete(self, *keys: str) -> None:
        """Remove the given keys."""
        if not keys:
            return
        try:
            self.client.delete(*keys)
        except redis.RedisError as exc:
            raise RedisStoreError(str(exc)) from exc

    def exists(self, key: str) -> bool:
        """Tell whether ``key`` is present."""
        try:
            return self.client.exists(key) > 0
        except redis.RedisError as exc:
            raise RedisStoreError(str(exc)) from exc