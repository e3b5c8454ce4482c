from __future__ import annotations

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import redis

logger = logging.getLogger(__name__)


def _to_bool(value: Optional[str], default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class KeyValueStore(ABC):
    """Persisted key-value provider; values are JSON-compatible objects."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    def close(self) -> None:
        pass

    def __enter__(self) -> "KeyValueStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class MemoryKeyValueStore(KeyValueStore):

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        encoded = json.dumps(value)
        with self._lock:
            self._data[key] = encoded

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


@dataclass(frozen=True)
class RedisConfig:
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    key_prefix: str = "cliptrail:"

    @classmethod
    def from_env(cls) -> "RedisConfig":
        uri = os.getenv("REDIS_URI")
        prefix = os.getenv("CLIPTRAIL_KEY_PREFIX", cls.key_prefix)
        if uri:
            return cls.from_uri(uri, key_prefix=prefix)

        host = os.getenv("REDIS_HOST", cls.host)
        port_raw = os.getenv("REDIS_PORT")
        db_raw = os.getenv("REDIS_DB")
        password = os.getenv("REDIS_PASSWORD") or None

        port = int(port_raw) if port_raw else cls.port
        db = int(db_raw) if db_raw else cls.db

        return cls(host=host, port=port, db=db, password=password, key_prefix=prefix)

    @classmethod
    def from_uri(cls, uri: str, key_prefix: str = "cliptrail:") -> "RedisConfig":
        parsed = urlparse(uri)
        if parsed.scheme not in {"redis", "rediss"}:
            raise ValueError(
                f"Unsupported Redis URI scheme: {parsed.scheme!r}")

        host = parsed.hostname or cls.host
        port = parsed.port or cls.port
        password = parsed.password or None
        db_fragment = parsed.path.lstrip("/")
        db = int(db_fragment) if db_fragment else cls.db

        return cls(host=host, port=port, db=db, password=password, key_prefix=key_prefix)

    def create_store(self) -> "RedisKeyValueStore":
        client = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        return RedisKeyValueStore(client, key_prefix=self.key_prefix)


class RedisKeyValueStore(KeyValueStore):

    def __init__(self, client: "redis.Redis", key_prefix: str = "cliptrail:") -> None:
        self.client = client
        self.key_prefix = key_prefix
        self._test_connection()

    def _test_connection(self) -> None:
        try:
            self.client.ping()
        except redis.ConnectionError:
            logger.error("Redis is not reachable")
            raise

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def get(self, key: str, default: Any = None) -> Any:
        raw = self.client.get(self._key(key))
        if raw is None:
            return default
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self.client.set(self._key(key), json.dumps(value))

    def delete(self, key: str) -> None:
        self.client.delete(self._key(key))

    def close(self) -> None:
        self.client.close()
