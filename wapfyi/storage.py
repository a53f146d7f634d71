"""Storage for proof-of-work challenges and short URL mappings."""

from __future__ import annotations

import logging
import os
import threading
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

import redis

log = logging.getLogger(__name__)

EXPIRY_SECONDS = 24 * 60 * 60
DEFAULT_REDIS_ADDR = "localhost:6379"


class StorageError(Exception):
    """Raised when the storage backend fails."""


class ChallengeStorage(ABC):
    """Keeps challenges with their solved state, and short URL mappings."""

    @abstractmethod
    def store(self, challenge: str, solved: bool) -> None:
        """Record ``challenge`` with its solved state."""

    @abstractmethod
    def get(self, challenge: str) -> bool | None:
        """Return the solved state of ``challenge``, or None if it is unknown."""

    @abstractmethod
    def store_url(self, path: str, full_url: str) -> None:
        """Map ``path`` to ``full_url``."""

    @abstractmethod
    def get_url(self, path: str) -> str | None:
        """Return the URL mapped to ``path``, or None if there is none."""

    @abstractmethod
    def close(self) -> None:
        """Release the backend's resources."""

    def __enter__(self) -> ChallengeStorage:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class RedisStorage(ChallengeStorage):
    """Storage in Redis or Valkey; entries expire after 24 hours."""

    def __init__(
        self,
        addr: str | None = None,
        password: str | None = None,
        db: int = 0,
        client: Any = None,
    ) -> None:
        if client is None:
            host, _, port = (addr or DEFAULT_REDIS_ADDR).rpartition(":")
            try:
                client = redis.Redis(
                    host=host or "localhost",
                    port=int(port),
                    password=password or None,
                    db=db,
                    socket_connect_timeout=5,
                )
            except ValueError as exc:
                raise StorageError(f"invalid Redis address {addr!r}") from exc
        try:
            client.ping()
        except redis.RedisError as exc:
            raise StorageError(f"failed to connect to Redis: {exc}") from exc
        self._client = client

    @staticmethod
    def _text(value: Any) -> str:
        return value.decode("utf-8") if isinstance(value, bytes) else str(value)

    def store(self, challenge: str, solved: bool) -> None:
        try:
            self._client.set(
                f"challenge:{challenge}", "1" if solved else "0", ex=EXPIRY_SECONDS
            )
        except redis.RedisError as exc:
            raise StorageError(f"failed to store challenge in Redis: {exc}") from exc

    def get(self, challenge: str) -> bool | None:
        try:
            value = self._client.get(f"challenge:{challenge}")
        except redis.RedisError as exc:
            raise StorageError(f"failed to get challenge from Redis: {exc}") from exc
        if value is None:
            return None
        return self._text(value) == "1"

    def store_url(self, path: str, full_url: str) -> None:
        try:
            self._client.set(f"url:{path}", full_url, ex=EXPIRY_SECONDS)
        except redis.RedisError as exc:
            raise StorageError(f"failed to store URL in Redis: {exc}") from exc

    def get_url(self, path: str) -> str | None:
        try:
            value = self._client.get(f"url:{path}")
        except redis.RedisError as exc:
            raise StorageError(f"failed to get URL from Redis: {exc}") from exc
        return None if value is None else self._text(value)

    def close(self) -> None:
        self._client.close()


class LocalMapStorage(ChallengeStorage):
    """In-memory, thread-safe storage."""

    def __init__(self) -> None:
        self._challenges: dict[str, bool] = {}
        self._urls: dict[str, str] = {}
        self._lock = threading.Lock()

    def store(self, challenge: str, solved: bool) -> None:
        with self._lock:
            self._challenges[challenge] = solved

    def get(self, challenge: str) -> bool | None:
        with self._lock:
            return self._challenges.get(challenge)

    def store_url(self, path: str, full_url: str) -> None:
        with self._lock:
            self._urls[path] = full_url

    def get_url(self, path: str) -> str | None:
        with self._lock:
            return self._urls.get(path)

    def close(self) -> None:
        pass


def create_storage(environ: Mapping[str, str] | None = None) -> ChallengeStorage:
    """Pick a storage backend from the environment.

    Redis is used when ``USE_REDIS`` is ``true`` or ``ENV`` is ``production``;
    if it cannot be reached, in-memory storage is used instead.
    """
    env = os.environ if environ is None else environ
    if env.get("USE_REDIS") == "true" or env.get("ENV") == "production":
        try:
            storage = RedisStorage(
                env.get("REDIS_ADDR") or None, env.get("REDIS_PASSWORD") or None, 0
            )
        except StorageError as exc:
            log.warning(
                "Failed to initialize Redis storage: %s. Falling back to local storage.",
                exc,
            )
            return LocalMapStorage()
        log.info("Using Redis storage for challenges")
        return storage

    log.info("Using local map storage for challenges")
    return LocalMapStorage()