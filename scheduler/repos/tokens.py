"""Key-value stores holding the current refresh token of each user."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol

import redis

from scheduler.domain.errors import StoreUnavailableError


def refresh_token_key(user_id: str) -> str:
    return f"refreshToken:{user_id}"


class TokenStore(Protocol):
    def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    def get(self, key: str) -> str | None: ...

    def delete(self, key: str) -> None: ...

    def ping(self) -> bool: ...


class RedisTokenStore:
    """TokenStore backed by a Redis client.

    The client is expected to be created with ``decode_responses=True`` and
    socket timeouts; connection failures and timeouts surface as
    ``StoreUnavailableError``.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(
        cls, url: str, password: str | None = None, timeout: float = 2.0
    ) -> RedisTokenStore:
        client = redis.Redis.from_url(
            url,
            password=password,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self._client.set(key, value, ex=ttl_seconds)
        except redis.exceptions.RedisError as exc:
            raise StoreUnavailableError(f"redis SET failed: {exc}") from exc

    def get(self, key: str) -> str | None:
        try:
            return self._client.get(key)
        except redis.exceptions.RedisError as exc:
            raise StoreUnavailableError(f"redis GET failed: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.exceptions.RedisError as exc:
            raise StoreUnavailableError(f"redis DEL failed: {exc}") from exc

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.exceptions.RedisError as exc:
            raise StoreUnavailableError(f"redis PING failed: {exc}") from exc


class MemoryTokenStore:
    """Dict-backed TokenStore with per-key expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._store: dict[str, tuple[str, float]] = {}

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        now = self._clock()
        self._purge(now)
        self._store[key] = (value, now + ttl_seconds)

    def _purge(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._store.items() if now >= expires_at]
        for k in expired:
            del self._store[k]

    def get(self, key: str) -> str | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._store.pop(key, None)
            return None
        return value

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def ping(self) -> bool:
        return True
