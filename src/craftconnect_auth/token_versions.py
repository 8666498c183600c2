"""Per-subject refresh-token version stores.

This module provides implementations of the TokenVersionStore protocol used
for refresh-token rotation.

Implementations:
- InMemoryTokenVersions: In-process counters (good for dev/single-instance)
- RedisTokenVersions: Distributed counters via Redis (multi-instance production)

How rotation uses them:
    Every refresh token embeds the subject's version at issuance. On refresh
    the store is bumped first and the presented version must be exactly one
    behind the result. Bumping first keeps the check atomic on Redis (INCR),
    and a replayed token still bumps, which kills every outstanding refresh
    token of that subject.

Security Note:
    Without a version store a stolen refresh token stays valid until its
    natural 7-day expiry, even after the legitimate client has rotated.
"""

from __future__ import annotations

import threading
from typing import Any, Final

_DEFAULT_PREFIX: Final[str] = "cc:token_version:"


class InMemoryTokenVersions:
    """Thread-safe in-process version counters.

    Example:
        ```python
        versions = InMemoryTokenVersions()
        versions.current("u1")  # 0
        versions.bump("u1")     # 1
        ```

    Attributes:
        _versions: Mapping uid -> current version.
        _lock: Guards read-modify-write across request threads.
    """

    def __init__(self) -> None:
        self._versions: dict[str, int] = {}
        self._lock = threading.Lock()

    def current(self, uid: str) -> int:
        with self._lock:
            return self._versions.get(uid, 0)

    def bump(self, uid: str) -> int:
        with self._lock:
            version = self._versions.get(uid, 0) + 1
            self._versions[uid] = version
            return version


class RedisTokenVersions:
    """Redis-backed version counters shared by every app instance.

    Storage Format:
        One integer key per subject, ``<prefix><uid>``, maintained with INCR.
        Keys carry no TTL: a subject's version must never go backwards.

    Dependencies:
        Requires a redis-py compatible client: pip install redis

    Attributes:
        _client: Redis client instance.
        _prefix: Key namespace.
    """

    def __init__(self, redis_client: Any, prefix: str = _DEFAULT_PREFIX) -> None:
        """Initialize Redis-backed versions.

        Args:
            redis_client: Redis client instance (from the redis package).
                Must support get() and incr().
            prefix: Key namespace.

        Note:
            The type is Any to avoid a hard dependency on redis package types.
        """
        self._client = redis_client
        self._prefix = prefix

    def _key(self, uid: str) -> str:
        return f"{self._prefix}{uid}"

    def current(self, uid: str) -> int:
        """Return the stored version, 0 when absent.

        Raises:
            RuntimeError: If the stored value is not an integer.
        """
        raw = self._client.get(self._key(uid))
        if raw is None:
            return 0
        try:
            return int(raw)
        except (TypeError, ValueError) as e:
            raise RuntimeError("Corrupted token version in Redis") from e

    def bump(self, uid: str) -> int:
        """Increment the version with INCR.

        Raises:
            RuntimeError: If the Redis operation fails.
        """
        try:
            return int(self._client.incr(self._key(uid)))
        except Exception as e:
            raise RuntimeError("Failed to bump token version in Redis") from e
