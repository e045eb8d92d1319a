"""Short-TTL cache of resolved permission sets, backed by Redis.

Entries live for at most ``permission_cache_ttl_seconds`` (capped at five
minutes by configuration), which bounds how long a permission change can go
unnoticed if an invalidation is lost. Writes to user roles and overrides
invalidate the affected user; writes to a role's permissions invalidate
every holder of that role; catalog changes bump a global generation that
orphans all existing entries.

A cache read failure falls back to resolving from the database.
"""

import json
import logging
from typing import Iterable, Optional
from uuid import UUID

import redis

logger = logging.getLogger(__name__)


class PermissionCache:
    """Resolution cache keyed by user id."""

    def __init__(self, client: "redis.Redis", ttl_seconds: int, prefix: str = "workshop:perm"):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int) -> "PermissionCache":
        client = redis.from_url(url, socket_connect_timeout=2, socket_timeout=2)
        return cls(client, ttl_seconds)

    @property
    def _generation_key(self) -> str:
        return f"{self.prefix}:generation"

    def _generation(self) -> int:
        value = self.client.get(self._generation_key)
        return int(value) if value is not None else 0

    def _key(self, user_id: UUID, generation: int) -> str:
        return f"{self.prefix}:{generation}:{user_id}"

    def get(self, user_id: UUID) -> Optional[frozenset]:
        try:
            raw = self.client.get(self._key(user_id, self._generation()))
        except redis.RedisError as e:
            logger.warning("Permission cache read failed for %s: %s", user_id, e)
            return None
        if raw is None:
            return None
        return frozenset(json.loads(raw))

    def set(self, user_id: UUID, permissions: Iterable[str]) -> None:
        try:
            self.client.setex(
                self._key(user_id, self._generation()),
                self.ttl_seconds,
                json.dumps(sorted(permissions)),
            )
        except redis.RedisError as e:
            logger.warning("Permission cache write failed for %s: %s", user_id, e)

    def invalidate_user(self, user_id: UUID) -> None:
        self.invalidate_users([user_id])

    def invalidate_users(self, user_ids: Iterable[UUID]) -> None:
        user_ids = list(user_ids)
        if not user_ids:
            return
        try:
            generation = self._generation()
            self.client.delete(*(self._key(user_id, generation) for user_id in user_ids))
        except redis.RedisError:
            # Entries expire on their own within the TTL
            logger.exception("Permission cache invalidation failed for %d users", len(user_ids))

    def invalidate_all(self) -> None:
        try:
            self.client.incr(self._generation_key)
        except redis.RedisError:
            logger.exception("Permission cache generation bump failed")

    def ping(self) -> bool:
        return bool(self.client.ping())
