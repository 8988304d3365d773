"""Permission cache — canon storage, staleness detection and invalidation.

Canons are stored per (user, tenant) under ``{prefix}:{user_id}:{tenant}``
as a JSON record::

    {"hash": "<sha256>", "version": 1, "updatedAt": "...", "perms": {<canon wire form>}}

Entries carry no TTL: they live until an invalidation trigger deletes them
(see :mod:`rbaccore.mutations`). The next request re-resolves and re-stores.

Failure handling:
- read/write errors are logged and treated as a miss (re-resolve);
- corrupt payloads are logged and treated as a miss;
- invalidation is best-effort and never raises.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Protocol, Union, runtime_checkable

import redis.asyncio as aioredis
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import RbacConfig
from .exceptions import (
    CacheUnavailableError,
    ConfigurationError,
    InvalidationError,
    RepositoryUnavailableError,
)
from .permissions.canon import PermissionCanon, canon_hash
from .repositories import RoleMembershipRepo
from .resolver import PolicyResolver

logger = logging.getLogger(__name__)


# ── Client port ──────────────────────────────────────────────


@runtime_checkable
class CacheClient(Protocol):
    """Minimal key/value store used for canon records."""

    async def get(self, key: str) -> Optional[Union[bytes, str]]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class RedisCacheClient:
    """:class:`CacheClient` on top of ``redis.asyncio``.

    Usage::

        client = RedisCacheClient.from_config(config)
        ...
        await client.aclose()
    """

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    @classmethod
    def from_url(cls, url: str) -> "RedisCacheClient":
        return cls(aioredis.from_url(url, decode_responses=True))

    @classmethod
    def from_config(cls, config: RbacConfig) -> "RedisCacheClient":
        if not config.redis_url:
            raise ConfigurationError("REDIS_URL is required for the permission cache")
        return cls.from_url(config.redis_url)

    async def get(self, key: str) -> Optional[Union[bytes, str]]:
        return await self._redis.get(key)

    async def set(self, key: str, value: str) -> None:
        await self._redis.set(key, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(key)

    async def aclose(self) -> None:
        await self._redis.aclose()


# ── Record ───────────────────────────────────────────────────


class CacheRecord(BaseModel):
    """Stored form of a canon."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    hash: str
    version: int = 1
    updated_at: datetime = Field(alias="updatedAt")
    perms: PermissionCanon

    @classmethod
    def for_canon(cls, canon: PermissionCanon, version: int = 1) -> "CacheRecord":
        return cls(
            hash=canon_hash(canon),
            version=version,
            updated_at=datetime.now(timezone.utc),
            perms=canon,
        )

    def dumps(self) -> str:
        return self.model_dump_json(by_alias=True)


# ── Cache ────────────────────────────────────────────────────


class PermissionCache:
    """Read-through canon cache in front of a :class:`PolicyResolver`.

    Args:
        client: Key/value store.
        resolver: Resolver used on a miss.
        memberships: Role membership port, used to fan out role invalidation.
        config: Engine config (key prefix, record version).
    """

    def __init__(
        self,
        client: CacheClient,
        resolver: PolicyResolver,
        memberships: RoleMembershipRepo,
        config: Optional[RbacConfig] = None,
    ) -> None:
        self._client = client
        self._resolver = resolver
        self._memberships = memberships
        self._config = config or RbacConfig()

    def key(self, user_id: str, tenant: str) -> str:
        return f"{self._config.cache_prefix}:{user_id}:{tenant}"

    # ── Read path ────────────────────────────────────────────

    async def get_record(self, user_id: str, tenant: str) -> Optional[CacheRecord]:
        """Cached record, or ``None`` on a miss, a corrupt payload or a record
        written under another ``cache_version``.

        Raises:
            CacheUnavailableError: The client read failed.
        """
        key = self.key(user_id, tenant)
        try:
            raw = await self._client.get(key)
        except Exception as e:
            raise CacheUnavailableError(f"Cache read failed for {key}: {e}", key=key) from e

        if raw is None:
            return None
        try:
            record = CacheRecord.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Corrupt permission cache entry %s, re-resolving: %s", key, e)
            return None
        if record.version != self._config.cache_version:
            logger.debug(
                "Permission cache entry %s has version %s, expected %s; re-resolving",
                key,
                record.version,
                self._config.cache_version,
            )
            return None
        return record

    async def store(self, user_id: str, tenant: str, canon: PermissionCanon) -> CacheRecord:
        """Write ``canon`` under the (user, tenant) key.

        Raises:
            CacheUnavailableError: The client write failed.
        """
        key = self.key(user_id, tenant)
        record = CacheRecord.for_canon(canon, self._config.cache_version)
        try:
            await self._client.set(key, record.dumps())
        except Exception as e:
            raise CacheUnavailableError(f"Cache write failed for {key}: {e}", key=key) from e
        return record

    async def load_record(self, user_id: str, tenant: str) -> CacheRecord:
        """Cached record on a hit; otherwise resolve, store and return a fresh one.

        A resolution with degraded layers is returned but never stored, so the
        next request retries the failed layers.

        Raises:
            RepositoryUnavailableError: Resolution could not start.
        """
        try:
            cached = await self.get_record(user_id, tenant)
        except CacheUnavailableError as e:
            logger.warning("%s; treating as miss", e.message)
            cached = None

        if cached is not None:
            return cached

        resolution = await self._resolver.resolve_detailed(tenant, user_id)
        if resolution.degraded:
            logger.warning(
                "Not caching degraded canon user=%s tenant=%s layers=%s",
                user_id,
                tenant,
                ",".join(resolution.degraded_layers),
            )
            return CacheRecord.for_canon(resolution.canon, self._config.cache_version)

        try:
            return await self.store(user_id, tenant, resolution.canon)
        except CacheUnavailableError as e:
            logger.warning("%s; serving uncached canon", e.message)
            return CacheRecord.for_canon(resolution.canon, self._config.cache_version)

    async def get_or_resolve(self, user_id: str, tenant: str) -> PermissionCanon:
        """Canon for (user, tenant), from cache when present."""
        return (await self.load_record(user_id, tenant)).perms

    async def is_token_stale(self, user_id: str, tenant: str, token_hash: Optional[str]) -> bool:
        """True when a session token's embedded canon hash differs from the current one.

        Tokens without a hash are never reported stale.
        """
        if not token_hash:
            return False
        record = await self.load_record(user_id, tenant)
        return bool(record.hash) and record.hash != token_hash

    # ── Invalidation ─────────────────────────────────────────

    async def invalidate_user(self, user_id: Optional[str], tenant: Optional[str]) -> bool:
        """Delete the cached canon for (user, tenant). Returns False on no-op or failure."""
        if not user_id or not tenant:
            return False
        key = self.key(user_id, tenant)
        try:
            await self._client.delete(key)
        except Exception as e:
            self._log_invalidation_error(
                InvalidationError(f"Permission cache invalidation failed for {key}: {e}", key=key)
            )
            return False
        logger.debug("Invalidated permission cache %s", key)
        return True

    async def invalidate_users(self, user_ids: Iterable[Optional[str]], tenant: Optional[str]) -> list[str]:
        """Invalidate each user; returns the ids whose entry was deleted."""
        invalidated: list[str] = []
        for user_id in dict.fromkeys(u for u in user_ids if u):
            if await self.invalidate_user(user_id, tenant):
                invalidated.append(user_id)
        return invalidated

    async def invalidate_role(self, role_id: Optional[str], tenant: Optional[str]) -> list[str]:
        """Invalidate every current holder of ``role_id``.

        Called after policy, state filter, field group grant or scope changes.
        """
        if not role_id or not tenant:
            return []
        try:
            user_ids = await self._memberships.users_for_role(tenant, role_id)
        except Exception as e:
            cause = e.message if isinstance(e, RepositoryUnavailableError) else e
            self._log_invalidation_error(
                InvalidationError(
                    f"Role invalidation skipped, member lookup failed role={role_id}: {cause}",
                    role_id=role_id,
                    tenant=tenant,
                )
            )
            return []
        return await self.invalidate_users(user_ids or (), tenant)

    @staticmethod
    def _log_invalidation_error(error: InvalidationError) -> None:
        logger.warning("%s", error.message, extra={"error_code": error.code, "details": error.details})


__all__ = [
    "CacheClient",
    "CacheRecord",
    "PermissionCache",
    "RedisCacheClient",
    "canon_hash",
]
