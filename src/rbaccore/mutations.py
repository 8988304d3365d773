"""Hooks administrative controllers call around RBAC data writes.

Two concerns:
- role guards, checked before a write (seeded roles are protected);
- cache invalidation, triggered after a successful write so the next
  request of every affected user re-resolves its canon.

Usage::

    hooks = RbacMutations(cache)

    hooks.guard_role_update(existing)
    await roles.update(existing.id, changes)
    await hooks.role_updated(existing.id, tenant)
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional, Union

from .cache import PermissionCache
from .exceptions import RoleGuardError
from .permissions.profiles import SystemRoles
from .repositories import Role

logger = logging.getLogger(__name__)

RoleLike = Union[Role, Mapping[str, Any]]


def _flag(role: Optional[RoleLike], name: str) -> bool:
    if role is None:
        return False
    if isinstance(role, Mapping):
        return bool(role.get(name))
    return bool(getattr(role, name, False))


class RbacMutations:
    """Role guards and invalidation triggers bound to one :class:`PermissionCache`."""

    def __init__(self, cache: PermissionCache) -> None:
        self._cache = cache

    # ── Role guards ──────────────────────────────────────────

    @staticmethod
    def guard_role_create(payload: Mapping[str, Any]) -> None:
        """System and immutable roles are created by seed data only.

        The seeded immutable role codes are reserved as well.
        """
        if _flag(payload, "is_system") or _flag(payload, "is_immutable"):
            raise RoleGuardError("Cannot create system or immutable roles via API")
        if str(payload.get("code") or "").strip().lower() in SystemRoles.IMMUTABLE:
            raise RoleGuardError(f"Role code {payload.get('code')!r} is reserved")

    @staticmethod
    def guard_role_update(existing: Optional[RoleLike], changes: Optional[Mapping[str, Any]] = None) -> None:
        """Immutable roles cannot be modified, scope included.

        Changes may not promote a role to system or immutable either.
        """
        if _flag(existing, "is_immutable"):
            raise RoleGuardError("Cannot modify an immutable role")
        if changes and (_flag(changes, "is_system") or _flag(changes, "is_immutable")):
            raise RoleGuardError("Cannot mark a role system or immutable via API")

    @staticmethod
    def guard_role_archive(existing: Optional[RoleLike]) -> None:
        if _flag(existing, "is_system"):
            raise RoleGuardError("Cannot archive a system role")

    # ── Role-level triggers ──────────────────────────────────

    async def policy_changed(self, role_id: Optional[str], tenant: str) -> list[str]:
        return await self._cache.invalidate_role(role_id, tenant)

    async def state_filter_changed(self, role_id: Optional[str], tenant: str) -> list[str]:
        return await self._cache.invalidate_role(role_id, tenant)

    async def field_group_grant_changed(self, role_id: Optional[str], tenant: str) -> list[str]:
        return await self._cache.invalidate_role(role_id, tenant)

    async def role_scope_changed(self, role_id: Optional[str], tenant: str) -> list[str]:
        return await self._cache.invalidate_role(role_id, tenant)

    async def role_updated(self, role_id: Optional[str], tenant: str) -> list[str]:
        """Any role update may change scope; members are invalidated unconditionally."""
        return await self._cache.invalidate_role(role_id, tenant)

    async def role_archived(self, role_id: Optional[str], tenant: str) -> list[str]:
        return await self._cache.invalidate_role(role_id, tenant)

    # ── Membership triggers ──────────────────────────────────

    async def membership_added(self, user_id: Optional[str], tenant: str) -> bool:
        return await self._cache.invalidate_user(user_id, tenant)

    async def membership_removed(self, user_id: Optional[str], tenant: str) -> bool:
        return await self._cache.invalidate_user(user_id, tenant)

    async def membership_synced(
        self,
        old_user_ids: Iterable[Optional[str]],
        new_user_ids: Iterable[Optional[str]],
        tenant: str,
    ) -> list[str]:
        """Invalidate users whose membership changed in a bulk replace.

        Only the symmetric difference of the two sets is affected; users present
        before and after keep their cached canon. Returns the affected ids.
        """
        old = {u for u in old_user_ids if u}
        new = {u for u in new_user_ids if u}
        affected = sorted(old ^ new)
        if affected:
            logger.info("Membership sync tenant=%s added=%d removed=%d", tenant, len(new - old), len(old - new))
            await self._cache.invalidate_users(affected, tenant)
        return affected


__all__ = [
    "RbacMutations",
]
