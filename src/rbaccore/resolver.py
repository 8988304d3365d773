"""Policy resolver — aggregates the four RBAC layers into one permission canon.

Layers:
1. Capabilities   — policies of every held role, most-permissive merge per key.
2. Data scope     — broadest scope among held roles, plus the project/company ids it implies.
3. State filters  — union of visible statuses per resource.
4. Field groups   — union of granted columns per resource, plus default groups
                    for resources with at least one explicit grant.

The layers are independent: after the membership read they are resolved
concurrently and joined. A failure in one layer degrades that layer to its
empty value instead of aborting the resolution; the degraded layer names are
reported so the cache layer can refuse to store a partial canon.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Iterable, Optional, Sequence

from .exceptions import RepositoryUnavailableError
from .permissions.canon import PermissionCanon
from .permissions.constants import Level, Scope, merge_level, widest_scope
from .permissions.keys import cap_key, resource_key
from .repositories import Repositories

logger = logging.getLogger(__name__)

LAYER_CAPS = "caps"
LAYER_SCOPE = "scope"
LAYER_STATE_FILTERS = "state_filters"
LAYER_FIELD_GROUPS = "field_groups"

_ScopeLayer = tuple[Scope, Optional[tuple[str, ...]], Optional[tuple[str, ...]]]
_EMPTY_SCOPE: _ScopeLayer = (Scope.ALL_PROJECTS, None, None)


@dataclass(frozen=True)
class Resolution:
    """Resolved canon plus the names of layers that fell back to their empty value."""

    canon: PermissionCanon
    degraded_layers: tuple[str, ...] = ()

    @property
    def degraded(self) -> bool:
        return bool(self.degraded_layers)


def _sorted_unique(values: Iterable[Any]) -> tuple[str, ...]:
    return tuple(sorted({str(v) for v in values if v is not None}))


class PolicyResolver:
    """Builds a :class:`PermissionCanon` for a (tenant, user) pair from repository reads.

    Args:
        repos: Repository ports bundle.

    Usage::

        resolver = PolicyResolver(repos)
        canon = await resolver.resolve("acme", user_id)
    """

    def __init__(self, repos: Repositories) -> None:
        self._repos = repos

    async def resolve(self, tenant: str, user_id: str) -> PermissionCanon:
        """Resolve the canon, ignoring which layers (if any) degraded."""
        return (await self.resolve_detailed(tenant, user_id)).canon

    async def resolve_detailed(self, tenant: str, user_id: str) -> Resolution:
        """Resolve the canon and report degraded layers.

        Raises:
            RepositoryUnavailableError: The role membership read failed. Without
                it no layer can be resolved, so this is not degraded silently.
        """
        if not tenant or not user_id:
            return Resolution(PermissionCanon.empty())

        try:
            raw_role_ids = await self._repos.memberships.for_user(tenant, user_id)
        except RepositoryUnavailableError:
            raise
        except Exception as e:
            raise RepositoryUnavailableError(
                f"Role membership read failed: {e}",
                tenant=tenant,
                user_id=user_id,
            ) from e

        role_ids = _sorted_unique(raw_role_ids or ())
        if not role_ids:
            # No roles: broadest scope, but zero capabilities, so everything is denied
            logger.debug("No role memberships for user=%s tenant=%s", user_id, tenant)
            return Resolution(PermissionCanon.empty())

        degraded: list[str] = []
        caps, scope_layer, state_filters, field_groups = await asyncio.gather(
            self._guard(LAYER_CAPS, self._resolve_caps(tenant, role_ids), {}, degraded),
            self._guard(LAYER_SCOPE, self._resolve_scope(tenant, user_id, role_ids), _EMPTY_SCOPE, degraded),
            self._guard(LAYER_STATE_FILTERS, self._resolve_state_filters(tenant, role_ids), {}, degraded),
            self._guard(LAYER_FIELD_GROUPS, self._resolve_field_groups(tenant, role_ids), {}, degraded),
        )
        scope, project_ids, company_ids = scope_layer

        canon = PermissionCanon(
            caps=caps,
            scope=scope,
            project_ids=project_ids,
            company_ids=company_ids,
            state_filters=state_filters,
            field_groups=field_groups,
        )
        logger.debug(
            "Resolved canon user=%s tenant=%s roles=%d caps=%d scope=%s degraded=%s",
            user_id,
            tenant,
            len(role_ids),
            len(caps),
            scope.value,
            degraded or "-",
        )
        return Resolution(canon, tuple(sorted(degraded)))

    @staticmethod
    async def _guard(name: str, coro: Awaitable[Any], default: Any, degraded: list[str]) -> Any:
        try:
            return await coro
        except Exception as e:
            logger.error("RBAC layer '%s' failed, using empty value: %s", name, e)
            degraded.append(name)
            return default

    # ── Layer 1: capabilities ────────────────────────────────────

    async def _resolve_caps(self, tenant: str, role_ids: Sequence[str]) -> dict[str, Level]:
        policies = await self._repos.policies.for_roles(tenant, role_ids)
        caps: dict[str, Level] = {}
        for policy in policies:
            key = cap_key(policy.module, policy.router, policy.action)
            caps[key] = merge_level(caps[key], policy.level) if key in caps else Level.parse(policy.level)
        return caps

    # ── Layer 2: data scope ──────────────────────────────────────

    async def _resolve_scope(self, tenant: str, user_id: str, role_ids: Sequence[str]) -> _ScopeLayer:
        rows = await self._repos.roles.for_roles(tenant, role_ids)
        scope = widest_scope(row.scope for row in rows)

        if scope is Scope.ASSIGNED_COMPANIES:
            company_ids = _sorted_unique(await self._repos.company_members.for_user(tenant, user_id))
            # No company → empty (sees nothing), never None (unfiltered)
            project_ids: tuple[str, ...] = ()
            if company_ids:
                project_ids = _sorted_unique(await self._repos.projects.for_companies(tenant, company_ids))
            return scope, project_ids, company_ids

        if scope is Scope.ASSIGNED_PROJECTS:
            project_ids = _sorted_unique(await self._repos.project_members.for_user(tenant, user_id))
            return scope, project_ids, None

        return scope, None, None

    # ── Layer 3: state filters ───────────────────────────────────

    async def _resolve_state_filters(self, tenant: str, role_ids: Sequence[str]) -> dict[str, tuple[str, ...]]:
        rows = await self._repos.state_filters.for_roles(tenant, role_ids)
        visible: dict[str, set[str]] = {}
        for row in rows:
            visible.setdefault(resource_key(row.module, row.router), set()).update(row.visible_statuses)
        return {key: tuple(sorted(statuses)) for key, statuses in visible.items()}

    # ── Layer 4: field groups ────────────────────────────────────

    async def _resolve_field_groups(self, tenant: str, role_ids: Sequence[str]) -> dict[str, tuple[str, ...]]:
        grant_ids = _sorted_unique(await self._repos.field_group_grants.for_roles(tenant, role_ids))
        if not grant_ids:
            return {}

        columns: dict[str, set[str]] = {}
        for definition in await self._repos.field_group_defs.by_ids(tenant, grant_ids):
            columns.setdefault(resource_key(definition.module, definition.router), set()).update(definition.columns)

        if columns:
            for definition in await self._repos.field_group_defs.defaults(tenant):
                key = resource_key(definition.module, definition.router)
                # Defaults only widen resources that already carry an explicit grant
                if key in columns:
                    columns[key].update(definition.columns)

        return {key: tuple(sorted(cols)) for key, cols in columns.items()}


__all__ = [
    "LAYER_CAPS",
    "LAYER_FIELD_GROUPS",
    "LAYER_SCOPE",
    "LAYER_STATE_FILTERS",
    "PolicyResolver",
    "Resolution",
]
