"""Shared fixtures: in-memory repositories and cache clients."""

from __future__ import annotations

from collections import Counter
from typing import Optional, Sequence

import pytest

from rbaccore.cache import PermissionCache
from rbaccore.config import RbacConfig
from rbaccore.enforcement import Enforcer
from rbaccore.exceptions import RepositoryUnavailableError
from rbaccore.permissions.constants import Level, Scope
from rbaccore.repositories import (
    FieldGroupDefinition,
    PolicyRow,
    Repositories,
    Role,
    ScopeRow,
    StateFilterRow,
)
from rbaccore.resolver import PolicyResolver

TENANT = "acme"


class InMemoryRbacStore:
    """Single-tenant RBAC data with failure injection per port name."""

    def __init__(self, tenant: str = TENANT) -> None:
        self.tenant = tenant
        self.roles: dict[str, Role] = {}
        self.user_roles: dict[str, list[str]] = {}
        self.policies: dict[str, list[PolicyRow]] = {}
        self.company_members: dict[str, list[str]] = {}
        self.company_projects: dict[str, list[str]] = {}
        self.project_members: dict[str, list[str]] = {}
        self.state_filters: dict[str, list[StateFilterRow]] = {}
        self.field_groups: dict[str, FieldGroupDefinition] = {}
        self.field_group_grants: dict[str, list[str]] = {}
        self.failing: set[str] = set()
        self.calls: Counter = Counter()

    # ── Builders ─────────────────────────────────────────────

    def add_role(self, role_id: str, scope: Scope = Scope.ALL_PROJECTS, **flags) -> Role:
        role = Role(id=role_id, code=role_id, scope=scope, **flags)
        self.roles[role_id] = role
        return role

    def grant(self, user_id: str, *role_ids: str) -> None:
        self.user_roles.setdefault(user_id, []).extend(role_ids)

    def revoke(self, user_id: str, role_id: str) -> None:
        self.user_roles[user_id].remove(role_id)

    def add_policy(self, role_id: str, module: str, router=None, action=None, level="view") -> None:
        self.policies.setdefault(role_id, []).append(
            PolicyRow(module=module, router=router, action=action, level=Level(level))
        )

    def add_state_filter(self, role_id: str, module: str, router: str, statuses: Sequence[str]) -> None:
        self.state_filters.setdefault(role_id, []).append(
            StateFilterRow(module=module, router=router, visible_statuses=tuple(statuses))
        )

    def add_field_group(
        self,
        group_id: str,
        module: str,
        router: str,
        columns: Sequence[str],
        is_default: bool = False,
    ) -> None:
        self.field_groups[group_id] = FieldGroupDefinition(
            id=group_id,
            module=module,
            router=router,
            group_name=group_id,
            columns=tuple(columns),
            is_default=is_default,
        )

    def grant_field_group(self, role_id: str, group_id: str) -> None:
        self.field_group_grants.setdefault(role_id, []).append(group_id)

    def repositories(self) -> Repositories:
        return Repositories(
            memberships=_Memberships(self),
            policies=_Policies(self),
            roles=_Roles(self),
            company_members=_CompanyMembers(self),
            projects=_Projects(self),
            project_members=_ProjectMembers(self),
            state_filters=_StateFilters(self),
            field_group_grants=_FieldGroupGrants(self),
            field_group_defs=_FieldGroupDefs(self),
        )

    # ── Internals ────────────────────────────────────────────

    def _enter(self, port: str, tenant: str) -> bool:
        self.calls[port] += 1
        if port in self.failing:
            raise RepositoryUnavailableError(f"{port} is down")
        return tenant == self.tenant


class _Port:
    def __init__(self, store: InMemoryRbacStore) -> None:
        self.store = store


class _Memberships(_Port):
    async def for_user(self, tenant: str, user_id: str) -> list[str]:
        if not self.store._enter("memberships", tenant):
            return []
        return list(self.store.user_roles.get(user_id, []))

    async def users_for_role(self, tenant: str, role_id: str) -> list[str]:
        if not self.store._enter("users_for_role", tenant):
            return []
        return [u for u, roles in self.store.user_roles.items() if role_id in roles]


class _Policies(_Port):
    async def for_roles(self, tenant: str, role_ids: Sequence[str]) -> list[PolicyRow]:
        if not self.store._enter("policies", tenant):
            return []
        return [p for r in role_ids for p in self.store.policies.get(r, [])]


class _Roles(_Port):
    async def for_roles(self, tenant: str, role_ids: Sequence[str]) -> list[ScopeRow]:
        if not self.store._enter("roles", tenant):
            return []
        return [ScopeRow(id=r, scope=self.store.roles[r].scope) for r in role_ids if r in self.store.roles]


class _CompanyMembers(_Port):
    async def for_user(self, tenant: str, user_id: str) -> list[str]:
        if not self.store._enter("company_members", tenant):
            return []
        return list(self.store.company_members.get(user_id, []))


class _Projects(_Port):
    async def for_companies(self, tenant: str, company_ids: Sequence[str]) -> list[str]:
        if not self.store._enter("projects", tenant):
            return []
        return [p for c in company_ids for p in self.store.company_projects.get(c, [])]


class _ProjectMembers(_Port):
    async def for_user(self, tenant: str, user_id: str) -> list[str]:
        if not self.store._enter("project_members", tenant):
            return []
        return list(self.store.project_members.get(user_id, []))


class _StateFilters(_Port):
    async def for_roles(self, tenant: str, role_ids: Sequence[str]) -> list[StateFilterRow]:
        if not self.store._enter("state_filters", tenant):
            return []
        return [f for r in role_ids for f in self.store.state_filters.get(r, [])]


class _FieldGroupGrants(_Port):
    async def for_roles(self, tenant: str, role_ids: Sequence[str]) -> list[str]:
        if not self.store._enter("field_group_grants", tenant):
            return []
        return [g for r in role_ids for g in self.store.field_group_grants.get(r, [])]


class _FieldGroupDefs(_Port):
    async def by_ids(self, tenant: str, ids: Sequence[str]) -> list[FieldGroupDefinition]:
        if not self.store._enter("field_group_defs", tenant):
            return []
        return [self.store.field_groups[i] for i in ids if i in self.store.field_groups]

    async def defaults(self, tenant: str) -> list[FieldGroupDefinition]:
        if not self.store._enter("field_group_defaults", tenant):
            return []
        return [g for g in self.store.field_groups.values() if g.is_default]


class DictCacheClient:
    """In-memory CacheClient."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.calls: Counter = Counter()

    async def get(self, key: str) -> Optional[str]:
        self.calls["get"] += 1
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.calls["set"] += 1
        self.data[key] = value

    async def delete(self, key: str) -> None:
        self.calls["delete"] += 1
        self.data.pop(key, None)


class FailingCacheClient:
    """CacheClient whose every operation raises."""

    async def get(self, key: str) -> Optional[str]:
        raise ConnectionError("cache down")

    async def set(self, key: str, value: str) -> None:
        raise ConnectionError("cache down")

    async def delete(self, key: str) -> None:
        raise ConnectionError("cache down")


@pytest.fixture
def store() -> InMemoryRbacStore:
    return InMemoryRbacStore()


@pytest.fixture
def resolver(store: InMemoryRbacStore) -> PolicyResolver:
    return PolicyResolver(store.repositories())


@pytest.fixture
def config() -> RbacConfig:
    return RbacConfig()


@pytest.fixture
def cache_client() -> DictCacheClient:
    return DictCacheClient()


@pytest.fixture
def permission_cache(store, resolver, cache_client, config) -> PermissionCache:
    return PermissionCache(cache_client, resolver, store.repositories().memberships, config)


@pytest.fixture
def enforcer(permission_cache, config) -> Enforcer:
    return Enforcer(permission_cache, config)
