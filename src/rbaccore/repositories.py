"""Repository ports consumed by the RBAC engine.

The engine never talks to a database directly. Callers provide read-only
accessors for roles, policies, memberships, state filters and field groups
that satisfy the protocols below.

Contract for every method:
- "no data" is an empty list, never ``None``;
- infrastructure failures raise ``RepositoryUnavailableError`` so they are
  never mistaken for "no data" (and therefore never for a deny).

All methods are coroutines; the resolver awaits several of them concurrently.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence, runtime_checkable

from .permissions.constants import Level, Scope

# =========================================
# Row types
# =========================================


@dataclass(frozen=True)
class Role:
    """A named permission bundle.

    Immutable roles cannot be altered (scope included); system roles cannot
    be archived. See :mod:`rbaccore.mutations`.
    """

    id: str
    code: str
    scope: Scope = Scope.ALL_PROJECTS
    is_system: bool = False
    is_immutable: bool = False


@dataclass(frozen=True)
class PolicyRow:
    """Grant of ``level`` on (module, router, action). ``None`` router/action is a wildcard."""

    module: str
    router: Optional[str] = None
    action: Optional[str] = None
    level: Level = Level.NONE


@dataclass(frozen=True)
class ScopeRow:
    """Scope metadata of a held role."""

    id: str
    scope: Scope


@dataclass(frozen=True)
class StateFilterRow:
    """Visible record statuses for (module, router) under one role."""

    module: str
    router: Optional[str] = None
    visible_statuses: tuple[str, ...] = ()


@dataclass(frozen=True)
class FieldGroupDefinition:
    """Named set of columns for (module, router)."""

    id: str
    module: str
    router: Optional[str] = None
    group_name: str = ""
    columns: tuple[str, ...] = field(default_factory=tuple)
    is_default: bool = False


# =========================================
# Protocols
# =========================================


@runtime_checkable
class RoleMembershipRepo(Protocol):
    async def for_user(self, tenant: str, user_id: str) -> list[str]:
        """Role ids held by ``user_id`` in ``tenant``."""
        ...

    async def users_for_role(self, tenant: str, role_id: str) -> list[str]:
        """User ids currently holding ``role_id``. Used by role invalidation."""
        ...


@runtime_checkable
class PolicyRepo(Protocol):
    async def for_roles(self, tenant: str, role_ids: Sequence[str]) -> list[PolicyRow]: ...


@runtime_checkable
class RoleRepo(Protocol):
    async def for_roles(self, tenant: str, role_ids: Sequence[str]) -> list[ScopeRow]: ...


@runtime_checkable
class CompanyMembershipRepo(Protocol):
    async def for_user(self, tenant: str, user_id: str) -> list[str]:
        """Company ids the user belongs to."""
        ...


@runtime_checkable
class ProjectRepo(Protocol):
    async def for_companies(self, tenant: str, company_ids: Sequence[str]) -> list[str]:
        """Project ids owned by any of ``company_ids``."""
        ...


@runtime_checkable
class ProjectMembershipRepo(Protocol):
    async def for_user(self, tenant: str, user_id: str) -> list[str]:
        """Project ids the user is assigned to."""
        ...


@runtime_checkable
class StateFilterRepo(Protocol):
    async def for_roles(self, tenant: str, role_ids: Sequence[str]) -> list[StateFilterRow]: ...


@runtime_checkable
class FieldGroupGrantRepo(Protocol):
    async def for_roles(self, tenant: str, role_ids: Sequence[str]) -> list[str]:
        """Field group ids granted to any of ``role_ids``."""
        ...


@runtime_checkable
class FieldGroupDefRepo(Protocol):
    async def by_ids(self, tenant: str, ids: Sequence[str]) -> list[FieldGroupDefinition]: ...

    async def defaults(self, tenant: str) -> list[FieldGroupDefinition]:
        """Definitions flagged ``is_default``."""
        ...


@dataclass
class Repositories:
    """One implementation per port.

    A single object implementing several protocols may be passed for
    several slots.
    """

    memberships: RoleMembershipRepo
    policies: PolicyRepo
    roles: RoleRepo
    company_members: CompanyMembershipRepo
    projects: ProjectRepo
    project_members: ProjectMembershipRepo
    state_filters: StateFilterRepo
    field_group_grants: FieldGroupGrantRepo
    field_group_defs: FieldGroupDefRepo


__all__ = [
    "CompanyMembershipRepo",
    "FieldGroupDefRepo",
    "FieldGroupDefinition",
    "FieldGroupGrantRepo",
    "PolicyRepo",
    "PolicyRow",
    "ProjectMembershipRepo",
    "ProjectRepo",
    "Repositories",
    "Role",
    "RoleMembershipRepo",
    "RoleRepo",
    "ScopeRow",
    "StateFilterRepo",
    "StateFilterRow",
]
