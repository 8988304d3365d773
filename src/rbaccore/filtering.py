"""Result filter — applies query context layers 2-4 to list queries and records.

Used by data-access callers, not by the enforcer. For each table, a
:class:`ResourceBinding` names the columns the layers act on. Bypass roles
(super role and tenant admin) skip all filtering.

Example::

    binding = ResourceBinding("ar", "ar-invoices", scope_column="project_id")
    result = apply_list_filters(canon, actor.role, binding, [{"deleted_at": None}], ["id", "amount"])
    rows = await model.find_where(result.where(), column_whitelist=result.column_whitelist)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from .config import RbacConfig
from .permissions.canon import PermissionCanon
from .permissions.constants import Scope
from .query_context import QueryContext, build_query_context

_DEFAULT_CONFIG = RbacConfig()


@dataclass(frozen=True)
class ResourceBinding:
    """Column mapping of one table onto the RBAC layers.

    Attributes:
        module: Module name (e.g. ``"ar"``).
        router: Router name (e.g. ``"ar-invoices"``).
        scope_column: Project-id column (``"id"`` for the projects table
            itself, ``"company_id"`` for company-keyed tables).
        status_column: Column the state filter applies to.
        primary_key: Column that is always visible.
        company_column: Column name that marks a table as company-keyed.
    """

    module: str
    router: str = ""
    scope_column: str = "project_id"
    status_column: str = "status"
    primary_key: str = "id"
    company_column: str = "company_id"

    @property
    def company_keyed(self) -> bool:
        return self.scope_column == self.company_column


@dataclass(frozen=True)
class Predicate:
    """Membership predicate ``column IN values``.

    An empty ``values`` tuple matches no rows; it must never be dropped.
    """

    column: str
    values: tuple[str, ...]

    @property
    def matches_nothing(self) -> bool:
        return not self.values

    def to_condition(self) -> dict[str, dict[str, list[str]]]:
        """Condition in the ``{column: {"$in": [...]}}`` form used by the storage layer."""
        return {self.column: {"$in": list(self.values)}}

    def matches(self, record: Mapping[str, Any]) -> bool:
        value = record.get(self.column)
        return value is not None and str(value) in self.values


@dataclass(frozen=True)
class ListFilter:
    """Caller conditions, RBAC predicates and column whitelist for a list query.

    ``column_whitelist=None`` means "all columns".
    """

    conditions: tuple[Any, ...] = ()
    predicates: tuple[Predicate, ...] = ()
    column_whitelist: Optional[tuple[str, ...]] = None

    def where(self) -> list[Any]:
        """Caller conditions followed by the RBAC predicates as storage conditions."""
        return [*self.conditions, *(p.to_condition() for p in self.predicates)]

    def matches(self, record: Mapping[str, Any]) -> bool:
        return all(p.matches(record) for p in self.predicates)


def scope_predicate(ctx: QueryContext, binding: ResourceBinding) -> Optional[Predicate]:
    """Row-scope predicate for the context, or ``None`` when rows are unscoped."""
    if ctx.scope is Scope.ASSIGNED_PROJECTS:
        if ctx.project_ids is not None:
            return Predicate(binding.scope_column, ctx.project_ids)
        return None

    if ctx.scope is Scope.ASSIGNED_COMPANIES:
        if binding.company_keyed:
            if ctx.company_ids is not None:
                return Predicate(binding.company_column, ctx.company_ids)
            return None
        # Project-keyed tables fall back to the projects owned by the user's companies
        if ctx.project_ids is not None:
            return Predicate(binding.scope_column, ctx.project_ids)

    return None


def status_predicate(ctx: QueryContext, binding: ResourceBinding) -> Optional[Predicate]:
    if ctx.visible_statuses is None:
        return None
    return Predicate(binding.status_column, ctx.visible_statuses)


def narrow_columns(
    allowed: Optional[Sequence[str]],
    whitelist: Optional[Sequence[str]],
    primary_key: str = "id",
) -> Optional[tuple[str, ...]]:
    """Narrow a caller whitelist to the allowed columns.

    - ``allowed is None`` → the caller whitelist is returned untouched.
    - otherwise the result is ``(whitelist or allowed) ∩ allowed``, always
      led by ``primary_key``. An empty intersection yields ``(primary_key,)``;
      an empty tuple is never returned because it would read as "no restriction".
    """
    if allowed is None:
        return tuple(whitelist) if whitelist else None

    allowed_set = set(allowed)
    requested = whitelist if whitelist else allowed
    narrowed = [primary_key]
    for column in requested:
        if column in allowed_set and column not in narrowed:
            narrowed.append(column)
    return tuple(narrowed)


def apply_list_filters(
    canon: Optional[PermissionCanon],
    role: Optional[str],
    binding: ResourceBinding,
    conditions: Optional[Sequence[Any]] = None,
    column_whitelist: Optional[Sequence[str]] = None,
    *,
    config: Optional[RbacConfig] = None,
) -> ListFilter:
    """Translate the canon into predicates and a column whitelist for a list query.

    Args:
        canon: Resolved permission canon for the actor.
        role: Actor's system role code (bypass roles skip filtering).
        binding: Column mapping of the queried table.
        conditions: Caller conditions, passed through ahead of the predicates.
        column_whitelist: Columns requested by the caller (``None`` = all).
        config: Engine config naming the bypass roles.
    """
    cfg = config or _DEFAULT_CONFIG
    caller_conditions = tuple(conditions or ())
    if cfg.is_bypass_role(role):
        return ListFilter(
            conditions=caller_conditions,
            column_whitelist=tuple(column_whitelist) if column_whitelist else None,
        )

    ctx = build_query_context(canon, binding.module, binding.router)
    predicates = tuple(
        p for p in (scope_predicate(ctx, binding), status_predicate(ctx, binding)) if p is not None
    )
    return ListFilter(
        conditions=caller_conditions,
        predicates=predicates,
        column_whitelist=narrow_columns(ctx.allowed_columns, column_whitelist, binding.primary_key),
    )


def filter_record(
    canon: Optional[PermissionCanon],
    role: Optional[str],
    binding: ResourceBinding,
    record: Optional[Mapping[str, Any]],
    *,
    config: Optional[RbacConfig] = None,
) -> Optional[Mapping[str, Any]]:
    """Strip columns the actor may not see from a single fetched record.

    ``None`` records and unrestricted resources are returned unchanged.
    """
    if record is None:
        return None

    cfg = config or _DEFAULT_CONFIG
    if cfg.is_bypass_role(role):
        return record

    allowed = build_query_context(canon, binding.module, binding.router).allowed_columns
    if allowed is None:
        return record

    visible = set(allowed) | {binding.primary_key}
    return {key: value for key, value in record.items() if key in visible}


__all__ = [
    "ListFilter",
    "Predicate",
    "ResourceBinding",
    "apply_list_filters",
    "filter_record",
    "narrow_columns",
    "scope_predicate",
    "status_predicate",
]
