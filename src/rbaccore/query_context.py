"""Query context — projects a canon onto one (module, router) resource.

Layers 2-4 narrow query results after layer 1 grants access at the route
level. ``None`` in any field means the layer does not apply (permissive
default). Pure: no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .permissions.canon import PermissionCanon
from .permissions.constants import Scope
from .permissions.keys import resource_key


@dataclass(frozen=True)
class QueryContext:
    """Concrete query modifiers for one resource."""

    # Layer 2: data scoping
    scope: Scope = Scope.ALL_PROJECTS
    project_ids: Optional[tuple[str, ...]] = None
    company_ids: Optional[tuple[str, ...]] = None
    # Layer 3: status filtering
    visible_statuses: Optional[tuple[str, ...]] = None
    # Layer 4: column restriction
    allowed_columns: Optional[tuple[str, ...]] = None

    @property
    def unrestricted(self) -> bool:
        return (
            self.scope is Scope.ALL_PROJECTS
            and self.visible_statuses is None
            and self.allowed_columns is None
        )


PERMISSIVE_CONTEXT = QueryContext()


def build_query_context(canon: Optional[PermissionCanon], module: str, router: Optional[str]) -> QueryContext:
    """Build query modifiers from the canon for a specific resource.

    Args:
        canon: Resolved permission canon (``None`` → permissive defaults).
        module: Module name (e.g. ``"ar"``).
        router: Router name (e.g. ``"ar-invoices"``).
    """
    if canon is None:
        return PERMISSIVE_CONTEXT

    key = resource_key(module, router)
    return QueryContext(
        scope=canon.scope,
        project_ids=canon.project_ids,
        company_ids=canon.company_ids,
        visible_statuses=canon.state_filters.get(key),
        allowed_columns=canon.field_groups.get(key),
    )


__all__ = [
    "PERMISSIVE_CONTEXT",
    "QueryContext",
    "build_query_context",
]
