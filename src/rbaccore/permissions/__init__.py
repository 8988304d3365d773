"""Capability model for the RBAC engine.

Defines:
- Level / Scope: ordered capability levels and data scopes
- ResourceKey: (module, router, action) targets and their capability keys
- PermissionCanon: resolved per-user snapshot, with canon_hash()
- effective_level(): most-specific-first capability lookup

Seed role profiles live in ``rbaccore.permissions.profiles``.
"""

from .canon import PermissionCanon, canon_hash
from .constants import (
    SAFE_METHODS,
    Level,
    Scope,
    default_required_level,
    merge_level,
    satisfies,
    widest_scope,
)
from .evaluator import effective_level, has_capability
from .keys import SEPARATOR, ResourceKey, cap_key, resource_key

__all__ = [
    "Level",
    "PermissionCanon",
    "ResourceKey",
    "SAFE_METHODS",
    "SEPARATOR",
    "Scope",
    "cap_key",
    "canon_hash",
    "default_required_level",
    "effective_level",
    "has_capability",
    "merge_level",
    "resource_key",
    "satisfies",
    "widest_scope",
]
