"""Permission levels and data scopes.

Provides:
- ``Level`` — capability level, total order ``none < view < full``.
- ``Scope`` — row-visibility breadth, ``assigned_projects < assigned_companies < all_projects``.
- ``merge_level()`` / ``satisfies()`` / ``widest_scope()`` — the only places
  the orders are compared.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable


class Level(str, Enum):
    """Capability level granted by a policy.

    Hierarchy: ``full`` > ``view`` > ``none``.
    """

    NONE = "none"
    VIEW = "view"
    FULL = "full"

    def rank(self) -> int:
        return _LEVEL_ORDER[self]

    @classmethod
    def parse(cls, value: "str | Level | None") -> "Level":
        """Coerce a stored level value. Unknown or missing values rank as ``none``."""
        if isinstance(value, Level):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.NONE


_LEVEL_ORDER = {Level.NONE: 0, Level.VIEW: 1, Level.FULL: 2}


class Scope(str, Enum):
    """Row-visibility breadth granted by a role.

    The broadest scope among all roles a user holds wins.
    """

    ASSIGNED_PROJECTS = "assigned_projects"
    ASSIGNED_COMPANIES = "assigned_companies"
    ALL_PROJECTS = "all_projects"

    def rank(self) -> int:
        return _SCOPE_ORDER[self]


_SCOPE_ORDER = {Scope.ASSIGNED_PROJECTS: 0, Scope.ASSIGNED_COMPANIES: 1, Scope.ALL_PROJECTS: 2}


# HTTP methods that only read; everything else requires full access by default
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def merge_level(a: Level | str, b: Level | str) -> Level:
    """Most-permissive merge of two levels: ``max(rank(a), rank(b))``.

    Example::

        merge_level("view", "full")  # Level.FULL
        merge_level("none", "view")  # Level.VIEW
    """
    la, lb = Level.parse(a), Level.parse(b)
    return la if la.rank() >= lb.rank() else lb


def satisfies(have: Level | str, required: Level | str) -> bool:
    """True when ``have`` ranks at or above ``required``."""
    return Level.parse(have).rank() >= Level.parse(required).rank()


def default_required_level(method: str | None) -> Level:
    """Level required by an HTTP method when no explicit hint is given."""
    return Level.VIEW if (method or "").upper() in SAFE_METHODS else Level.FULL


def widest_scope(scopes: Iterable[Scope | str]) -> Scope:
    """Broadest scope among ``scopes``; ``all_projects`` when there are none."""
    winner: Scope | None = None
    for raw in scopes:
        try:
            scope = Scope(raw)
        except ValueError:
            continue
        if winner is None or scope.rank() > winner.rank():
            winner = scope
    return winner or Scope.ALL_PROJECTS


__all__ = [
    "Level",
    "SAFE_METHODS",
    "Scope",
    "default_required_level",
    "merge_level",
    "satisfies",
    "widest_scope",
]
