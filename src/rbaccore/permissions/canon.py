"""Permission canon — the resolved authorization snapshot for one (user, tenant).

The canon is immutable once computed. It is cached as-is and invalidated
(never mutated) when role, policy or membership data changes.

Wire form (JSON, also the input of :func:`canon_hash`)::

    {
      "caps": {"ar::::": "view", "ar::ar-invoices::approve": "none"},
      "scope": "assigned_companies",
      "projectIds": ["p1", "p2"],
      "companyIds": ["c1"],
      "stateFilters": {"ar::ar-invoices": ["approved", "sent"]},
      "fieldGroups": {"ar::ar-invoices": ["amount", "id", "status"]}
    }
"""

from __future__ import annotations

import hashlib
import json
from types import MappingProxyType
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from .constants import Level, Scope


class PermissionCanon(BaseModel):
    """Resolved permissions for one user in one tenant.

    ``project_ids`` / ``company_ids``: ``None`` means "unfiltered", an empty
    tuple means "sees nothing". The two must never be conflated.

    ``caps``, ``state_filters`` and ``field_groups`` are read-only mapping
    views; build a new canon instead of editing one.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    caps: Mapping[str, Level] = Field(default_factory=dict, validate_default=True)
    scope: Scope = Scope.ALL_PROJECTS
    project_ids: Optional[tuple[str, ...]] = Field(default=None, alias="projectIds")
    company_ids: Optional[tuple[str, ...]] = Field(default=None, alias="companyIds")
    state_filters: Mapping[str, tuple[str, ...]] = Field(default_factory=dict, alias="stateFilters", validate_default=True)
    field_groups: Mapping[str, tuple[str, ...]] = Field(default_factory=dict, alias="fieldGroups", validate_default=True)

    @field_validator("caps", "state_filters", "field_groups", mode="after")
    @classmethod
    def _read_only(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(value))

    @field_serializer("caps", "state_filters", "field_groups")
    def _plain_dict(self, value: Mapping[str, Any]) -> dict[str, Any]:
        return dict(value)

    @classmethod
    def empty(cls) -> "PermissionCanon":
        """Canon for a user with no roles: broadest scope, zero capabilities."""
        return cls()

    def to_wire(self) -> dict[str, Any]:
        """JSON-compatible dict using the wire field names."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "PermissionCanon":
        return cls.model_validate(data)


def _stable(value: Any) -> Any:
    """Recursively sort object keys and array elements for deterministic output."""
    if isinstance(value, (list, tuple)):
        items = [_stable(v) for v in value]
        return sorted(items, key=lambda v: json.dumps(v, sort_keys=True, separators=(",", ":")))
    if isinstance(value, dict):
        return {k: _stable(value[k]) for k in sorted(value)}
    return value


def canon_hash(canon: PermissionCanon) -> str:
    """Deterministic SHA-256 hex digest of a canon.

    Independent of key insertion order and array order, so resolving the same
    inputs twice always yields the same hash. Session tokens embed this value
    so clients can detect stale permissions out-of-band.
    """
    payload = json.dumps(_stable(canon.to_wire()), separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


__all__ = [
    "PermissionCanon",
    "canon_hash",
]
