"""Resource keys for capability lookup.

A capability key is ``"{module}::{router}::{action}"`` where an empty
segment is a wildcard ("applies to all routers/actions"). Per-resource
layers (state filters, field groups) key on ``"{module}::{router}"``.
"""

from __future__ import annotations

from dataclasses import dataclass

SEPARATOR = "::"


@dataclass(frozen=True)
class ResourceKey:
    """Target of an authorization decision.

    ``None`` and ``""`` are equivalent for ``router`` and ``action``.

    Example::

        key = ResourceKey("ar", "ar-invoices", "approve")
        key.cap_key()      # "ar::ar-invoices::approve"
        key.lookup_keys()  # ("ar::ar-invoices::approve", "ar::ar-invoices::", "ar::::")
        key.resource_key() # "ar::ar-invoices"
    """

    module: str
    router: str = ""
    action: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "module", self.module or "")
        object.__setattr__(self, "router", self.router or "")
        object.__setattr__(self, "action", self.action or "")

    def cap_key(self) -> str:
        return cap_key(self.module, self.router, self.action)

    def lookup_keys(self) -> tuple[str, ...]:
        """Capability keys ordered most specific first.

        Only the first key present in a caps map is used; levels are never
        merged across specificity.
        """
        return (
            cap_key(self.module, self.router, self.action),
            cap_key(self.module, self.router, ""),
            cap_key(self.module, "", ""),
        )

    def resource_key(self) -> str:
        return resource_key(self.module, self.router)

    @classmethod
    def parse(cls, key: str) -> "ResourceKey":
        """Inverse of :meth:`cap_key`."""
        parts = key.split(SEPARATOR)
        if len(parts) != 3:
            raise ValueError(f"Invalid capability key: {key!r}")
        return cls(*parts)


def cap_key(module: str | None, router: str | None = None, action: str | None = None) -> str:
    """Build a capability key; ``None`` segments become wildcards."""
    return SEPARATOR.join((module or "", router or "", action or ""))


def resource_key(module: str | None, router: str | None = None) -> str:
    """Build the per-resource key used by state filters and field groups."""
    return f"{module or ''}{SEPARATOR}{router or ''}"


__all__ = [
    "ResourceKey",
    "SEPARATOR",
    "cap_key",
    "resource_key",
]
