"""System role codes and seed role profiles.

Provides:
- ``SystemRoles`` — role codes created by seed data only.
- ``ROLE_PROFILES`` — role code → default policy rows for new tenants.
- ``profile_caps()`` — the caps map a profile resolves to on its own.
"""

from __future__ import annotations

from ..repositories import PolicyRow
from .constants import Level, merge_level
from .keys import cap_key


class SystemRoles:
    """Seeded role codes.

    ``SUPER_ADMIN`` exists only in the admin schema; ``ADMIN`` in every tenant.
    Both are system + immutable.
    """

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    PROJECT_MANAGER = "project_manager"

    IMMUTABLE = frozenset({"super_admin", "admin"})


# ── Role → Policy Profiles ──────────────────────────────

ROLE_PROFILES: dict[str, tuple[PolicyRow, ...]] = {
    SystemRoles.PROJECT_MANAGER: (
        PolicyRow(module="projects", level=Level.FULL),
        PolicyRow(module="gl", level=Level.VIEW),
        PolicyRow(module="ar", level=Level.VIEW),
        # Approvals are carved out of the module-wide view grant
        PolicyRow(module="ar", router="invoices", action="approve", level=Level.NONE),
    ),
}


def profile_caps(role_code: str) -> dict[str, Level]:
    """Caps map produced by a single profile. Unknown codes yield ``{}``."""
    caps: dict[str, Level] = {}
    for row in ROLE_PROFILES.get(role_code, ()):
        key = cap_key(row.module, row.router, row.action)
        caps[key] = merge_level(caps[key], row.level) if key in caps else Level.parse(row.level)
    return caps


__all__ = [
    "ROLE_PROFILES",
    "SystemRoles",
    "profile_caps",
]
