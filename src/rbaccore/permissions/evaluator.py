"""Capability evaluation against a resolved caps map."""

from __future__ import annotations

import logging
from typing import Mapping

from .constants import Level, satisfies
from .keys import ResourceKey

logger = logging.getLogger(__name__)


def effective_level(
    caps: Mapping[str, Level | str],
    module: str,
    router: str | None = None,
    action: str | None = None,
) -> Level:
    """Resolve the effective level for a (module, router, action) triple.

    Checks in order, returning the first key PRESENT in ``caps``:
    1. ``module::router::action``
    2. ``module::router::``
    3. ``module::::``

    This is a strict override chain: a present specific ``none`` beats a
    broader ``full``. Absent everywhere → ``Level.NONE``.

    Example::

        caps = {"ar::::": "view", "ar::ar-invoices::approve": "none"}
        effective_level(caps, "ar", "ar-invoices", "approve")  # Level.NONE
        effective_level(caps, "ar", "ar-invoices", "list")     # Level.VIEW
    """
    for key in ResourceKey(module, router or "", action or "").lookup_keys():
        if key in caps:
            return Level.parse(caps[key])
    return Level.NONE


def has_capability(
    caps: Mapping[str, Level | str],
    resource: ResourceKey,
    required: Level | str,
) -> bool:
    """True when the effective level for ``resource`` satisfies ``required``."""
    have = effective_level(caps, resource.module, resource.router, resource.action)
    allowed = satisfies(have, required)
    logger.debug(
        "capability %s have=%s required=%s allowed=%s",
        resource.cap_key(),
        have.value,
        Level.parse(required).value,
        allowed,
    )
    return allowed


__all__ = [
    "effective_level",
    "has_capability",
]
