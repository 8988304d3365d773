"""Route-level enforcement — layer 1 allow/deny decisions.

Flow for one request:
1. no authenticated actor → :class:`UnauthenticatedError`;
2. super role → allow; tenant admin → allow, except on the reserved module;
3. required level = explicit hint, else ``view`` for safe methods and ``full``
   otherwise; an unknown hint raises :class:`ConfigurationError`;
4. canon from the permission cache; a repository outage propagates as
   :class:`RepositoryUnavailableError`, anything else as
   :class:`AuthorizationUnavailableError`;
5. effective level vs required level → :class:`Decision`.

Denials are values, not exceptions. Each one is audited as a WARNING record
``"RBAC deny"`` carrying the deny payload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .cache import PermissionCache
from .config import RbacConfig
from .exceptions import (
    AuthorizationUnavailableError,
    ConfigurationError,
    RepositoryUnavailableError,
    UnauthenticatedError,
)
from .logging import get_rbac_logger
from .permissions.canon import PermissionCanon
from .permissions.constants import Level, default_required_level, satisfies
from .permissions.evaluator import effective_level
from .permissions.keys import ResourceKey
from .query_context import PERMISSIVE_CONTEXT, QueryContext, build_query_context

logger = logging.getLogger(__name__)


def _required_level(required: Optional[Level | str], method: str) -> Level:
    """Level a request needs: the explicit hint, else the method default.

    Unlike stored policy levels, a hint that names no level is a route
    table error and is rejected rather than ranked as ``none``.
    """
    if required is None:
        return default_required_level(method)
    if isinstance(required, Level):
        return required
    try:
        return Level(str(required).strip().lower())
    except ValueError:
        raise ConfigurationError(f"Unknown required level {required!r}", required=str(required)) from None


@dataclass(frozen=True)
class Actor:
    """Authenticated caller, as established by the authentication layer.

    Attributes:
        user_id: User id (token subject).
        tenant: Tenant code the request is scoped to.
        role: System role code carried by the session (``super_admin``, ``admin``, ...).
        email: Optional, used in deny payloads when there is no user id.
    """

    user_id: str
    tenant: Optional[str] = None
    role: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class DenyDetails:
    """Why a request was denied."""

    user_id: Optional[str]
    tenant_id: Optional[str]
    module: str
    router: str
    action: str
    method: str
    needed: Level
    have: Level
    note: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Stable wire shape returned to HTTP callers with a 403."""
        payload: dict[str, Any] = {
            "userId": self.user_id,
            "tenantId": self.tenant_id,
            "module": self.module,
            "router": self.router,
            "action": self.action,
            "method": self.method,
            "needed": self.needed.value,
            "have": self.have.value,
        }
        if self.note is not None:
            payload["note"] = self.note
        return payload


@dataclass(frozen=True)
class Decision:
    allowed: bool
    details: Optional[DenyDetails] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, details: DenyDetails) -> "Decision":
        return cls(allowed=False, details=details)

    def __bool__(self) -> bool:
        return self.allowed


class Enforcer:
    """Decides whether an actor may act on a resource.

    Args:
        cache: Permission cache used to obtain the actor's canon.
        config: Engine config (bypass roles, reserved module).

    Usage::

        enforcer = Enforcer(cache, config)
        decision = await enforcer.enforce(actor, ResourceKey("ar", "ar-invoices", "approve"), "POST")
        if not decision:
            return 403, decision.details.to_dict()
    """

    def __init__(self, cache: PermissionCache, config: Optional[RbacConfig] = None) -> None:
        self._cache = cache
        self._config = config or RbacConfig()

    @property
    def config(self) -> RbacConfig:
        return self._config

    async def enforce(
        self,
        actor: Optional[Actor],
        resource: ResourceKey,
        method: str = "GET",
        required: Optional[Level | str] = None,
    ) -> Decision:
        """Evaluate one request.

        Raises:
            UnauthenticatedError: No actor or no user id.
            ConfigurationError: ``required`` is not a known level.
            RepositoryUnavailableError: The role membership read failed.
            AuthorizationUnavailableError: The canon could not be obtained.
        """
        if actor is None or not actor.user_id:
            raise UnauthenticatedError()

        method = (method or "GET").upper()
        cfg = self._config

        if actor.role == cfg.super_role:
            return Decision.allow()

        if actor.role == cfg.tenant_admin_role:
            if resource.module != cfg.reserved_module:
                return Decision.allow()
            return self._deny(
                actor,
                resource,
                method,
                needed=Level.FULL,
                have=Level.NONE,
                note=f"{cfg.tenant_admin_role} cannot access {cfg.reserved_module} module",
            )

        needed = _required_level(required, method)
        canon = await self._load_canon(actor)
        have = effective_level(canon.caps, resource.module, resource.router, resource.action)

        if satisfies(have, needed):
            return Decision.allow()
        return self._deny(actor, resource, method, needed=needed, have=have)

    async def query_context(self, actor: Actor, module: str, router: Optional[str] = None) -> QueryContext:
        """Query modifiers for an actor already allowed on (module, router).

        Bypass roles get the permissive context.
        """
        if self._config.is_bypass_role(actor.role):
            return PERMISSIVE_CONTEXT
        canon = await self._load_canon(actor)
        return build_query_context(canon, module, router)

    async def _load_canon(self, actor: Actor) -> PermissionCanon:
        if not actor.tenant:
            # No tenant context: nothing can be granted
            return PermissionCanon.empty()
        try:
            return await self._cache.get_or_resolve(actor.user_id, actor.tenant)
        except RepositoryUnavailableError as e:
            logger.error("RBAC repositories unavailable user=%s tenant=%s: %s", actor.user_id, actor.tenant, e.message)
            raise
        except Exception as e:
            logger.error("RBAC canon resolution failed user=%s tenant=%s: %s", actor.user_id, actor.tenant, e)
            raise AuthorizationUnavailableError(
                tenant=actor.tenant,
                user_id=actor.user_id,
                cause=str(e),
            ) from e

    def _deny(
        self,
        actor: Actor,
        resource: ResourceKey,
        method: str,
        needed: Level,
        have: Level,
        note: Optional[str] = None,
    ) -> Decision:
        details = DenyDetails(
            user_id=actor.user_id or actor.email,
            tenant_id=actor.tenant,
            module=resource.module,
            router=resource.router,
            action=resource.action,
            method=method,
            needed=needed,
            have=have,
            note=note,
        )
        audit = get_rbac_logger(__name__, user_id=actor.user_id, tenant=actor.tenant)
        audit.warning("RBAC deny", extra={"deny": details.to_dict()})
        return Decision.deny(details)


__all__ = [
    "Actor",
    "Decision",
    "DenyDetails",
    "Enforcer",
]
