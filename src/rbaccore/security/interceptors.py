"""gRPC interceptor enforcing RBAC capabilities per RPC.

Provides:
- ``RouteMeta`` — the (module, router, action) an RPC acts on.
- ``RbacInterceptor`` — parameterised server interceptor around an ``Enforcer``.
- ``actor_from_metadata`` — actor established by an upstream authentication layer.
- ``_extract_rpc_name``, ``_should_skip`` — helper utilities.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import grpc

from ..config import EnforcementMode, RbacConfig
from ..enforcement import Actor, Enforcer
from ..exceptions import RbacError, UnauthenticatedError, get_grpc_status_code
from ..permissions.constants import Level
from ..permissions.keys import ResourceKey

logger = logging.getLogger(__name__)

# Metadata keys set by the authentication layer in front of this interceptor
USER_ID_KEY = "x-user-id"
TENANT_KEY = "x-tenant-code"
ROLE_KEY = "x-user-role"
EMAIL_KEY = "x-user-email"

# Method prefixes that bypass permission checks
_SKIP_PREFIXES = (
    "grpc.health.v1",
    "grpc.reflection.v1",
)


# ── Route metadata ───────────────────────────────────────────────


@dataclass(frozen=True)
class RouteMeta:
    """Resource an RPC acts on.

    ``read_only`` RPCs are evaluated like ``GET`` (``view`` by default), all
    others like ``POST`` (``full``). ``required`` overrides either default.
    """

    module: str
    router: str = ""
    action: str = ""
    required: Optional[Level | str] = None
    read_only: bool = True

    @property
    def method(self) -> str:
        return "GET" if self.read_only else "POST"

    def resource(self) -> ResourceKey:
        return ResourceKey(self.module, self.router, self.action)


# ── Helpers ──────────────────────────────────────────────────────


def _extract_rpc_name(full_method: str) -> str:
    """Extract RPC name from fully-qualified method string.

    ``/ar.InvoiceService/ApproveInvoice`` → ``ApproveInvoice``
    """
    return full_method.rsplit("/", 1)[-1] if "/" in full_method else full_method


def _should_skip(method: str) -> bool:
    """Check if this method should skip permission checks."""
    return any(prefix in method for prefix in _SKIP_PREFIXES)


def actor_from_metadata(metadata: Mapping[str, Any]) -> Optional[Actor]:
    """Build the actor from invocation metadata; ``None`` without a user id."""
    user_id = str(metadata.get(USER_ID_KEY, "") or "").strip()
    if not user_id:
        return None
    return Actor(
        user_id=user_id,
        tenant=(str(metadata.get(TENANT_KEY, "") or "").strip() or None),
        role=(str(metadata.get(ROLE_KEY, "") or "").strip() or None),
        email=(str(metadata.get(EMAIL_KEY, "") or "").strip() or None),
    )


def _denied_handler(status: grpc.StatusCode, message: str) -> grpc.RpcMethodHandler:
    async def _denied(request, context):
        await context.abort(status, message)

    return grpc.unary_unary_rpc_method_handler(_denied)


# ── Interceptor ──────────────────────────────────────────────────


class RbacInterceptor(grpc.aio.ServerInterceptor):
    """gRPC server interceptor for capability enforcement.

    Sits before all handlers and:
    1. Logs caller identity (always, even when enforcement is off)
    2. Reads the authenticated actor from gRPC metadata
    3. Maps the RPC method to its ``RouteMeta`` via ``route_map``
    4. Asks the ``Enforcer`` for a decision
    5. Aborts with ``UNAUTHENTICATED`` / ``PERMISSION_DENIED`` / ``UNAVAILABLE`` if not allowed

    Unmapped RPCs are **denied**.

    Args:
        enforcer: Decision engine.
        route_map: Mapping of RPC name → ``RouteMeta``.
        service_name: Human-readable service name for log messages.
        enforcement: Three-state mode (off / warn / enforce).
            Defaults to ``enforcer.config.enforcement``.

    Usage::

        interceptor = RbacInterceptor(
            enforcer,
            route_map={"ApproveInvoice": RouteMeta("ar", "ar-invoices", "approve", read_only=False)},
            service_name="AR",
            enforcement=EnforcementMode.WARN,   # safe rollout
        )
    """

    def __init__(
        self,
        enforcer: Enforcer,
        route_map: Mapping[str, RouteMeta],
        *,
        service_name: str = "Service",
        enforcement: EnforcementMode | None = None,
        config: RbacConfig | None = None,
    ) -> None:
        self._enforcer = enforcer
        self._route_map = dict(route_map)
        self._service_name = service_name
        cfg = config or enforcer.config
        self._mode = enforcement if enforcement is not None else cfg.enforcement

        if self._mode != EnforcementMode.OFF:
            logger.info(
                "%s RBAC interceptor mode: %s",
                self._service_name,
                self._mode.value,
            )

    async def intercept_service(
        self,
        continuation: Any,
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        """Intercept incoming gRPC calls for capability validation."""
        method = handler_call_details.method or ""

        # Skip health checks / reflection
        if _should_skip(method):
            return await continuation(handler_call_details)

        rpc_name = _extract_rpc_name(method)
        metadata = dict(handler_call_details.invocation_metadata or [])
        actor = actor_from_metadata(metadata)

        logger.info(
            "%s RPC %s | user=%s tenant=%s",
            self._service_name,
            rpc_name,
            actor.user_id if actor else "anonymous",
            (actor.tenant if actor else None) or "-",
        )

        if self._mode == EnforcementMode.OFF:
            return await continuation(handler_call_details)

        deny_reason, deny_code = await self._evaluate(rpc_name, actor)

        if deny_reason:
            if self._mode == EnforcementMode.WARN:
                logger.warning(
                    "%s WARN_DENIED '%s' — %s (would block in enforce mode)",
                    self._service_name,
                    rpc_name,
                    deny_reason,
                )
                return await continuation(handler_call_details)

            logger.warning(
                "%s DENIED '%s' — %s",
                self._service_name,
                rpc_name,
                deny_reason,
            )
            return _denied_handler(deny_code, deny_reason)

        logger.debug(
            "%s ALLOWED '%s' for user '%s'",
            self._service_name,
            rpc_name,
            actor.user_id if actor else "anonymous",
        )
        return await continuation(handler_call_details)

    async def _evaluate(
        self,
        rpc_name: str,
        actor: Optional[Actor],
    ) -> tuple[Optional[str], grpc.StatusCode]:
        """Return ``(reason, status)`` for a denial, ``(None, OK)`` when allowed."""
        route = self._route_map.get(rpc_name)
        if route is None:
            return f"{self._service_name}: {rpc_name} not mapped to a resource", grpc.StatusCode.PERMISSION_DENIED

        try:
            decision = await self._enforcer.enforce(actor, route.resource(), route.method, route.required)
        except UnauthenticatedError as e:
            return e.message, grpc.StatusCode.UNAUTHENTICATED
        except RbacError as e:
            logger.error("%s RBAC failure on '%s': [%s] %s", self._service_name, rpc_name, e.code, e.message)
            return "RBAC error", get_grpc_status_code(e)

        if decision.allowed:
            return None, grpc.StatusCode.OK
        return json.dumps(decision.details.to_dict(), ensure_ascii=False), grpc.StatusCode.PERMISSION_DENIED


__all__ = [
    "EMAIL_KEY",
    "ROLE_KEY",
    "RbacInterceptor",
    "RouteMeta",
    "TENANT_KEY",
    "USER_ID_KEY",
    "_extract_rpc_name",
    "_should_skip",
    "actor_from_metadata",
]
