"""gRPC integration for the RBAC engine.

Usage (in any service)::

    from rbaccore.security import RouteMeta, get_rbac_interceptors

    server = grpc.aio.server(
        interceptors=get_rbac_interceptors(enforcer, ROUTES, service_name="AR"),
    )

Configuration (env vars)::

    RBAC_ENFORCEMENT=enforce            # off | warn | enforce (default: enforce)
"""

from __future__ import annotations

from typing import Mapping

import grpc

from ..config import EnforcementMode
from ..enforcement import Enforcer
from .interceptors import (
    EMAIL_KEY,
    ROLE_KEY,
    TENANT_KEY,
    USER_ID_KEY,
    RbacInterceptor,
    RouteMeta,
    _extract_rpc_name,
    _should_skip,
    actor_from_metadata,
)


def get_rbac_interceptors(
    enforcer: Enforcer,
    route_map: Mapping[str, RouteMeta],
    *,
    service_name: str = "Service",
    enforcement: EnforcementMode | None = None,
) -> list[grpc.aio.ServerInterceptor]:
    """Get gRPC server interceptors for RBAC enforcement.

    Returns an empty list when enforcement is ``off`` for the enforcer's config
    and no explicit mode is given.
    """
    mode = enforcement if enforcement is not None else enforcer.config.enforcement
    if mode == EnforcementMode.OFF:
        return []
    return [RbacInterceptor(enforcer, route_map, service_name=service_name, enforcement=mode)]


__all__ = [
    # Metadata keys
    "EMAIL_KEY",
    "ROLE_KEY",
    "TENANT_KEY",
    "USER_ID_KEY",
    # Interceptors
    "EnforcementMode",
    "RbacInterceptor",
    "RouteMeta",
    "_extract_rpc_name",
    "_should_skip",
    "actor_from_metadata",
    "get_rbac_interceptors",
]
