"""Unified exception hierarchy for the RBAC engine.

Every infrastructure failure raised by rbaccore inherits from RbacError.
This module provides:
- Base exception hierarchy with stable error codes and HTTP status hints
- ErrorRegistry for protocol mapping
- gRPC / HTTP status mapping helpers

Capability decisions (allow/deny) are NEVER raised — they are returned as
``Decision`` values by the enforcer. The errors here are reserved for the
cases where no decision could be made at all.

Usage in callers:
    from rbaccore.exceptions import (
        RbacError,
        RepositoryUnavailableError,
        get_http_status,
    )
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar, cast

__all__ = [
    # Base hierarchy
    "RbacError",
    "ConfigurationError",
    "UnauthenticatedError",
    "RepositoryUnavailableError",
    "CacheUnavailableError",
    "InvalidationError",
    "AuthorizationUnavailableError",
    "RoleGuardError",
    # Registry
    "ErrorRegistry",
    "error_registry",
    "register_error",
    # Status helpers
    "get_grpc_status_code",
    "get_http_status",
]

logger = logging.getLogger(__name__)


# ---- Exception Hierarchy ----------------------------------------------------


class RbacError(Exception):
    """Base exception for the RBAC engine.

    Attributes:
        code: Stable error code string for protocol mapping (e.g. "REPOSITORY_UNAVAILABLE").
        message: Human-readable error description.
        http_status: Status an HTTP caller should answer with.
        details: Additional context as keyword arguments.
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"
    http_status: int = 500

    def __init__(self, message: str | None = None, code: str | None = None, **kwargs: Any) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.details = kwargs
        super().__init__(self.message)


class ConfigurationError(RbacError):
    """Invalid or missing configuration."""

    code: str = "CONFIGURATION_ERROR"


class UnauthenticatedError(RbacError):
    """No actor identity present. Hard stop before any authorization check."""

    code: str = "UNAUTHENTICATED"
    message: str = "Unauthorized"
    http_status: int = 401


class RepositoryUnavailableError(RbacError):
    """An underlying role/policy/membership read failed.

    Distinct from "no data": repositories return empty lists for that.
    """

    code: str = "REPOSITORY_UNAVAILABLE"
    message: str = "Authorization data is unavailable"
    http_status: int = 503


class CacheUnavailableError(RbacError):
    """Permission cache read or write failed.

    The cache layer treats this as a miss and re-resolves from repositories.
    """

    code: str = "CACHE_UNAVAILABLE"
    message: str = "Permission cache is unavailable"
    http_status: int = 503


class InvalidationError(RbacError):
    """Cache invalidation failed. Logged by the cache layer, never propagated."""

    code: str = "INVALIDATION_ERROR"


class AuthorizationUnavailableError(RbacError):
    """Canon resolution failed unexpectedly during enforcement.

    Callers must answer 500 — never silently allow.
    """

    code: str = "AUTHORIZATION_UNAVAILABLE"
    message: str = "RBAC error"
    http_status: int = 500


class RoleGuardError(RbacError):
    """Rejected mutation of a system or immutable role."""

    code: str = "ROLE_GUARD"
    http_status: int = 400


# ---- Error Registry for Protocol Mapping ------------------------------------

_E = TypeVar("_E", bound=type[RbacError])


class ErrorRegistry:
    """Registry for mapping internal errors to external protocol codes."""

    def __init__(self) -> None:
        self._errors: dict[str, type[RbacError]] = {}

    def register(self, code: str, error_cls: type[RbacError]) -> None:
        self._errors[code] = error_cls

    def get(self, code: str) -> type[RbacError] | None:
        return self._errors.get(code)

    def all(self) -> dict[str, type[RbacError]]:
        return dict(self._errors)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_E], _E]:
    """Decorator to register a custom error type.

    Usage:
        @register_error("TENANT_SUSPENDED")
        class TenantSuspendedError(RbacError):
            code = "TENANT_SUSPENDED"
            http_status = 403
    """

    def decorator(cls: _E) -> _E:
        error_registry.register(code, cls)
        return cls

    return cast(Callable[[_E], _E], decorator)


# Register base errors
error_registry.register("INTERNAL_ERROR", RbacError)
error_registry.register("CONFIGURATION_ERROR", ConfigurationError)
error_registry.register("UNAUTHENTICATED", UnauthenticatedError)
error_registry.register("REPOSITORY_UNAVAILABLE", RepositoryUnavailableError)
error_registry.register("CACHE_UNAVAILABLE", CacheUnavailableError)
error_registry.register("INVALIDATION_ERROR", InvalidationError)
error_registry.register("AUTHORIZATION_UNAVAILABLE", AuthorizationUnavailableError)
error_registry.register("ROLE_GUARD", RoleGuardError)


# ---- Status Mapping ----------------------------------------------------------


def get_http_status(error: Exception) -> int:
    """Map an error to the HTTP status a caller should answer with.

    Unknown exceptions map to 500.
    """
    if isinstance(error, RbacError):
        return error.http_status
    return 500


def get_grpc_status_code(error: RbacError) -> Any:
    """Map RbacError to gRPC status code.

    Returns grpc.StatusCode value for the given error type.
    Import grpc locally to avoid hard dependency at module level.
    """
    import grpc

    error_to_status = {
        "UNAUTHENTICATED": grpc.StatusCode.UNAUTHENTICATED,
        "CONFIGURATION_ERROR": grpc.StatusCode.FAILED_PRECONDITION,
        "REPOSITORY_UNAVAILABLE": grpc.StatusCode.UNAVAILABLE,
        "CACHE_UNAVAILABLE": grpc.StatusCode.UNAVAILABLE,
        "AUTHORIZATION_UNAVAILABLE": grpc.StatusCode.UNAVAILABLE,
        "ROLE_GUARD": grpc.StatusCode.INVALID_ARGUMENT,
    }
    return error_to_status.get(error.code, grpc.StatusCode.INTERNAL)
