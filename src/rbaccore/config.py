"""Configuration contract for the RBAC engine.

This module provides Pydantic-validated configuration shared by every
rbaccore component (LOG_LEVEL, REDIS_URL, bypass role codes, etc.).

Callers build one ``RbacConfig`` at startup and inject it. Direct
os.environ/os.getenv usage is FORBIDDEN outside ``load_config_from_env()``.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EnforcementMode(str, Enum):
    """Three-state enforcement toggle for transport adapters.

    - ``off``     — no checks, only caller-identity logging.
    - ``warn``    — evaluate, log denials as WARNING, but allow through.
    - ``enforce`` — evaluate, deny on failure (production).
    """

    OFF = "off"
    WARN = "warn"
    ENFORCE = "enforce"


class RbacConfig(BaseModel):
    """Configuration for the authorization engine.

    Bypass roles:
        super_role         — bypasses every check unconditionally.
        tenant_admin_role  — bypasses every check except on reserved_module.
    """

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level for the engine",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )

    # Permission cache
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL (e.g., redis://localhost:6379/0)",
    )
    cache_prefix: str = Field(
        default="perm",
        description="Key prefix for cached permission canons",
    )
    cache_version: int = Field(
        default=1,
        description="Record format version stamped into each cache entry",
    )

    # Bypass roles
    super_role: str = Field(
        default="super_admin",
        description="Role code that bypasses all authorization checks",
    )
    tenant_admin_role: str = Field(
        default="admin",
        description="Role code that bypasses checks except on the reserved module",
    )
    reserved_module: str = Field(
        default="tenants",
        description="Cross-tenant administration module denied to tenant admins",
    )

    enforcement: EnforcementMode = Field(
        default=EnforcementMode.ENFORCE,
        description="Enforcement mode for transport adapters (off | warn | enforce)",
    )

    service_name: Optional[str] = Field(
        default=None,
        description="Service name for log identification",
    )

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("Redis URL must start with redis://, rediss://, or unix://")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Convert string to LogLevel enum."""
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            try:
                return LogLevel[v.upper()]
            except KeyError:
                raise ValueError(f"Invalid log level: {v}. Must be one of {[e.value for e in LogLevel]}")
        raise ValueError(f"Log level must be string or LogLevel enum, got {type(v)}")

    @field_validator("enforcement", mode="before")
    @classmethod
    def validate_enforcement(cls, v: str | EnforcementMode) -> EnforcementMode:
        if isinstance(v, EnforcementMode):
            return v
        try:
            return EnforcementMode(str(v).strip().lower())
        except ValueError:
            raise ValueError(f"Invalid enforcement mode: {v}. Must be one of {[e.value for e in EnforcementMode]}")

    @field_validator("super_role", "tenant_admin_role", "reserved_module", "cache_prefix")
    @classmethod
    def validate_non_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Value must be a non-empty string")
        return v.strip()

    def is_bypass_role(self, role: Optional[str]) -> bool:
        """True for the super role and the tenant admin role."""
        return bool(role) and role in (self.super_role, self.tenant_admin_role)

    model_config = {
        "extra": "forbid",  # Prevent accidental extra fields
    }


def load_config_from_env() -> RbacConfig:
    """Load configuration from environment variables.

    This is the ONLY place where os.getenv is allowed.
    All other code MUST use the config object.

    Environment variables:
    - LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - LOG_JSON: Use JSON log format (true/false, default: false)
    - REDIS_URL: Redis connection URL
    - RBAC_CACHE_PREFIX: Permission cache key prefix (default: perm)
    - RBAC_SUPER_ROLE: Super role code (default: super_admin)
    - RBAC_TENANT_ADMIN_ROLE: Tenant admin role code (default: admin)
    - RBAC_RESERVED_MODULE: Module denied to tenant admins (default: tenants)
    - RBAC_ENFORCEMENT: off | warn | enforce (default: enforce)
    - SERVICE_NAME: Service name for logging

    Returns:
        RbacConfig instance with values from environment or defaults.
    """
    import os

    return RbacConfig(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=os.getenv("LOG_JSON", "false").lower() in ("true", "1", "yes"),
        redis_url=os.getenv("REDIS_URL"),
        cache_prefix=os.getenv("RBAC_CACHE_PREFIX", "perm"),
        super_role=os.getenv("RBAC_SUPER_ROLE", "super_admin"),
        tenant_admin_role=os.getenv("RBAC_TENANT_ADMIN_ROLE", "admin"),
        reserved_module=os.getenv("RBAC_RESERVED_MODULE", "tenants"),
        enforcement=os.getenv("RBAC_ENFORCEMENT", "enforce"),
        service_name=os.getenv("SERVICE_NAME"),
    )


__all__ = [
    "EnforcementMode",
    "LogLevel",
    "RbacConfig",
    "load_config_from_env",
]
