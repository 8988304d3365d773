from .config import EnforcementMode, LogLevel, RbacConfig, load_config_from_env
from .exceptions import (
    AuthorizationUnavailableError,
    CacheUnavailableError,
    ConfigurationError,
    InvalidationError,
    RbacError,
    RepositoryUnavailableError,
    RoleGuardError,
    UnauthenticatedError,
)
from .logging import (
    safe_preview,
    redact_secrets,
    safe_log_value,
    RbacFormatter,
    RbacLoggerAdapter,
    setup_logging,
    get_rbac_logger,
)
from .permissions import Level, PermissionCanon, ResourceKey, Scope, canon_hash, effective_level
from .repositories import Repositories
from .resolver import PolicyResolver, Resolution
from .query_context import PERMISSIVE_CONTEXT, QueryContext, build_query_context
from .filtering import ListFilter, Predicate, ResourceBinding, apply_list_filters, filter_record, narrow_columns
from .cache import CacheClient, CacheRecord, PermissionCache, RedisCacheClient
from .enforcement import Actor, Decision, DenyDetails, Enforcer
from .mutations import RbacMutations
from .permissions.profiles import ROLE_PROFILES, SystemRoles, profile_caps

__all__ = [
    'Actor',
    'AuthorizationUnavailableError',
    'CacheClient',
    'CacheRecord',
    'CacheUnavailableError',
    'ConfigurationError',
    'Decision',
    'DenyDetails',
    'EnforcementMode',
    'Enforcer',
    'InvalidationError',
    'Level',
    'ListFilter',
    'LogLevel',
    'PERMISSIVE_CONTEXT',
    'PermissionCache',
    'PermissionCanon',
    'PolicyResolver',
    'Predicate',
    'QueryContext',
    'ROLE_PROFILES',
    'RbacConfig',
    'RbacError',
    'RbacFormatter',
    'RbacLoggerAdapter',
    'RbacMutations',
    'RedisCacheClient',
    'Repositories',
    'RepositoryUnavailableError',
    'Resolution',
    'ResourceBinding',
    'ResourceKey',
    'RoleGuardError',
    'Scope',
    'SystemRoles',
    'UnauthenticatedError',
    'apply_list_filters',
    'build_query_context',
    'canon_hash',
    'effective_level',
    'filter_record',
    'get_rbac_logger',
    'load_config_from_env',
    'narrow_columns',
    'profile_caps',
    'redact_secrets',
    'safe_log_value',
    'safe_preview',
    'setup_logging',
]
