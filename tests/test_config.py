"""Tests for RbacConfig."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
from rbaccore import EnforcementMode, LogLevel, RbacConfig, load_config_from_env


class TestRbacConfig:
    """Tests for RbacConfig model."""

    def test_create_default_config(self) -> None:
        """Test creating an RbacConfig with defaults."""
        config = RbacConfig()
        assert config.log_level == LogLevel.INFO
        assert config.log_json is False
        assert config.redis_url is None
        assert config.cache_prefix == "perm"
        assert config.cache_version == 1
        assert config.super_role == "super_admin"
        assert config.tenant_admin_role == "admin"
        assert config.reserved_module == "tenants"
        assert config.enforcement == EnforcementMode.ENFORCE
        assert config.service_name is None

    def test_create_custom_config(self) -> None:
        """Test creating an RbacConfig with custom values."""
        config = RbacConfig(
            log_level=LogLevel.DEBUG,
            redis_url="redis://localhost:6379/0",
            cache_prefix="rbac",
            super_role="root",
            tenant_admin_role="owner",
            reserved_module="platform",
            enforcement=EnforcementMode.WARN,
            service_name="erp-api",
        )
        assert config.log_level == LogLevel.DEBUG
        assert config.redis_url == "redis://localhost:6379/0"
        assert config.cache_prefix == "rbac"
        assert config.super_role == "root"
        assert config.tenant_admin_role == "owner"
        assert config.reserved_module == "platform"
        assert config.enforcement == EnforcementMode.WARN
        assert config.service_name == "erp-api"

    def test_log_level_from_string(self) -> None:
        """Test creating config with log level as string."""
        config = RbacConfig(log_level="debug")
        assert config.log_level == LogLevel.DEBUG

    def test_log_level_invalid(self) -> None:
        """Test creating config with invalid log level."""
        with pytest.raises(ValueError, match="Invalid log level"):
            RbacConfig(log_level="INVALID")

    def test_enforcement_from_string(self) -> None:
        assert RbacConfig(enforcement=" Warn ").enforcement == EnforcementMode.WARN

    def test_enforcement_invalid(self) -> None:
        with pytest.raises(ValueError, match="Invalid enforcement mode"):
            RbacConfig(enforcement="strict")

    def test_redis_url_validation_valid(self) -> None:
        """Test valid Redis URL formats."""
        valid_urls = [
            "redis://localhost:6379/0",
            "rediss://localhost:6379/0",
            "unix:///tmp/redis.sock",
        ]
        for url in valid_urls:
            config = RbacConfig(redis_url=url)
            assert config.redis_url == url

    def test_redis_url_validation_invalid(self) -> None:
        """Test invalid Redis URL formats."""
        for url in ["http://localhost:6379", "localhost:6379"]:
            with pytest.raises(ValueError, match="Redis URL must start with"):
                RbacConfig(redis_url=url)

    @pytest.mark.parametrize("field", ["super_role", "tenant_admin_role", "reserved_module", "cache_prefix"])
    def test_blank_values_rejected(self, field: str) -> None:
        with pytest.raises(ValueError, match="non-empty"):
            RbacConfig(**{field: "  "})

    def test_extra_fields_forbidden(self) -> None:
        """Test that extra fields are forbidden."""
        with pytest.raises(Exception):  # Pydantic validation error
            RbacConfig(extra_field="value")  # type: ignore[call-arg]

    def test_bypass_roles(self) -> None:
        config = RbacConfig()
        assert config.is_bypass_role("super_admin")
        assert config.is_bypass_role("admin")
        assert not config.is_bypass_role("project_manager")
        assert not config.is_bypass_role(None)
        assert not config.is_bypass_role("")


class TestLoadConfigFromEnv:
    """Tests for load_config_from_env function."""

    @patch.dict(os.environ, {}, clear=True)
    def test_load_defaults(self) -> None:
        """Test loading config with no environment variables."""
        config = load_config_from_env()
        assert config.log_level == LogLevel.INFO
        assert config.redis_url is None
        assert config.enforcement == EnforcementMode.ENFORCE
        assert config.cache_prefix == "perm"

    @patch.dict(
        os.environ,
        {
            "LOG_LEVEL": "DEBUG",
            "LOG_JSON": "true",
            "REDIS_URL": "redis://localhost:6379/0",
            "RBAC_CACHE_PREFIX": "rbac",
            "RBAC_SUPER_ROLE": "root",
            "RBAC_TENANT_ADMIN_ROLE": "owner",
            "RBAC_RESERVED_MODULE": "platform",
            "RBAC_ENFORCEMENT": "warn",
            "SERVICE_NAME": "erp-api",
        },
        clear=True,
    )
    def test_load_from_env(self) -> None:
        """Test loading config from environment variables."""
        config = load_config_from_env()
        assert config.log_level == LogLevel.DEBUG
        assert config.log_json is True
        assert config.redis_url == "redis://localhost:6379/0"
        assert config.cache_prefix == "rbac"
        assert config.super_role == "root"
        assert config.tenant_admin_role == "owner"
        assert config.reserved_module == "platform"
        assert config.enforcement == EnforcementMode.WARN
        assert config.service_name == "erp-api"

    @patch.dict(os.environ, {"RBAC_ENFORCEMENT": "loud"}, clear=True)
    def test_invalid_enforcement_env(self) -> None:
        with pytest.raises(ValueError):
            load_config_from_env()
