"""Centralized logging utilities for the RBAC engine.

This module provides:
- Logging configuration from RbacConfig
- Safe preview utilities for sensitive data
- Secret redaction
- Structured logging with user/tenant context
- Audit records for authorization denials
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from .config import LogLevel, RbacConfig


# Patterns for detecting secrets (common patterns to redact)
SECRET_PATTERNS = [
    r'(?i)(?:password|passwd|pwd|secret|token|api[_-]?key|auth[_-]?token)\s*[:=]\s*["\']?([^"\'\s]+)',
    r'(?i)(?:bearer|basic)\s+([a-zA-Z0-9+/=._-]+)',
    r'(?i)(?:x-api-key|x-auth-token|x-access-token)\s*[:=]\s*["\']?([^"\'\s]+)',
    r'(?i)auth_token=([^;\s]+)',
]

# Context keys lifted out of the record and rendered as first-class fields
_CONTEXT_KEYS = ("user_id", "tenant")

_RESERVED_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "message", "pathname", "process", "processName", "relativeCreated",
        "thread", "threadName", "exc_info", "exc_text", "stack_info",
        "taskName", *_CONTEXT_KEYS,
    }
)


def safe_preview(value: Any, limit: int = 240) -> str:
    """Create a safe, length-bounded single-line preview of a value for logging.

    Args:
        value: The value to preview (any type)
        limit: Maximum length of the preview (default: 240)

    Returns:
        A safe, truncated string representation
    """
    if value is None:
        return ""

    if isinstance(value, str):
        s = value
    elif isinstance(value, (dict, list, tuple)):
        try:
            s = json.dumps(value, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            s = str(value)
    else:
        s = str(value)

    s = " ".join(s.split())

    if len(s) > limit:
        return s[: limit - 1] + "…"

    return s


def redact_secrets(text: str, replacement: str = "[REDACTED]") -> str:
    """Redact secret patterns (tokens, passwords, auth cookies) from text."""
    if not isinstance(text, str):
        return text

    result = text
    for pattern in SECRET_PATTERNS:
        result = re.sub(pattern, replacement, result, flags=re.IGNORECASE | re.DOTALL)

    return result


def safe_log_value(value: Any, limit: int = 240, redact: bool = True) -> str:
    """Combine safe_preview() and redact_secrets() for a single log value."""
    preview = safe_preview(value, limit=limit)
    if redact:
        preview = redact_secrets(preview)
    return preview


def _structured_value(value: Any, redact: bool = True) -> Any:
    """Copy of a dict/list extra with string leaves redacted. Never truncated."""
    if isinstance(value, dict):
        return {str(k): _structured_value(v, redact) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_structured_value(v, redact) for v in value]
    if isinstance(value, str) and redact:
        return redact_secrets(value)
    return value


class RbacFormatter(logging.Formatter):
    """Formatter that renders user/tenant context and structured extras.

    Denial audit records carry the full deny payload as ``extra``. Dict and
    list extras are emitted as nested JSON values, untruncated; scalar extras
    are previewed.
    """

    def __init__(
        self,
        include_context: bool = True,
        json_format: bool = True,
        redact_secrets: bool = True,
        *args: Any,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.include_context = include_context
        self.json_format = json_format
        self.redact_secrets = redact_secrets

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_context:
            for key in _CONTEXT_KEYS:
                value = getattr(record, key, None)
                if value:
                    log_data[key] = str(value)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            if isinstance(value, (dict, list, tuple)):
                log_data[key] = _structured_value(value, redact=self.redact_secrets)
            else:
                log_data[key] = safe_log_value(value, redact=self.redact_secrets)

        if self.redact_secrets:
            log_data["message"] = redact_secrets(log_data["message"])

        if self.json_format:
            return json.dumps(log_data, default=str, ensure_ascii=False)

        parts = [
            f"[{log_data['timestamp']}]",
            f"{log_data['level']}",
            f"{log_data['logger']}",
        ]
        for key in _CONTEXT_KEYS:
            if key in log_data:
                parts.append(f"{key}={log_data[key]}")
        parts.append(f": {log_data['message']}")
        return " ".join(parts)


class RbacLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that binds user_id and tenant to every record.

    Usage:
        logger = get_rbac_logger(__name__, tenant="acme")
        logger.info("Resolved canon", user_id=user_id)
    """

    def __init__(
        self,
        logger: logging.Logger,
        user_id: Optional[str] = None,
        tenant: Optional[str] = None,
    ):
        super().__init__(logger, {})
        self.user_id = user_id
        self.tenant = tenant

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        user_id = kwargs.pop("user_id", self.user_id)
        tenant = kwargs.pop("tenant", self.tenant)

        extra = dict(kwargs.get("extra") or {})
        if user_id:
            extra["user_id"] = user_id
        if tenant:
            extra["tenant"] = tenant
        kwargs["extra"] = extra

        return msg, kwargs


def setup_logging(
    config: Optional[RbacConfig] = None,
    json_format: Optional[bool] = None,
    redact_secrets: bool = True,
) -> None:
    """Configure the root logger for a service embedding the engine.

    Args:
        config: RbacConfig instance (if None, loads from environment)
        json_format: Force JSON output; defaults to ``config.log_json``
        redact_secrets: Whether to redact secrets (default: True)
    """
    if config is None:
        from .config import load_config_from_env

        config = load_config_from_env()

    level_map = {
        LogLevel.DEBUG: logging.DEBUG,
        LogLevel.INFO: logging.INFO,
        LogLevel.WARNING: logging.WARNING,
        LogLevel.ERROR: logging.ERROR,
        LogLevel.CRITICAL: logging.CRITICAL,
    }
    log_level = level_map.get(config.log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        RbacFormatter(
            include_context=True,
            json_format=config.log_json if json_format is None else json_format,
            redact_secrets=redact_secrets,
        )
    )
    root_logger.addHandler(console_handler)

    if config.service_name:
        logging.getLogger(config.service_name).setLevel(log_level)


def get_rbac_logger(
    name: str,
    user_id: Optional[str] = None,
    tenant: Optional[str] = None,
) -> RbacLoggerAdapter:
    """Get a logger adapter bound to a user/tenant pair."""
    return RbacLoggerAdapter(logging.getLogger(name), user_id=user_id, tenant=tenant)


__all__ = [
    "safe_preview",
    "redact_secrets",
    "safe_log_value",
    "RbacFormatter",
    "RbacLoggerAdapter",
    "setup_logging",
    "get_rbac_logger",
]
