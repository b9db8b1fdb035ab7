"""Application configuration helpers."""

from __future__ import annotations

from .env import optional_env_var, require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .logging import configure_logging
from .reconcile import (
    IDENTIFIER_KEY,
    SYSTEM_KEYS,
    ReconcileSettings,
    TransactionMode,
    get_reconcile_settings,
)
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "IDENTIFIER_KEY",
    "SYSTEM_KEYS",
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "ReconcileSettings",
    "StorageConfig",
    "TransactionMode",
    "configure_logging",
    "get_database_config",
    "get_reconcile_settings",
    "get_storage_config",
    "optional_env_var",
    "require_env_var",
    "require_env_vars",
]
