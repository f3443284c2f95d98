"""Application configuration helpers."""

from __future__ import annotations

from .callback import CallbackTiming, get_callback_timing
from .env import require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import RedactTokensFilter, configure_logging
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config
from .supabase import SupabaseConfig, get_supabase_config

__all__ = [
    "CallbackTiming",
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "RateLimit",
    "RedactTokensFilter",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "SupabaseConfig",
    "configure_logging",
    "get_callback_timing",
    "get_database_config",
    "get_storage_config",
    "get_supabase_config",
    "require_env_var",
    "require_env_vars",
]
