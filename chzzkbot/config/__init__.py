"""Configuration module for environment-driven settings."""

from .settings import (
    GlobalConfig,
    MissingSingleTenantConfig,
    load_global_config,
    validate_config,
    BOT_MODE_MULTI,
    BOT_MODE_SINGLE
)

__all__ = [
    'GlobalConfig',
    'MissingSingleTenantConfig',
    'load_global_config',
    'validate_config',
    'BOT_MODE_MULTI',
    'BOT_MODE_SINGLE'
]
