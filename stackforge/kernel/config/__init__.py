"""Configuration loading and management for stackforge."""

from stackforge.kernel.config.loader import (
    ConfigLoader,
    clear_config_cache,
    get_default_config,
    load_config,
)
from stackforge.kernel.config.models import LoggingConfig, StackForgeConfig

__all__ = [
    "ConfigLoader",
    "LoggingConfig",
    "StackForgeConfig",
    "clear_config_cache",
    "get_default_config",
    "load_config",
]
