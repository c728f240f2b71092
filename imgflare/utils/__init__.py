"""Utilities package initialization."""
from .config import (
    CloudflareConfig,
    ConfigKeys,
    GlobalSettings,
    get_cloudflare_config,
    get_config_value,
    get_settings,
    is_configured,
    require_configured,
    save_credentials,
)
from .logging import log_operation, setup_logger

__all__ = [
    "CloudflareConfig",
    "ConfigKeys",
    "GlobalSettings",
    "get_cloudflare_config",
    "get_config_value",
    "get_settings",
    "is_configured",
    "require_configured",
    "save_credentials",
    "log_operation",
    "setup_logger",
]
