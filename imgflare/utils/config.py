"""Configuration loader and settings helpers for ImgFlare."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from ..models.repository import RecordStore


logger = logging.getLogger(__name__)

ENV_PREFIX: Final[str] = "IMGFLARE_"
NOT_CONFIGURED_MESSAGE: Final[str] = (
    'Cloudflare configuration not found. Run "imgflare setup" first.'
)


class ConfigKeys:
    """Keys stored in the ``config`` table."""

    API_TOKEN: Final[str] = "cloudflare_api_token"
    ACCOUNT_ID: Final[str] = "cloudflare_account_id"
    DELIVERY_URL: Final[str] = "delivery_url_prefix"


CONFIG_DESCRIPTIONS: Final[dict[str, str]] = {
    ConfigKeys.API_TOKEN: "Cloudflare API token for authentication",
    ConfigKeys.ACCOUNT_ID: "Cloudflare Account ID for API requests",
    ConfigKeys.DELIVERY_URL: "URL prefix for Cloudflare Images delivery",
}


class CloudflareConfig(BaseModel):
    """Resolved credentials needed to talk to Cloudflare Images."""

    model_config = ConfigDict(frozen=True)

    api_token: str
    account_id: str
    delivery_url: str | None = None


class GlobalSettings(BaseSettings):
    """Global application settings sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "WARNING"
    data_dir: Path = Path("~/.imgflare").expanduser()
    database_url: str | None = None
    api_base_url: str = "https://api.cloudflare.com/client/v4"
    delivery_base_url: str = "https://imagedelivery.net"
    request_timeout: float = Field(default=30.0, gt=0)
    default_list_limit: int = Field(default=10, ge=1)
    batch_concurrency: int = Field(default=3, ge=1)
    inspect_remote_sources: bool = True
    inspect_max_bytes: int = Field(default=20 * 1024 * 1024, ge=1)

    # Environment fallbacks for values normally kept in the config table.
    cloudflare_api_token: str | None = None
    cloudflare_account_id: str | None = None
    delivery_url_prefix: str | None = None

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        """Ensure log level values are uppercase for logging config."""

        return value.upper()

    @field_validator("data_dir", mode="before")
    @classmethod
    def _expand_paths(cls, value: Any) -> Any:
        """Allow string paths and expand user markers."""

        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        return value

    @field_validator("api_base_url", "delivery_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


@lru_cache(maxsize=1)
def _get_settings_cached() -> GlobalSettings:
    return GlobalSettings()


def get_settings(*, reload: bool = False) -> GlobalSettings:
    """Return cached settings, optionally forcing a reload."""

    if reload:
        _get_settings_cached.cache_clear()
    return _get_settings_cached()


def database_url_for(settings: GlobalSettings) -> str:
    """Return the database URL, creating the data directory for the default file."""

    if settings.database_url:
        return settings.database_url

    data_dir = settings.data_dir
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigurationError(f"Cannot create data directory '{data_dir}': {exc}") from exc
    return f"sqlite:///{data_dir / 'imgflare.db'}"


def get_config_value(store: RecordStore, key: str, *, use_env: bool = True) -> str | None:
    """
    Resolve a configuration value.

    The stored value wins; otherwise ``IMGFLARE_<KEY>`` from the environment is
    used when ``use_env`` is set.

    Args:
        store: Record store holding persisted configuration
        key: Configuration key (see :class:`ConfigKeys`)
        use_env: Whether to fall back to environment variables

    Returns:
        The configured value or ``None`` when absent everywhere
    """
    value = store.get_config(key)
    if value:
        return value

    if use_env:
        # .env files only reach us through the settings model.
        env_value = os.environ.get(f"{ENV_PREFIX}{key.upper()}") or getattr(
            get_settings(), key, None
        )
        if env_value:
            return env_value

    return None


def is_configured(store: RecordStore) -> bool:
    """Return True when both the API token and account id can be resolved."""

    api_token = get_config_value(store, ConfigKeys.API_TOKEN)
    account_id = get_config_value(store, ConfigKeys.ACCOUNT_ID)
    return bool(api_token and account_id)


def get_cloudflare_config(store: RecordStore) -> CloudflareConfig | None:
    """Return the Cloudflare configuration or ``None`` when not configured."""

    api_token = get_config_value(store, ConfigKeys.API_TOKEN)
    account_id = get_config_value(store, ConfigKeys.ACCOUNT_ID)
    if not api_token or not account_id:
        return None

    return CloudflareConfig(
        api_token=api_token,
        account_id=account_id,
        delivery_url=get_config_value(store, ConfigKeys.DELIVERY_URL) or None,
    )


def require_configured(store: RecordStore) -> CloudflareConfig:
    """Return the Cloudflare configuration or raise :class:`ConfigurationError`."""

    config = get_cloudflare_config(store)
    if config is None:
        raise ConfigurationError(NOT_CONFIGURED_MESSAGE)
    return config


def save_credentials(
    store: RecordStore,
    *,
    api_token: str,
    account_id: str,
    delivery_url: str | None = None,
) -> None:
    """Persist the setup answers, raising if any write has no effect."""

    values = {
        ConfigKeys.API_TOKEN: api_token,
        ConfigKeys.ACCOUNT_ID: account_id,
    }
    if delivery_url:
        values[ConfigKeys.DELIVERY_URL] = delivery_url

    for key, value in values.items():
        result = store.set_config(key, value, CONFIG_DESCRIPTIONS[key])
        if not result.changes:
            raise ConfigurationError(f"Could not save configuration value '{key}'")
    logger.info("Saved %d configuration values", len(values))


def mask_secret(value: str | None, *, visible: int = 4) -> str:
    """Mask all but the last ``visible`` characters of a secret."""

    if not value:
        return "-"
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]
