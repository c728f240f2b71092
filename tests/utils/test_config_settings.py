"""Tests for settings and stored-configuration helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from imgflare.exceptions import ConfigurationError
from imgflare.models.repository import RecordStore, WriteResult
from imgflare.utils.config import (
    ConfigKeys,
    GlobalSettings,
    database_url_for,
    get_cloudflare_config,
    get_config_value,
    get_settings,
    is_configured,
    mask_secret,
    require_configured,
    save_credentials,
)


class TestGlobalSettings:
    def test_defaults(self):
        settings = GlobalSettings()

        assert settings.api_base_url == "https://api.cloudflare.com/client/v4"
        assert settings.delivery_base_url == "https://imagedelivery.net"
        assert settings.default_list_limit == 10
        assert settings.batch_concurrency == 3

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("IMGFLARE_LOG_LEVEL", "debug")
        monkeypatch.setenv("IMGFLARE_API_BASE_URL", "https://api.example.test/v4/")
        monkeypatch.setenv("IMGFLARE_BATCH_CONCURRENCY", "7")

        settings = get_settings(reload=True)

        assert settings.log_level == "DEBUG"
        assert settings.api_base_url == "https://api.example.test/v4"
        assert settings.batch_concurrency == 7

    def test_settings_cached_until_reload(self):
        first = get_settings()
        assert get_settings() is first
        assert get_settings(reload=True) is not first

    def test_data_dir_from_environment(self, tmp_path: Path):
        assert get_settings().data_dir == tmp_path / "imgflare-data"


class TestDatabaseUrl:
    def test_default_file_inside_data_dir(self, tmp_path: Path):
        data_dir = tmp_path / "nested" / "dir"
        url = database_url_for(GlobalSettings(data_dir=data_dir))

        assert data_dir.is_dir()
        assert url == f"sqlite:///{data_dir / 'imgflare.db'}"

    def test_explicit_url_wins(self):
        settings = GlobalSettings(database_url="sqlite:///:memory:")
        assert database_url_for(settings) == "sqlite:///:memory:"


class TestConfigResolution:
    def test_nothing_configured(self, store: RecordStore):
        assert get_config_value(store, ConfigKeys.API_TOKEN) is None
        assert not is_configured(store)
        assert get_cloudflare_config(store) is None

    def test_require_configured_raises(self, store: RecordStore):
        with pytest.raises(ConfigurationError, match="imgflare setup"):
            require_configured(store)

    def test_environment_fallback(self, store: RecordStore, monkeypatch, api_token, account_id):
        monkeypatch.setenv("IMGFLARE_CLOUDFLARE_API_TOKEN", api_token)
        monkeypatch.setenv("IMGFLARE_CLOUDFLARE_ACCOUNT_ID", account_id)

        assert get_config_value(store, ConfigKeys.API_TOKEN) == api_token
        assert get_config_value(store, ConfigKeys.API_TOKEN, use_env=False) is None
        assert is_configured(store)

    def test_stored_value_beats_environment(self, store: RecordStore, monkeypatch):
        monkeypatch.setenv("IMGFLARE_CLOUDFLARE_ACCOUNT_ID", "from-env")
        store.set_config(ConfigKeys.ACCOUNT_ID, "from-store")

        assert get_config_value(store, ConfigKeys.ACCOUNT_ID) == "from-store"

    def test_save_credentials(self, store: RecordStore, api_token, account_id):
        save_credentials(store, api_token=api_token, account_id=account_id)

        config = require_configured(store)
        assert config.api_token == api_token
        assert config.account_id == account_id
        assert config.delivery_url is None
        assert store.get_config(ConfigKeys.DELIVERY_URL) is None

    def test_save_credentials_with_delivery_url(self, store: RecordStore, api_token, account_id):
        save_credentials(
            store,
            api_token=api_token,
            account_id=account_id,
            delivery_url="https://imagedelivery.net/hash",
        )

        assert get_cloudflare_config(store).delivery_url == "https://imagedelivery.net/hash"

    def test_save_credentials_raises_when_write_has_no_effect(
        self, store: RecordStore, monkeypatch, api_token, account_id
    ):
        monkeypatch.setattr(store, "set_config", lambda *args: WriteResult(changes=0))

        with pytest.raises(ConfigurationError):
            save_credentials(store, api_token=api_token, account_id=account_id)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, "-"),
        ("", "-"),
        ("abc", "***"),
        ("abcdefgh", "****efgh"),
    ],
)
def test_mask_secret(value, expected):
    assert mask_secret(value) == expected
