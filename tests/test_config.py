"""Unit tests for sitehost/config.py."""

from pathlib import Path

import pytest

from sitehost.config import DEFAULT_CACHE_MAX_AGE, DEFAULT_MAX_UPLOAD_SIZE, Settings


class TestFromEnv:
    """Tests for Settings.from_env."""

    def test_defaults(self):
        settings = Settings.from_env({})

        assert settings.api_key == ""
        assert settings.base_domain == "localhost"
        assert settings.data_dir == Path("/data/sites")
        assert settings.max_upload_size == DEFAULT_MAX_UPLOAD_SIZE
        assert settings.cache_max_age == DEFAULT_CACHE_MAX_AGE
        assert settings.port == 8080
        assert settings.log_level == "INFO"

    def test_reads_values(self):
        settings = Settings.from_env(
            {
                "API_KEY": "k",
                "BASE_DOMAIN": "sites.example.com",
                "DATA_PATH": "/srv/sites",
                "ARCHIVE_TIMEOUT": "5",
                "MAX_UPLOAD_SIZE": "1024",
                "CACHE_MAX_AGE": "60",
                "HOST": "127.0.0.1",
                "PORT": "9000",
                "LOG_LEVEL": "debug",
            }
        )

        assert settings.api_key == "k"
        assert settings.data_dir == Path("/srv/sites")
        assert settings.archive_timeout == 5.0
        assert settings.max_upload_size == 1024
        assert settings.cache_max_age == 60
        assert settings.host == "127.0.0.1"
        assert settings.port == 9000
        assert settings.log_level == "DEBUG"

    def test_base_domain_normalized(self):
        settings = Settings.from_env({"BASE_DOMAIN": " .Sites.Example.COM. "})
        assert settings.base_domain == "sites.example.com"

    def test_bad_number(self):
        with pytest.raises(ValueError):
            Settings.from_env({"PORT": "eighty"})

    def test_site_url(self):
        settings = Settings.from_env({"BASE_DOMAIN": "sites.example.com"})
        assert settings.site_url("site-a") == "https://site-a.sites.example.com"

    def test_immutable(self):
        settings = Settings.from_env({})
        with pytest.raises(AttributeError):
            settings.api_key = "changed"
