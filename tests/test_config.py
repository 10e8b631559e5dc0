"""
Configuration tests.

Test blocks:
  1. ProductionConfig refuses to start without DATABASE_URL or SECRET_KEY
  2. Testing config selected by name
"""

import pytest

from taskhub import create_app
from taskhub.config import ProductionConfig, TestingConfig, config


class TestProductionConfig:
    def test_requires_database_url(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
        monkeypatch.setenv("SECRET_KEY", "prod-secret")

        with pytest.raises(RuntimeError, match="DATABASE_URL"):
            create_app("production")

    def test_requires_secret_key(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", "postgresql://db/taskhub")
        monkeypatch.delenv("SECRET_KEY", raising=False)

        with pytest.raises(RuntimeError, match="SECRET_KEY"):
            create_app("production")

    def test_valid_environment_instantiates(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", "postgresql://db/taskhub")
        monkeypatch.setenv("SECRET_KEY", "prod-secret")

        settings = config["production"]()

        assert settings.TENANCY_WARN_PERSIST in (True, False)
        assert settings.DEBUG is False


class TestTestingConfig:
    def test_app_uses_testing_settings(self, app):
        assert app.config["TESTING"] is True
        assert app.config["SQLALCHEMY_DATABASE_URI"] == TestingConfig.SQLALCHEMY_DATABASE_URI
        assert app.config["TENANCY_ENFORCEMENT"] == "warn"
