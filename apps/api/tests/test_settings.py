"""Tests for settings validation."""

import pytest

from ecosangam_api.settings import Settings


def test_development_skips_production_checks():
    Settings(environment="development", kv_backend="memory").validate_production_settings()


def test_production_refuses_default_secret():
    settings = Settings(environment="production", kv_backend="redis")

    with pytest.raises(ValueError, match="SECRET_KEY"):
        settings.validate_production_settings()


def test_production_refuses_memory_store():
    settings = Settings(environment="production", secret_key="s3cr3t-from-vault", kv_backend="memory")

    with pytest.raises(ValueError, match="KV_BACKEND"):
        settings.validate_production_settings()


def test_production_accepts_hardened_settings():
    settings = Settings(
        environment="production",
        secret_key="s3cr3t-from-vault",
        kv_backend="redis",
        bcrypt_rounds=12,
    )

    settings.validate_production_settings()
    assert settings.is_production


def test_database_url_falls_back_to_sqlite():
    settings = Settings(database_url=None, postgres_user=None, postgres_password=None, sqlite_path="mrv.db")
    assert settings.database_url_computed == "sqlite:///mrv.db"
