"""Tests for core/config.py Settings validation."""

import pytest
from pydantic import ValidationError

from core.config import Settings


def test_defaults_point_at_local_sqlite(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    settings = Settings(_env_file=None)
    assert settings.database_url.startswith("sqlite:///")
    assert settings.temp_password_length == 12
    assert settings.min_password_policy is True


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://db/school")
    monkeypatch.setenv("DB_POOL_SIZE", "3")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    settings = Settings(_env_file=None)
    assert settings.database_url == "postgresql://db/school"
    assert settings.db_pool_size == 3
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("field, value", [("temp_password_length", 4), ("log_level", "loud")])
def test_invalid_values_rejected(field, value):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})
