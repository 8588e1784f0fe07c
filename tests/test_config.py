"""
tests/test_config.py -- Settings validation and database URL resolution.

Settings() is constructed directly (not through the cached get_settings())
so each test sees its own environment.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings

GOOD_KEY = "k" * 32


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("DEBUG", "SECRET_KEY", "DATABASE_URL", "DB_HOST", "JWT_ALGORITHM"):
        monkeypatch.delenv(name, raising=False)


def test_production_requires_secret_key() -> None:
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(_env_file=None, debug=False)


def test_debug_generates_secret_key() -> None:
    settings = Settings(_env_file=None, debug=True)
    assert len(settings.secret_key) >= 32


def test_short_secret_key_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 32 characters"):
        Settings(_env_file=None, secret_key="too-short")


def test_non_hmac_algorithm_rejected() -> None:
    with pytest.raises(ValidationError, match="JWT_ALGORITHM"):
        Settings(_env_file=None, secret_key=GOOD_KEY, jwt_algorithm="RS256")


@pytest.mark.parametrize("field", ["access_token_ttl_minutes", "refresh_token_ttl_hours"])
def test_non_positive_lifetimes_rejected(field: str) -> None:
    with pytest.raises(ValidationError, match="lifetimes"):
        Settings(_env_file=None, secret_key=GOOD_KEY, **{field: 0})


def test_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("SECRET_KEY", GOOD_KEY)
    monkeypatch.setenv("ACCESS_TOKEN_TTL_MINUTES", "5")
    settings = Settings(_env_file=None)
    assert settings.secret_key == GOOD_KEY
    assert settings.access_token_ttl_minutes == 5


def test_defaults() -> None:
    settings = Settings(_env_file=None, secret_key=GOOD_KEY)
    assert settings.access_token_ttl_minutes == 15
    assert settings.refresh_token_ttl_hours == 168
    assert settings.min_password_length == 8
    assert settings.default_role == "senior"


class TestDatabaseUrl:
    def test_explicit_url_wins(self) -> None:
        settings = Settings(_env_file=None, secret_key=GOOD_KEY, database_url="sqlite:///x.db", db_host="db")
        assert settings.resolved_database_url() == "sqlite:///x.db"

    def test_assembled_from_parts(self) -> None:
        settings = Settings(
            _env_file=None,
            secret_key=GOOD_KEY,
            db_host="db.internal",
            db_port=5433,
            db_user="auth",
            db_password="p@ss/word",
            db_name="accounts",
            db_sslmode="require",
        )
        url = settings.resolved_database_url()
        assert url.startswith("postgresql+psycopg2://auth:")
        assert "p%40ss%2Fword@db.internal:5433/accounts" in url
        assert url.endswith("sslmode=require")

    def test_sqlite_fallback(self) -> None:
        url = Settings(_env_file=None, secret_key=GOOD_KEY).resolved_database_url()
        assert url.startswith("sqlite:///")
        assert url.endswith("dadmail_auth.db")
