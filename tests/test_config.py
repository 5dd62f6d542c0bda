from __future__ import annotations

import pytest
from pydantic import ValidationError

from tutorcore.core.config import Settings


def test_defaults_match_ledger_limits() -> None:
    settings = Settings(_env_file=None)
    assert settings.credit_max_balance == 10000
    assert settings.credit_max_grant_amount == 100
    assert settings.credit_history_max_limit == 500
    assert settings.chat_reconciliation_interval_seconds == 1800


def test_log_level_is_normalized() -> None:
    settings = Settings(_env_file=None, log_level=" debug ")
    assert settings.log_level == "DEBUG"


def test_grant_amount_above_max_balance_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, credit_max_balance=50, credit_max_grant_amount=100)


def test_default_database_credentials_allowed_in_development() -> None:
    settings = Settings(_env_file=None, app_env="development")
    assert "postgres:postgres@" in settings.database_url


def test_default_database_credentials_rejected_in_production() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, app_env="production")


def test_custom_database_credentials_allowed_in_production() -> None:
    settings = Settings(
        _env_file=None,
        app_env="prod",
        database_url="postgresql+asyncpg://tutor:s3cret@db:5432/tutorcore",
    )
    assert settings.app_env == "prod"
