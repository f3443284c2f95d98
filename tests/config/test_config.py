from __future__ import annotations

import logging
import os
from pathlib import Path  # noqa: TC003

import pytest

from secretdesk.config import (
    CallbackTiming,
    ConfigurationError,
    MissingConfigurationError,
    RedactTokensFilter,
    get_callback_timing,
    get_database_config,
    get_storage_config,
    get_supabase_config,
    require_env_var,
    require_env_vars,
)


def test_require_env_vars_returns_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "value")

    result = require_env_vars(["EXAMPLE_VAR"])

    assert result["EXAMPLE_VAR"] == "value"


def test_require_env_vars_raises_when_any_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_VAR", raising=False)

    with pytest.raises(MissingConfigurationError) as exc:
        require_env_vars(["MISSING_VAR"])

    assert "MISSING_VAR" in str(exc.value)


def test_require_env_var_handles_blank_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "   ")

    with pytest.raises(MissingConfigurationError):
        require_env_var("EXAMPLE_VAR")


def test_get_supabase_config_requires_url_and_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")

    with pytest.raises(MissingConfigurationError, match="SUPABASE_URL"):
        get_supabase_config()


def test_get_supabase_config_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co/")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")
    monkeypatch.setenv("SECRETDESK_REDIRECT_URL", "https://app.test/auth/callback")
    monkeypatch.delenv("SECRETDESK_OAUTH_PROVIDER", raising=False)

    config = get_supabase_config()

    assert config.auth_url == "https://project.supabase.co/auth/v1"
    assert config.rest_url == "https://project.supabase.co/rest/v1"
    assert config.redirect_url == "https://app.test/auth/callback"
    assert config.provider == "google"
    assert config.resilience.default_headers == {"apikey": "anon"}


def test_callback_timing_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "SECRETDESK_CALLBACK_INITIAL_DELAY",
        "SECRETDESK_CALLBACK_BASE_DELAY",
        "SECRETDESK_CALLBACK_MAX_ATTEMPTS",
    ):
        monkeypatch.delenv(name, raising=False)

    timing = get_callback_timing()

    assert timing == CallbackTiming()
    assert [timing.backoff_for(attempt) for attempt in (1, 2)] == [1.0, 2.0]
    assert timing.worst_case_wait == pytest.approx(4.5)


def test_callback_timing_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SECRETDESK_CALLBACK_INITIAL_DELAY", "0.5")
    monkeypatch.setenv("SECRETDESK_CALLBACK_BASE_DELAY", "2")
    monkeypatch.setenv("SECRETDESK_CALLBACK_MAX_ATTEMPTS", "5")

    timing = get_callback_timing()

    assert timing.initial_delay == 0.5
    assert timing.base_delay == 2.0
    assert timing.max_attempts == 5


def test_callback_timing_rejects_invalid_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SECRETDESK_CALLBACK_MAX_ATTEMPTS", "three")

    with pytest.raises(ConfigurationError):
        get_callback_timing()
    with pytest.raises(ConfigurationError):
        CallbackTiming(max_attempts=0)
    with pytest.raises(ConfigurationError):
        CallbackTiming(base_delay=-1.0)


def test_get_storage_config_prefers_explicit_env(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    custom = tmp_path / "custom-data"
    monkeypatch.setenv("SECRETDESK_DATA_DIR", str(custom))

    config = get_storage_config()

    assert config.resolve_data_dir() == custom.resolve()
    assert config.session_path() == custom.resolve() / "session.json"
    assert custom.exists()


def test_get_database_config_uses_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "sqlite:///override.db")

    assert get_database_config().uri == "sqlite:///override.db"


def test_get_database_config_defaults_to_data_dir(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    monkeypatch.delenv("DATABASE_URI", raising=False)
    monkeypatch.setenv("SECRETDESK_DATA_DIR", str(tmp_path / "data-dir"))

    uri = get_database_config().uri

    expected_path = (tmp_path / "data-dir" / "secretdesk.db").resolve()
    assert uri == f"sqlite+pysqlite:///{expected_path}"
    assert os.path.isdir(expected_path.parent)


def test_redact_tokens_filter_masks_oauth_credentials() -> None:
    record = logging.LogRecord(
        "secretdesk.app",
        logging.INFO,
        __file__,
        1,
        "Callback %s",
        ("https://app.test/cb?code=abc123&state=s#access_token=tok&error_code=none",),
        None,
    )

    assert RedactTokensFilter().filter(record)

    message = record.getMessage()
    assert "abc123" not in message
    assert "access_token=***" in message
    assert "code=***" in message
    assert "state=s" in message
    assert "error_code=none" in message
