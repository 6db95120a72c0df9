from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from dialogsync.config import get_settings, settings
from dialogsync.config.settings import Settings


def test_defaults_come_from_test_environment() -> None:
    assert settings.environment == "test"
    assert settings.api_base_url == "http://localhost:5556"
    assert settings.auth_key == ""
    assert settings.run_control_debounce_s == 0.2


def test_env_vars_use_dialogsync_prefix(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DIALOGSYNC_API_BASE_URL", "https://ws.example/")
    monkeypatch.setenv("DIALOGSYNC_DEEP_LINK", "/dl/q4h?questionId=q-1")

    s = Settings()

    assert s.api_base_url == "https://ws.example"
    assert s.deep_link == "/dl/q4h?questionId=q-1"


def test_negative_durations_are_rejected(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)

    with pytest.raises(ValidationError):
        Settings(run_control_debounce_s=-1)
    with pytest.raises(ValidationError):
        Settings(request_timeout_s=-0.5)


def test_log_level_is_normalized(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)

    assert Settings(log_level="debug").log_level == "DEBUG"
    assert Settings(log_level="").log_level == "INFO"


def test_settings_proxy_reads_fresh_values_after_reset(monkeypatch) -> None:
    first = get_settings()
    monkeypatch.setenv("DIALOGSYNC_AUTH_KEY", "rotated")

    assert get_settings() is first

    from dialogsync.config import reset_settings_cache

    reset_settings_cache()
    assert settings.auth_key == "rotated"
