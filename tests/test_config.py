from __future__ import annotations

from pathlib import Path

import allure
import pytest

from codeagent_chat.config import Settings, StreamSettings, WrapperSettings

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Environment Settings"),
]


def test_from_env_defaults() -> None:
    settings = Settings.from_env()

    assert settings.db_path == Path(".codeagent_chat.db")
    assert settings.current_model == "claude-3-5-sonnet"
    assert settings.log_level == "WARNING"
    assert settings.wrapper.binary_path is None
    assert settings.wrapper.backend is None
    assert settings.wrapper.workdir == "."
    assert settings.wrapper.skip_permissions is False
    assert settings.wrapper.timeout_ms is None
    assert settings.wrapper.kill_on_cancel is False
    assert settings.wrapper.diagnostic_tail_chars == 4000
    assert settings.sqlite_busy_timeout_ms == 5000
    assert settings.sqlite_journal_mode == "WAL"
    assert settings.stream == StreamSettings(chunk_size=32, chunk_delay_ms=20, pool_workers=4)


def test_from_env_reads_prefixed_variables(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CODEAGENT_CHAT_WRAPPER_PATH", " /opt/bin/codeagent-wrapper ")
    monkeypatch.setenv("CODEAGENT_CHAT_BACKEND", "gemini")
    monkeypatch.setenv("CODEAGENT_CHAT_WORKDIR", str(tmp_path))
    monkeypatch.setenv("CODEAGENT_CHAT_SKIP_PERMISSIONS", "yes")
    monkeypatch.setenv("CODEAGENT_CHAT_TIMEOUT_MS", "60000")
    monkeypatch.setenv("CODEAGENT_CHAT_MAX_PARALLEL_WORKERS", "8")
    monkeypatch.setenv("CODEAGENT_CHAT_CURRENT_MODEL", "gpt-4")
    monkeypatch.setenv("CODEAGENT_CHAT_CHUNK_SIZE", "16")
    monkeypatch.setenv("CODEAGENT_CHAT_CHUNK_DELAY_MS", "0")
    monkeypatch.setenv("CODEAGENT_CHAT_LOG_LEVEL", "debug")

    settings = Settings.from_env(db_path=tmp_path / "x.db")

    assert settings.db_path == tmp_path / "x.db"
    assert settings.current_model == "gpt-4"
    assert settings.log_level == "DEBUG"
    assert settings.stream.chunk_size == 16
    assert settings.stream.chunk_delay_ms == 0
    config = settings.wrapper.to_wrapper_config()
    assert config.binary_path == "/opt/bin/codeagent-wrapper"
    assert config.backend == "gemini"
    assert config.workdir == str(tmp_path)
    assert config.skip_permissions is True
    assert config.timeout_ms == 60000
    assert config.max_parallel_workers == 8
    settings.validate()


def test_invalid_boolean_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("CODEAGENT_CHAT_SKIP_PERMISSIONS", "maybe")

    with pytest.raises(ValueError, match="Invalid boolean value for CODEAGENT_CHAT_SKIP_PERMISSIONS"):
        Settings.from_env()


def test_invalid_integer_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("CODEAGENT_CHAT_TIMEOUT_MS", "soon")

    with pytest.raises(ValueError, match="Invalid integer value for CODEAGENT_CHAT_TIMEOUT_MS"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("settings", "message"),
    [
        (Settings(stream=StreamSettings(chunk_size=0)), "CHUNK_SIZE"),
        (Settings(stream=StreamSettings(chunk_delay_ms=-1)), "CHUNK_DELAY_MS"),
        (Settings(stream=StreamSettings(pool_workers=0)), "POOL_WORKERS"),
        (Settings(wrapper=WrapperSettings(diagnostic_tail_chars=-1)), "DIAGNOSTIC_TAIL_CHARS"),
        (Settings(wrapper=WrapperSettings(timeout_ms=0)), "TIMEOUT_MS"),
        (Settings(wrapper=WrapperSettings(max_parallel_workers=0)), "MAX_PARALLEL_WORKERS"),
        (Settings(sqlite_busy_timeout_ms=0), "SQLITE_BUSY_TIMEOUT_MS"),
        (Settings(sqlite_journal_mode="FAST"), "SQLITE_JOURNAL_MODE"),
    ],
)
def test_validate_rejects_out_of_range_values(settings: Settings, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        settings.validate()


def test_validate_rejects_missing_workdir(tmp_path: Path) -> None:
    settings = Settings(wrapper=WrapperSettings(workdir=str(tmp_path / "missing")))

    with pytest.raises(ValueError, match="not a directory"):
        settings.validate()


def test_from_env_reads_sqlite_settings(monkeypatch) -> None:
    monkeypatch.setenv("CODEAGENT_CHAT_SQLITE_BUSY_TIMEOUT_MS", "12345")
    monkeypatch.setenv("CODEAGENT_CHAT_SQLITE_JOURNAL_MODE", " delete ")

    settings = Settings.from_env()

    assert settings.sqlite_busy_timeout_ms == 12345
    assert settings.sqlite_journal_mode == "DELETE"
