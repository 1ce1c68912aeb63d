"""Runtime configuration for the wrapper orchestrator and chat store."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from codeagent_chat.orchestrator.models import WrapperConfig
from codeagent_chat.storage import SQLITE_JOURNAL_MODES


@dataclass(slots=True)
class WrapperSettings:
    """How to locate and invoke codeagent-wrapper."""

    binary_path: str | None = None
    backend: str | None = None
    workdir: str = "."
    skip_permissions: bool = False
    timeout_ms: int | None = None
    max_parallel_workers: int | None = None
    kill_on_cancel: bool = False
    diagnostic_tail_chars: int = 4_000

    def to_wrapper_config(self) -> WrapperConfig:
        """Mutable per-service copy handed to the orchestrator."""

        return WrapperConfig(
            binary_path=self.binary_path,
            backend=self.backend,
            workdir=self.workdir,
            skip_permissions=self.skip_permissions,
            timeout_ms=self.timeout_ms,
            max_parallel_workers=self.max_parallel_workers,
        )


@dataclass(slots=True)
class StreamSettings:
    """Chunking and pacing of streamed replies."""

    chunk_size: int = 32
    chunk_delay_ms: int = 20
    pool_workers: int = 4


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    db_path: Path = Path(".codeagent_chat.db")
    current_model: str = "claude-3-5-sonnet"
    log_level: str = "WARNING"
    sqlite_busy_timeout_ms: int = 5_000
    sqlite_journal_mode: str = "WAL"
    wrapper: WrapperSettings = field(default_factory=WrapperSettings)
    stream: StreamSettings = field(default_factory=StreamSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with defaults suited to local use."""

        return cls(
            db_path=db_path or Path(os.getenv("CODEAGENT_CHAT_DB_PATH", ".codeagent_chat.db")),
            current_model=os.getenv("CODEAGENT_CHAT_CURRENT_MODEL", "claude-3-5-sonnet"),
            log_level=os.getenv("CODEAGENT_CHAT_LOG_LEVEL", "WARNING").upper(),
            sqlite_busy_timeout_ms=int(os.getenv("CODEAGENT_CHAT_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            sqlite_journal_mode=os.getenv("CODEAGENT_CHAT_SQLITE_JOURNAL_MODE", "WAL").strip().upper(),
            wrapper=WrapperSettings(
                binary_path=_env_optional_str("CODEAGENT_CHAT_WRAPPER_PATH"),
                backend=_env_optional_str("CODEAGENT_CHAT_BACKEND"),
                workdir=os.getenv("CODEAGENT_CHAT_WORKDIR", "."),
                skip_permissions=_env_bool("CODEAGENT_CHAT_SKIP_PERMISSIONS", default=False),
                timeout_ms=_env_optional_int("CODEAGENT_CHAT_TIMEOUT_MS"),
                max_parallel_workers=_env_optional_int("CODEAGENT_CHAT_MAX_PARALLEL_WORKERS"),
                kill_on_cancel=_env_bool("CODEAGENT_CHAT_KILL_ON_CANCEL", default=False),
                diagnostic_tail_chars=int(
                    os.getenv("CODEAGENT_CHAT_DIAGNOSTIC_TAIL_CHARS", "4000"),
                ),
            ),
            stream=StreamSettings(
                chunk_size=int(os.getenv("CODEAGENT_CHAT_CHUNK_SIZE", "32")),
                chunk_delay_ms=int(os.getenv("CODEAGENT_CHAT_CHUNK_DELAY_MS", "20")),
                pool_workers=int(os.getenv("CODEAGENT_CHAT_POOL_WORKERS", "4")),
            ),
        )

    def validate(self) -> None:
        """Raise `ValueError` when settings cannot drive the orchestrator."""

        workdir = Path(self.wrapper.workdir).expanduser()
        if not workdir.is_dir():
            raise ValueError(f"CODEAGENT_CHAT_WORKDIR is not a directory: {workdir}")
        if self.sqlite_busy_timeout_ms < 1:
            raise ValueError("CODEAGENT_CHAT_SQLITE_BUSY_TIMEOUT_MS must be >= 1.")
        if self.sqlite_journal_mode not in SQLITE_JOURNAL_MODES:
            raise ValueError(
                "CODEAGENT_CHAT_SQLITE_JOURNAL_MODE must be one of "
                f"{', '.join(SQLITE_JOURNAL_MODES)}.",
            )
        if self.stream.chunk_size < 1:
            raise ValueError("CODEAGENT_CHAT_CHUNK_SIZE must be >= 1.")
        if self.stream.chunk_delay_ms < 0:
            raise ValueError("CODEAGENT_CHAT_CHUNK_DELAY_MS must be >= 0.")
        if self.stream.pool_workers < 1:
            raise ValueError("CODEAGENT_CHAT_POOL_WORKERS must be >= 1.")
        if self.wrapper.diagnostic_tail_chars < 0:
            raise ValueError("CODEAGENT_CHAT_DIAGNOSTIC_TAIL_CHARS must be >= 0.")
        if self.wrapper.timeout_ms is not None and self.wrapper.timeout_ms <= 0:
            raise ValueError("CODEAGENT_CHAT_TIMEOUT_MS must be > 0.")
        if self.wrapper.max_parallel_workers is not None and self.wrapper.max_parallel_workers < 1:
            raise ValueError("CODEAGENT_CHAT_MAX_PARALLEL_WORKERS must be >= 1.")


def _env_optional_str(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def _env_optional_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {raw!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
