"""Locate and verify the codeagent-wrapper executable."""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from codeagent_chat.orchestrator.errors import ResolutionError, ResolutionReason

logger = logging.getLogger(__name__)

WRAPPER_NAME = "codeagent-wrapper"

# `<repo>/bin`, where the release fetch script drops the binary during development.
_DEV_BIN_DIR = Path(__file__).resolve().parents[4] / "bin"


def wrapper_program_name(os_name: str | None = None) -> str:
    """Platform-specific wrapper file name."""

    if (os_name or os.name) == "nt":
        return f"{WRAPPER_NAME}.exe"
    return WRAPPER_NAME


def resolve_executable(  # noqa: PLR0913
    explicit_path: str | None = None,
    *,
    path_env: str | None = None,
    home_dir: Path | None = None,
    dev_dir: Path | None = None,
    os_name: str | None = None,
) -> Path:
    """Return a verified executable wrapper path or raise `ResolutionError`."""

    current_os_name = os_name or os.name
    candidate = find_executable(
        explicit_path,
        path_env=path_env,
        home_dir=home_dir,
        dev_dir=dev_dir,
        os_name=current_os_name,
    )
    if not is_executable_file(candidate, os_name=current_os_name):
        raise ResolutionError(
            f"{WRAPPER_NAME} is not an executable file: {candidate}",
            reason=ResolutionReason.NOT_EXECUTABLE,
            path=str(candidate),
        )
    logger.debug("Resolved %s at %s", WRAPPER_NAME, candidate)
    return candidate


def find_executable(  # noqa: PLR0913
    explicit_path: str | None = None,
    *,
    path_env: str | None = None,
    home_dir: Path | None = None,
    dev_dir: Path | None = None,
    os_name: str | None = None,
) -> Path:
    """Return the first existing wrapper candidate without checking permissions."""

    if explicit_path is not None and explicit_path.strip():
        explicit = Path(explicit_path.strip()).expanduser()
        if explicit.exists():
            return explicit
        raise ResolutionError(
            f"Configured {WRAPPER_NAME} path does not exist: {explicit}",
            reason=ResolutionReason.NOT_FOUND,
            path=str(explicit),
        )

    program_name = wrapper_program_name(os_name)
    for candidate in _search_candidates(
        program_name=program_name,
        path_env=path_env,
        home_dir=home_dir,
        dev_dir=dev_dir,
    ):
        if candidate.is_file():
            return candidate

    raise ResolutionError(
        f"{WRAPPER_NAME} not found. Install it into PATH, $HOME/bin or "
        f"$HOME/.claude/bin, or set CODEAGENT_CHAT_WRAPPER_PATH.",
        reason=ResolutionReason.NOT_FOUND,
    )


def is_executable_file(path: Path, *, os_name: str | None = None) -> bool:
    """Check the platform's notion of an executable regular file."""

    if not path.is_file():
        return False
    if (os_name or os.name) == "nt":
        return path.suffix.lower() == ".exe"
    try:
        mode = path.stat().st_mode
    except OSError:
        return False
    return bool(mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH))


def _search_candidates(
    *,
    program_name: str,
    path_env: str | None,
    home_dir: Path | None,
    dev_dir: Path | None,
) -> list[Path]:
    candidates: list[Path] = []
    raw_path = os.environ.get("PATH", "") if path_env is None else path_env
    for directory in raw_path.split(os.pathsep):
        if directory:
            candidates.append(Path(directory) / program_name)

    home = home_dir if home_dir is not None else _home_or_none()
    if home is not None:
        candidates.append(home / "bin" / program_name)
        candidates.append(home / ".claude" / "bin" / program_name)

    candidates.append((dev_dir if dev_dir is not None else _DEV_BIN_DIR) / program_name)
    return candidates


def _home_or_none() -> Path | None:
    try:
        return Path.home()
    except RuntimeError:
        return None
