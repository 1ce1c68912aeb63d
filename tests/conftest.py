"""Shared test fixtures."""

from __future__ import annotations

import json
import os
import stat
import sys
from pathlib import Path

import pytest

_SRC_DIR = Path(__file__).resolve().parents[1] / "src"

_SHIM_TEMPLATE = """#!/bin/sh
PYTHONPATH="{src}${{PYTHONPATH:+:$PYTHONPATH}}"
export PYTHONPATH
{prelude}exec "{python}" -m codeagent_chat.orchestrator.backend.echo_agent "$@"
"""

_ECHO_ENV_KEYS = (
    "ECHO_AGENT_STDOUT",
    "ECHO_AGENT_STDERR",
    "ECHO_AGENT_EXIT_CODE",
    "ECHO_AGENT_SLEEP_SECONDS",
    "ECHO_AGENT_RECORD",
    "CODEX_TIMEOUT",
    "CODEX_MODEL",
    "CODEAGENT_SKIP_PERMISSIONS",
    "CODEAGENT_MAX_PARALLEL_WORKERS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Drop settings and echo-agent overrides leaking in from the outer shell."""

    for key in list(os.environ):
        if key.startswith("CODEAGENT_CHAT_"):
            monkeypatch.delenv(key)
    for key in _ECHO_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture()
def wrapper_shim(tmp_path: Path) -> Path:
    """Executable stand-in for codeagent-wrapper backed by the echo agent."""

    return _write_shim(tmp_path / "bin")


@pytest.fixture()
def forking_wrapper_shim(tmp_path: Path) -> Path:
    """Wrapper stand-in that leaves a child holding its stdout/stderr, like a real agent."""

    return _write_shim(tmp_path / "forking-bin", prelude="sleep 8 &\n")


def _write_shim(bin_dir: Path, *, prelude: str = "") -> Path:
    shim = bin_dir / "codeagent-wrapper"
    bin_dir.mkdir()
    shim.write_text(
        _SHIM_TEMPLATE.format(src=_SRC_DIR, python=sys.executable, prelude=prelude),
        "utf-8",
    )
    shim.chmod(shim.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return shim


@pytest.fixture()
def echo_record(tmp_path: Path, monkeypatch):
    """Return a loader for what the echo agent saw on its last run."""

    record_path = tmp_path / "echo_record.json"
    monkeypatch.setenv("ECHO_AGENT_RECORD", str(record_path))

    def _load() -> dict:
        return json.loads(record_path.read_text("utf-8"))

    return _load


@pytest.fixture()
def workdir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path
