"""Backend interface for wrapper task execution."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from codeagent_chat.orchestrator.models import BackendTag


@dataclass(frozen=True, slots=True)
class RunSpec:
    """Inputs required to execute one wrapper invocation.

    Built once per request from a locked snapshot of service configuration and
    never mutated afterwards.
    """

    task: str
    backend: BackendTag
    workdir: Path
    skip_permissions: bool = False
    timeout_ms: int | None = None
    max_parallel_workers: int | None = None
    binary_path: str | None = None
    resume_session_id: str | None = None
    model_hint: str | None = None
    parallel: bool = False


@dataclass(slots=True)
class RunResult:
    """Execution outcome from the wrapper backend."""

    message: str
    session_id: str | None
    raw_stdout: str
    raw_stderr: str
    exit_code: int


@dataclass(slots=True)
class CliExecResult:
    """Uninterpreted outcome of a pass-through wrapper call."""

    stdout: str
    stderr: str
    exit_code: int


class AgentBackend(Protocol):
    """Protocol implemented by backend runners."""

    def resolve(self, spec: RunSpec) -> Path:
        """Locate the executable that will serve ``spec``."""

    def run(
        self,
        spec: RunSpec,
        *,
        cancel_requested: Callable[[], bool] | None = None,
        executable: Path | None = None,
    ) -> RunResult:
        """Run the wrapper once and return its parsed result."""
