"""Error taxonomy for wrapper resolution, execution and result handling."""

from __future__ import annotations

from enum import Enum


class OrchestratorError(RuntimeError):
    """Base class for request-terminating orchestrator failures."""

    kind = "orchestrator_error"


class ResolutionReason(str, Enum):
    """Why the wrapper executable could not be used."""

    NOT_FOUND = "not_found"
    NOT_EXECUTABLE = "not_executable"


class ResolutionError(OrchestratorError):
    """Wrapper binary is missing, not executable, or configured path is wrong."""

    kind = "resolution_error"

    def __init__(self, message: str, *, reason: ResolutionReason, path: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.path = path


class SpawnError(OrchestratorError):
    """The OS refused to create the wrapper process."""

    kind = "spawn_error"


class ProcessIOError(OrchestratorError):
    """Writing task input or reading process output failed."""

    kind = "io_error"


class NonZeroExitError(OrchestratorError):
    """Wrapper ran but exited with a failure status."""

    kind = "non_zero_exit"

    def __init__(self, message: str, *, exit_code: int, stderr_tail: str, stdout_tail: str) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        self.stdout_tail = stdout_tail


class EmptyResultError(OrchestratorError):
    """Wrapper succeeded but its stdout carried no usable message."""

    kind = "empty_result"

    def __init__(self, message: str, *, stderr_tail: str, stdout_tail: str) -> None:
        super().__init__(message)
        self.stderr_tail = stderr_tail
        self.stdout_tail = stdout_tail


class ConfigError(ValueError):
    """Invalid orchestrator configuration or unknown model selection."""
