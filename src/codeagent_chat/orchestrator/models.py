"""Domain models for chat requests and streamed responses."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class BackendTag(str, Enum):
    """Backend flavors understood by codeagent-wrapper."""

    CODEX = "codex"
    CLAUDE = "claude"
    GEMINI = "gemini"


class OrchestratorState(str, Enum):
    """Lifecycle states of one orchestrated request."""

    IDLE = "idle"
    BACKEND_RESOLVED = "backend_resolved"
    EXECUTABLE_RESOLVED = "executable_resolved"
    PROCESS_RUNNING = "process_running"
    TRAILER_PARSED = "trailer_parsed"
    STREAMING = "streaming"
    DONE = "done"
    CANCELED = "canceled"
    ERRORED = "errored"


TERMINAL_STATES = frozenset(
    {OrchestratorState.DONE, OrchestratorState.CANCELED, OrchestratorState.ERRORED},
)


@dataclass(slots=True)
class StreamEvent:
    """One incremental unit delivered to a subscriber."""

    correlation_id: str
    delta: str
    is_final: bool
    session_id: str | None = None
    is_error: bool = False

    def to_payload(self) -> dict[str, object]:
        """Serialize for an event bus or IPC channel."""

        return {
            "request_id": self.correlation_id,
            "delta": self.delta,
            "done": self.is_final,
            "session_id": self.session_id,
            "error": self.is_error,
        }


@dataclass(slots=True)
class ChatRequest:
    """Caller input for one chat turn."""

    task: str
    backend_hint: str | None = None
    resume_session_id: str | None = None
    model_hint: str | None = None
    context_files: tuple[str, ...] = ()
    correlation_id: str | None = None
    chat_session_id: str | None = None
    workspace_id: str | None = None
    workdir: str | None = None
    parallel: bool = False


@dataclass(slots=True)
class WrapperConfig:
    """Service-level wrapper settings, snapshotted into each RunSpec."""

    binary_path: str | None = None
    backend: str | None = None
    workdir: str | None = None
    skip_permissions: bool = False
    timeout_ms: int | None = None
    max_parallel_workers: int | None = None


@dataclass(slots=True)
class AiModel:
    """Selectable model entry; only the name drives backend fallback."""

    name: str
    endpoint: str = ""
    is_active: bool = True


DEFAULT_MODELS: tuple[str, ...] = (
    "claude-3-5-sonnet",
    "gpt-4",
    "gpt-3.5-turbo",
    "gemini-pro",
)


@dataclass(slots=True)
class CodeCli:
    """Code agent CLI entry; its name doubles as a backend hint."""

    name: str
    command_path: str = ""
    arguments: list[str] = field(default_factory=list)
    is_active: bool = True


DEFAULT_CODE_CLIS: tuple[str, ...] = tuple(tag.value for tag in BackendTag)


@dataclass(slots=True)
class CompletedExchange:
    """Final (message, id) pair handed to the persistence collaborator."""

    correlation_id: str
    request: ChatRequest
    backend: BackendTag
    message: str
    session_id: str | None
    metadata: dict[str, object] = field(default_factory=dict)
