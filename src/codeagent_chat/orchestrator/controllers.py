"""Controllers for chat CLI commands."""

from __future__ import annotations

import logging
import queue
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from codeagent_chat.config import Settings
from codeagent_chat.orchestrator.backend.base import CliExecResult
from codeagent_chat.orchestrator.backend.cli_backend import CodeagentWrapperBackend
from codeagent_chat.orchestrator.backend.resolver import WRAPPER_NAME
from codeagent_chat.orchestrator.errors import ResolutionError
from codeagent_chat.orchestrator.models import ChatRequest, OrchestratorState, StreamEvent
from codeagent_chat.orchestrator.routing import select_backend
from codeagent_chat.orchestrator.services import ChatOrchestrator
from codeagent_chat.sessions.recorder import ExchangeRecorder
from codeagent_chat.sessions.repository import ChatSessionRepository

logger = logging.getLogger(__name__)


class ChatCommandError(RuntimeError):
    """A chat turn ended with an error event."""


@dataclass(slots=True)
class ChatCommand:
    """CLI input for one chat turn."""

    task: str
    db_path: Path | None = None
    backend_hint: str | None = None
    resume_session_id: str | None = None
    model: str | None = None
    context_files: tuple[str, ...] = ()
    chat_session_id: str | None = None
    workspace_id: str | None = None
    workdir: str | None = None
    parallel: bool = False


@dataclass(slots=True)
class WhichCommand:
    """CLI input for wrapper resolution check."""

    binary_path: str | None = None


@dataclass(slots=True)
class ExecCommand:
    """CLI input for raw wrapper pass-through."""

    args: tuple[str, ...]
    binary_path: str | None = None
    cwd: str | None = None


@dataclass(slots=True)
class SessionsListCommand:
    """CLI input for session listing."""

    workspace_id: str
    db_path: Path | None = None
    limit: int | None = None


@dataclass(slots=True)
class SessionDeleteCommand:
    db_path: Path | None
    session_id: str


@dataclass(slots=True)
class SessionRenameCommand:
    db_path: Path | None
    session_id: str
    name: str


@dataclass(slots=True)
class CommandResult:
    """Lines to render plus overall success flag."""

    lines: list[str]
    success: bool


class ChatCliController:
    """Coordinates orchestrator, wrapper, and session store CLI operations."""

    def chat(self, command: ChatCommand) -> Iterator[str]:
        """Run one chat turn, yielding reply deltas as they stream in.

        The turn runs on the orchestrator pool; events and the terminal state
        cross over through a queue so the caller can print them as they arrive.
        An error event raises `ChatCommandError` once the stream has drained.
        """

        settings = Settings.from_env(db_path=command.db_path)
        settings.validate()

        with _repository(settings) as repository:
            resume_session_id = command.resume_session_id or _stored_resume_id(
                repository,
                settings=settings,
                command=command,
            )
            correlation_id = str(uuid4())
            request = ChatRequest(
                task=command.task,
                correlation_id=correlation_id,
                backend_hint=command.backend_hint,
                resume_session_id=resume_session_id,
                model_hint=command.model,
                context_files=command.context_files,
                chat_session_id=command.chat_session_id,
                workspace_id=command.workspace_id,
                workdir=command.workdir,
                parallel=command.parallel,
            )
            recorder = ExchangeRecorder(repository, model=settings.current_model)

            events: queue.Queue[StreamEvent | OrchestratorState] = queue.Queue()
            state = OrchestratorState.ERRORED

            with ChatOrchestrator.from_settings(settings, on_complete=recorder) as orchestrator:
                orchestrator.submit(request, events.put, on_finished=events.put)

                error_text: str | None = None
                final_session_id: str | None = None
                try:
                    while True:
                        event = events.get()
                        if isinstance(event, OrchestratorState):
                            state = event
                            break
                        if event.is_error:
                            error_text = event.delta
                            continue
                        if event.is_final:
                            final_session_id = event.session_id
                        if event.delta:
                            yield event.delta
                except (KeyboardInterrupt, GeneratorExit):
                    orchestrator.cancel(correlation_id)
                    raise

        logger.debug("Chat turn %s finished in state %s", correlation_id, state.value)
        if error_text is not None:
            raise ChatCommandError(error_text)
        yield "\n"
        if final_session_id:
            yield f"session_id={final_session_id}\n"

    def which(self, command: WhichCommand) -> CommandResult:
        """Report where the wrapper resolves from, or why it does not."""

        settings = Settings.from_env()
        binary_path = command.binary_path or settings.wrapper.binary_path
        backend = CodeagentWrapperBackend()
        try:
            resolved = backend.resolver(binary_path)
        except ResolutionError as error:
            lines = [f"{WRAPPER_NAME}: {error.reason.value}", f"  {error}"]
            if error.path:
                lines.append(f"  path={error.path}")
            return CommandResult(lines=lines, success=False)
        return CommandResult(lines=[f"{WRAPPER_NAME}: {resolved}"], success=True)

    def exec_raw(self, command: ExecCommand) -> CliExecResult:
        """Run the wrapper with the given args and hand back its raw output."""

        settings = Settings.from_env()
        backend = CodeagentWrapperBackend()
        return backend.exec_raw(
            binary_path=command.binary_path or settings.wrapper.binary_path,
            args=command.args,
            cwd=command.cwd,
        )

    def list_sessions(self, command: SessionsListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            sessions = repository.load_sessions(command.workspace_id, limit=command.limit)

        if not sessions:
            return [f"No sessions for workspace {command.workspace_id}."]
        lines = [f"Sessions ({len(sessions)}):"]
        for session in sessions:
            lines.append(
                f"- {session.session_id} name={session.name or '-'} "
                f"messages={session.message_count} "
                f"updated={session.updated_at.isoformat()}",
            )
            if session.first_message_preview:
                lines.append(f"    {session.first_message_preview}")
            for code_cli, task_id in sorted(session.code_cli_task_ids.items()):
                lines.append(f"    {code_cli}={task_id}")
        return lines

    def delete_session(self, command: SessionDeleteCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            repository.delete_session(command.session_id)
        return [f"Session deleted: {command.session_id}"]

    def rename_session(self, command: SessionRenameCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            session = repository.update_session_name(command.session_id, command.name)
        return [f"Session renamed: {session.session_id} name={session.name}"]

    def models(self) -> list[str]:
        """Active models with the current one marked."""

        settings = Settings.from_env()
        with ChatOrchestrator.from_settings(settings) as orchestrator:
            names = orchestrator.get_models()
            current = orchestrator.current_model
        lines = []
        for name in names:
            marker = "*" if name == current else " "
            backend = select_backend(None, None, name)
            lines.append(f"{marker} {name} (backend={backend.value})")
        if current not in names:
            lines.append(f"Current model {current!r} is not in the model list.")
        return lines

    def code_clis(self) -> list[str]:
        """Active code CLIs with the backend each one routes to as a hint."""

        settings = Settings.from_env()
        with ChatOrchestrator.from_settings(settings) as orchestrator:
            names = orchestrator.get_code_clis()
        return [f"{name} (backend={select_backend(None, name, None).value})" for name in names]


def _stored_resume_id(
    repository: ChatSessionRepository,
    *,
    settings: Settings,
    command: ChatCommand,
) -> str | None:
    """Continuation id last recorded for this chat session and backend."""

    if not command.chat_session_id:
        return None
    backend = select_backend(settings.wrapper.backend, command.backend_hint, settings.current_model)
    resume_id = repository.code_cli_task_id(command.chat_session_id, backend.value)
    if resume_id:
        logger.info(
            "Resuming %s session %s for chat %s",
            backend.value,
            resume_id,
            command.chat_session_id,
        )
    return resume_id


@contextmanager
def _repository(settings: Settings) -> Iterator[ChatSessionRepository]:
    repository = ChatSessionRepository(
        db_path=settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
        sqlite_journal_mode=settings.sqlite_journal_mode,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()
