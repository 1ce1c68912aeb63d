"""CLI entrypoint for codeagent-chat."""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import rich_click as click

from codeagent_chat import __version__
from codeagent_chat.orchestrator.controllers import (
    ChatCliController,
    ChatCommand,
    ChatCommandError,
    ExecCommand,
    SessionDeleteCommand,
    SessionRenameCommand,
    SessionsListCommand,
    WhichCommand,
)
from codeagent_chat.orchestrator.errors import OrchestratorError
from codeagent_chat.sessions.models import SessionNotFoundError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = ChatCliController()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@click.group()
@click.version_option(version=__version__, prog_name="codeagent-chat")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=lambda: os.getenv("CODEAGENT_CHAT_LOG_LEVEL", "WARNING").upper(),
    show_default="WARNING or $CODEAGENT_CHAT_LOG_LEVEL",
    help="Log level for diagnostics on stderr.",
)
def codeagent_chat(log_level: str) -> None:
    """Chat with code agents through `codeagent-wrapper`."""

    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    logging.getLogger("codeagent_chat").setLevel(log_level.upper())


@codeagent_chat.command("chat")
@click.argument("task")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--backend-hint",
    default=None,
    help="Preferred backend, matched by substring: claude, gemini or codex.",
)
@click.option("--resume", "resume_session_id", default=None, help="Agent session id to continue.")
@click.option("--model", default=None, help="Model override (forwarded to codex only).")
@click.option(
    "--context-file",
    "context_files",
    multiple=True,
    help="File path listed after the task. Can be repeated.",
)
@click.option("--session-id", "chat_session_id", default=None, help="Chat session to append to.")
@click.option("--workspace-id", default=None, help="Workspace the chat session belongs to.")
@click.option("--workdir", default=None, help="Working directory for the agent.")
@click.option("--parallel", is_flag=True, default=False, help="Run the wrapper in parallel mode.")
def chat(  # noqa: PLR0913
    task: str,
    db_path: Path | None,
    backend_hint: str | None,
    resume_session_id: str | None,
    model: str | None,
    context_files: tuple[str, ...],
    chat_session_id: str | None,
    workspace_id: str | None,
    workdir: str | None,
    parallel: bool,
) -> None:
    """Send one task to the agent and stream the reply."""

    with _cli_errors():
        for delta in CONTROLLER.chat(
            ChatCommand(
                task=task,
                db_path=db_path,
                backend_hint=backend_hint,
                resume_session_id=resume_session_id,
                model=model,
                context_files=context_files,
                chat_session_id=chat_session_id,
                workspace_id=workspace_id,
                workdir=workdir,
                parallel=parallel,
            ),
        ):
            click.echo(delta, nl=False)


@codeagent_chat.command("which")
@click.option("--binary-path", default=None, help="Explicit wrapper path to verify.")
def which(binary_path: str | None) -> None:
    """Show which `codeagent-wrapper` would run."""

    result = CONTROLLER.which(WhichCommand(binary_path=binary_path))
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("codeagent-wrapper could not be resolved.")


@codeagent_chat.command(
    "exec",
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.option("--binary-path", default=None, help="Explicit wrapper path.")
@click.option("--cwd", default=None, help="Working directory for the wrapper.")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def exec_command(binary_path: str | None, cwd: str | None, args: tuple[str, ...]) -> None:
    """Run `codeagent-wrapper` with raw ARGS and print its output untouched."""

    with _cli_errors():
        result = CONTROLLER.exec_raw(ExecCommand(args=args, binary_path=binary_path, cwd=cwd))
    click.echo(result.stdout, nl=False)
    click.echo(result.stderr, nl=False, err=True)
    if result.exit_code != 0:
        raise click.exceptions.Exit(result.exit_code)


@codeagent_chat.group()
def sessions() -> None:
    """Chat session commands."""


@sessions.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--workspace-id", required=True, help="Workspace id.")
@click.option(
    "--limit",
    type=click.IntRange(min=1),
    default=None,
    help="Max number of sessions to print.",
)
def sessions_list(db_path: Path | None, workspace_id: str, limit: int | None) -> None:
    """List sessions of a workspace, newest first."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.list_sessions(
                SessionsListCommand(workspace_id=workspace_id, db_path=db_path, limit=limit),
            ),
        )


@sessions.command("delete")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("session_id")
def sessions_delete(db_path: Path | None, session_id: str) -> None:
    """Delete a session and its transcript."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.delete_session(SessionDeleteCommand(db_path=db_path, session_id=session_id)),
        )


@sessions.command("rename")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("session_id")
@click.argument("name")
def sessions_rename(db_path: Path | None, session_id: str, name: str) -> None:
    """Rename a session."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.rename_session(
                SessionRenameCommand(db_path=db_path, session_id=session_id, name=name),
            ),
        )


@codeagent_chat.command("models")
def models() -> None:
    """List models; `*` marks the current one."""

    _emit_lines(CONTROLLER.models())


@codeagent_chat.command("code-clis")
def code_clis() -> None:
    """List code CLIs accepted by `chat --backend-hint`."""

    _emit_lines(CONTROLLER.code_clis())


@contextmanager
def _cli_errors() -> Iterator[None]:
    try:
        yield
    except (ChatCommandError, OrchestratorError, SessionNotFoundError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    codeagent_chat()
