from __future__ import annotations

from pathlib import Path

import allure
import pytest

from codeagent_chat.orchestrator.models import BackendTag, ChatRequest, CompletedExchange
from codeagent_chat.sessions.models import ChatMessage, SessionNotFoundError
from codeagent_chat.sessions.recorder import ExchangeRecorder
from codeagent_chat.sessions.repository import ChatSessionRepository

pytestmark = [
    allure.epic("Chat Sessions"),
    allure.feature("Transcript Persistence"),
]


@pytest.fixture()
def repository(tmp_path: Path):
    repo = ChatSessionRepository(db_path=tmp_path / "chat.db")
    repo.init_schema()
    yield repo
    repo.close()


def test_save_and_load_round_trip_keeps_message_fields(repository: ChatSessionRepository) -> None:
    user = ChatMessage(role="user", content="Hi", files=["a.py"], model="gpt-4", workspace_id="ws")
    reply = ChatMessage(role="assistant", content="Hello", agent_session_id="agent-1")

    repository.save_session(
        session_id="s1",
        messages=[user, reply],
        name="First chat",
        workspace_id="ws",
        code_cli_task_ids={"codex": "agent-1"},
    )
    loaded = repository.load_session("s1")

    assert loaded.name == "First chat"
    assert loaded.message_count == 2
    assert loaded.first_message_preview == "Hi"
    assert [message.content for message in loaded.messages] == ["Hi", "Hello"]
    assert loaded.messages[0].id == user.id
    assert loaded.messages[0].files == ["a.py"]
    assert loaded.messages[0].timestamp == user.timestamp
    assert loaded.messages[1].agent_session_id == "agent-1"
    assert loaded.code_cli_task_ids == {"codex": "agent-1"}
    assert loaded.created_at.tzinfo is not None


def test_resave_preserves_created_at_and_replaces_transcript(
    repository: ChatSessionRepository,
) -> None:
    first = repository.save_session(session_id="s1", messages=[ChatMessage("user", "one")])
    second = repository.save_session(
        session_id="s1",
        messages=[ChatMessage("user", "two"), ChatMessage("assistant", "three")],
    )

    assert second.created_at == first.created_at
    assert second.updated_at >= first.updated_at
    assert [message.content for message in second.messages] == ["two", "three"]


def test_save_rejects_blank_session_id(repository: ChatSessionRepository) -> None:
    with pytest.raises(ValueError, match="Session ID is required"):
        repository.save_session(session_id=" ", messages=[])


def test_append_creates_missing_session_then_appends_in_order(
    repository: ChatSessionRepository,
) -> None:
    repository.append_messages(
        "s2",
        [ChatMessage("user", "q1", workspace_id="ws"), ChatMessage("assistant", "a1")],
    )
    session = repository.append_messages(
        "s2",
        [ChatMessage("user", "q2"), ChatMessage("assistant", "a2")],
        code_cli="claude",
        code_cli_task_id="agent-7",
    )

    assert session.workspace_id == "ws"
    assert session.message_count == 4
    assert [message.content for message in session.messages] == ["q1", "a1", "q2", "a2"]
    assert session.first_message_preview == "q1"
    assert session.code_cli_task_ids == {"claude": "agent-7"}
    assert session.agent_session_id == "agent-7"
    assert repository.code_cli_task_id("s2", "claude") == "agent-7"
    assert repository.code_cli_task_id("s2", "codex") is None


def test_append_updates_existing_code_cli_mapping(repository: ChatSessionRepository) -> None:
    repository.append_messages("s3", [ChatMessage("user", "x")], code_cli="codex", code_cli_task_id="t1")
    session = repository.append_messages(
        "s3",
        [ChatMessage("user", "y")],
        code_cli="codex",
        code_cli_task_id="t2",
    )

    assert session.code_cli_task_ids == {"codex": "t2"}


def test_preview_is_truncated_to_one_hundred_chars(repository: ChatSessionRepository) -> None:
    session = repository.save_session(session_id="s4", messages=[ChatMessage("user", "p" * 150)])

    assert session.first_message_preview == "p" * 100 + "..."


def test_load_sessions_filters_workspace_and_sorts_newest_first(
    repository: ChatSessionRepository,
) -> None:
    repository.save_session(session_id="old", messages=[], workspace_id="ws")
    repository.save_session(session_id="other", messages=[], workspace_id="elsewhere")
    repository.save_session(session_id="new", messages=[], workspace_id="ws")
    repository.append_messages("old", [ChatMessage("user", "bump")])

    sessions = repository.load_sessions("ws")

    assert [session.session_id for session in sessions] == ["old", "new"]
    assert [session.session_id for session in repository.load_sessions("ws", limit=1)] == ["old"]


def test_delete_and_rename_missing_session_raise(repository: ChatSessionRepository) -> None:
    repository.save_session(session_id="s5", messages=[ChatMessage("user", "hi")])

    renamed = repository.update_session_name("s5", "Renamed")
    repository.delete_session("s5")

    assert renamed.name == "Renamed"
    with pytest.raises(SessionNotFoundError):
        repository.load_session("s5")
    with pytest.raises(SessionNotFoundError):
        repository.delete_session("s5")
    with pytest.raises(SessionNotFoundError):
        repository.update_session_name("s5", "again")


def test_recorder_appends_user_and_assistant_turn(repository: ChatSessionRepository) -> None:
    recorder = ExchangeRecorder(repository, model="claude-3-5-sonnet")
    request = ChatRequest(
        task="Explain",
        context_files=("main.py",),
        chat_session_id="chat-1",
        workspace_id="ws",
    )

    recorder(
        CompletedExchange(
            correlation_id="req-1",
            request=request,
            backend=BackendTag.CLAUDE,
            message="Because.",
            session_id="agent-42",
        ),
    )
    session = repository.load_session("chat-1")

    assert [(message.role, message.content) for message in session.messages] == [
        ("user", "Explain"),
        ("assistant", "Because."),
    ]
    assert session.messages[0].files == ["main.py"]
    assert session.messages[1].agent_session_id == "agent-42"
    assert session.messages[1].model == "claude-3-5-sonnet"
    assert session.workspace_id == "ws"
    assert session.code_cli_task_ids == {"claude": "agent-42"}


def test_recorder_falls_back_to_agent_session_id(repository: ChatSessionRepository) -> None:
    recorder = ExchangeRecorder(repository)

    view = recorder.record(
        CompletedExchange(
            correlation_id="req-2",
            request=ChatRequest(task="x"),
            backend=BackendTag.CODEX,
            message="y",
            session_id="agent-9",
        ),
    )

    assert view.session_id == "agent-9"


def test_connections_use_configured_sqlite_pragmas(tmp_path: Path) -> None:
    repo = ChatSessionRepository(
        db_path=tmp_path / "pragmas.db",
        sqlite_busy_timeout_ms=1234,
        sqlite_journal_mode="delete",
    )
    try:
        with repo.engine.connect() as connection:
            busy_timeout = connection.exec_driver_sql("PRAGMA busy_timeout").scalar()
            journal_mode = connection.exec_driver_sql("PRAGMA journal_mode").scalar()
            foreign_keys = connection.exec_driver_sql("PRAGMA foreign_keys").scalar()
    finally:
        repo.close()

    assert busy_timeout == 1234
    assert journal_mode == "delete"
    assert foreign_keys == 1


def test_unknown_journal_mode_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="Unsupported SQLite journal mode"):
        ChatSessionRepository(db_path=tmp_path / "x.db", sqlite_journal_mode="WAL; DROP TABLE x")
