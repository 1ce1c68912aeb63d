"""Append-only chat transcript store backed by SQLModel + SQLite."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from sqlalchemy import func
from sqlmodel import Session, SQLModel, col, delete, select

from codeagent_chat.sessions.models import (
    ChatMessage,
    ChatSessionView,
    SessionNotFoundError,
    message_preview,
)
from codeagent_chat.sessions.sqlmodel_models import ChatMessageRow, ChatSessionRow, CodeCliTaskRow
from codeagent_chat.storage import build_sqlite_engine, ensure_utc, utc_now

logger = logging.getLogger(__name__)


class ChatSessionRepository:
    """Session persistence facade; safe to share across worker threads."""

    def __init__(
        self,
        db_path: Path,
        *,
        sqlite_busy_timeout_ms: int = 5_000,
        sqlite_journal_mode: str = "WAL",
    ) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(
            db_path=db_path,
            busy_timeout_ms=sqlite_busy_timeout_ms,
            journal_mode=sqlite_journal_mode,
        )

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Create tables that do not exist yet."""

        SQLModel.metadata.create_all(
            self.engine,
            tables=[
                ChatSessionRow.__table__,  # type: ignore[attr-defined]
                ChatMessageRow.__table__,  # type: ignore[attr-defined]
                CodeCliTaskRow.__table__,  # type: ignore[attr-defined]
            ],
        )

    def save_session(  # noqa: PLR0913
        self,
        *,
        session_id: str,
        messages: list[ChatMessage],
        name: str | None = None,
        workspace_id: str | None = None,
        agent_session_id: str | None = None,
        code_cli_task_ids: dict[str, str] | None = None,
    ) -> ChatSessionView:
        """Replace a session's transcript, preserving ``created_at`` if it exists."""

        if not session_id.strip():
            raise ValueError("Session ID is required")
        logger.info("Saving chat session %s (%d messages)", session_id, len(messages))
        now = utc_now()
        with Session(self.engine) as session:
            row = session.get(ChatSessionRow, session_id)
            if row is None:
                row = ChatSessionRow(session_id=session_id, created_at=now, updated_at=now)
                session.add(row)
                session.flush()
            row.name = name
            row.workspace_id = workspace_id
            row.agent_session_id = agent_session_id or row.agent_session_id or session_id
            row.message_count = len(messages)
            row.first_message_preview = message_preview(messages)
            row.updated_at = now
            session.add(row)
            session.exec(delete(ChatMessageRow).where(col(ChatMessageRow.session_id) == session_id))
            for position, message in enumerate(messages):
                session.add(_to_message_row(session_id, position, message))
            if code_cli_task_ids is not None:
                session.exec(delete(CodeCliTaskRow).where(col(CodeCliTaskRow.session_id) == session_id))
                for code_cli, task_id in code_cli_task_ids.items():
                    session.add(CodeCliTaskRow(session_id=session_id, code_cli=code_cli, task_id=task_id))
            session.commit()
        return self.load_session(session_id)

    def append_messages(
        self,
        session_id: str,
        messages: list[ChatMessage],
        *,
        code_cli: str | None = None,
        code_cli_task_id: str | None = None,
    ) -> ChatSessionView:
        """Append to a session, creating it on first use."""

        now = utc_now()
        with Session(self.engine) as session:
            row = session.get(ChatSessionRow, session_id)
            if row is None:
                logger.info("Session %s not found when appending; creating it", session_id)
                row = ChatSessionRow(
                    session_id=session_id,
                    agent_session_id=session_id,
                    workspace_id=next(
                        (message.workspace_id for message in messages if message.workspace_id),
                        None,
                    ),
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                session.flush()

            next_position = session.exec(
                select(func.count()).select_from(ChatMessageRow).where(
                    ChatMessageRow.session_id == session_id,
                ),
            ).one()
            for offset, message in enumerate(messages):
                session.add(_to_message_row(session_id, next_position + offset, message))
            if row.message_count == 0 and messages:
                row.first_message_preview = message_preview(messages)
            row.message_count = next_position + len(messages)
            row.updated_at = now

            if code_cli and code_cli_task_id:
                mapping = session.exec(
                    select(CodeCliTaskRow).where(
                        CodeCliTaskRow.session_id == session_id,
                        CodeCliTaskRow.code_cli == code_cli,
                    ),
                ).one_or_none()
                if mapping is None:
                    session.add(
                        CodeCliTaskRow(session_id=session_id, code_cli=code_cli, task_id=code_cli_task_id),
                    )
                else:
                    mapping.task_id = code_cli_task_id
                    session.add(mapping)
                row.agent_session_id = code_cli_task_id

            message_count = row.message_count
            session.add(row)
            session.commit()
        logger.info("Session %s now holds %d messages", session_id, message_count)
        return self.load_session(session_id)

    def load_session(self, session_id: str) -> ChatSessionView:
        """Load one session with transcript; raise `SessionNotFoundError` if absent."""

        with Session(self.engine) as session:
            row = session.get(ChatSessionRow, session_id)
            if row is None:
                raise SessionNotFoundError(f"Session not found: {session_id}")
            return self._to_view(session, row)

    def load_sessions(self, workspace_id: str, limit: int | None = None) -> list[ChatSessionView]:
        """Sessions of one workspace, most recently updated first."""

        with Session(self.engine) as session:
            query = (
                select(ChatSessionRow)
                .where(ChatSessionRow.workspace_id == workspace_id)
                .order_by(col(ChatSessionRow.updated_at).desc())
            )
            if limit is not None:
                query = query.limit(limit)
            rows = session.exec(query).all()
            return [self._to_view(session, row) for row in rows]

    def delete_session(self, session_id: str) -> None:
        """Remove a session and its transcript."""

        with Session(self.engine) as session:
            row = session.get(ChatSessionRow, session_id)
            if row is None:
                raise SessionNotFoundError(f"Session not found: {session_id}")
            session.exec(delete(ChatMessageRow).where(col(ChatMessageRow.session_id) == session_id))
            session.exec(delete(CodeCliTaskRow).where(col(CodeCliTaskRow.session_id) == session_id))
            session.delete(row)
            session.commit()
        logger.debug("Chat session deleted: %s", session_id)

    def update_session_name(self, session_id: str, name: str) -> ChatSessionView:
        """Rename a session."""

        with Session(self.engine) as session:
            row = session.get(ChatSessionRow, session_id)
            if row is None:
                raise SessionNotFoundError(f"Session not found: {session_id}")
            row.name = name
            row.updated_at = utc_now()
            session.add(row)
            session.commit()
        return self.load_session(session_id)

    def code_cli_task_id(self, session_id: str, code_cli: str) -> str | None:
        """Last continuation id recorded for ``code_cli`` in a session."""

        with Session(self.engine) as session:
            mapping = session.exec(
                select(CodeCliTaskRow).where(
                    CodeCliTaskRow.session_id == session_id,
                    CodeCliTaskRow.code_cli == code_cli,
                ),
            ).one_or_none()
            return mapping.task_id if mapping is not None else None

    def _to_view(self, session: Session, row: ChatSessionRow) -> ChatSessionView:
        message_rows = session.exec(
            select(ChatMessageRow)
            .where(ChatMessageRow.session_id == row.session_id)
            .order_by(col(ChatMessageRow.position).asc()),
        ).all()
        task_rows = session.exec(
            select(CodeCliTaskRow).where(CodeCliTaskRow.session_id == row.session_id),
        ).all()
        return ChatSessionView(
            session_id=row.session_id,
            name=row.name,
            agent_session_id=row.agent_session_id,
            workspace_id=row.workspace_id,
            messages=[_to_message(message_row) for message_row in message_rows],
            created_at=ensure_utc(row.created_at),
            updated_at=ensure_utc(row.updated_at),
            message_count=row.message_count,
            first_message_preview=row.first_message_preview,
            code_cli_task_ids={task_row.code_cli: task_row.task_id for task_row in task_rows},
        )


def _to_message_row(session_id: str, position: int, message: ChatMessage) -> ChatMessageRow:
    return ChatMessageRow(
        session_id=session_id,
        position=position,
        message_id=message.id,
        role=message.role,
        content=message.content,
        timestamp=message.timestamp,
        files_json=json.dumps(message.files) if message.files is not None else None,
        model=message.model,
        agent_session_id=message.agent_session_id,
        workspace_id=message.workspace_id,
    )


def _to_message(row: ChatMessageRow) -> ChatMessage:
    return ChatMessage(
        id=row.message_id,
        role=row.role,
        content=row.content,
        timestamp=ensure_utc(row.timestamp),
        files=json.loads(row.files_json) if row.files_json is not None else None,
        model=row.model,
        agent_session_id=row.agent_session_id,
        workspace_id=row.workspace_id,
    )
