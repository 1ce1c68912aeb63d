"""SQLModel ORM tables for chat session storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class ChatSessionRow(SQLModel, table=True):
    __tablename__ = "chat_sessions"  # type: ignore[bad-override]

    session_id: str = Field(primary_key=True)
    name: str | None = Field(default=None)
    agent_session_id: str | None = Field(default=None, index=True)
    workspace_id: str | None = Field(default=None, index=True)
    message_count: int = Field(default=0)
    first_message_preview: str = Field(default="", sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )


class ChatMessageRow(SQLModel, table=True):
    __tablename__ = "chat_messages"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    session_id: str = Field(
        sa_column=Column(
            ForeignKey("chat_sessions.session_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    position: int = Field(index=True)
    message_id: str
    role: str
    content: str = Field(sa_column=Column(Text, nullable=False))
    timestamp: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    files_json: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    model: str | None = Field(default=None)
    agent_session_id: str | None = Field(default=None)
    workspace_id: str | None = Field(default=None)


class CodeCliTaskRow(SQLModel, table=True):
    __tablename__ = "chat_session_code_cli_tasks"  # type: ignore[bad-override]
    __table_args__ = (UniqueConstraint("session_id", "code_cli", name="uq_session_code_cli"),)

    id: int | None = Field(default=None, primary_key=True)
    session_id: str = Field(
        sa_column=Column(
            ForeignKey("chat_sessions.session_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    code_cli: str
    task_id: str
