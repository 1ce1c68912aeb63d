"""Domain models for persisted chat sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4

from codeagent_chat.storage import utc_now

PREVIEW_CHARS = 100


class SessionNotFoundError(LookupError):
    """Requested chat session does not exist."""


@dataclass(slots=True)
class ChatMessage:
    """One transcript entry."""

    role: str
    content: str
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=utc_now)
    files: list[str] | None = None
    model: str | None = None
    agent_session_id: str | None = None
    workspace_id: str | None = None


@dataclass(slots=True)
class ChatSessionView:
    """Readable session with its transcript."""

    session_id: str
    name: str | None
    agent_session_id: str | None
    workspace_id: str | None
    messages: list[ChatMessage]
    created_at: datetime
    updated_at: datetime
    message_count: int
    first_message_preview: str
    code_cli_task_ids: dict[str, str] = field(default_factory=dict)


def message_preview(messages: list[ChatMessage]) -> str:
    """First message content cut to `PREVIEW_CHARS` characters."""

    if not messages:
        return ""
    content = messages[0].content
    if len(content) <= PREVIEW_CHARS:
        return content
    return f"{content[:PREVIEW_CHARS]}..."
