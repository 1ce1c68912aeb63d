"""Persist completed orchestrator exchanges as transcript entries."""

from __future__ import annotations

import logging

from codeagent_chat.orchestrator.models import CompletedExchange
from codeagent_chat.sessions.models import ChatMessage, ChatSessionView
from codeagent_chat.sessions.repository import ChatSessionRepository

logger = logging.getLogger(__name__)


class ExchangeRecorder:
    """`on_complete` collaborator that appends each finished turn to its chat session."""

    def __init__(self, repository: ChatSessionRepository, *, model: str | None = None) -> None:
        self.repository = repository
        self.model = model

    def __call__(self, exchange: CompletedExchange) -> None:
        self.record(exchange)

    def record(self, exchange: CompletedExchange) -> ChatSessionView:
        request = exchange.request
        chat_session_id = request.chat_session_id or exchange.session_id or exchange.correlation_id
        model = request.model_hint or self.model
        messages = [
            ChatMessage(
                role="user",
                content=request.task,
                files=list(request.context_files) or None,
                model=model,
                agent_session_id=request.resume_session_id,
                workspace_id=request.workspace_id,
            ),
            ChatMessage(
                role="assistant",
                content=exchange.message,
                model=model,
                agent_session_id=exchange.session_id,
                workspace_id=request.workspace_id,
            ),
        ]
        logger.debug(
            "Recording exchange %s into chat session %s",
            exchange.correlation_id,
            chat_session_id,
        )
        return self.repository.append_messages(
            chat_session_id,
            messages,
            code_cli=exchange.backend.value,
            code_cli_task_id=exchange.session_id,
        )
