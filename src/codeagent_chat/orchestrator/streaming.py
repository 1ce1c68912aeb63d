"""Re-emit a finished reply as ordered, cancellable chunks."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from codeagent_chat.orchestrator.models import StreamEvent

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 32
DEFAULT_CHUNK_DELAY_SECONDS = 0.02

EventSink = Callable[[StreamEvent], None]


def stream_message(  # noqa: PLR0913
    message: str,
    final_session_id: str | None,
    correlation_id: str,
    sink: EventSink,
    cancel_token: threading.Event,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    delay_seconds: float = DEFAULT_CHUNK_DELAY_SECONDS,
) -> bool:
    """Deliver ``message`` in chunks; return False if cancelled before the final chunk.

    Chunks are counted in code points, so ``ceil(len(message) / chunk_size)`` events
    are produced (one empty final event for an empty message). Only the last event
    is final and carries ``final_session_id``.
    """

    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")

    if not message:
        if cancel_token.is_set():
            return False
        sink(_event(correlation_id, "", is_final=True, session_id=final_session_id))
        return True

    last_index = len(message) - 1
    buffer: list[str] = []
    emitted = 0
    for index, char in enumerate(message):
        buffer.append(char)
        is_last = index == last_index
        if len(buffer) < chunk_size and not is_last:
            continue

        if cancel_token.is_set():
            logger.debug("Stream %s cancelled after %d events", correlation_id, emitted)
            return False
        sink(
            _event(
                correlation_id,
                "".join(buffer),
                is_final=is_last,
                session_id=final_session_id if is_last else None,
            ),
        )
        emitted += 1
        buffer.clear()
        if not is_last and delay_seconds > 0 and cancel_token.wait(delay_seconds):
            logger.debug("Stream %s cancelled after %d events", correlation_id, emitted)
            return False
    return True


def emit_error(message: str, correlation_id: str, sink: EventSink) -> None:
    """Deliver a single, immediately final error event."""

    sink(_event(correlation_id, message, is_final=True, session_id=None, is_error=True))


def _event(
    correlation_id: str,
    delta: str,
    *,
    is_final: bool,
    session_id: str | None,
    is_error: bool = False,
) -> StreamEvent:
    return StreamEvent(
        correlation_id=correlation_id,
        delta=delta,
        is_final=is_final,
        session_id=session_id,
        is_error=is_error,
    )
