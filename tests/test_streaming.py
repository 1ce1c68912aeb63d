from __future__ import annotations

import math
import threading

import allure
import pytest

from codeagent_chat.orchestrator.models import StreamEvent
from codeagent_chat.orchestrator.streaming import emit_error, stream_message

pytestmark = [
    allure.epic("Streaming"),
    allure.feature("Chunked Reply Delivery"),
]


def _collect(message: str, *, session_id: str | None = "sid", chunk_size: int = 32) -> list[StreamEvent]:
    events: list[StreamEvent] = []
    completed = stream_message(
        message,
        session_id,
        "req-1",
        events.append,
        threading.Event(),
        chunk_size=chunk_size,
        delay_seconds=0,
    )
    assert completed is True
    return events


@pytest.mark.parametrize("length", [1, 31, 32, 33, 64, 100])
def test_event_count_is_ceil_of_length_over_chunk_size(length: int) -> None:
    message = "x" * length

    events = _collect(message)

    assert len(events) == math.ceil(length / 32)
    assert "".join(event.delta for event in events) == message


def test_empty_message_emits_single_empty_final_event() -> None:
    events = _collect("", session_id="abc")

    assert len(events) == 1
    assert events[0].delta == ""
    assert events[0].is_final is True
    assert events[0].session_id == "abc"


def test_only_last_event_is_final_and_carries_session_id() -> None:
    events = _collect("y" * 70, session_id="final-id")

    assert [event.is_final for event in events] == [False, False, True]
    assert [event.session_id for event in events] == [None, None, "final-id"]
    assert {event.correlation_id for event in events} == {"req-1"}


def test_chunks_count_code_points_not_bytes() -> None:
    message = "é" * 40

    events = _collect(message)

    assert [len(event.delta) for event in events] == [32, 8]


def test_custom_chunk_size_is_honoured() -> None:
    events = _collect("abcdefg", chunk_size=3)

    assert [event.delta for event in events] == ["abc", "def", "g"]


def test_cancel_after_k_events_stops_without_final_event() -> None:
    token = threading.Event()
    events: list[StreamEvent] = []

    def _sink(event: StreamEvent) -> None:
        events.append(event)
        if len(events) == 2:
            token.set()

    completed = stream_message(
        "z" * 200,
        "sid",
        "req-2",
        _sink,
        token,
        delay_seconds=0,
    )

    assert completed is False
    assert len(events) == 2
    assert not any(event.is_final for event in events)


def test_cancel_during_pause_returns_early() -> None:
    token = threading.Event()
    events: list[StreamEvent] = []

    def _sink(event: StreamEvent) -> None:
        events.append(event)
        token.set()

    completed = stream_message("w" * 100, None, "req-3", _sink, token, delay_seconds=5)

    assert completed is False
    assert len(events) == 1


def test_already_cancelled_token_emits_nothing() -> None:
    token = threading.Event()
    token.set()
    events: list[StreamEvent] = []

    assert stream_message("", None, "req-4", events.append, token) is False
    assert stream_message("abc", None, "req-4", events.append, token) is False
    assert events == []


def test_invalid_chunk_size_is_rejected() -> None:
    with pytest.raises(ValueError, match="chunk_size"):
        stream_message("abc", None, "req-5", lambda _: None, threading.Event(), chunk_size=0)


def test_emit_error_sends_one_final_error_event_without_session() -> None:
    events: list[StreamEvent] = []

    emit_error("boom", "req-6", events.append)

    assert len(events) == 1
    assert events[0].is_final is True
    assert events[0].is_error is True
    assert events[0].session_id is None
    assert events[0].to_payload() == {
        "request_id": "req-6",
        "delta": "boom",
        "done": True,
        "session_id": None,
        "error": True,
    }
