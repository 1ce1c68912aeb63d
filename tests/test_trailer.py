from __future__ import annotations

import allure

from codeagent_chat.orchestrator.trailer import TrailerMarker, normalize_newlines, parse_trailer

pytestmark = [
    allure.epic("Wrapper Output"),
    allure.feature("Session Trailer Parsing"),
]


def test_delimited_trailer_splits_message_and_session_id() -> None:
    parsed = parse_trailer("Hello world\n---\nSESSION_ID: abc123\n")

    assert parsed.message == "Hello world"
    assert parsed.session_id == "abc123"
    assert parsed.marker is TrailerMarker.DELIMITED


def test_crlf_output_is_normalized_before_matching() -> None:
    parsed = parse_trailer("Line one\r\nLine two\r\n---\r\nSESSION_ID: s-1\r\n")

    assert parsed.message == "Line one\nLine two"
    assert parsed.session_id == "s-1"
    assert parsed.marker is TrailerMarker.DELIMITED


def test_delimiter_at_start_of_output_matches_without_leading_newline() -> None:
    parsed = parse_trailer("---\nSESSION_ID: only-id")

    assert parsed.message == ""
    assert parsed.session_id == "only-id"
    assert parsed.marker is TrailerMarker.DELIMITED_NO_NEWLINE


def test_bare_key_is_used_as_last_resort_and_reported() -> None:
    parsed = parse_trailer("Answer text SESSION_ID: xyz trailing words")

    assert parsed.message == "Answer text"
    assert parsed.session_id == "xyz"
    assert parsed.marker is TrailerMarker.BARE_KEY


def test_last_trailer_wins_when_reply_quotes_a_trailer() -> None:
    stdout = (
        "Example output:\n---\nSESSION_ID: quoted\nmore text\n---\nSESSION_ID: real-id\n"
    )

    parsed = parse_trailer(stdout)

    assert parsed.session_id == "real-id"
    assert parsed.message.startswith("Example output:")
    assert parsed.message.endswith("more text")


def test_missing_trailer_returns_trimmed_text_without_session() -> None:
    parsed = parse_trailer("  just an answer \n\n")

    assert parsed.message == "just an answer"
    assert parsed.session_id is None
    assert parsed.marker is TrailerMarker.NONE


def test_empty_session_value_yields_none() -> None:
    parsed = parse_trailer("Reply\n---\nSESSION_ID:   \n")

    assert parsed.message == "Reply"
    assert parsed.session_id is None


def test_session_id_is_first_token_of_key_line_only() -> None:
    parsed = parse_trailer("Reply\n---\nSESSION_ID: first second\nnext-line\n")

    assert parsed.session_id == "first"


def test_trailing_separator_dashes_are_trimmed_from_message() -> None:
    parsed = parse_trailer("Reply body\n-----\n---\nSESSION_ID: id-1")

    assert parsed.message == "Reply body"


def test_parse_never_raises_on_empty_input() -> None:
    parsed = parse_trailer("")

    assert parsed.message == ""
    assert parsed.session_id is None


def test_normalize_newlines_handles_lone_carriage_returns() -> None:
    assert normalize_newlines("a\rb\r\nc") == "a\nb\nc"
