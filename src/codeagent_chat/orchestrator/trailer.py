"""Recover the reply body and session id from wrapper stdout.

The wrapper prints::

    <message>
    ---
    SESSION_ID: <id>

Matching is heuristic. Rules are tried strictest first and each uses the last
occurrence, because the reply itself may quote marker-like text.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

SESSION_KEY = "SESSION_ID:"


class TrailerMarker(str, Enum):
    """Which rule located the trailer."""

    DELIMITED = "delimited"
    DELIMITED_NO_NEWLINE = "delimited_no_newline"
    BARE_KEY = "bare_key"
    NONE = "none"


_MARKER_RULES: tuple[tuple[TrailerMarker, str], ...] = (
    (TrailerMarker.DELIMITED, f"\n---\n{SESSION_KEY}"),
    (TrailerMarker.DELIMITED_NO_NEWLINE, f"---\n{SESSION_KEY}"),
    (TrailerMarker.BARE_KEY, SESSION_KEY),
)


@dataclass(frozen=True, slots=True)
class ParsedOutput:
    """Message body and optional continuation id."""

    message: str
    session_id: str | None
    marker: TrailerMarker


def parse_trailer(stdout: str) -> ParsedOutput:
    """Split wrapper stdout into message and session id. Never raises."""

    normalized = normalize_newlines(stdout)
    for marker, token in _MARKER_RULES:
        index = normalized.rfind(token)
        if index == -1:
            continue
        before = normalized[:index]
        after = normalized[index + len(token) :]
        return ParsedOutput(
            message=_clean_message(before),
            session_id=_first_token(after),
            marker=marker,
        )
    return ParsedOutput(message=normalized.strip(), session_id=None, marker=TrailerMarker.NONE)


def normalize_newlines(text: str) -> str:
    """Convert CRLF and lone CR line endings to LF."""

    return text.replace("\r\n", "\n").replace("\r", "\n")


def _clean_message(text: str) -> str:
    return text.strip().rstrip("-").strip()


def _first_token(text: str) -> str | None:
    line = text.split("\n", 1)[0]
    parts = line.strip().lstrip(":").split()
    if not parts:
        return None
    return parts[0]
