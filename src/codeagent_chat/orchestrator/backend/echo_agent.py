"""Local stand-in for codeagent-wrapper used by integration tests.

Accepts the wrapper's argument vector, reads the task from stdin and replies with
``<backend>: <task>`` followed by a ``SESSION_ID`` trailer. Behaviour can be bent
through environment variables:

- ``ECHO_AGENT_STDOUT``: print this verbatim instead of the generated reply.
- ``ECHO_AGENT_STDERR``: write this to stderr.
- ``ECHO_AGENT_EXIT_CODE``: exit status (default 0).
- ``ECHO_AGENT_SLEEP_SECONDS``: delay before replying.
- ``ECHO_AGENT_RECORD``: path of a JSON file receiving argv, cwd, env and stdin.
"""

from __future__ import annotations

import argparse
import hashlib
import json
import os
import sys
import time
from pathlib import Path
from typing import TextIO

_RECORDED_ENV_KEYS = (
    "CODEX_TIMEOUT",
    "CODEAGENT_SKIP_PERMISSIONS",
    "CODEAGENT_MAX_PARALLEL_WORKERS",
    "CODEX_MODEL",
)


def main(argv: list[str] | None = None) -> int:
    """Emulate one wrapper run."""

    raw_argv = list(sys.argv[1:] if argv is None else argv)
    parser = argparse.ArgumentParser(prog="codeagent-wrapper")
    parser.add_argument("--backend", default="codex")
    parser.add_argument("--parallel", action="store_true")
    parser.add_argument("--dangerously-skip-permissions", action="store_true")
    parser.add_argument("rest", nargs="*")
    args = parser.parse_args(raw_argv)

    task = sys.stdin.buffer.read().decode("utf-8", errors="replace")
    resume_id = _resume_id(args.rest)

    record_path = os.getenv("ECHO_AGENT_RECORD")
    if record_path:
        Path(record_path).write_text(
            json.dumps(
                {
                    "argv": raw_argv,
                    "cwd": os.getcwd(),
                    "env": {key: os.getenv(key) for key in _RECORDED_ENV_KEYS},
                    "stdin": task,
                },
                ensure_ascii=False,
            ),
            "utf-8",
        )

    delay = float(os.getenv("ECHO_AGENT_SLEEP_SECONDS", "0") or 0)
    if delay > 0:
        time.sleep(delay)

    stderr_text = os.getenv("ECHO_AGENT_STDERR")
    if stderr_text:
        _write(sys.stderr, stderr_text)

    stdout_override = os.getenv("ECHO_AGENT_STDOUT")
    if stdout_override is not None:
        _write(sys.stdout, stdout_override)
    else:
        session_id = resume_id or f"echo-{hashlib.sha1(task.encode('utf-8')).hexdigest()[:12]}"  # noqa: S324
        _write(sys.stdout, f"{args.backend}: {task.strip()}\n---\nSESSION_ID: {session_id}\n")
    return int(os.getenv("ECHO_AGENT_EXIT_CODE", "0") or 0)


def _write(stream: TextIO, text: str) -> None:
    # Bytes keep the reply UTF-8 regardless of the child locale.
    stream.buffer.write(text.encode("utf-8"))
    stream.flush()


def _resume_id(rest: list[str]) -> str | None:
    if len(rest) >= 2 and rest[0] == "resume":  # noqa: PLR2004
        return rest[1]
    return None


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
