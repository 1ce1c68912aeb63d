"""Subprocess-based runner for the codeagent-wrapper CLI."""

from __future__ import annotations

import contextlib
import logging
import os
import signal
import subprocess
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import IO

from codeagent_chat.orchestrator.backend.base import CliExecResult, RunResult, RunSpec
from codeagent_chat.orchestrator.backend.resolver import WRAPPER_NAME, resolve_executable
from codeagent_chat.orchestrator.errors import NonZeroExitError, ProcessIOError, SpawnError
from codeagent_chat.orchestrator.models import BackendTag
from codeagent_chat.orchestrator.trailer import TrailerMarker, normalize_newlines, parse_trailer

logger = logging.getLogger(__name__)

ENV_TIMEOUT = "CODEX_TIMEOUT"
ENV_SKIP_PERMISSIONS = "CODEAGENT_SKIP_PERMISSIONS"
ENV_MAX_PARALLEL_WORKERS = "CODEAGENT_MAX_PARALLEL_WORKERS"
ENV_CODEX_MODEL = "CODEX_MODEL"

STDIN_SENTINEL = "-"
DEFAULT_DIAGNOSTIC_TAIL_CHARS = 4_000
TRUNCATION_MARK = "…"

Resolver = Callable[[str | None], Path]


class CodeagentWrapperBackend:
    """Run one wrapper invocation per `RunSpec` and collect its output."""

    def __init__(
        self,
        *,
        resolver: Resolver = resolve_executable,
        diagnostic_tail_chars: int = DEFAULT_DIAGNOSTIC_TAIL_CHARS,
        kill_on_cancel: bool = False,
        poll_interval_seconds: float = 0.1,
    ) -> None:
        self.resolver = resolver
        self.diagnostic_tail_chars = diagnostic_tail_chars
        self.kill_on_cancel = kill_on_cancel
        self.poll_interval_seconds = poll_interval_seconds

    def resolve(self, spec: RunSpec) -> Path:
        """Locate the wrapper executable for ``spec``."""

        return self.resolver(spec.binary_path)

    def run(
        self,
        spec: RunSpec,
        *,
        cancel_requested: Callable[[], bool] | None = None,
        executable: Path | None = None,
    ) -> RunResult:
        """Spawn the wrapper, feed the task over stdin and parse its reply."""

        binary = executable if executable is not None else self.resolve(spec)
        run_args = _build_run_args(executable=binary, spec=spec)
        env_overrides = _build_env_overrides(spec)
        env = os.environ.copy()
        env.update(env_overrides)

        logger.info(
            "Executing %s: backend=%s workdir=%s parallel=%s resume=%s",
            WRAPPER_NAME,
            spec.backend.value,
            spec.workdir,
            spec.parallel,
            spec.resume_session_id or "-",
        )
        logger.debug("%s args: %s", WRAPPER_NAME, run_args[1:])
        logger.debug("%s env overrides: %s", WRAPPER_NAME, sorted(env_overrides))

        stdout_bytes, stderr_bytes, exit_code = _run_subprocess_with_cancel(
            run_args=run_args,
            cwd=spec.workdir,
            env=env,
            payload=spec.task.encode("utf-8"),
            cancel_requested=cancel_requested if self.kill_on_cancel else None,
            poll_interval_seconds=self.poll_interval_seconds,
        )
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        logger.debug(
            "%s finished: exit_code=%s stdout_len=%d stderr_len=%d",
            WRAPPER_NAME,
            exit_code,
            len(stdout),
            len(stderr),
        )

        if exit_code != 0:
            stderr_tail = tail_snippet(stderr, self.diagnostic_tail_chars)
            stdout_tail = tail_snippet(stdout, self.diagnostic_tail_chars)
            logger.warning(
                "%s failed: exit_code=%s stderr_tail=%r stdout_tail=%r",
                WRAPPER_NAME,
                exit_code,
                stderr_tail,
                stdout_tail,
            )
            raise NonZeroExitError(
                f"{WRAPPER_NAME} exited with code {exit_code}. "
                f"stderr: {stderr_tail.strip() or '<empty>'}",
                exit_code=exit_code,
                stderr_tail=stderr_tail,
                stdout_tail=stdout_tail,
            )

        parsed = parse_trailer(stdout)
        if parsed.marker is TrailerMarker.BARE_KEY:
            logger.warning(
                "%s trailer recovered from a bare SESSION_ID key; "
                "the reply may have echoed the marker",
                WRAPPER_NAME,
            )
        logger.debug(
            "Parsed %s stdout: marker=%s session_id=%s message_len=%d",
            WRAPPER_NAME,
            parsed.marker.value,
            parsed.session_id,
            len(parsed.message),
        )
        return RunResult(
            message=parsed.message,
            session_id=parsed.session_id,
            raw_stdout=stdout,
            raw_stderr=stderr,
            exit_code=exit_code,
        )

    def exec_raw(
        self,
        *,
        binary_path: str | None,
        args: Sequence[str],
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CliExecResult:
        """Run the wrapper with caller-supplied args and return output untouched."""

        binary = self.resolver(binary_path)
        # Args and env may carry secrets; only their sizes are logged.
        logger.info("Executing %s (args_len=%d)", WRAPPER_NAME, len(args))
        merged_env = os.environ.copy()
        if env:
            merged_env.update(env)
        try:
            completed = subprocess.run(  # noqa: S603
                [str(binary), *args],
                cwd=cwd,
                env=merged_env,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                check=False,
            )
        except OSError as error:
            raise SpawnError(f"Failed to start {WRAPPER_NAME}: {error} (bin={binary})") from error
        return CliExecResult(
            stdout=completed.stdout.decode("utf-8", errors="replace"),
            stderr=completed.stderr.decode("utf-8", errors="replace"),
            exit_code=completed.returncode,
        )


def _build_run_args(*, executable: Path, spec: RunSpec) -> list[str]:
    args = [str(executable)]
    backend = spec.backend.value.strip()
    if backend:
        args.extend(["--backend", backend])
    if spec.parallel:
        args.append("--parallel")
    if spec.skip_permissions:
        args.append("--dangerously-skip-permissions")
    if spec.parallel:
        # Parallel mode reads its task config from stdin and rejects extra args.
        return args

    resume = (spec.resume_session_id or "").strip()
    if resume:
        args.extend(["resume", resume])
    args.extend([STDIN_SENTINEL, str(spec.workdir)])
    return args


def _build_env_overrides(spec: RunSpec) -> dict[str, str]:
    overrides: dict[str, str] = {}
    if spec.timeout_ms is not None:
        overrides[ENV_TIMEOUT] = str(spec.timeout_ms)
    if spec.skip_permissions:
        overrides[ENV_SKIP_PERMISSIONS] = "1"
    if spec.max_parallel_workers is not None:
        overrides[ENV_MAX_PARALLEL_WORKERS] = str(spec.max_parallel_workers)
    # The wrapper has no --model flag; codex picks the hint up from env.
    model_hint = (spec.model_hint or "").strip()
    if spec.backend is BackendTag.CODEX and model_hint:
        overrides[ENV_CODEX_MODEL] = model_hint
    return overrides


def _run_subprocess_with_cancel(  # noqa: PLR0913
    *,
    run_args: list[str],
    cwd: Path,
    env: dict[str, str],
    payload: bytes,
    cancel_requested: Callable[[], bool] | None,
    poll_interval_seconds: float,
) -> tuple[bytes, bytes, int]:
    try:
        process = subprocess.Popen(  # noqa: S603
            run_args,
            cwd=cwd,
            env=env,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            # Own process group so cancellation also reaches the agent the wrapper spawns.
            start_new_session=os.name != "nt",
        )
    except OSError as error:
        raise SpawnError(
            f"Failed to start {WRAPPER_NAME}: {error} (bin={run_args[0]})",
        ) from error

    stdout_reader = _PipeReader(process.stdout, name="stdout")
    stderr_reader = _PipeReader(process.stderr, name="stderr")

    try:
        if process.stdin is not None:
            process.stdin.write(payload)
            process.stdin.close()
    except OSError as error:
        if process.stdin is not None:
            with contextlib.suppress(OSError):
                process.stdin.close()
        _terminate_process(process)
        stdout_reader.join()
        stderr_reader.join()
        raise ProcessIOError(f"Failed to write {WRAPPER_NAME} stdin: {error}") from error

    terminated = False
    while True:
        returncode = process.poll()
        if returncode is not None:
            break
        if not terminated and cancel_requested is not None and cancel_requested():
            logger.info("Terminating %s pid=%s after cancellation", WRAPPER_NAME, process.pid)
            _terminate_process(process)
            terminated = True
            continue
        if cancel_requested is None:
            returncode = process.wait()
            break
        time.sleep(poll_interval_seconds)

    stdout_bytes = stdout_reader.join()
    stderr_bytes = stderr_reader.join()
    return stdout_bytes, stderr_bytes, returncode


class _PipeReader:
    """Drain one child pipe on a background thread."""

    def __init__(self, stream: IO[bytes] | None, *, name: str) -> None:
        self.name = name
        self._stream = stream
        self._chunks: list[bytes] = []
        self._error: OSError | None = None
        self._thread = threading.Thread(
            target=self._drain,
            daemon=True,
            name=f"{WRAPPER_NAME}-{name}",
        )
        self._thread.start()

    def _drain(self) -> None:
        if self._stream is None:
            return
        try:
            self._chunks.append(self._stream.read())
        except OSError as error:
            self._error = error
        finally:
            with contextlib.suppress(OSError):
                self._stream.close()

    def join(self) -> bytes:
        self._thread.join()
        if self._error is not None:
            raise ProcessIOError(
                f"Failed to read {WRAPPER_NAME} {self.name}: {self._error}",
            ) from self._error
        return b"".join(self._chunks)


def _terminate_process(process: subprocess.Popen[bytes]) -> None:
    """Stop the wrapper together with the agent processes it started.

    Agents inherit the wrapper's stdout/stderr, so the pipe readers only see
    EOF once every member of the wrapper's process group has exited.
    """

    if os.name == "nt":
        _terminate_single(process)
        return
    if not _signal_group(process.pid, signal.SIGTERM):
        return
    with contextlib.suppress(subprocess.TimeoutExpired):
        process.wait(timeout=2)
    # Whatever is still in the group would keep the pipes open.
    _signal_group(process.pid, signal.SIGKILL)
    with contextlib.suppress(subprocess.TimeoutExpired):
        process.wait(timeout=2)


def _signal_group(pgid: int, signum: int) -> bool:
    try:
        os.killpg(pgid, signum)
    except ProcessLookupError:
        return False
    except OSError as error:
        logger.debug("Failed to signal process group %s: %s", pgid, error)
        return False
    return True


def _terminate_single(process: subprocess.Popen[bytes]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)


def tail_snippet(text: str, max_chars: int) -> str:
    """Keep the last ``max_chars`` characters, marking front truncation."""

    if max_chars <= 0:
        return ""
    normalized = normalize_newlines(text)
    if len(normalized) <= max_chars:
        return normalized
    return f"{TRUNCATION_MARK}{normalized[-max_chars:]}"
