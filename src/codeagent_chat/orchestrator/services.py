"""Composition root: select backend, run the wrapper, stream the reply."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from uuid import uuid4

from codeagent_chat.config import Settings
from codeagent_chat.orchestrator.backend.base import AgentBackend, RunSpec
from codeagent_chat.orchestrator.backend.cli_backend import (
    DEFAULT_DIAGNOSTIC_TAIL_CHARS,
    CodeagentWrapperBackend,
    tail_snippet,
)
from codeagent_chat.orchestrator.backend.resolver import WRAPPER_NAME
from codeagent_chat.orchestrator.errors import (
    ConfigError,
    EmptyResultError,
    NonZeroExitError,
    OrchestratorError,
)
from codeagent_chat.orchestrator.models import (
    DEFAULT_CODE_CLIS,
    DEFAULT_MODELS,
    AiModel,
    ChatRequest,
    CodeCli,
    CompletedExchange,
    OrchestratorState,
    WrapperConfig,
)
from codeagent_chat.orchestrator.registry import CancelHandle, CancellationRegistry
from codeagent_chat.orchestrator.routing import select_backend
from codeagent_chat.orchestrator.streaming import (
    DEFAULT_CHUNK_DELAY_SECONDS,
    DEFAULT_CHUNK_SIZE,
    EventSink,
    emit_error,
    stream_message,
)

logger = logging.getLogger(__name__)

CompletionHook = Callable[[CompletedExchange], None]
FinishHook = Callable[[OrchestratorState], None]


class ChatOrchestrator:
    """Runs each chat request as a cancellable background task.

    One request walks ``idle -> backend_resolved -> executable_resolved ->
    process_running -> trailer_parsed -> streaming -> done``. Any failure ends in
    ``errored`` after exactly one final error event. Nothing is retried here.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        backend: AgentBackend,
        wrapper_config: WrapperConfig | None = None,
        current_model: str | None = DEFAULT_MODELS[0],
        models: list[AiModel] | None = None,
        code_clis: list[CodeCli] | None = None,
        registry: CancellationRegistry | None = None,
        max_workers: int = 4,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_delay_seconds: float = DEFAULT_CHUNK_DELAY_SECONDS,
        diagnostic_tail_chars: int = DEFAULT_DIAGNOSTIC_TAIL_CHARS,
        on_complete: CompletionHook | None = None,
    ) -> None:
        self.backend = backend
        self.registry = registry or CancellationRegistry()
        self.chunk_size = chunk_size
        self.chunk_delay_seconds = chunk_delay_seconds
        self.diagnostic_tail_chars = diagnostic_tail_chars
        self.on_complete = on_complete
        self._state_lock = threading.Lock()
        self._wrapper_config = replace(wrapper_config) if wrapper_config is not None else WrapperConfig()
        if models is None:
            models = [AiModel(name) for name in DEFAULT_MODELS]
        if code_clis is None:
            code_clis = [CodeCli(name) for name in DEFAULT_CODE_CLIS]
        self._models = list(models)
        self._code_clis = list(code_clis)
        self._current_model = current_model
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="codeagent-request",
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        on_complete: CompletionHook | None = None,
    ) -> ChatOrchestrator:
        """Wire the default wrapper backend from application settings."""

        return cls(
            backend=CodeagentWrapperBackend(
                diagnostic_tail_chars=settings.wrapper.diagnostic_tail_chars,
                kill_on_cancel=settings.wrapper.kill_on_cancel,
            ),
            wrapper_config=settings.wrapper.to_wrapper_config(),
            current_model=settings.current_model,
            max_workers=settings.stream.pool_workers,
            chunk_size=settings.stream.chunk_size,
            chunk_delay_seconds=settings.stream.chunk_delay_ms / 1000.0,
            diagnostic_tail_chars=settings.wrapper.diagnostic_tail_chars,
            on_complete=on_complete,
        )

    def __enter__(self) -> ChatOrchestrator:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown(wait=True)

    # -- configuration ---------------------------------------------------------

    def set_wrapper_config(self, config: WrapperConfig) -> None:
        """Replace wrapper settings; in-flight requests keep their snapshot."""

        with self._state_lock:
            self._wrapper_config = replace(config)

    def get_wrapper_config(self) -> WrapperConfig:
        """Copy of the current wrapper settings."""

        with self._state_lock:
            return replace(self._wrapper_config)

    def get_models(self) -> list[str]:
        """Names of active models."""

        with self._state_lock:
            return [model.name for model in self._models if model.is_active]

    @property
    def current_model(self) -> str | None:
        with self._state_lock:
            return self._current_model

    def set_current_model(self, name: str) -> None:
        """Select a known model; unknown names raise `ConfigError`."""

        with self._state_lock:
            if not any(model.name == name for model in self._models):
                raise ConfigError(f"Model not found: {name}")
            self._current_model = name

    def add_model(self, model: AiModel) -> None:
        with self._state_lock:
            self._models.append(model)

    def remove_model(self, name: str) -> None:
        with self._state_lock:
            self._models = [model for model in self._models if model.name != name]

    def get_code_clis(self) -> list[str]:
        """Names of active code CLIs, usable as ``backend_hint`` values."""

        with self._state_lock:
            return [cli.name for cli in self._code_clis if cli.is_active]

    def add_code_cli(self, cli: CodeCli) -> None:
        with self._state_lock:
            self._code_clis.append(cli)

    def remove_code_cli(self, name: str) -> None:
        with self._state_lock:
            self._code_clis = [cli for cli in self._code_clis if cli.name != name]

    # -- request lifecycle -----------------------------------------------------

    def submit(
        self,
        request: ChatRequest,
        sink: EventSink,
        *,
        on_finished: FinishHook | None = None,
    ) -> str:
        """Queue ``request`` on the worker pool and return its correlation id.

        ``on_finished`` gets the terminal state once the worker is done with the
        request, after its last event has been delivered to ``sink``.
        """

        correlation_id = request.correlation_id or str(uuid4())
        handle = self.registry.register(correlation_id)
        try:
            future = self._executor.submit(self._run_registered, request, sink, handle)
        except RuntimeError:
            self.registry.remove(handle)
            raise
        self.registry.attach_future(correlation_id, future)
        if on_finished is not None:
            future.add_done_callback(lambda done: _report_finished(done, on_finished))
        logger.debug("Submitted request %s", correlation_id)
        return correlation_id

    def run(
        self,
        request: ChatRequest,
        sink: EventSink,
        *,
        correlation_id: str | None = None,
    ) -> OrchestratorState:
        """Execute ``request`` on the calling thread and return its terminal state."""

        resolved_id = correlation_id or request.correlation_id or str(uuid4())
        handle = self.registry.register(resolved_id)
        return self._run_registered(request, sink, handle)

    def cancel(self, correlation_id: str) -> bool:
        """Stop further streaming for ``correlation_id``."""

        cancelled = self.registry.cancel(correlation_id)
        if cancelled:
            logger.info("Cancellation requested for %s", correlation_id)
        return cancelled

    def active_requests(self) -> list[str]:
        """Correlation ids currently in flight."""

        return self.registry.active_ids()

    def shutdown(self, *, wait: bool = True, cancel_pending: bool = False) -> None:
        """Stop accepting work; optionally cancel everything in flight."""

        if cancel_pending:
            for correlation_id in self.registry.active_ids():
                self.registry.cancel(correlation_id)
        self._executor.shutdown(wait=wait)

    def _run_registered(
        self,
        request: ChatRequest,
        sink: EventSink,
        handle: CancelHandle,
    ) -> OrchestratorState:
        try:
            return self._execute(request, sink, handle)
        except Exception as error:
            logger.exception("Unexpected failure for request %s", handle.correlation_id)
            self._emit_error_safely(
                f"Unexpected error: {error}",
                handle.correlation_id,
                sink,
            )
            return OrchestratorState.ERRORED
        finally:
            self.registry.remove(handle)

    def _execute(  # noqa: PLR0911
        self,
        request: ChatRequest,
        sink: EventSink,
        handle: CancelHandle,
    ) -> OrchestratorState:
        correlation_id = handle.correlation_id
        token = handle.token
        if token.is_set():
            logger.info("Request %s cancelled before start", correlation_id)
            return OrchestratorState.CANCELED

        spec = self._build_run_spec(request)
        state = OrchestratorState.BACKEND_RESOLVED
        logger.debug("Request %s: %s backend=%s", correlation_id, state.value, spec.backend.value)

        try:
            executable = self.backend.resolve(spec)
        except OrchestratorError as error:
            return self._fail(error, state, correlation_id, sink)
        state = OrchestratorState.EXECUTABLE_RESOLVED
        logger.debug("Request %s: %s bin=%s", correlation_id, state.value, executable)

        state = OrchestratorState.PROCESS_RUNNING
        started = time.monotonic()
        try:
            result = self.backend.run(spec, cancel_requested=token.is_set, executable=executable)
        except OrchestratorError as error:
            if token.is_set():
                logger.info("Request %s cancelled while %s ran", correlation_id, WRAPPER_NAME)
                return OrchestratorState.CANCELED
            return self._fail(error, state, correlation_id, sink)
        elapsed = time.monotonic() - started

        state = OrchestratorState.TRAILER_PARSED
        if not result.message.strip():
            return self._fail(
                EmptyResultError(
                    f"{WRAPPER_NAME} returned no usable message.",
                    stderr_tail=tail_snippet(result.raw_stderr, self.diagnostic_tail_chars),
                    stdout_tail=tail_snippet(result.raw_stdout, self.diagnostic_tail_chars),
                ),
                state,
                correlation_id,
                sink,
            )

        state = OrchestratorState.STREAMING
        completed = stream_message(
            result.message,
            result.session_id,
            correlation_id,
            sink,
            token,
            chunk_size=self.chunk_size,
            delay_seconds=self.chunk_delay_seconds,
        )
        if not completed:
            logger.info("Request %s cancelled while streaming", correlation_id)
            return OrchestratorState.CANCELED

        logger.info(
            "Request %s completed: backend=%s session_id=%s elapsed=%.1fs",
            correlation_id,
            spec.backend.value,
            result.session_id,
            elapsed,
        )
        self._notify_complete(
            CompletedExchange(
                correlation_id=correlation_id,
                request=request,
                backend=spec.backend,
                message=result.message,
                session_id=result.session_id,
                metadata={"elapsed_seconds": round(elapsed, 3), "exit_code": result.exit_code},
            ),
        )
        return OrchestratorState.DONE

    def _build_run_spec(self, request: ChatRequest) -> RunSpec:
        # Hold the lock only while copying; the subprocess wait happens later.
        with self._state_lock:
            config = replace(self._wrapper_config)
            current_model = self._current_model

        backend = select_backend(config.backend, request.backend_hint, current_model)
        workdir = Path(request.workdir or config.workdir or ".").expanduser()
        return RunSpec(
            task=compose_task_text(request),
            backend=backend,
            workdir=workdir,
            skip_permissions=config.skip_permissions,
            timeout_ms=config.timeout_ms,
            max_parallel_workers=config.max_parallel_workers,
            binary_path=config.binary_path,
            resume_session_id=request.resume_session_id,
            model_hint=request.model_hint,
            parallel=request.parallel,
        )

    def _fail(
        self,
        error: OrchestratorError,
        state: OrchestratorState,
        correlation_id: str,
        sink: EventSink,
    ) -> OrchestratorState:
        logger.warning(
            "Request %s failed at %s (%s): %s",
            correlation_id,
            state.value,
            error.kind,
            error,
        )
        self._emit_error_safely(describe_error(error), correlation_id, sink)
        return OrchestratorState.ERRORED

    def _emit_error_safely(self, message: str, correlation_id: str, sink: EventSink) -> None:
        try:
            emit_error(message, correlation_id, sink)
        except Exception:
            logger.exception("Could not deliver error event for %s", correlation_id)

    def _notify_complete(self, exchange: CompletedExchange) -> None:
        if self.on_complete is None:
            return
        try:
            self.on_complete(exchange)
        except Exception:
            logger.exception("Completion hook failed for %s", exchange.correlation_id)


def _report_finished(future: Future[OrchestratorState], hook: FinishHook) -> None:
    if future.cancelled():
        state = OrchestratorState.CANCELED
    elif future.exception() is not None:
        state = OrchestratorState.ERRORED
    else:
        state = future.result()
    try:
        hook(state)
    except Exception:
        logger.exception("Finish hook failed")


def compose_task_text(request: ChatRequest) -> str:
    """Task text plus an informational list of context files."""

    files = [path.strip() for path in request.context_files if path.strip()]
    if request.parallel or not files:
        return request.task
    listing = "\n".join(f"- {path}" for path in files)
    return f"{request.task}\n\nContext files:\n{listing}"


def describe_error(error: OrchestratorError) -> str:
    """User-facing text for a terminal failure."""

    if isinstance(error, NonZeroExitError):
        return _with_tails(
            f"{WRAPPER_NAME} exited with code {error.exit_code}.",
            stderr_tail=error.stderr_tail,
            stdout_tail=error.stdout_tail,
        )
    if isinstance(error, EmptyResultError):
        return _with_tails(
            str(error),
            stderr_tail=error.stderr_tail,
            stdout_tail=error.stdout_tail,
        )
    return str(error)


def _with_tails(headline: str, *, stderr_tail: str, stdout_tail: str) -> str:
    lines = [headline]
    if stderr_tail.strip():
        lines.append(f"stderr: {stderr_tail.strip()}")
    if stdout_tail.strip():
        lines.append(f"stdout: {stdout_tail.strip()}")
    if len(lines) == 1:
        lines.append("stderr: <empty>")
    return "\n".join(lines)
