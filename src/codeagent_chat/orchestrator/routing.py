"""Backend selection for per-request wrapper execution."""

from __future__ import annotations

import logging

from codeagent_chat.orchestrator.models import BackendTag

logger = logging.getLogger(__name__)

SUPPORTED_AGENTS = tuple(tag.value for tag in BackendTag)
DEFAULT_BACKEND = BackendTag.CODEX

# Match order matters: a hint such as "claude-codex-bridge" resolves to claude.
_HINT_MATCH_ORDER = (BackendTag.CLAUDE, BackendTag.GEMINI, BackendTag.CODEX)
_MODEL_MATCH_ORDER = (BackendTag.CLAUDE, BackendTag.GEMINI)


def select_backend(
    explicit_backend: str | None,
    caller_hint: str | None,
    current_model_name: str | None,
) -> BackendTag:
    """Resolve the backend tag; always returns one of the supported tags."""

    if explicit_backend is not None and explicit_backend.strip():
        explicit = derive_backend_from_hint(explicit_backend)
        if explicit is not None:
            return explicit
        logger.warning(
            "Ignoring unsupported configured backend %r. Use one of %s.",
            explicit_backend,
            ", ".join(SUPPORTED_AGENTS),
        )

    if caller_hint is not None:
        hinted = derive_backend_from_hint(caller_hint)
        if hinted is not None:
            return hinted

    return derive_backend_from_model(current_model_name)


def derive_backend_from_hint(value: str) -> BackendTag | None:
    """Map a free-form CLI name such as ``claude-cli`` to a backend tag."""

    normalized = _normalize_agent(value)
    if not normalized:
        return None
    for tag in _HINT_MATCH_ORDER:
        if tag.value in normalized:
            return tag
    return None


def derive_backend_from_model(model_name: str | None) -> BackendTag:
    """Guess the backend from a model id; OpenAI-like ids fall back to codex."""

    normalized = _normalize_agent(model_name or "")
    for tag in _MODEL_MATCH_ORDER:
        if tag.value in normalized:
            return tag
    return DEFAULT_BACKEND


def _normalize_agent(value: str) -> str:
    return value.strip().lower()
