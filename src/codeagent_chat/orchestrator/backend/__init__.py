"""Orchestrator backend implementations."""

from codeagent_chat.orchestrator.backend.base import (
    AgentBackend,
    CliExecResult,
    RunResult,
    RunSpec,
)
from codeagent_chat.orchestrator.backend.cli_backend import CodeagentWrapperBackend
from codeagent_chat.orchestrator.backend.resolver import resolve_executable

__all__ = [
    "AgentBackend",
    "CliExecResult",
    "CodeagentWrapperBackend",
    "RunResult",
    "RunSpec",
    "resolve_executable",
]
