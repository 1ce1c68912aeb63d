"""Wrapper-backed chat orchestrator.

Why not a task queue or an async runtime?
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Each chat turn is one blocking call to an external binary (``codeagent-wrapper``)
that reads its task from stdin and prints a reply followed by a ``SESSION_ID``
trailer. The hard parts are at that boundary, not in scheduling:

- Locating the binary and telling a missing install from a broken one.
- Building a deterministic argv/env contract per backend (codex, claude, gemini).
- Recovering the continuation id from loosely formatted stdout.
- Re-emitting the reply as ordered, cancellable chunks keyed by correlation id.

A thread pool plus a mutex-guarded cancellation registry covers the concurrency
needs of a single-user desktop/CLI tool without adding a broker or event loop.
"""
