from __future__ import annotations

import allure
import pytest

from codeagent_chat.orchestrator.registry import CancellationRegistry

pytestmark = [
    allure.epic("Streaming"),
    allure.feature("Cancellation Registry"),
]


def test_cancel_sets_token_of_registered_request() -> None:
    registry = CancellationRegistry()
    handle = registry.register("req-1")

    assert registry.cancel("req-1") is True
    assert handle.cancelled is True
    assert "req-1" in registry


def test_cancel_unknown_or_finished_id_returns_false() -> None:
    registry = CancellationRegistry()
    handle = registry.register("req-1")
    registry.remove(handle)

    assert registry.cancel("req-1") is False
    assert registry.cancel("never-seen") is False
    assert len(registry) == 0


def test_duplicate_registration_is_rejected() -> None:
    registry = CancellationRegistry()
    registry.register("req-1")

    with pytest.raises(ValueError, match="already in flight"):
        registry.register("req-1")


def test_remove_only_drops_entry_owned_by_handle() -> None:
    registry = CancellationRegistry()
    stale = registry.register("req-1")
    registry.remove(stale)
    fresh = registry.register("req-1")

    registry.remove(stale)

    assert registry.get("req-1") is fresh
    assert registry.active_ids() == ["req-1"]
