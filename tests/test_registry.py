from __future__ import annotations

import logging

import pytest

from itachctl.core.errors import CommandSupersededError, TransportError
from itachctl.core.registry import CorrelationRegistry


class Recorder:
    def __init__(self) -> None:
        self.calls: list[tuple[Exception | None, str | None]] = []

    def __call__(self, error: Exception | None, response: str | None) -> None:
        self.calls.append((error, response))


def test_generated_ids_strictly_increase() -> None:
    registry = CorrelationRegistry()
    ids = [registry.assign(Recorder()) for _ in range(5)]
    assert ids == [1, 2, 3, 4, 5]
    registry.resolve(3)
    assert registry.assign(Recorder()) == 6


def test_counters_are_per_instance() -> None:
    first = CorrelationRegistry()
    second = CorrelationRegistry()
    first.assign(Recorder())
    first.assign(Recorder())
    assert second.assign(Recorder()) == 1


def test_explicit_id_is_used_verbatim() -> None:
    registry = CorrelationRegistry()
    assert registry.assign(Recorder(), "1:3") == "1:3"
    assert "1:3" in registry


def test_resolve_invokes_once_and_removes() -> None:
    registry = CorrelationRegistry()
    callback = Recorder()
    identifier = registry.assign(callback)

    assert registry.resolve(str(identifier), response="completeir,1:1,1") is True
    assert registry.resolve(identifier) is False
    assert callback.calls == [(None, "completeir,1:1,1")]
    assert len(registry) == 0


def test_unknown_id_is_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    registry = CorrelationRegistry()
    with caplog.at_level(logging.WARNING):
        assert registry.resolve("42") is False
    assert "Cannot find callback with id 42" in caplog.text


def test_advance_now_signals_ready_hook() -> None:
    signals: list[str] = []
    registry = CorrelationRegistry(on_ready=lambda: signals.append("ready"))
    registry.assign(Recorder(), "1:3")
    registry.assign(Recorder(), "1:2")

    registry.resolve("1:3", advance_now=True)
    registry.resolve("1:2")
    registry.resolve("missing", advance_now=True)
    assert signals == ["ready"]


def test_fail_all_resolves_everything() -> None:
    registry = CorrelationRegistry()
    callbacks = [Recorder(), Recorder(), Recorder()]
    registry.assign(callbacks[0])
    registry.assign(callbacks[1])
    registry.assign(callbacks[2], "1:1")
    error = TransportError("boom")

    registry.fail_all(error)
    assert all(cb.calls == [(error, None)] for cb in callbacks)
    assert len(registry) == 0


def test_clear_drops_without_invoking() -> None:
    registry = CorrelationRegistry()
    callback = Recorder()
    registry.assign(callback)
    registry.clear()
    assert callback.calls == []
    assert registry.pending_ids() == ()


def test_raising_callback_does_not_break_resolution(caplog: pytest.LogCaptureFixture) -> None:
    registry = CorrelationRegistry()

    def broken(error: Exception | None, response: str | None) -> None:
        raise RuntimeError("callback bug")

    identifier = registry.assign(broken)
    with caplog.at_level(logging.ERROR):
        assert registry.resolve(identifier) is True
    assert identifier not in registry
    assert "raised" in caplog.text


def test_duplicate_explicit_id_supersedes_previous_callback(caplog: pytest.LogCaptureFixture) -> None:
    registry = CorrelationRegistry()
    first, second = Recorder(), Recorder()
    registry.assign(first, "1:3")
    with caplog.at_level(logging.WARNING):
        registry.assign(second, "1:3")

    error, response = first.calls[0]
    assert isinstance(error, CommandSupersededError)
    assert response is None
    assert "superseded" in caplog.text

    registry.resolve("1:3", response="setstate,1:3,0")
    assert second.calls == [(None, "setstate,1:3,0")]
    assert len(first.calls) == 1
