"""Request/response correlation for in-flight device commands."""

from __future__ import annotations

import logging
from collections.abc import Callable

from itachctl.core.errors import CommandSupersededError
from itachctl.core.model import CompletionCallback, Identifier

LOGGER = logging.getLogger(__name__)


class CorrelationRegistry:
    """Maps command identifiers to their completion callbacks.

    Responses carry identifiers as text, so entries are keyed by ``str(id)``.
    An entry is removed before its callback runs, so a callback is invoked at
    most once even if the callback itself triggers further resolution.
    """

    def __init__(
        self,
        *,
        on_ready: Callable[[], None] | None = None,
        debug: bool = False,
    ) -> None:
        self._callbacks: dict[str, CompletionCallback] = {}
        self._last_id = 0
        self._on_ready = on_ready
        self._debug = debug

    def __len__(self) -> int:
        return len(self._callbacks)

    def __contains__(self, identifier: object) -> bool:
        return str(identifier) in self._callbacks

    def pending_ids(self) -> tuple[str, ...]:
        return tuple(self._callbacks)

    def assign(
        self,
        callback: CompletionCallback,
        explicit_id: Identifier | None = None,
    ) -> Identifier:
        if explicit_id is None:
            if self._debug:
                LOGGER.debug(
                    "Generating new id for IR transmission, %d callbacks pending",
                    len(self._callbacks),
                )
            self._last_id += 1
            identifier: Identifier = self._last_id
        else:
            identifier = explicit_id
        displaced = self._callbacks.get(str(identifier))
        self._callbacks[str(identifier)] = callback
        if displaced is not None:
            LOGGER.warning("Command id %s is already pending; the previous command is superseded", identifier)
            try:
                displaced(CommandSupersededError(f"Superseded by a newer command to {identifier}"), None)
            except Exception:
                LOGGER.exception("Completion callback for id %s raised", identifier)
        return identifier

    def resolve(
        self,
        identifier: Identifier | None,
        error: Exception | None = None,
        *,
        response: str | None = None,
        advance_now: bool = False,
    ) -> bool:
        callback = self._callbacks.pop(str(identifier), None) if identifier is not None else None
        if callback is None:
            LOGGER.warning("Cannot find callback with id %s; ignoring response %r", identifier, response)
            return False

        if self._debug:
            LOGGER.debug(
                "Status: %s, resolving callback with id %s",
                "error" if error else "success",
                identifier,
            )
        try:
            callback(error, response)
        except Exception:
            LOGGER.exception("Completion callback for id %s raised", identifier)
        if advance_now and self._on_ready is not None:
            self._on_ready()
        return True

    def fail_all(self, error: Exception) -> None:
        for identifier in list(self._callbacks):
            self.resolve(identifier, error)

    def clear(self) -> None:
        self._callbacks.clear()
