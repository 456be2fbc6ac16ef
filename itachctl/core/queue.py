"""Serialized command queue: at most one command in flight per client."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable

from itachctl.core.model import PendingCommand

DELAY_BETWEEN_COMMANDS_S = 0.1
LOGGER = logging.getLogger(__name__)


class CommandQueue:
    """Ordered pending commands plus the in-flight flag.

    ``dispatch`` is called with the command to put on the wire; the owner calls
    :meth:`schedule_advance` or :meth:`advance` once that command's session is
    over. All methods must be called from the event loop thread.
    """

    def __init__(
        self,
        dispatch: Callable[[PendingCommand], None],
        *,
        delay_s: float = DELAY_BETWEEN_COMMANDS_S,
        debug: bool = False,
    ) -> None:
        self._dispatch = dispatch
        self._delay_s = delay_s
        self._debug = debug
        self._pending: deque[PendingCommand] = deque()
        self._in_flight = False
        self._skip_delay = False
        self._delay_handle: asyncio.TimerHandle | None = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def __len__(self) -> int:
        return len(self._pending)

    def is_idle(self) -> bool:
        return not self._pending and not self._in_flight and self._delay_handle is None

    def enqueue(self, pending: PendingCommand) -> None:
        self._pending.append(pending)
        if not self._in_flight and self._delay_handle is None:
            self.dispatch_next()

    def try_urgent(self, pending: PendingCommand) -> bool:
        if not self.is_idle():
            if self._debug:
                LOGGER.debug("Queue is not empty, dropping urgent command %s", pending.identifier)
            return False
        self._in_flight = True
        self._dispatch(pending)
        return True

    def discard(self, identifier: object) -> bool:
        """Drop a not yet dispatched command; returns whether one was queued."""
        for pending in self._pending:
            if str(pending.identifier) == str(identifier):
                self._pending.remove(pending)
                return True
        return False

    def dispatch_next(self) -> None:
        if not self._pending:
            if self._debug:
                LOGGER.debug("Message queue is empty")
            return
        self._in_flight = True
        if self._debug:
            LOGGER.debug("Taking next message from the queue")
        self._dispatch(self._pending.popleft())

    def advance(self) -> None:
        self._cancel_delay()
        self._skip_delay = False
        self._in_flight = False
        if self._pending:
            self.dispatch_next()

    def schedule_advance(self) -> None:
        if self._skip_delay:
            self.advance()
            return
        if self._debug:
            LOGGER.debug("Delay before going to the next item in the queue")
        self._cancel_delay()
        self._delay_handle = asyncio.get_running_loop().call_later(self._delay_s, self._on_delay_elapsed)

    def request_immediate_advance(self) -> None:
        if self._delay_handle is not None:
            self.advance()
        elif self._in_flight:
            self._skip_delay = True
        else:
            self.dispatch_next()

    def clear(self) -> None:
        self._cancel_delay()
        self._pending.clear()
        self._in_flight = False
        self._skip_delay = False

    def _on_delay_elapsed(self) -> None:
        self._delay_handle = None
        self.advance()

    def _cancel_delay(self) -> None:
        if self._delay_handle is not None:
            self._delay_handle.cancel()
            self._delay_handle = None
