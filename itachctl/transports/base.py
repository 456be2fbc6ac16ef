"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

EventHook = Callable[[str], None]


class Transport(Protocol):
    async def exchange(
        self,
        line: str,
        *,
        on_event: EventHook | None = None,
    ) -> list[str]:
        """Send one command line on a fresh connection and return the status lines received."""


class LearnTransport(Protocol):
    def fetch(self) -> Any:
        """Return the learned IR payload or raise LearnError."""
