from __future__ import annotations

import asyncio

from itachctl.core.model import PendingCommand
from itachctl.core.queue import CommandQueue


def _cmd(identifier: int) -> PendingCommand:
    return PendingCommand(identifier=identifier, line=f"sendir,1:1,{identifier},38000,1,1,1,1")


def test_enqueue_dispatches_head_when_idle() -> None:
    sent: list[PendingCommand] = []
    queue = CommandQueue(sent.append)

    queue.enqueue(_cmd(1))
    queue.enqueue(_cmd(2))
    assert [c.identifier for c in sent] == [1]
    assert queue.in_flight
    assert len(queue) == 1


def test_advance_dispatches_next_in_order() -> None:
    sent: list[PendingCommand] = []
    queue = CommandQueue(sent.append)
    for identifier in (1, 2, 3):
        queue.enqueue(_cmd(identifier))

    queue.advance()
    queue.advance()
    assert [c.identifier for c in sent] == [1, 2, 3]
    queue.advance()
    assert not queue.in_flight


def test_urgent_only_when_idle() -> None:
    sent: list[PendingCommand] = []
    queue = CommandQueue(sent.append)

    assert queue.try_urgent(_cmd(1)) is True
    assert queue.try_urgent(_cmd(2)) is False
    assert [c.identifier for c in sent] == [1]
    assert len(queue) == 0


def test_schedule_advance_waits_for_delay() -> None:
    async def scenario() -> list[int]:
        sent: list[PendingCommand] = []
        queue = CommandQueue(sent.append, delay_s=0.05)
        queue.enqueue(_cmd(1))
        queue.enqueue(_cmd(2))

        queue.schedule_advance()
        await asyncio.sleep(0.01)
        assert [c.identifier for c in sent] == [1]
        await asyncio.sleep(0.1)
        return [c.identifier for c in sent]

    assert asyncio.run(scenario()) == [1, 2]


def test_immediate_advance_short_circuits_running_delay() -> None:
    async def scenario() -> list[int]:
        sent: list[PendingCommand] = []
        queue = CommandQueue(sent.append, delay_s=10)
        queue.enqueue(_cmd(1))
        queue.enqueue(_cmd(2))

        queue.schedule_advance()
        queue.request_immediate_advance()
        return [c.identifier for c in sent]

    assert asyncio.run(scenario()) == [1, 2]


def test_immediate_advance_while_in_flight_skips_next_delay() -> None:
    async def scenario() -> list[int]:
        sent: list[PendingCommand] = []
        queue = CommandQueue(sent.append, delay_s=10)
        queue.enqueue(_cmd(1))
        queue.enqueue(_cmd(2))

        queue.request_immediate_advance()
        assert [c.identifier for c in sent] == [1]
        queue.schedule_advance()
        return [c.identifier for c in sent]

    assert asyncio.run(scenario()) == [1, 2]


def test_clear_resets_state() -> None:
    async def scenario() -> CommandQueue:
        queue = CommandQueue(lambda _c: None, delay_s=10)
        queue.enqueue(_cmd(1))
        queue.enqueue(_cmd(2))
        queue.schedule_advance()
        queue.clear()
        return queue

    queue = asyncio.run(scenario())
    assert len(queue) == 0
    assert not queue.in_flight
    assert queue.is_idle()


def test_discard_removes_only_queued_commands() -> None:
    sent: list[PendingCommand] = []
    queue = CommandQueue(sent.append)
    for identifier in (1, 2, 3):
        queue.enqueue(_cmd(identifier))

    assert queue.discard("2") is True
    assert queue.discard(1) is False
    queue.advance()
    assert [c.identifier for c in sent] == [1, 3]
