"""Unit tests for organization-scoped realtime fan-out and worker loops."""

import asyncio

import pytest

from taskflow.services.background_tasks import _loop_worker
from taskflow.services.realtime import ConnectionManager


class FakeWebSocket:
    def __init__(self, fail: bool = False) -> None:
        self.accepted = False
        self.fail = fail
        self.messages: list[dict] = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, message: dict) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.messages.append(message)


@pytest.mark.unit
async def test_broadcast_stays_within_organization():
    manager = ConnectionManager()
    ours, theirs = FakeWebSocket(), FakeWebSocket()
    await manager.connect(ours, 1)
    await manager.connect(theirs, 2)

    await manager.broadcast({"resource": "task", "action": "created"}, 1)

    assert ours.accepted
    assert ours.messages == [{"resource": "task", "action": "created"}]
    assert theirs.messages == []


@pytest.mark.unit
async def test_broken_socket_is_dropped():
    manager = ConnectionManager()
    broken = FakeWebSocket(fail=True)
    await manager.connect(broken, 1)

    await manager.broadcast({"resource": "task"}, 1)

    assert manager.connection_count(1) == 0


@pytest.mark.unit
async def test_worker_loop_survives_failures():
    calls = 0

    async def flaky() -> None:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("transient")

    worker = asyncio.create_task(_loop_worker(flaky, 0, "flaky"))
    while calls < 3:
        await asyncio.sleep(0)
    worker.cancel()
    with pytest.raises(asyncio.CancelledError):
        await worker

    assert calls >= 3
