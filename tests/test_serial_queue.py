from __future__ import annotations

import asyncio
import logging

import pytest

from pushtopics._queue import SerialTaskQueue


@pytest.mark.asyncio
async def test_operations_run_in_enqueue_order_without_overlap() -> None:
    queue = SerialTaskQueue()
    events: list[str] = []

    def make(name: str, delay: float):  # type: ignore[no-untyped-def]
        async def operation() -> None:
            events.append(f"start:{name}")
            await asyncio.sleep(delay)
            events.append(f"end:{name}")

        return operation

    queue.enqueue(make("slow", 0.02))
    queue.enqueue(make("fast", 0.0))
    queue.enqueue(make("last", 0.01))
    assert queue.is_running
    assert queue.pending_count == 2

    await queue.join()

    assert events == [
        "start:slow",
        "end:slow",
        "start:fast",
        "end:fast",
        "start:last",
        "end:last",
    ]
    assert not queue.is_running


@pytest.mark.asyncio
async def test_failing_operation_does_not_stall_queue(caplog: pytest.LogCaptureFixture) -> None:
    queue = SerialTaskQueue()
    ran: list[str] = []

    async def boom() -> None:
        raise RuntimeError("boom")

    async def after() -> None:
        ran.append("after")

    with caplog.at_level(logging.ERROR, logger="pushtopics._queue"):
        queue.enqueue(boom)
        queue.enqueue(after)
        await queue.join()

    assert ran == ["after"]
    assert "Queued operation failed" in caplog.text


@pytest.mark.asyncio
async def test_enqueue_from_worker_thread_runs_on_loop() -> None:
    queue = SerialTaskQueue(asyncio.get_running_loop())
    loops: list[asyncio.AbstractEventLoop] = []

    async def record() -> None:
        loops.append(asyncio.get_running_loop())

    await asyncio.get_running_loop().run_in_executor(None, queue.enqueue, record)
    await asyncio.sleep(0)
    await queue.join()

    assert loops == [asyncio.get_running_loop()]


@pytest.mark.asyncio
async def test_join_returns_immediately_when_idle() -> None:
    queue = SerialTaskQueue()
    await asyncio.wait_for(queue.join(), timeout=0.1)


@pytest.mark.asyncio
async def test_queue_restarts_after_draining_from_worker_thread() -> None:
    loop = asyncio.get_running_loop()
    queue = SerialTaskQueue(loop)
    ran: list[int] = []

    async def record() -> None:
        ran.append(len(ran))

    for _ in range(2):
        await loop.run_in_executor(None, queue.enqueue, record)
        await asyncio.sleep(0)
        await queue.join()

    assert ran == [0, 1]
    assert not queue.is_running
