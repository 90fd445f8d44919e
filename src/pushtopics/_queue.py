"""Single-consumer FIFO queue for async operations."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable

_logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[None]]


class SerialTaskQueue:
    """Run queued async operations strictly one at a time, in enqueue order.

    An operation starts only after the previous one has fully completed,
    including everything it awaited. There is no priority, cancellation or
    removal of queued work. Operations are expected to handle their own
    errors; anything that escapes is logged and the queue moves on.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._pending: deque[Operation] = deque()
        self._current: asyncio.Task[None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def is_running(self) -> bool:
        """Whether an operation is currently executing."""
        return self._current is not None

    @property
    def pending_count(self) -> int:
        """Number of operations waiting behind the running one."""
        return len(self._pending)

    def enqueue(self, operation: Operation) -> None:
        """Schedule *operation* and return immediately.

        Safe to call from any thread once the queue is bound to a loop.
        """
        loop = self._bind_loop()
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._append(operation)
        else:
            loop.call_soon_threadsafe(self._append, operation)

    async def join(self) -> None:
        """Wait until the queue has drained and nothing is running."""
        await self._idle.wait()

    def _bind_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _append(self, operation: Operation) -> None:
        self._pending.append(operation)
        self._idle.clear()
        self._next()

    def _next(self) -> None:
        if self._current is not None:
            return
        if not self._pending:
            self._idle.set()
            return
        operation = self._pending.popleft()
        # Only ever reached on the bound loop.
        self._current = asyncio.get_running_loop().create_task(self._run(operation))

    async def _run(self, operation: Operation) -> None:
        try:
            await operation()
        except Exception:
            _logger.exception("Queued operation failed")
        finally:
            self._current = None
            self._next()
