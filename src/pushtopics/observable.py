"""Observable value cells.

A cell holds one value, readable synchronously, and notifies subscribers of
every change in the order the changes were made. Notifications run inline in
the writer's context, which for the topic manager is always the event loop,
so observers never see two updates interleaved.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Generic, TypeVar

T = TypeVar("T")

_logger = logging.getLogger(__name__)


class ObservableValue(Generic[T]):
    """Read/subscribe cell with duplicate suppression."""

    def __init__(self, initial: T, *, name: str = "") -> None:
        self._value = initial
        self._name = name
        self._observers: list[Callable[[T], None]] = []
        self._waiters: list[tuple[Callable[[T], bool], asyncio.Future[T]]] = []

    @property
    def value(self) -> T:
        """Latest value."""
        return self._value

    def subscribe(self, observer: Callable[[T], None], *, emit_current: bool = True) -> Callable[[], None]:
        """Register *observer*; returns a callable that removes it again.

        The current value is delivered immediately unless ``emit_current`` is
        false.
        """
        self._observers.append(observer)
        if emit_current:
            self._deliver(observer, self._value)

        def _unsubscribe() -> None:
            self._observers = [cand for cand in self._observers if cand is not observer]

        return _unsubscribe

    def set(self, value: T) -> bool:
        """Store *value* and notify observers. Returns False when unchanged."""
        if value == self._value:
            return False
        self._value = value
        # Snapshot so observers may (un)subscribe while being notified.
        for observer in list(self._observers):
            self._deliver(observer, value)
        self._resolve_waiters(value)
        return True

    async def wait_for(self, predicate: Callable[[T], bool], timeout: float | None = None) -> T:
        """Wait until the value satisfies *predicate* and return it."""
        if predicate(self._value):
            return self._value
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        entry = (predicate, future)
        self._waiters.append(entry)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            self._waiters = [cand for cand in self._waiters if cand is not entry]

    def _resolve_waiters(self, value: T) -> None:
        for predicate, future in list(self._waiters):
            if not future.done() and predicate(value):
                future.set_result(value)

    def _deliver(self, observer: Callable[[T], None], value: T) -> None:
        try:
            observer(value)
        except Exception:
            _logger.warning("Observer of %s failed", self._name or "value", exc_info=True)

    def __repr__(self) -> str:
        return f"ObservableValue({self._name or 'value'}={self._value!r})"


class ObservableView(Generic[T]):
    """Read-only facade over an :class:`ObservableValue`."""

    def __init__(self, source: ObservableValue[T]) -> None:
        self._source = source

    @property
    def value(self) -> T:
        return self._source.value

    def subscribe(self, observer: Callable[[T], None], *, emit_current: bool = True) -> Callable[[], None]:
        return self._source.subscribe(observer, emit_current=emit_current)

    async def wait_for(self, predicate: Callable[[T], bool], timeout: float | None = None) -> T:
        return await self._source.wait_for(predicate, timeout)

    def __repr__(self) -> str:
        return repr(self._source)
