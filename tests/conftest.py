from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

import pytest

from pushtopics.exceptions import TopicCallError


@dataclass
class FakeTopicService:
    """In-process remote topic service with scripted failures."""

    identity: bool = True
    reject_topics: set[str] = field(default_factory=set)
    broken_topics: set[str] = field(default_factory=set)
    delay: float = 0.0
    calls: list[tuple[str, str]] = field(default_factory=list)
    on_call: Callable[[str, str], None] | None = None
    in_flight: int = 0
    max_in_flight: int = 0
    _identity_event: asyncio.Event = field(default_factory=asyncio.Event)

    def __post_init__(self) -> None:
        if self.identity:
            self._identity_event.set()

    @property
    def has_identity(self) -> bool:
        return self._identity_event.is_set()

    def establish_identity(self) -> None:
        self._identity_event.set()

    async def wait_for_identity(self) -> None:
        await self._identity_event.wait()

    async def subscribe(self, topic: str) -> None:
        await self._call("subscribe", topic)

    async def unsubscribe(self, topic: str) -> None:
        await self._call("unsubscribe", topic)

    async def _call(self, kind: str, topic: str) -> None:
        self.calls.append((kind, topic))
        if self.on_call is not None:
            self.on_call(kind, topic)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if topic in self.broken_topics:
                raise ConnectionError(f"connection reset while handling {topic}")
            if topic in self.reject_topics:
                raise TopicCallError(f"{kind} rejected for {topic}", topic=topic, code="INVALID_ARGUMENT")
        finally:
            self.in_flight -= 1


@pytest.fixture
def service() -> FakeTopicService:
    return FakeTopicService()
