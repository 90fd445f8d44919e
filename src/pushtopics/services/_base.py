"""Remote topic service interface."""

from __future__ import annotations

from typing import Protocol


class RemoteTopicService(Protocol):
    """Structural interface of the push transport the manager reconciles against.

    ``subscribe``/``unsubscribe`` complete when the remote side has
    acknowledged the call. Implementations raise
    :class:`~pushtopics.exceptions.TopicCallError` when the remote rejects a
    single topic; anything else is treated as an opaque transport failure.
    Timeouts, if any, belong to the implementation.
    """

    @property
    def has_identity(self) -> bool:
        """Whether the transport identity (device token, broker session) exists."""
        ...

    async def wait_for_identity(self) -> None:
        """Return once the transport identity is available."""
        ...

    async def subscribe(self, topic: str) -> None: ...

    async def unsubscribe(self, topic: str) -> None: ...
