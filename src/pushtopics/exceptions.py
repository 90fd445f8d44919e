"""Custom exception hierarchy for pushtopics."""

from __future__ import annotations

from collections.abc import Iterable


class TopicsError(Exception):
    """Base exception for all pushtopics errors."""


class TopicsConfigError(TopicsError):
    """Invalid or missing configuration."""


class UnknownTopicError(TopicsError):
    """One or more requested topics are not in the configured topic universe.

    Raised before any work is queued: no remote call is made and no local
    state is touched.
    """

    def __init__(self, topics: Iterable[str]) -> None:
        self.topics: frozenset[str] = frozenset(topics)
        super().__init__(f"Unknown topics: {sorted(self.topics)}")


class PartialMismatchError(TopicsError):
    """Remote calls were attempted but the final state diverged from the expected one.

    ``not_subscribed`` holds topics that should be subscribed but are not,
    ``not_unsubscribed`` holds topics that should be gone but remain.
    """

    def __init__(
        self,
        *,
        not_subscribed: Iterable[str] = (),
        not_unsubscribed: Iterable[str] = (),
    ) -> None:
        self.not_subscribed: frozenset[str] = frozenset(not_subscribed)
        self.not_unsubscribed: frozenset[str] = frozenset(not_unsubscribed)
        super().__init__(
            f"Not all topics changed: not_subscribed={sorted(self.not_subscribed)} "
            f"not_unsubscribed={sorted(self.not_unsubscribed)}"
        )


class TransportFailureError(TopicsError):
    """The remote service surfaced an error the engine does not interpret.

    The original exception is kept on ``cause`` (and chained as ``__cause__``).
    """

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"Transport failure: {cause!r}")
        self.__cause__ = cause


class TopicCallError(TopicsError):
    """The remote service rejected a subscribe/unsubscribe call for one topic."""

    def __init__(
        self,
        message: str,
        *,
        topic: str,
        code: str = "",
    ) -> None:
        self.topic = topic
        self.code = code
        super().__init__(message)


class TopicsTransportError(TopicsError):
    """Transport-level failure (network, broker not connected, ack timeout)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)
