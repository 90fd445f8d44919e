"""Topic membership reconciliation against a remote push service."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Iterable
from typing import Any

from pushtopics._constants import DEFAULT_KEY_PREFIX, PUSH_TOPICS_LABEL
from pushtopics._log import log_event
from pushtopics._queue import SerialTaskQueue
from pushtopics.config import TopicsConfig
from pushtopics.exceptions import (
    PartialMismatchError,
    TopicCallError,
    TopicsConfigError,
    TopicsError,
    TransportFailureError,
    UnknownTopicError,
)
from pushtopics.first_launch import FirstLaunchPolicy
from pushtopics.models import TopicDirection, TopicsChangeResult
from pushtopics.observable import ObservableValue, ObservableView
from pushtopics.services import RemoteTopicService
from pushtopics.storage import InMemoryStore, JsonFileStore, MembershipStore, PersistedMembership

_logger = logging.getLogger(__name__)


def _as_topics(topics: str | Iterable[str]) -> frozenset[str]:
    """A bare string is one topic, not a collection of characters."""
    if isinstance(topics, str):
        return frozenset({topics})
    return frozenset(topics)


def _with_membership(topics: frozenset[str], topic: str, member: bool) -> frozenset[str]:
    if member:
        return topics | {topic}
    return topics - {topic}


class TopicsManager:
    """Keep the locally known topic membership in step with a remote service.

    Every change request is validated synchronously, then queued; queued
    requests run one at a time in call order. A running request marks the
    manager busy, applies each topic optimistically, awaits the remote
    acknowledgement and finally compares the resulting set with the expected
    one. Every change of the subscribed set is persisted and logged.

    Usage::

        async with TopicsManager(["news", "sales"], ["news"], service=service) as manager:
            await manager.subscribe("sales")
            print(manager.subscribed_topics.value)

    The future-returning methods (``subscribe`` and friends) and the
    observables must be used on the loop the manager was started on. The
    ``*_nowait`` variants may be called from any thread.
    """

    def __init__(
        self,
        all_topics: Iterable[str],
        bootstrap_topics: Iterable[str] = (),
        *,
        service: RemoteTopicService,
        store: MembershipStore | None = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        self._all_topics = _as_topics(all_topics)
        self._bootstrap_topics = _as_topics(bootstrap_topics)
        unknown_bootstrap = self._bootstrap_topics - self._all_topics
        if unknown_bootstrap:
            raise TopicsConfigError(f"bootstrap_topics not in all_topics: {sorted(unknown_bootstrap)}")

        self._service = service
        self._membership = PersistedMembership(store if store is not None else InMemoryStore(), key_prefix=key_prefix)

        stored = self._membership.load_topics()
        initial = stored & self._all_topics
        if stored != initial:
            _logger.info("Ignoring persisted topics outside the topic universe: %s", sorted(stored - initial))

        self._subscribed = ObservableValue(initial, name="subscribed_topics")
        self._busy = ObservableValue(False, name="is_busy")
        self._subscribed.subscribe(self._on_topics_changed, emit_current=False)

        self._queue = SerialTaskQueue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._first_launch = FirstLaunchPolicy(
            bootstrap_topics=self._bootstrap_topics,
            membership=self._membership,
            service=service,
            request=self.subscribe,
        )

    @classmethod
    def from_config(
        cls,
        config: TopicsConfig,
        *,
        service: RemoteTopicService,
        store: MembershipStore | None = None,
    ) -> TopicsManager:
        if store is None and config.storage_path:
            store = JsonFileStore(config.storage_path)
        return cls(
            config.all_topics,
            config.bootstrap_topics,
            service=service,
            store=store,
            key_prefix=config.storage_key_prefix,
        )

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TopicsManager:
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    def start(self) -> None:
        """Bind to the running loop and arm the first-launch policy."""
        if self._loop is not None:
            return
        self._loop = asyncio.get_running_loop()
        log_event(
            PUSH_TOPICS_LABEL,
            logging.INFO,
            "Initial topics",
            {"topics": self._subscribed.value},
        )
        self._first_launch.start()

    async def aclose(self) -> None:
        """Let queued requests finish and stop waiting for a transport identity."""
        if self._loop is None:
            return
        await self.wait_idle()
        await self._first_launch.stop()
        await self.wait_idle()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def all_topics(self) -> frozenset[str]:
        return self._all_topics

    @property
    def bootstrap_topics(self) -> frozenset[str]:
        return self._bootstrap_topics

    @property
    def subscribed_topics(self) -> ObservableView[frozenset[str]]:
        """Currently subscribed topics."""
        return ObservableView(self._subscribed)

    @property
    def is_busy(self) -> ObservableView[bool]:
        """True while a queued request is running."""
        return ObservableView(self._busy)

    @property
    def first_launch(self) -> FirstLaunchPolicy:
        return self._first_launch

    async def wait_idle(self) -> None:
        """Wait until every queued request has finished."""
        await self._queue.join()

    # ------------------------------------------------------------------
    # Change requests
    # ------------------------------------------------------------------

    def subscribe_all(self) -> asyncio.Future[TopicsChangeResult]:
        return self._submit(self._all_topics, TopicDirection.SUBSCRIBE)

    def unsubscribe_all(self) -> asyncio.Future[TopicsChangeResult]:
        return self._submit(self._all_topics, TopicDirection.UNSUBSCRIBE)

    def subscribe(self, topics: str | Iterable[str]) -> asyncio.Future[TopicsChangeResult]:
        """Subscribe to one topic or a collection of topics.

        The returned future resolves with a :class:`TopicsChangeResult` or
        fails with :class:`UnknownTopicError` (already failed, nothing
        queued), :class:`PartialMismatchError` or
        :class:`TransportFailureError`.
        """
        return self._submit(_as_topics(topics), TopicDirection.SUBSCRIBE)

    def unsubscribe(self, topics: str | Iterable[str]) -> asyncio.Future[TopicsChangeResult]:
        """Unsubscribe from one topic or a collection of topics."""
        return self._submit(_as_topics(topics), TopicDirection.UNSUBSCRIBE)

    def subscribe_all_nowait(self) -> None:
        self._submit_nowait(self._all_topics, TopicDirection.SUBSCRIBE)

    def unsubscribe_all_nowait(self) -> None:
        self._submit_nowait(self._all_topics, TopicDirection.UNSUBSCRIBE)

    def subscribe_nowait(self, topics: str | Iterable[str]) -> None:
        self._submit_nowait(_as_topics(topics), TopicDirection.SUBSCRIBE)

    def unsubscribe_nowait(self, topics: str | Iterable[str]) -> None:
        self._submit_nowait(_as_topics(topics), TopicDirection.UNSUBSCRIBE)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise TopicsError("Manager not started. Use 'async with TopicsManager(...) as manager:'")
        return self._loop

    def _submit(self, target: frozenset[str], direction: TopicDirection) -> asyncio.Future[TopicsChangeResult]:
        loop = self._require_loop()
        future: asyncio.Future[TopicsChangeResult] = loop.create_future()

        unknown = target - self._all_topics
        if unknown:
            log_event(
                PUSH_TOPICS_LABEL,
                logging.INFO,
                f"Unknown topics tried to {direction}",
                {"target_topics": target},
            )
            future.set_exception(UnknownTopicError(unknown))
            return future

        self._queue.enqueue(functools.partial(self._run_request, target, direction, future))
        return future

    def _submit_nowait(self, target: frozenset[str], direction: TopicDirection) -> None:
        loop = self._require_loop()
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is not loop:
            loop.call_soon_threadsafe(self._submit_nowait, target, direction)
            return
        future = self._submit(target, direction)
        future.add_done_callback(self._discard_outcome)

    @staticmethod
    def _discard_outcome(future: asyncio.Future[TopicsChangeResult]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            _logger.debug("Discarding failed topics request: %s", exc)

    async def _run_request(
        self,
        target: frozenset[str],
        direction: TopicDirection,
        future: asyncio.Future[TopicsChangeResult],
    ) -> None:
        self._busy.set(True)
        outcome: TopicsChangeResult | TopicsError
        try:
            outcome = await self._reconcile(target, direction)
        except TopicsError as exc:
            outcome = exc
        except Exception as exc:
            _logger.debug("Unexpected error while reconciling topics", exc_info=True)
            outcome = TransportFailureError(exc)
        finally:
            self._busy.set(False)

        # The caller may have cancelled its future; the request still ran.
        if future.done():
            return
        if isinstance(outcome, TopicsError):
            future.set_exception(outcome)
        else:
            future.set_result(outcome)

    async def _reconcile(self, target: frozenset[str], direction: TopicDirection) -> TopicsChangeResult:
        subscribing = direction is TopicDirection.SUBSCRIBE
        current = self._subscribed.value
        expected = current | target if subscribing else current - target

        for topic in sorted(target):
            await self._apply_topic(topic, subscribing)

        current = self._subscribed.value
        if current != expected:
            raise PartialMismatchError(
                not_subscribed=expected - current,
                not_unsubscribed=current - expected,
            )
        return TopicsChangeResult(direction=direction, requested=target, subscribed=current)

    async def _apply_topic(self, topic: str, member: bool) -> None:
        """Drive one topic to *member*, optimistically, then confirm or revert."""
        already = (topic in self._subscribed.value) == member
        self._subscribed.set(_with_membership(self._subscribed.value, topic, member))

        remote_call = self._service.subscribe if member else self._service.unsubscribe
        try:
            await remote_call(topic)
        except Exception as exc:
            if already:
                # Re-affirming an existing state never fails the request.
                _logger.debug("Ignoring failed re-affirmation of topic=%s: %s", topic, exc)
                return
            self._subscribed.set(_with_membership(self._subscribed.value, topic, not member))
            if isinstance(exc, TopicCallError):
                _logger.warning("Topic %s failed for %s: %s", "subscribe" if member else "unsubscribe", topic, exc)
                return
            raise TransportFailureError(exc) from exc

        self._subscribed.set(_with_membership(self._subscribed.value, topic, member))

    def _on_topics_changed(self, topics: frozenset[str]) -> None:
        """Persist and log *topics*. Runs on the loop; store writes are blocking."""
        try:
            self._membership.save_topics(topics)
        except Exception:
            _logger.warning("Could not persist subscribed topics", exc_info=True)
        log_event(
            PUSH_TOPICS_LABEL,
            logging.INFO,
            "Topics updated",
            {"new_topics": topics},
        )
