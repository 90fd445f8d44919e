"""One-time bootstrap subscription on first transport identity."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from enum import StrEnum

from pushtopics.exceptions import TopicsError
from pushtopics.models import TopicsChangeResult
from pushtopics.services import RemoteTopicService
from pushtopics.storage import PersistedMembership

_logger = logging.getLogger(__name__)

SubscribeRequest = Callable[[frozenset[str]], asyncio.Future[TopicsChangeResult]]


class FirstLaunchState(StrEnum):
    PENDING = "pending"
    DONE = "done"


class FirstLaunchPolicy:
    """Subscribe the bootstrap topics once per installation.

    The check fires on the first observation of a transport identity: either
    the service already has one when :meth:`start` runs, or the policy waits
    for it. The persisted flag flips to done only after the bootstrap
    subscription succeeded; a failure leaves it pending for the next run and
    nothing is retried within this one.
    """

    def __init__(
        self,
        *,
        bootstrap_topics: frozenset[str],
        membership: PersistedMembership,
        service: RemoteTopicService,
        request: SubscribeRequest,
    ) -> None:
        self._bootstrap_topics = bootstrap_topics
        self._membership = membership
        self._service = service
        self._request = request
        self._state = FirstLaunchState.DONE if membership.load_first_subscription_done() else FirstLaunchState.PENDING
        self._started = False
        self._request_future: asyncio.Future[TopicsChangeResult] | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> FirstLaunchState:
        return self._state

    @property
    def triggered(self) -> bool:
        """Whether the bootstrap subscription was requested during this run."""
        return self._request_future is not None

    def start(self) -> None:
        """Arm the policy. Must run on the manager's event loop."""
        if self._started:
            return
        self._started = True
        if self._state is FirstLaunchState.DONE:
            _logger.debug("First topics subscription already done")
            return

        loop = asyncio.get_running_loop()
        # Already identified: issue the request now so it is queued ahead of
        # anything the caller does next.
        if self._service.has_identity:
            self._trigger()
            self._task = loop.create_task(self._complete())
        else:
            self._task = loop.create_task(self._wait_and_trigger())

    async def wait(self) -> None:
        """Wait for the policy to settle (used by tests and shutdown)."""
        if self._task is not None:
            await self._task

    async def stop(self) -> None:
        """Stop waiting for an identity; an issued request is still awaited."""
        task = self._task
        if task is None or task.done():
            return
        if self._request_future is not None:
            await task
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def _trigger(self) -> None:
        if not self._bootstrap_topics:
            _logger.debug("No bootstrap topics configured")
            return
        _logger.info("Subscribing bootstrap topics %s", sorted(self._bootstrap_topics))
        self._request_future = self._request(self._bootstrap_topics)

    async def _wait_and_trigger(self) -> None:
        await self._service.wait_for_identity()
        self._trigger()
        await self._complete()

    async def _complete(self) -> None:
        future = self._request_future
        if future is None:
            return
        try:
            await future
        except TopicsError as exc:
            _logger.warning("Bootstrap topics subscription failed: %s", exc)
            return
        try:
            self._membership.mark_first_subscription_done()
        except Exception:
            _logger.warning("Could not persist first subscription flag", exc_info=True)
        self._state = FirstLaunchState.DONE
