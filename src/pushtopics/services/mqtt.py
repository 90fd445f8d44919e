"""MQTT broker subscriptions as a remote topic service."""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from collections.abc import Callable, Iterable
from typing import Any, cast

import paho.mqtt.client as mqtt

from pushtopics._constants import MQTT_REASON_FAILURE_THRESHOLD
from pushtopics.config import MqttSettings
from pushtopics.exceptions import TopicCallError, TopicsError, TopicsTransportError

ClientFactory = Callable[[MqttSettings], mqtt.Client]


def _default_client(settings: MqttSettings) -> mqtt.Client:
    client_id = settings.client_id or f"pushtopics-{uuid.uuid4().hex[:12]}"
    return mqtt.Client(
        callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
        client_id=client_id,
        protocol=mqtt.MQTTv5,
    )


def _reason_value(reason: Any) -> int:
    return int(getattr(reason, "value", reason))


def _first_failure(reason_codes: Iterable[Any]) -> Any | None:
    for reason in reason_codes:
        if _reason_value(reason) >= MQTT_REASON_FAILURE_THRESHOLD:
            return reason
    return None


class MqttTopicService:
    """Threaded paho-mqtt client whose broker subscriptions are the remote topic state.

    The transport identity is the broker session: it is established by the
    first successful CONNACK. SUBACK/UNSUBACK reason codes resolve the
    matching calls on the asyncio loop the service was connected from.
    """

    def __init__(
        self,
        settings: MqttSettings,
        *,
        client_factory: ClientFactory | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._settings = settings
        self._client_factory = client_factory or _default_client
        self._logger = logger or logging.getLogger(__name__)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._client: mqtt.Client | None = None
        self._running = False
        self._connected = False
        self._identity = asyncio.Event()
        # Guards _pending between the loop thread and paho's network thread.
        self._lock = threading.Lock()
        self._pending: dict[int, tuple[str, asyncio.Future[None]]] = {}

    @property
    def is_running(self) -> bool:
        """Whether the MQTT network loop is running."""
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def has_identity(self) -> bool:
        return self._identity.is_set()

    async def wait_for_identity(self) -> None:
        await self._identity.wait()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Bind to the running loop and start the network loop in a worker thread."""
        self._loop = asyncio.get_running_loop()
        await self._loop.run_in_executor(None, self.start)

    async def disconnect(self) -> None:
        if self._loop is None:
            return
        await self._loop.run_in_executor(None, self.stop)

    async def __aenter__(self) -> MqttTopicService:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.disconnect()

    def start(self) -> None:
        """Connect with the configured settings. Requires a bound loop."""
        if self._loop is None:
            raise TopicsError("MQTT service has no event loop. Use 'await service.connect()'")
        self.stop()
        settings = self._settings
        self._logger.debug(
            "MQTT topic service start requested host=%s port=%s",
            settings.host,
            settings.port,
        )

        client = self._client_factory(settings)
        client.enable_logger(self._logger)
        if settings.username:
            client.username_pw_set(settings.username, settings.password)
        if settings.tls:
            client.tls_set()

        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_subscribe = self._on_subscribe
        client.on_unsubscribe = self._on_unsubscribe

        client.connect(settings.host, settings.port, keepalive=settings.keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Stop and disconnect current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")
        self._fail_pending("MQTT client stopped")

    # ------------------------------------------------------------------
    # Topic calls
    # ------------------------------------------------------------------

    async def subscribe(self, topic: str) -> None:
        client, loop = self._require_connected()
        future: asyncio.Future[None] = loop.create_future()
        with self._lock:
            result, mid = client.subscribe(topic, qos=self._settings.qos)
            if result != mqtt.MQTT_ERR_SUCCESS:
                raise TopicsTransportError(f"MQTT subscribe {topic} failed: {mqtt.error_string(result)}")
            self._pending[mid] = (topic, future)
        await self._await_ack(mid, topic, future)

    async def unsubscribe(self, topic: str) -> None:
        client, loop = self._require_connected()
        future: asyncio.Future[None] = loop.create_future()
        with self._lock:
            result, mid = client.unsubscribe(topic)
            if result != mqtt.MQTT_ERR_SUCCESS:
                raise TopicsTransportError(f"MQTT unsubscribe {topic} failed: {mqtt.error_string(result)}")
            self._pending[mid] = (topic, future)
        await self._await_ack(mid, topic, future)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_connected(self) -> tuple[mqtt.Client, asyncio.AbstractEventLoop]:
        if self._client is None or self._loop is None or not self._connected:
            raise TopicsTransportError("MQTT client is not connected")
        return self._client, self._loop

    async def _await_ack(self, mid: int, topic: str, future: asyncio.Future[None]) -> None:
        try:
            await asyncio.wait_for(future, self._settings.ack_timeout)
        except TimeoutError:
            raise TopicsTransportError(f"No broker acknowledgement for topic {topic}") from None
        finally:
            with self._lock:
                self._pending.pop(mid, None)

    def _fail_pending(self, message: str) -> None:
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
        loop = self._loop
        if loop is None:
            return
        for topic, future in pending:
            loop.call_soon_threadsafe(self._resolve, future, TopicsTransportError(f"{message} (topic {topic})"))

    @staticmethod
    def _resolve(future: asyncio.Future[None], error: BaseException | None) -> None:
        if future.done():
            return
        if error is None:
            future.set_result(None)
        else:
            future.set_exception(error)

    def _handle_ack(self, kind: str, mid: int, reason_codes: Iterable[Any]) -> None:
        with self._lock:
            entry = self._pending.get(mid)
        if entry is None or self._loop is None:
            self._logger.debug("MQTT %s ack for unknown mid=%s", kind, mid)
            return
        topic, future = entry
        failure = _first_failure(reason_codes)
        error: TopicCallError | None = None
        if failure is not None:
            error = TopicCallError(
                f"Broker rejected {kind} for {topic}: {failure}",
                topic=topic,
                code=str(_reason_value(failure)),
            )
        self._loop.call_soon_threadsafe(self._resolve, future, error)

    # paho callbacks (network thread)

    def _on_connect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if _reason_value(reason_code) != 0:
            self._logger.warning("MQTT connect failed: %s", reason_code)
            return
        self._logger.debug("MQTT connected successfully reason=%s", reason_code)
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._mark_connected, True)

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if self._running:
            self._logger.debug("MQTT disconnected: %s", reason_code)
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._mark_connected, False)
        self._fail_pending("MQTT disconnected")

    def _on_subscribe(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        mid: int,
        reason_code_list: list[Any],
        _properties: Any,
    ) -> None:
        self._handle_ack("subscribe", mid, reason_code_list)

    def _on_unsubscribe(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        mid: int,
        reason_code_list: list[Any],
        _properties: Any,
    ) -> None:
        # MQTT 3.1.1 UNSUBACK carries no reason codes: an empty list is success.
        self._handle_ack("unsubscribe", mid, reason_code_list)

    def _mark_connected(self, connected: bool) -> None:
        self._connected = connected
        if connected:
            self._identity.set()
