from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import paho.mqtt.client as mqtt
import pytest

from pushtopics.config import MqttSettings
from pushtopics.exceptions import TopicCallError, TopicsTransportError
from pushtopics.manager import TopicsManager
from pushtopics.services.mqtt import MqttTopicService


@dataclass(frozen=True)
class _Reason:
    value: int

    def __str__(self) -> str:
        return f"reason-{self.value:#x}"


class FakeMqttClient:
    """Stands in for paho's client; acks are scheduled on the running loop."""

    def __init__(self, settings: MqttSettings) -> None:
        self.settings = settings
        self.credentials: tuple[str, str | None] | None = None
        self.tls = False
        self.connected_to: tuple[str, int, int] | None = None
        self.disconnected = False
        self.result = mqtt.MQTT_ERR_SUCCESS
        self.auto_ack = True
        self.ack_codes: dict[str, list[int]] = {}
        self.calls: list[tuple[str, str]] = []
        self._mid = 0
        self.on_connect: Any = None
        self.on_disconnect: Any = None
        self.on_subscribe: Any = None
        self.on_unsubscribe: Any = None

    def enable_logger(self, _logger: Any) -> None:
        return None

    def username_pw_set(self, username: str, password: str | None) -> None:
        self.credentials = (username, password)

    def tls_set(self) -> None:
        self.tls = True

    def connect(self, host: str, port: int, keepalive: int) -> None:
        self.connected_to = (host, port, keepalive)

    def loop_start(self) -> None:
        return None

    def loop_stop(self) -> None:
        return None

    def disconnect(self) -> None:
        self.disconnected = True

    def connack(self, code: int = 0) -> None:
        self.on_connect(self, None, None, _Reason(code), None)

    def subscribe(self, topic: str, qos: int) -> tuple[int, int]:
        return self._request("subscribe", topic, default_codes=[qos])

    def unsubscribe(self, topic: str) -> tuple[int, int]:
        return self._request("unsubscribe", topic, default_codes=[])

    def _request(self, kind: str, topic: str, *, default_codes: list[int]) -> tuple[int, int]:
        self.calls.append((kind, topic))
        self._mid += 1
        mid = self._mid
        if self.result == mqtt.MQTT_ERR_SUCCESS and self.auto_ack:
            codes = [_Reason(code) for code in self.ack_codes.get(topic, default_codes)]
            callback = self.on_subscribe if kind == "subscribe" else self.on_unsubscribe
            asyncio.get_running_loop().call_soon(callback, self, None, mid, codes, None)
        return self.result, mid


async def _connected_service(settings: MqttSettings | None = None) -> tuple[MqttTopicService, FakeMqttClient]:
    clients: list[FakeMqttClient] = []

    def factory(cfg: MqttSettings) -> FakeMqttClient:
        client = FakeMqttClient(cfg)
        clients.append(client)
        return client

    service = MqttTopicService(settings or MqttSettings(ack_timeout=0.5), client_factory=factory)  # type: ignore[arg-type]
    await service.connect()
    client = clients[0]
    client.connack()
    await asyncio.sleep(0)
    return service, client


@pytest.mark.asyncio
async def test_identity_is_established_by_successful_connack() -> None:
    clients: list[FakeMqttClient] = []

    def factory(cfg: MqttSettings) -> FakeMqttClient:
        clients.append(FakeMqttClient(cfg))
        return clients[-1]

    service = MqttTopicService(
        MqttSettings(host="broker.local", port=8883, username="device", password="pw", tls=True),
        client_factory=factory,  # type: ignore[arg-type]
    )
    assert not service.has_identity

    await service.connect()
    client = clients[0]
    assert client.connected_to == ("broker.local", 8883, 60)
    assert client.credentials == ("device", "pw")
    assert client.tls

    client.connack(0x87)
    await asyncio.sleep(0)
    assert not service.has_identity

    client.connack(0)
    await asyncio.wait_for(service.wait_for_identity(), timeout=0.5)
    assert service.is_connected

    await service.disconnect()
    assert client.disconnected
    assert not service.is_running


@pytest.mark.asyncio
async def test_calls_before_connect_fail_as_transport_errors() -> None:
    service = MqttTopicService(MqttSettings())

    with pytest.raises(TopicsTransportError):
        await service.subscribe("news")


@pytest.mark.asyncio
async def test_granted_subscription_and_empty_unsuback_succeed() -> None:
    service, client = await _connected_service()

    await service.subscribe("news")
    await service.unsubscribe("news")

    assert client.calls == [("subscribe", "news"), ("unsubscribe", "news")]
    await service.disconnect()


@pytest.mark.asyncio
async def test_failure_reason_code_is_topic_rejection() -> None:
    service, client = await _connected_service()
    client.ack_codes["forbidden/#"] = [0x87]

    with pytest.raises(TopicCallError) as exc_info:
        await service.subscribe("forbidden/#")

    assert exc_info.value.topic == "forbidden/#"
    assert exc_info.value.code == str(0x87)
    await service.disconnect()


@pytest.mark.asyncio
async def test_missing_ack_times_out_as_transport_error() -> None:
    service, client = await _connected_service(MqttSettings(ack_timeout=0.01))
    client.auto_ack = False

    with pytest.raises(TopicsTransportError):
        await service.subscribe("news")
    await service.disconnect()


@pytest.mark.asyncio
async def test_rejected_publish_queue_is_transport_error() -> None:
    service, client = await _connected_service()
    client.result = mqtt.MQTT_ERR_NO_CONN

    with pytest.raises(TopicsTransportError):
        await service.subscribe("news")
    await service.disconnect()


@pytest.mark.asyncio
async def test_disconnect_fails_pending_calls() -> None:
    service, client = await _connected_service(MqttSettings(ack_timeout=1.0))
    client.auto_ack = False

    pending = asyncio.create_task(service.subscribe("news"))
    await asyncio.sleep(0)
    client.on_disconnect(client, None, None, _Reason(0x8B), None)

    with pytest.raises(TopicsTransportError):
        await pending
    assert not service.is_connected
    await service.disconnect()


@pytest.mark.asyncio
async def test_manager_bootstraps_after_broker_connects() -> None:
    clients: list[FakeMqttClient] = []

    def factory(cfg: MqttSettings) -> FakeMqttClient:
        clients.append(FakeMqttClient(cfg))
        return clients[-1]

    service = MqttTopicService(MqttSettings(ack_timeout=0.5), client_factory=factory)  # type: ignore[arg-type]
    async with TopicsManager(["news", "alerts/#"], ["news"], service=service) as manager:
        await service.connect()
        assert manager.first_launch.triggered is False

        clients[0].connack()
        await manager.first_launch.wait()
        assert manager.subscribed_topics.value == frozenset({"news"})

        result = await manager.unsubscribe("news")
        assert result.subscribed == frozenset()

    await service.disconnect()
