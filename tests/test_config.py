from __future__ import annotations

import pytest

from pushtopics.config import MqttSettings, TopicsConfig
from pushtopics.exceptions import TopicsConfigError


def test_topic_lists_are_normalized_to_frozensets() -> None:
    config = TopicsConfig(all_topics=["news", "sales", "news"], bootstrap_topics=("news",))  # type: ignore[arg-type]

    assert config.all_topics == frozenset({"news", "sales"})
    assert config.bootstrap_topics == frozenset({"news"})


def test_bootstrap_topics_must_be_subset() -> None:
    with pytest.raises(TopicsConfigError):
        TopicsConfig(all_topics=frozenset({"news"}), bootstrap_topics=frozenset({"sales"}))


def test_single_string_is_rejected_as_topic_collection() -> None:
    with pytest.raises(TopicsConfigError):
        TopicsConfig(all_topics="news")  # type: ignore[arg-type]


def test_from_env_reads_topics_and_mqtt_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PUSHTOPICS_ALL_TOPICS", "news, sales ,alerts")
    monkeypatch.setenv("PUSHTOPICS_BOOTSTRAP_TOPICS", "news")
    monkeypatch.setenv("PUSHTOPICS_STORAGE_PATH", "/tmp/topics.json")
    monkeypatch.setenv("PUSHTOPICS_MQTT_HOST", "broker.local")
    monkeypatch.setenv("PUSHTOPICS_MQTT_PORT", "8883")
    monkeypatch.setenv("PUSHTOPICS_MQTT_TLS", "yes")
    monkeypatch.setenv("PUSHTOPICS_REQUEST_TIMEOUT", "2.5")

    config = TopicsConfig.from_env(mqtt={"qos": 0})

    assert config.all_topics == frozenset({"news", "sales", "alerts"})
    assert config.bootstrap_topics == frozenset({"news"})
    assert config.storage_path == "/tmp/topics.json"
    assert config.request_timeout == 2.5
    assert config.mqtt == MqttSettings(host="broker.local", port=8883, tls=True, qos=0)


def test_from_env_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PUSHTOPICS_ALL_TOPICS", "news")

    config = TopicsConfig.from_env(all_topics=frozenset({"sales"}), request_timeout=1.0)

    assert config.all_topics == frozenset({"sales"})
    assert config.request_timeout == 1.0


def test_from_env_requires_topics(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PUSHTOPICS_ALL_TOPICS", raising=False)
    with pytest.raises(TopicsConfigError):
        TopicsConfig.from_env()
