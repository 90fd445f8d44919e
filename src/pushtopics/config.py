"""Client configuration for pushtopics."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Iterable
from typing import Any

from pushtopics._constants import DEFAULT_KEY_PREFIX, IID_BASE_URL, MQTT_DEFAULT_PORT
from pushtopics.exceptions import TopicsConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_topics(value: str | None) -> frozenset[str] | None:
    if value is None:
        return None
    return frozenset(part.strip() for part in value.split(",") if part.strip())


def _as_topic_set(value: Iterable[str], field_name: str) -> frozenset[str]:
    if isinstance(value, str):
        raise TopicsConfigError(f"{field_name} must be a collection of topic names, not a string")
    topics = frozenset(value)
    for topic in topics:
        if not isinstance(topic, str) or not topic:
            raise TopicsConfigError(f"{field_name} contains an invalid topic name: {topic!r}")
    return topics


@dataclasses.dataclass(frozen=True)
class MqttSettings:
    """Broker connection settings for :class:`~pushtopics.services.MqttTopicService`.

    ``client_id`` doubles as the transport identity: the broker session it
    names is what topic subscriptions attach to.
    """

    host: str = "localhost"
    port: int = MQTT_DEFAULT_PORT
    keepalive: int = 60
    qos: int = 1
    client_id: str | None = None
    username: str | None = None
    password: str | None = None
    tls: bool = False
    ack_timeout: float = 10.0


@dataclasses.dataclass(frozen=True)
class TopicsConfig:
    """Topic manager configuration.

    Parameters
    ----------
    all_topics : frozenset[str]
        Universe of topics that may be subscribed or unsubscribed.
    bootstrap_topics : frozenset[str]
        Topics subscribed automatically once per installation. Must be a
        subset of ``all_topics``.
    storage_path : str or None
        JSON file backing the persisted membership. ``None`` keeps the
        membership in memory only.
    storage_key_prefix : str
        Prefix of the persisted key-value slots.
    fcm_server_key : str or None
        Server key (or OAuth access token) for the Instance ID API.
    fcm_base_url : str
        Instance ID API base URL.
    request_timeout : float
        Per-request HTTP timeout in seconds.
    mqtt : MqttSettings
        Broker settings for the MQTT topic service.
    """

    all_topics: frozenset[str]
    bootstrap_topics: frozenset[str] = frozenset()
    storage_path: str | None = None
    storage_key_prefix: str = DEFAULT_KEY_PREFIX
    fcm_server_key: str | None = None
    fcm_base_url: str = IID_BASE_URL
    request_timeout: float = 10.0
    mqtt: MqttSettings = dataclasses.field(default_factory=MqttSettings)

    def __post_init__(self) -> None:
        all_topics = _as_topic_set(self.all_topics, "all_topics")
        bootstrap = _as_topic_set(self.bootstrap_topics, "bootstrap_topics")
        unknown = bootstrap - all_topics
        if unknown:
            raise TopicsConfigError(f"bootstrap_topics not in all_topics: {sorted(unknown)}")
        # Normalize list/tuple inputs on the frozen instance.
        object.__setattr__(self, "all_topics", all_topics)
        object.__setattr__(self, "bootstrap_topics", bootstrap)

    @classmethod
    def from_env(cls, **overrides: Any) -> TopicsConfig:
        """Create configuration from environment variables.

        Reads ``PUSHTOPICS_ALL_TOPICS`` and ``PUSHTOPICS_BOOTSTRAP_TOPICS``
        (comma separated) plus optional ``PUSHTOPICS_*`` and
        ``PUSHTOPICS_MQTT_*`` variables. Explicit keyword arguments override
        environment values.

        Returns
        -------
        TopicsConfig
            Populated configuration.
        """
        env = os.environ

        mqtt_kwargs: dict[str, Any] = {}
        _ENV_MQTT_MAP = {
            "PUSHTOPICS_MQTT_HOST": "host",
            "PUSHTOPICS_MQTT_CLIENT_ID": "client_id",
            "PUSHTOPICS_MQTT_USERNAME": "username",
            "PUSHTOPICS_MQTT_PASSWORD": "password",
        }
        for env_key, field_name in _ENV_MQTT_MAP.items():
            val = env.get(env_key)
            if val is not None:
                mqtt_kwargs[field_name] = val

        for env_key, field_name in (
            ("PUSHTOPICS_MQTT_PORT", "port"),
            ("PUSHTOPICS_MQTT_KEEPALIVE", "keepalive"),
            ("PUSHTOPICS_MQTT_QOS", "qos"),
        ):
            val = env.get(env_key)
            if val is not None:
                mqtt_kwargs[field_name] = int(val)

        ack_env = env.get("PUSHTOPICS_MQTT_ACK_TIMEOUT")
        if ack_env is not None:
            mqtt_kwargs["ack_timeout"] = float(ack_env)
        tls_env = env.get("PUSHTOPICS_MQTT_TLS")
        if tls_env is not None:
            mqtt_kwargs["tls"] = _env_bool(tls_env, False)

        # Allow overriding MQTT fields via a nested dict
        mqtt_overrides = overrides.pop("mqtt", None)
        if isinstance(mqtt_overrides, dict):
            mqtt_kwargs.update(mqtt_overrides)
        elif isinstance(mqtt_overrides, MqttSettings):
            mqtt_kwargs = dataclasses.asdict(mqtt_overrides)

        config_kwargs: dict[str, Any] = {"mqtt": MqttSettings(**mqtt_kwargs)}

        all_topics = _env_topics(env.get("PUSHTOPICS_ALL_TOPICS"))
        if all_topics is not None:
            config_kwargs["all_topics"] = all_topics
        bootstrap = _env_topics(env.get("PUSHTOPICS_BOOTSTRAP_TOPICS"))
        if bootstrap is not None:
            config_kwargs["bootstrap_topics"] = bootstrap

        _ENV_CONFIG_MAP = {
            "PUSHTOPICS_STORAGE_PATH": "storage_path",
            "PUSHTOPICS_STORAGE_KEY_PREFIX": "storage_key_prefix",
            "PUSHTOPICS_FCM_SERVER_KEY": "fcm_server_key",
            "PUSHTOPICS_FCM_BASE_URL": "fcm_base_url",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        timeout_env = env.get("PUSHTOPICS_REQUEST_TIMEOUT")
        if timeout_env is not None and "request_timeout" not in overrides:
            config_kwargs["request_timeout"] = float(timeout_env)

        config_kwargs.update(overrides)
        if "all_topics" not in config_kwargs:
            raise TopicsConfigError("PUSHTOPICS_ALL_TOPICS is not set and no all_topics override given")

        return cls(**config_kwargs)
