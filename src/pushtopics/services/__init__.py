"""Remote topic service implementations."""

from pushtopics.services._base import RemoteTopicService
from pushtopics.services.instance_id import InstanceIdTopicService
from pushtopics.services.mqtt import MqttTopicService

__all__ = [
    "InstanceIdTopicService",
    "MqttTopicService",
    "RemoteTopicService",
]
