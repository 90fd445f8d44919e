"""pushtopics - Async reconciliation of push-notification topic subscriptions."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pushtopics")
except PackageNotFoundError:
    __version__ = "0+local"
from pushtopics.config import MqttSettings, TopicsConfig
from pushtopics.exceptions import (
    PartialMismatchError,
    TopicCallError,
    TopicsConfigError,
    TopicsError,
    TopicsTransportError,
    TransportFailureError,
    UnknownTopicError,
)
from pushtopics.first_launch import FirstLaunchPolicy, FirstLaunchState
from pushtopics.manager import TopicsManager
from pushtopics.models import TopicDirection, TopicsChangeResult
from pushtopics.observable import ObservableValue, ObservableView
from pushtopics.services import InstanceIdTopicService, MqttTopicService, RemoteTopicService
from pushtopics.storage import InMemoryStore, JsonFileStore, MembershipStore, PersistedMembership

__all__ = [
    "__version__",
    "FirstLaunchPolicy",
    "FirstLaunchState",
    "InMemoryStore",
    "InstanceIdTopicService",
    "JsonFileStore",
    "MembershipStore",
    "MqttSettings",
    "MqttTopicService",
    "ObservableValue",
    "ObservableView",
    "PartialMismatchError",
    "PersistedMembership",
    "RemoteTopicService",
    "TopicCallError",
    "TopicDirection",
    "TopicsChangeResult",
    "TopicsConfig",
    "TopicsConfigError",
    "TopicsError",
    "TopicsManager",
    "TopicsTransportError",
    "TransportFailureError",
    "UnknownTopicError",
]
