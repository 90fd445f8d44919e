"""Internal constants shared across the library."""

USER_AGENT = "pushtopics/1"

#: Log label carried by every topic-membership event.
PUSH_TOPICS_LABEL = "push_topics"

#: Default prefix for persisted key-value slots.
DEFAULT_KEY_PREFIX = "push"
SUBSCRIBED_TOPICS_KEY = "subscribed_topics"
FIRST_SUBSCRIPTION_KEY = "was_first_topics_subscription"

# ------------------------------------------------------------------
# Firebase Instance ID topic management API
# ------------------------------------------------------------------

IID_BASE_URL = "https://iid.googleapis.com"
IID_ADD_RELATION_PATH = "/iid/v1/{token}/rel/topics/{topic}"
IID_BATCH_REMOVE_PATH = "/iid/v1:batchRemove"

# ------------------------------------------------------------------
# MQTT
# ------------------------------------------------------------------

MQTT_DEFAULT_PORT = 1883
#: SUBACK/UNSUBACK reason codes at or above this value signal failure.
MQTT_REASON_FAILURE_THRESHOLD = 0x80
