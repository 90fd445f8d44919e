"""Credential scrubbing for logged payloads.

Payloads logged by this package are flat mappings of topic collections plus,
for the Instance ID service, the registration token and request body.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping
from typing import Any

_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "authorization",
        "password",
        "registration_token",
        "registration_tokens",
        "server_key",
        "token",
    }
)

_MAX_TOPICS = 100


def _topics_for_log(values: Collection[Any]) -> list[str]:
    # Topic sets are unordered; sort them so log lines are stable.
    items = sorted(str(value) for value in values)
    if len(items) > _MAX_TOPICS:
        return [*items[:_MAX_TOPICS], f"<+{len(items) - _MAX_TOPICS} more>"]
    return items


def redact_for_log(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of *payload* with secret values masked and topics sorted."""
    redacted: dict[str, Any] = {}
    for key, value in payload.items():
        if key.lower() in _SECRET_KEYS:
            redacted[key] = "<redacted>"
        elif isinstance(value, Mapping):
            redacted[key] = redact_for_log(value)
        elif isinstance(value, Collection) and not isinstance(value, (str, bytes)):
            redacted[key] = _topics_for_log(value)
        else:
            redacted[key] = value
    return redacted
