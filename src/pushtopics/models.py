"""Result models for topic reconciliation."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TopicDirection(StrEnum):
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"


class TopicsChangeResult(BaseModel):
    """Outcome of a successful reconciliation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    direction: TopicDirection
    requested: frozenset[str] = Field(..., description="Target topic set of the request")
    subscribed: frozenset[str] = Field(..., description="Subscribed topics once the request finished")

    @field_validator("requested", "subscribed", mode="before")
    @classmethod
    def _coerce_topics(cls, value: object) -> object:
        if isinstance(value, str):
            return frozenset({value})
        return value

    @property
    def is_subscription(self) -> bool:
        return self.direction == TopicDirection.SUBSCRIBE
