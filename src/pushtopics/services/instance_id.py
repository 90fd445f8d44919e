"""Firebase Instance ID topic management over HTTP.

Endpoints:
  - POST /iid/v1/{token}/rel/topics/{topic}   (subscribe one token)
  - POST /iid/v1:batchRemove                  (unsubscribe tokens)
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from urllib.parse import quote

import aiohttp

from pushtopics._constants import IID_ADD_RELATION_PATH, IID_BASE_URL, IID_BATCH_REMOVE_PATH, USER_AGENT
from pushtopics._redact import redact_for_log
from pushtopics.config import TopicsConfig
from pushtopics.exceptions import TopicCallError, TopicsConfigError, TopicsError, TopicsTransportError

_logger = logging.getLogger(__name__)

# Statuses that describe the topic/token pair rather than the transport.
_TOPIC_REJECTION_STATUSES: frozenset[int] = frozenset({400, 404})


class InstanceIdTopicService:
    """Subscribe a registration token to topics through the Instance ID API.

    Usage::

        async with InstanceIdTopicService(server_key=key) as service:
            service.set_registration_token(token)
            await service.subscribe("news")
    """

    def __init__(
        self,
        *,
        server_key: str,
        base_url: str = IID_BASE_URL,
        session: aiohttp.ClientSession | None = None,
        registration_token: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        if not server_key:
            raise TopicsConfigError("Instance ID service requires a server key")
        self._server_key = server_key
        self._base_url = base_url.rstrip("/")
        self._external_session = session is not None
        self._http_session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._token: str | None = None
        self._identity = asyncio.Event()
        if registration_token:
            self.set_registration_token(registration_token)

    @classmethod
    def from_config(
        cls,
        config: TopicsConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        registration_token: str | None = None,
    ) -> InstanceIdTopicService:
        if not config.fcm_server_key:
            raise TopicsConfigError("fcm_server_key is not configured")
        return cls(
            server_key=config.fcm_server_key,
            base_url=config.fcm_base_url,
            session=session,
            registration_token=registration_token,
            timeout=config.request_timeout,
        )

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> InstanceIdTopicService:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def has_identity(self) -> bool:
        return self._token is not None

    @property
    def registration_token(self) -> str | None:
        return self._token

    def set_registration_token(self, token: str) -> None:
        """Record the device registration token; wakes identity waiters."""
        token = token.strip()
        if not token:
            raise ValueError("registration token must be non-empty")
        self._token = token
        self._identity.set()
        _logger.debug("Registration token set %s", redact_for_log({"token": token}))

    async def wait_for_identity(self) -> None:
        await self._identity.wait()

    # ------------------------------------------------------------------
    # Topic calls
    # ------------------------------------------------------------------

    async def subscribe(self, topic: str) -> None:
        token = self._require_token()
        path = IID_ADD_RELATION_PATH.format(token=quote(token, safe=""), topic=quote(topic, safe=""))
        await self._post(path, None, topic=topic)
        _logger.debug("Subscribed token to topic=%s", topic)

    async def unsubscribe(self, topic: str) -> None:
        token = self._require_token()
        body = {"to": f"/topics/{topic}", "registration_tokens": [token]}
        data = await self._post(IID_BATCH_REMOVE_PATH, body, topic=topic)
        results = data.get("results")
        if isinstance(results, list) and results:
            first = results[0]
            if isinstance(first, dict) and first.get("error"):
                error = str(first["error"])
                raise TopicCallError(
                    f"Unsubscribe from {topic} rejected: {error}",
                    topic=topic,
                    code=error,
                )
        _logger.debug("Unsubscribed token from topic=%s", topic)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            raise TopicsError("Service not initialized. Use 'async with InstanceIdTopicService(...) as service:'")
        return self._http_session

    def _require_token(self) -> str:
        if self._token is None:
            raise TopicsTransportError("No registration token available yet")
        return self._token

    async def _post(self, endpoint: str, payload: dict[str, Any] | None, *, topic: str) -> dict[str, Any]:
        http = self._require_session()
        url = f"{self._base_url}{endpoint}"
        headers = {
            "authorization": f"key={self._server_key}",
            "content-type": "application/json",
            "user-agent": USER_AGENT,
        }
        body = json.dumps(payload) if payload is not None else ""

        _logger.debug("POST topic=%s payload=%s", topic, redact_for_log(payload or {}))

        try:
            async with http.post(url, data=body, headers=headers, timeout=self._timeout) as resp:
                text = await resp.text()
                status = resp.status
        except aiohttp.ClientError as exc:
            raise TopicsTransportError(f"Request for topic {topic} failed: {exc}", endpoint=endpoint) from exc
        except TimeoutError as exc:
            raise TopicsTransportError(f"Request for topic {topic} timed out", endpoint=endpoint) from exc

        if status in _TOPIC_REJECTION_STATUSES:
            raise TopicCallError(
                f"HTTP {status} for topic {topic}: {text[:200]}",
                topic=topic,
                code=str(status),
            )
        if status != 200:
            raise TopicsTransportError(
                f"HTTP {status} for topic {topic}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            )

        if not text.strip():
            return {}
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as exc:
            raise TopicsTransportError(f"Invalid JSON for topic {topic}: {text[:200]}", endpoint=endpoint) from exc
        return decoded if isinstance(decoded, dict) else {}
