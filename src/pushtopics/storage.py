"""Persisted key-value slots for topic membership.

The manager only needs two slots: the last known subscribed topic list and
the "first subscription done" flag. Any object with ``get``/``set`` can back
them; an in-memory and a JSON-file implementation ship here.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

from pushtopics._constants import DEFAULT_KEY_PREFIX, FIRST_SUBSCRIPTION_KEY, SUBSCRIBED_TOPICS_KEY

_logger = logging.getLogger(__name__)


class MembershipStore(Protocol):
    """Structural key-value store interface.

    Having a protocol here makes it easy to plug in platform storage or test
    doubles while keeping the shipped implementations concrete.
    """

    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class InMemoryStore:
    """Dict-backed store; nothing survives the process."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value


class JsonFileStore:
    """Store backed by a single JSON object on disk.

    The file is read lazily on first access and rewritten atomically
    (temp file + replace) on every ``set``. A missing or unreadable file is
    treated as empty.

    Writes are synchronous. The manager calls ``set`` from an observer on the
    event loop, once per membership change, so each change blocks the loop
    for one small file write. Use a custom :class:`MembershipStore` if that
    cost matters, e.g. on slow network filesystems.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._data: dict[str, Any] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data
        data: dict[str, Any] = {}
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            text = ""
        if text.strip():
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError:
                _logger.warning("Ignoring corrupt membership file %s", self._path)
            else:
                if isinstance(decoded, dict):
                    data = decoded
                else:
                    _logger.warning("Membership file %s is not a JSON object", self._path)
        self._data = data
        return data

    def get(self, key: str) -> Any:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def _coerce_topics(value: Any) -> frozenset[str]:
    if not isinstance(value, (list, tuple, set, frozenset)):
        return frozenset()
    return frozenset(item for item in value if isinstance(item, str) and item)


class PersistedMembership:
    """Typed accessors for the two membership slots of a :class:`MembershipStore`."""

    def __init__(self, store: MembershipStore, *, key_prefix: str = DEFAULT_KEY_PREFIX) -> None:
        self._store = store
        self._topics_key = f"{key_prefix}_{SUBSCRIBED_TOPICS_KEY}"
        self._first_key = f"{key_prefix}_{FIRST_SUBSCRIPTION_KEY}"

    @property
    def store(self) -> MembershipStore:
        return self._store

    def load_topics(self) -> frozenset[str]:
        """Last persisted topic set; malformed values read as empty."""
        return _coerce_topics(self._store.get(self._topics_key))

    def save_topics(self, topics: frozenset[str]) -> None:
        # Order carries no meaning; sorted keeps the file diff-friendly.
        self._store.set(self._topics_key, sorted(topics))

    def load_first_subscription_done(self) -> bool:
        return self._store.get(self._first_key) is True

    def mark_first_subscription_done(self) -> None:
        self._store.set(self._first_key, True)
