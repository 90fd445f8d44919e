"""Structured, labelled log events on top of :mod:`logging`."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pushtopics._redact import redact_for_log


def log_event(
    label: str,
    level: int,
    message: str,
    payload: Mapping[str, Any] | None = None,
) -> None:
    """Emit *message* with a redacted structured *payload* on ``pushtopics.<label>``.

    The payload is attached to the record as ``record.payload`` and the label
    as ``record.label`` so structured handlers can pick them up.
    """
    logger = logging.getLogger(f"pushtopics.{label}")
    if not logger.isEnabledFor(level):
        return
    data = redact_for_log(dict(payload or {}))
    logger.log(level, "%s %s", message, data, extra={"label": label, "payload": data})
