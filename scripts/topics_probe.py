#!/usr/bin/env python3
"""Interactive probe for topic reconciliation against an MQTT broker.

This script wires a TopicsManager to an MqttTopicService to:
1) connect to the broker configured via PUSHTOPICS_MQTT_* variables,
2) subscribe the bootstrap topics once the broker accepts the session,
3) apply the requested subscribe/unsubscribe actions in order,
4) print every change of the subscribed set and the busy flag.

Use this to check how a broker acknowledges (or rejects) topic filters.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pushtopics import (  # noqa: E402
    JsonFileStore,
    MqttTopicService,
    TopicsConfig,
    TopicsError,
    TopicsManager,
)

_LOG = logging.getLogger("topics_probe")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Drive topic subscriptions against an MQTT broker.",
    )
    parser.add_argument(
        "actions",
        nargs="*",
        help="Actions in order: +topic subscribes, -topic unsubscribes, '+*'/'-*' for all topics.",
    )
    parser.add_argument(
        "--state-file",
        type=Path,
        default=None,
        help="JSON file for persisted membership (default: PUSHTOPICS_STORAGE_PATH or memory).",
    )
    parser.add_argument(
        "--connect-timeout",
        type=float,
        default=10.0,
        help="Seconds to wait for the broker to accept the connection.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


async def _apply(manager: TopicsManager, action: str) -> bool:
    sign, topic = action[:1], action[1:]
    if sign not in {"+", "-"} or not topic:
        print(f"[probe] Ignoring malformed action {action!r}", file=sys.stderr)
        return False

    if topic == "*":
        request = manager.subscribe_all() if sign == "+" else manager.unsubscribe_all()
    else:
        request = manager.subscribe(topic) if sign == "+" else manager.unsubscribe(topic)

    try:
        result = await request
    except TopicsError as exc:
        print(f"[probe] {action} failed: {exc}")
        return False
    print(f"[probe] {action} ok -> {sorted(result.subscribed)}")
    return True


async def _run(args: argparse.Namespace) -> int:
    config = TopicsConfig.from_env()
    state_file = args.state_file or config.storage_path
    store = JsonFileStore(state_file) if state_file else None

    service = MqttTopicService(config.mqtt, logger=logging.getLogger("topics_probe.mqtt"))
    manager = TopicsManager.from_config(config, service=service, store=store)
    manager.subscribed_topics.subscribe(lambda topics: print(f"[probe] topics : {sorted(topics)}"))
    manager.is_busy.subscribe(lambda busy: _LOG.debug("busy=%s", busy))

    async with service, manager:
        try:
            await asyncio.wait_for(service.wait_for_identity(), args.connect_timeout)
        except TimeoutError:
            print(f"[probe] Broker {config.mqtt.host}:{config.mqtt.port} did not accept the connection", file=sys.stderr)
            return 2

        await manager.first_launch.wait()
        print(f"[probe] first launch : {manager.first_launch.state}")

        failures = 0
        for action in args.actions:
            if not await _apply(manager, action):
                failures += 1
    return 1 if failures else 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except TopicsError as exc:
        print(f"[probe] {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(_main())
