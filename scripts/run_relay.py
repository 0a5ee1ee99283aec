#!/usr/bin/env python3
"""Run the umbrella alert relay until interrupted.

Configuration comes from ``UMBRELLA_*`` environment variables (see
``pyumbrella.config.UmbrellaConfig.from_env``). Every parsed device event
is echoed to stdout so the relay doubles as a live monitor.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyumbrella import DeviceEvent, UmbrellaConfig, UmbrellaService  # noqa: E402
from pyumbrella.exceptions import UmbrellaConfigError  # noqa: E402

_LOG = logging.getLogger("run_relay")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Smart umbrella MQTT alert relay.")
    parser.add_argument(
        "--broker",
        default=None,
        help="Broker URL, overrides UMBRELLA_MQTT_BROKER_URL (e.g. mqtt://localhost:1883).",
    )
    parser.add_argument(
        "--database",
        default=None,
        help="SQLite directory path, overrides UMBRELLA_DATABASE_PATH.",
    )
    parser.add_argument(
        "--stats-seconds",
        type=int,
        default=300,
        help="Log relay counters every N seconds (0 = never).",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Do not echo device events to stdout.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _print_event(event: DeviceEvent) -> None:
    print(f"[relay] {event.kind}: {event.model_dump(exclude={'kind'})}", flush=True)


async def _run(config: UmbrellaConfig, args: argparse.Namespace) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    async with UmbrellaService(config) as service:
        if not args.quiet:
            service.relay.add_observer(_print_event)
        _LOG.info("Relay running broker=%s database=%s", config.broker_url, config.database_path)

        while not stop.is_set():
            timeout = args.stats_seconds if args.stats_seconds > 0 else None
            try:
                await asyncio.wait_for(stop.wait(), timeout)
            except TimeoutError:
                _LOG.info("Relay stats %s", service.relay.stats.as_dict())


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, str] = {}
    if args.broker:
        overrides["broker_url"] = args.broker
    if args.database:
        overrides["database_path"] = args.database
    try:
        config = UmbrellaConfig.from_env(**overrides)
        config.broker  # noqa: B018 - validate URL before connecting
    except UmbrellaConfigError as exc:
        print(f"[relay] Configuration error: {exc}", file=sys.stderr)
        return 2

    asyncio.run(_run(config, args))
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
