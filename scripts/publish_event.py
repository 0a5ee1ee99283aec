#!/usr/bin/env python3
"""Publish one simulated umbrella event, for exercising a running relay.

Examples::

    python scripts/publish_event.py sos --email user@example.com --lat 28.6139 --lon 77.209
    python scripts/publish_event.py weather --email user@example.com --rain 72 --uv 3
    python scripts/publish_event.py gps --lat 28.6139 --lon 77.209
    python scripts/publish_event.py sos --malformed
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyumbrella._constants import TOPIC_GPS, TOPIC_SOS, TOPIC_STATUS, TOPIC_WEATHER  # noqa: E402
from pyumbrella.config import UmbrellaConfig, parse_broker_url  # noqa: E402

try:
    import paho.mqtt.client as mqtt
except ImportError as exc:  # pragma: no cover - environment/setup issue
    raise SystemExit(
        "Missing dependency 'paho-mqtt'. Install with: pip install paho-mqtt",
    ) from exc

_LOG = logging.getLogger("publish_event")

_TOPICS = {
    "gps": TOPIC_GPS,
    "status": TOPIC_STATUS,
    "sos": TOPIC_SOS,
    "weather": TOPIC_WEATHER,
}


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Publish a simulated smart umbrella event.")
    parser.add_argument("kind", choices=sorted(_TOPICS), help="Event type to publish.")
    parser.add_argument("--broker", default=None, help="Broker URL (defaults to UMBRELLA_MQTT_BROKER_URL).")
    parser.add_argument("--email", default="user@example.com", help="Account identifier for sos/weather.")
    parser.add_argument("--lat", type=float, default=28.6139, help="Latitude in decimal degrees.")
    parser.add_argument("--lon", type=float, default=77.209, help="Longitude in decimal degrees.")
    parser.add_argument("--rain", type=float, default=80.0, help="Rain probability percent (weather).")
    parser.add_argument("--uv", type=float, default=3.0, help="UV index (weather).")
    parser.add_argument("--text", default="Umbrella opened", help="Status text (status).")
    parser.add_argument("--malformed", action="store_true", help="Send a deliberately broken payload.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logs.")
    return parser.parse_args()


def _build_payload(args: argparse.Namespace) -> str:
    if args.malformed:
        return "{not json"
    if args.kind == "gps":
        return f"{args.lat},{args.lon}"
    if args.kind == "status":
        return args.text
    if args.kind == "sos":
        return json.dumps({"email": args.email, "lat": args.lat, "lon": args.lon})
    return json.dumps(
        {
            "email": args.email,
            "lat": args.lat,
            "lon": args.lon,
            "rain_prob": args.rain,
            "uv_index": args.uv,
        }
    )


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    broker_url = args.broker or UmbrellaConfig.from_env().broker_url
    host, port, tls = parse_broker_url(broker_url)
    topic = _TOPICS[args.kind]
    payload = _build_payload(args)

    client = mqtt.Client(callback_api_version=mqtt.CallbackAPIVersion.VERSION2)
    client.enable_logger(_LOG)
    if tls:
        client.tls_set()

    try:
        client.connect(host, port, keepalive=30)
    except OSError as exc:  # pragma: no cover - network interaction
        print(f"[publish] Cannot reach {host}:{port}: {exc}", file=sys.stderr)
        return 2

    client.loop_start()
    try:
        info = client.publish(topic, payload, qos=1)
        info.wait_for_publish(timeout=10)
        print(f"[publish] {topic} <- {payload} (published={info.is_published()})")
    finally:
        client.disconnect()
        client.loop_stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
