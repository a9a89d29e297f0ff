#!/usr/bin/env python3
"""Run a live speed monitor in the terminal.

Examples::

    # Replay a recorded trip at 10x
    python scripts/monitor.py replay trip.jsonl --speed 10 --limit 80

    # Follow an OwnTracks device through an MQTT broker
    SPEEDWATCH_MQTT_PASSWORD=... python scripts/monitor.py mqtt --host broker.local --topic owntracks/me/phone

    # Follow a WebSocket relay
    python scripts/monitor.py ws wss://relay.example/ws --token "$TOKEN"

Type one of the limit options and press Enter to change the limit while
the monitor runs.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import Any

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from speedwatch import (  # noqa: E402
    ConsoleSurface,
    LocationSourceError,
    MonitorConfig,
    MqttRelayConfig,
    SpeedMonitor,
    SpeedWatchConfigError,
    WebSocketRelayConfig,
)
from speedwatch.sources.mqtt import MqttLocationSource  # noqa: E402
from speedwatch.sources.replay import ReplayLocationSource  # noqa: E402
from speedwatch.sources.websocket import WebSocketLocationSource  # noqa: E402

_LOG = logging.getLogger("speedwatch.monitor_cli")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Live GPS speed monitor")
    parser.add_argument("--limit", type=float, default=None, help="Initial speed limit in km/h")
    parser.add_argument("--distance-filter", type=float, default=None, help="Minimum metres between fixes")
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI colours")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="source", required=True)

    replay = sub.add_parser("replay", help="Replay a JSON-lines position log")
    replay.add_argument("path", type=Path)
    replay.add_argument("--speed", type=float, default=1.0, help="Playback multiplier (0 = no delay)")
    replay.add_argument("--interval", type=float, default=1.0, help="Seconds between untimestamped fixes")

    mqtt_parser = sub.add_parser("mqtt", help="Follow position fixes on an MQTT topic")
    mqtt_parser.add_argument("--host", default=None)
    mqtt_parser.add_argument("--port", type=int, default=None)
    mqtt_parser.add_argument("--topic", default=None)
    mqtt_parser.add_argument("--username", default=None)
    mqtt_parser.add_argument("--tls", action="store_true", default=None)

    ws = sub.add_parser("ws", help="Follow a WebSocket position relay")
    ws.add_argument("url", nargs="?", default=None)
    ws.add_argument("--token", default=None)

    return parser.parse_args(argv)


def _overrides(args: argparse.Namespace, mapping: dict[str, str]) -> dict[str, Any]:
    return {field: getattr(args, attr) for attr, field in mapping.items() if getattr(args, attr, None) is not None}


def _build_source(args: argparse.Namespace) -> Any:
    if args.source == "replay":
        return ReplayLocationSource(args.path, speed=args.speed, interval=args.interval)
    if args.source == "mqtt":
        config = MqttRelayConfig.from_env(
            **_overrides(args, {"host": "host", "port": "port", "topic": "topic", "username": "username", "tls": "tls"})
        )
        return MqttLocationSource(config)
    config_ws = WebSocketRelayConfig.from_env(**_overrides(args, {"url": "url", "token": "token"}))
    return WebSocketLocationSource(config_ws)


def _watch_stdin(monitor: SpeedMonitor) -> bool:
    """Apply limits typed on stdin. Returns False where stdin cannot be watched."""
    loop = asyncio.get_running_loop()

    def _on_line() -> None:
        line = sys.stdin.readline()
        if not line:
            loop.remove_reader(sys.stdin)
            return
        text = line.strip()
        if not text:
            return
        try:
            monitor.set_speed_limit(float(text))
        except ValueError as exc:
            print(f"  {exc}", file=sys.stderr)

    try:
        loop.add_reader(sys.stdin, _on_line)
    except (NotImplementedError, ValueError, OSError):
        return False
    return True


async def _run(args: argparse.Namespace) -> int:
    monitor_config = MonitorConfig.from_env(
        **_overrides(args, {"limit": "default_speed_limit_kmh", "distance_filter": "distance_filter_m"})
    )
    surface = ConsoleSurface(color=False if args.no_color else None)
    source = _build_source(args)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    async with contextlib.AsyncExitStack() as stack:
        if hasattr(source, "__aenter__"):
            await stack.enter_async_context(source)
        monitor = await stack.enter_async_context(SpeedMonitor(source, surface, config=monitor_config))

        status = await monitor.start()
        if status.is_terminal_failure:
            _LOG.error("Not monitoring: %s", monitor.status_message)
            return 2

        watching = _watch_stdin(monitor)
        closed = asyncio.create_task(monitor.wait_closed())
        stopper = asyncio.create_task(stop_event.wait())
        try:
            await asyncio.wait({closed, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if watching:
                loop.remove_reader(sys.stdin)
            for task in (closed, stopper):
                task.cancel()

    _LOG.info("Final speed %s km/h (%d fixes)", monitor.state.display_speed, monitor.samples_received)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except (SpeedWatchConfigError, LocationSourceError) as exc:
        _LOG.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
