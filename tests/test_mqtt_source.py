from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any

import paho.mqtt.client as mqtt
import pytest

from speedwatch.config import MqttRelayConfig
from speedwatch.exceptions import LocationSourceError
from speedwatch.models.permission import LocationPermission, PermissionStatus
from speedwatch.models.position import LocationSettings, PositionSample
from speedwatch.monitor import SpeedMonitor
from speedwatch.sources.mqtt import MqttLocationSource, permission_from_connack


@dataclass(frozen=True)
class _ReasonCode:
    value: int

    @property
    def is_failure(self) -> bool:
        return self.value >= 0x80


@dataclass(frozen=True)
class _Message:
    topic: str
    payload: bytes


class _FakeClient:
    """Stands in for paho's client; answers CONNACK from ``loop_start``."""

    def __init__(self, connack: int | None = 0) -> None:
        self.connack = connack
        self.on_connect: Any = None
        self.on_message: Any = None
        self.on_disconnect: Any = None
        self.connected_to: tuple[str, int, int] | None = None
        self.subscriptions: list[str] = []
        self.loop_running = False
        self.disconnect_calls = 0

    def connect_async(self, host: str, port: int, keepalive: int = 60) -> None:
        self.connected_to = (host, port, keepalive)

    def loop_start(self) -> None:
        self.loop_running = True
        if self.connack is not None:
            self.on_connect(self, None, None, _ReasonCode(self.connack), None)

    def loop_stop(self) -> None:
        self.loop_running = False

    def disconnect(self) -> None:
        self.disconnect_calls += 1

    def subscribe(self, topic: str, qos: int = 0) -> tuple[int, int]:
        self.subscriptions.append(topic)
        return mqtt.MQTT_ERR_SUCCESS, 1

    def publish_fix(self, payload: dict[str, Any] | bytes, topic: str = "owntracks/me/phone") -> None:
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        self.on_message(self, None, _Message(topic=topic, payload=body))


def _config(**overrides: Any) -> MqttRelayConfig:
    values: dict[str, Any] = {"host": "broker.local", "topic": "owntracks/me/phone", "connect_timeout": 0.2}
    values.update(overrides)
    return MqttRelayConfig(**values)


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        (0, LocationPermission.GRANTED),
        (134, LocationPermission.DENIED_FOREVER),
        (135, LocationPermission.DENIED_FOREVER),
        (138, LocationPermission.DENIED_FOREVER),
        (136, LocationPermission.DENIED),
        (133, LocationPermission.DENIED),
    ],
)
def test_permission_from_connack(code: int, expected: LocationPermission) -> None:
    assert permission_from_connack(_ReasonCode(code)) == expected
    assert permission_from_connack(code) == expected


@pytest.mark.asyncio
async def test_empty_host_means_service_disabled() -> None:
    source = MqttLocationSource(_config(host=""), client_factory=_FakeClient)

    assert await source.is_service_enabled() is False
    assert await source.get_permission_status() == LocationPermission.UNDETERMINED


@pytest.mark.asyncio
async def test_accepted_connack_grants_and_streams_fixes() -> None:
    client = _FakeClient()
    received: list[PositionSample] = []

    async with MqttLocationSource(_config(), client_factory=lambda: client) as source:
        assert await source.request_permission() == LocationPermission.GRANTED
        assert client.connected_to == ("broker.local", 1883, 60)

        subscription = await source.subscribe(LocationSettings(), received.append)
        assert client.subscriptions == ["owntracks/me/phone"]

        client.publish_fix({"_type": "location", "vel": 36, "lat": 52.0, "lon": 5.0})
        client.publish_fix(b"garbage")
        client.publish_fix(b'{"hello": 1}')
        client.publish_fix({"_type": "beacon", "uuid": "x"})
        client.publish_fix({"_type": "lwt", "tst": 1})
        await asyncio.sleep(0)

        assert [sample.speed_mps for sample in received] == [pytest.approx(10.0)]
        assert subscription.is_active

    assert not subscription.is_active
    assert client.disconnect_calls == 1
    assert client.loop_running is False


@pytest.mark.asyncio
async def test_rejected_credentials_are_denied_forever_and_disconnect() -> None:
    client = _FakeClient(connack=134)
    source = MqttLocationSource(_config(), client_factory=lambda: client)

    assert await source.request_permission() == LocationPermission.DENIED_FOREVER
    assert await source.get_permission_status() == LocationPermission.DENIED_FOREVER
    assert client.loop_running is False
    with pytest.raises(LocationSourceError):
        await source.subscribe(LocationSettings(), lambda sample: None)


@pytest.mark.asyncio
async def test_silent_broker_raises_after_connect_timeout() -> None:
    client = _FakeClient(connack=None)
    source = MqttLocationSource(_config(connect_timeout=0.01), client_factory=lambda: client)

    with pytest.raises(LocationSourceError, match="did not accept"):
        await source.request_permission()
    assert client.loop_running is False


@pytest.mark.asyncio
async def test_cancel_unsubscribes_and_ignores_late_fixes() -> None:
    client = _FakeClient()
    received: list[PositionSample] = []
    source = MqttLocationSource(_config(), client_factory=lambda: client)
    await source.request_permission()
    subscription = await source.subscribe(LocationSettings(), received.append)

    client.publish_fix({"speed": 4.0})
    await subscription.cancel()
    await asyncio.sleep(0)

    assert received == []
    assert client.disconnect_calls == 1
    await asyncio.wait_for(subscription.wait_closed(), timeout=0.1)


@pytest.mark.asyncio
async def test_monitor_over_mqtt_end_to_end() -> None:
    client = _FakeClient()

    async with MqttLocationSource(_config(), client_factory=lambda: client) as source:
        async with SpeedMonitor(source) as monitor:
            assert await monitor.start() == PermissionStatus.GRANTED

            client.publish_fix({"speed": 13.9})
            await asyncio.sleep(0)
            assert monitor.state.is_speeding is True

            client.publish_fix({"speed": 13.88})
            await asyncio.sleep(0)
            assert monitor.state.is_speeding is False

        assert client.disconnect_calls == 1


@pytest.mark.asyncio
async def test_non_fix_payload_keeps_monitor_speeding() -> None:
    client = _FakeClient()

    async with MqttLocationSource(_config(), client_factory=lambda: client) as source:
        async with SpeedMonitor(source) as monitor:
            await monitor.start()

            client.publish_fix({"speed": 30.0})
            await asyncio.sleep(0)
            assert monitor.state.is_speeding is True

            client.publish_fix(b'{"hello": 1}')
            client.publish_fix({"speed": "garbage"})
            await asyncio.sleep(0)

            assert monitor.state.is_speeding is True
            assert monitor.state.current_speed_kmh == pytest.approx(108.0)
            assert monitor.samples_received == 1


@pytest.mark.asyncio
async def test_monitor_reports_denied_when_broker_refuses() -> None:
    client = _FakeClient(connack=135)

    async with MqttLocationSource(_config(), client_factory=lambda: client) as source:
        async with SpeedMonitor(source) as monitor:
            assert await monitor.start() == PermissionStatus.DENIED_FOREVER
            assert not monitor.is_monitoring

    assert client.subscriptions == []
